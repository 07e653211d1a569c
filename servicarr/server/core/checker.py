"""Service health probes.

A check is resolved once into a CheckKind and dispatched to the matching
probe. Probes never raise: transport errors, timeouts and blocked targets
all become a failed CheckResult with a sanitized error message.
"""

import asyncio
import ipaddress
import logging
import re
import socket
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

import httpx

from servicarr.exceptions import TargetBlockedError

if TYPE_CHECKING:
    from servicarr.server.models.service import ServiceConfig

logger = logging.getLogger(__name__)

USER_AGENT = "Servicarr/1.0"
DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_EXPECTED_MIN = 200
DEFAULT_EXPECTED_MAX = 399

BLOCKED_HOSTNAMES = frozenset({"metadata.google.internal", "metadata"})
BLOCKED_NETWORKS = (
    ipaddress.ip_network("169.254.169.254/32"),  # AWS, GCP, Azure
    ipaddress.ip_network("fd00:ec2::254/128"),  # AWS IMDS over IPv6
)

ARR_SERVICE_TYPES = frozenset(
    {"sonarr", "radarr", "lidarr", "readarr", "prowlarr", "bazarr", "overseerr", "jellyseerr"}
)


class CheckKind(str, Enum):
    """Probe variants."""

    HTTP = "http"
    TCP = "tcp"
    DNS = "dns"
    ALWAYS_UP = "always_up"


def resolve_check_kind(check_type: str | None, url: str) -> CheckKind:
    """Pick the probe for a configured check type and target.

    An empty or ``http`` type is refined by the ``tcp://`` / ``dns://`` URL
    prefix. ``demo`` is an alias of ``always_up``; unknown types fall back
    to HTTP.
    """
    name = (check_type or "").strip().lower()
    url = url.strip()

    if name in ("", "http"):
        if url.startswith("tcp://"):
            return CheckKind.TCP
        if url.startswith("dns://"):
            return CheckKind.DNS
        return CheckKind.HTTP
    if name in ("always_up", "demo"):
        return CheckKind.ALWAYS_UP
    if name == "tcp":
        return CheckKind.TCP
    if name == "dns":
        return CheckKind.DNS
    return CheckKind.HTTP


@dataclass(frozen=True)
class CheckOptions:
    """Normalized parameters for one probe."""

    url: str
    kind: CheckKind = CheckKind.HTTP
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    expected_min: int = DEFAULT_EXPECTED_MIN
    expected_max: int = DEFAULT_EXPECTED_MAX
    service_type: str = ""
    api_token: str = field(default="", repr=False)

    @classmethod
    def create(
        cls,
        url: str,
        *,
        timeout: float | None = None,
        expected_min: int = 0,
        expected_max: int = 0,
        check_type: str | None = None,
        service_type: str = "",
        api_token: str = "",
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> "CheckOptions":
        """Build options, applying defaults for zero/empty values.

        Args:
            url: Target URL, ``tcp://host:port`` or ``dns://hostname``.
            timeout: Probe timeout in seconds; <= 0 or None uses default_timeout.
            expected_min: Lowest accepted HTTP status; 0 means 200.
            expected_max: Highest accepted HTTP status; 0 means 399.
            check_type: Configured type name.
            service_type: Application type used for token placement.
            api_token: Optional plaintext API token.
            default_timeout: Fallback timeout in seconds.
        """
        url = url.strip()
        return cls(
            url=url,
            kind=resolve_check_kind(check_type, url),
            timeout=timeout if timeout and timeout > 0 else default_timeout,
            expected_min=expected_min or DEFAULT_EXPECTED_MIN,
            expected_max=expected_max or DEFAULT_EXPECTED_MAX,
            service_type=(service_type or "").strip().lower(),
            api_token=(api_token or "").strip(),
        )

    @classmethod
    def from_service(
        cls,
        service: "ServiceConfig",
        api_token: str = "",
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> "CheckOptions":
        return cls.create(
            service.url,
            timeout=service.timeout,
            expected_min=service.expected_min,
            expected_max=service.expected_max,
            check_type=service.check_type,
            service_type=service.service_type,
            api_token=api_token,
            default_timeout=default_timeout,
        )


@dataclass
class CheckResult:
    """Raw outcome of one probe."""

    ok: bool
    http_status: int = 0
    latency_ms: int | None = None
    error: str = ""


# Error sanitization
_URL_RE = re.compile(r"\b[a-zA-Z][a-zA-Z0-9+.\-]*://[^\s\"'<>]+")
_SECRET_PARAM_RE = re.compile(r"(?i)\b(x-plex-token|api_?key|token|key)=[^&\s\"']+")
_BEARER_RE = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/=\-]+")
MAX_ERROR_LENGTH = 500


def sanitize_error(message: str, api_token: str = "") -> str:
    """Strip URLs and credentials from an error message.

    Check errors are persisted and may be shown in the UI, so anything
    that could carry a token is replaced.
    """
    if not message:
        return ""
    if api_token:
        message = message.replace(api_token, "[redacted]")
    message = _SECRET_PARAM_RE.sub(lambda m: f"{m.group(1)}=[redacted]", message)
    message = _BEARER_RE.sub("Bearer [redacted]", message)
    message = _URL_RE.sub("[url]", message)
    return message[:MAX_ERROR_LENGTH]


def _describe(exc: BaseException) -> str:
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return f"timeout: {exc}" if str(exc) else "timeout"
    return str(exc) or type(exc).__name__


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


# SSRF protection
async def _resolve_addresses(host: str) -> list[str]:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


def _is_blocked_ip(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return False
    return any(ip in network for network in BLOCKED_NETWORKS)


async def validate_target(url: str) -> None:
    """Reject URLs pointing at cloud metadata endpoints.

    Private addresses are allowed. A host that cannot be resolved is
    allowed too; the probe itself will fail.

    Raises:
        TargetBlockedError: If the host is a metadata hostname or resolves
            to a metadata IP.
    """
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return
    if not host:
        return

    if host.lower() in BLOCKED_HOSTNAMES:
        raise TargetBlockedError(
            f"URL target {host!r} is a blocked cloud metadata endpoint", host=host
        )

    if _is_blocked_ip(host):
        raise TargetBlockedError(
            f"URL target {host!r} resolves to blocked cloud metadata IP {host}", host=host
        )

    try:
        addresses = await _resolve_addresses(host)
    except (OSError, UnicodeError):
        return
    for address in addresses:
        if _is_blocked_ip(address):
            raise TargetBlockedError(
                f"URL target {host!r} resolves to blocked cloud metadata IP {address}",
                host=host,
            )


# Probes
async def _probe_always_up(options: CheckOptions) -> CheckResult:
    return CheckResult(ok=True, http_status=200, latency_ms=0)


def _split_host_port(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid tcp address {address!r}, expected host:port")
    return host.strip("[]"), int(port)


async def _probe_tcp(options: CheckOptions) -> CheckResult:
    address = options.url.removeprefix("tcp://")
    started = time.perf_counter()
    try:
        host, port = _split_host_port(address)
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=options.timeout
        )
    except (OSError, ValueError, asyncio.TimeoutError) as e:
        error = sanitize_error(_describe(e), options.api_token)
        logger.info(f"tcp check error addr={address} err={error}")
        return CheckResult(ok=False, error=error)

    latency = _elapsed_ms(started)
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return CheckResult(ok=True, latency_ms=latency)


async def _probe_dns(options: CheckOptions) -> CheckResult:
    hostname = options.url.removeprefix("dns://")
    started = time.perf_counter()
    try:
        addresses = await asyncio.wait_for(_resolve_addresses(hostname), timeout=options.timeout)
    except (OSError, UnicodeError, asyncio.TimeoutError) as e:
        error = sanitize_error(_describe(e), options.api_token)
        logger.info(f"dns check error hostname={hostname} err={error}")
        return CheckResult(ok=False, latency_ms=_elapsed_ms(started), error=error)

    latency = _elapsed_ms(started)
    if not addresses:
        logger.info(f"dns check error hostname={hostname} no addresses returned")
        return CheckResult(ok=False, latency_ms=latency, error="no addresses returned")

    logger.debug(f"dns check success hostname={hostname} resolved to {sorted(set(addresses))}")
    return CheckResult(ok=True, latency_ms=latency)


def build_auth(service_type: str, token: str) -> tuple[dict[str, str], dict[str, str]]:
    """Return (headers, query params) that carry ``token`` for a service type."""
    if not token:
        return {}, {}

    if service_type == "plex":
        return {"X-Plex-Token": token}, {"X-Plex-Token": token}
    if service_type in ARR_SERVICE_TYPES:
        return {"X-Api-Key": token}, {}
    if service_type == "tautulli":
        return {}, {"apikey": token}
    if service_type in ("jellyfin", "emby"):
        return {"X-Emby-Token": token}, {}
    if service_type == "homeassistant":
        if token.lower().startswith("bearer "):
            return {"Authorization": token}, {}
        return {"Authorization": f"Bearer {token}"}, {}
    return {"X-Api-Key": token, "Authorization": f"Bearer {token}"}, {}


async def _probe_http(options: CheckOptions) -> CheckResult:
    try:
        await validate_target(options.url)
    except TargetBlockedError as e:
        logger.warning(f"SSRF blocked: {e}")
        return CheckResult(ok=False, error=str(e))

    auth_headers, auth_params = build_auth(options.service_type, options.api_token)
    headers = {"User-Agent": USER_AGENT, "Accept": "application/json", **auth_headers}
    try:
        url = httpx.URL(options.url)
        if auth_params:
            url = url.copy_merge_params(auth_params)
    except (httpx.InvalidURL, TypeError, ValueError):
        return CheckResult(ok=False, error="invalid URL")

    async def validate_redirect(request: httpx.Request) -> None:
        if request.url != url:
            await validate_target(str(request.url))

    started = time.perf_counter()
    try:
        async with httpx.AsyncClient(
            timeout=options.timeout,
            follow_redirects=True,
            event_hooks={"request": [validate_redirect]},
        ) as client:
            async with asyncio.timeout(options.timeout):
                async with client.stream("GET", url, headers=headers) as response:
                    status = response.status_code
    except TargetBlockedError as e:
        logger.warning(f"SSRF blocked redirect: {e}")
        return CheckResult(ok=False, error=str(e))
    except (httpx.HTTPError, OSError, UnicodeError, asyncio.TimeoutError) as e:
        error = sanitize_error(_describe(e), options.api_token)
        logger.info(f"http check error err={error}")
        return CheckResult(ok=False, error=error)

    latency = _elapsed_ms(started)
    ok = options.expected_min <= status <= options.expected_max
    return CheckResult(ok=ok, http_status=status, latency_ms=latency)


PROBES: dict[CheckKind, Callable[[CheckOptions], Awaitable[CheckResult]]] = {
    CheckKind.ALWAYS_UP: _probe_always_up,
    CheckKind.TCP: _probe_tcp,
    CheckKind.DNS: _probe_dns,
    CheckKind.HTTP: _probe_http,
}


async def check(options: CheckOptions) -> CheckResult:
    """Run the probe selected by ``options.kind``."""
    return await PROBES[options.kind](options)


async def run_check(
    url: str,
    timeout: float | None = None,
    expected_min: int = 0,
    expected_max: int = 0,
    check_type: str | None = None,
    service_type: str = "",
    api_token: str = "",
) -> CheckResult:
    """Probe a target given loose parameters.

    Convenience wrapper around ``CheckOptions.create`` and ``check``.
    """
    options = CheckOptions.create(
        url,
        timeout=timeout,
        expected_min=expected_min,
        expected_max=expected_max,
        check_type=check_type,
        service_type=service_type,
        api_token=api_token,
    )
    return await check(options)
