"""Shared types and helpers for notification channels."""

import html
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Literal

import httpx

from servicarr.exceptions import DispatchError
from servicarr.server.core.checker import USER_AGENT, sanitize_error

StatusType = Literal["up", "down", "degraded"]

STATUS_COLORS: dict[str, int] = {
    "down": 0xEF4444,
    "degraded": 0xEAB308,
    "up": 0x22C55E,
}

PRODUCT_NAME = "Servicarr"


@dataclass(frozen=True)
class Notification:
    """A status-change message, rendered per channel."""

    service_key: str
    service_name: str
    status: StatusType
    subject: str
    message: str
    status_page_url: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def rfc1123_time(self) -> str:
        return format_datetime(self.timestamp.astimezone(timezone.utc), usegmt=True)

    @property
    def rfc3339_time(self) -> str:
        return self.timestamp.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class NotificationResult:
    """Outcome of one channel delivery."""

    success: bool
    channel: str
    message: str


def replace_strong(message: str, opening: str, closing: str | None = None) -> str:
    """Replace ``<strong>`` markup with another emphasis syntax."""
    closing = opening if closing is None else closing
    return message.replace("<strong>", opening).replace("</strong>", closing)


def to_markdown(message: str, marker: str) -> str:
    """Convert an HTML message to markdown-style text with ``marker`` emphasis."""
    return html.unescape(replace_strong(message, marker))


async def post_json(
    channel: str,
    url: str,
    body: bytes,
    *,
    headers: dict[str, str] | None = None,
    timeout: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.Response:
    """POST a JSON body and fail on transport errors or HTTP >= 400.

    Raises:
        DispatchError: If the request fails or the endpoint rejects it.
    """
    request_headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
    request_headers.update(headers or {})

    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(url, content=body, headers=request_headers)
    except httpx.HTTPError as e:
        detail = sanitize_error(str(e) or type(e).__name__)
        raise DispatchError(f"{channel} request failed: {detail}", channel=channel) from e

    if response.status_code >= 400:
        raise DispatchError(
            f"{channel} returned HTTP {response.status_code}",
            channel=channel,
            status_code=response.status_code,
        )
    return response
