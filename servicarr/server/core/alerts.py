"""Status-change alerting.

AlertManager decides, per service and per check, whether a transition
deserves a notification and fans it out to every configured channel.
Decisions use the status history table (what the user was last told),
not the raw failure counters.

Channel deliveries run as independent background tasks: the caller never
waits on them and one channel failing does not affect the others.
"""

import asyncio
import html
import logging
from collections.abc import Iterable, Mapping
from typing import Any

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicarr.exceptions import ServicarrError
from servicarr.server.core.config import Settings, get_settings
from servicarr.server.db.alert_config import load_alert_config
from servicarr.server.db.logs import LogCategory, LogLevel, insert_log
from servicarr.server.db.samples import get_last_status, upsert_status_history
from servicarr.server.db.services import get_service_by_key
from servicarr.server.notifications.base import Notification, NotificationResult, StatusType
from servicarr.server.notifications.discord import send_discord
from servicarr.server.notifications.email import render_email_html, send_email
from servicarr.server.notifications.slack import send_slack
from servicarr.server.notifications.telegram import send_telegram
from servicarr.server.notifications.webhook import send_webhook
from servicarr.server.schemas.alert import AlertConfigData

logger = logging.getLogger(__name__)

CHANNELS = ("email", "discord", "slack", "telegram", "webhook")

TEST_SUBJECT = "🔔 Test Notification from Servicarr"
TEST_EMAIL_SUBJECT = "Test Alert from Servicarr"


def normalize_status_page_url(raw: str | None) -> str:
    """Trim a status page URL and add ``http://`` when no scheme is given."""
    url = (raw or "").strip()
    if not url:
        return ""
    if not url.startswith(("http://", "https://")):
        return f"http://{url}"
    return url


def infer_request_base_url(headers: Mapping[str, str], scheme: str = "http") -> str:
    """Base URL of the incoming request, honoring reverse-proxy headers.

    Args:
        headers: Request headers (case-insensitive mapping).
        scheme: Scheme the request arrived on.

    Returns:
        ``proto://host`` or an empty string when no host is known.
    """
    host = headers.get("host", "")
    forwarded_host = headers.get("x-forwarded-host", "")
    if forwarded_host:
        host = forwarded_host.split(",")[0].strip()

    proto = headers.get("x-forwarded-proto", "").split(",")[0].strip()
    if not proto:
        proto = "https" if scheme == "https" else "http"

    if not host:
        return ""
    return f"{proto}://{host}"


def build_transition_notification(
    status: StatusType,
    service_key: str,
    service_name: str,
    status_page_url: str = "",
    degraded_latency_ms: int = 200,
) -> Notification:
    """Subject and message for a down, recovered or degraded transition."""
    name = html.escape(service_name)
    if status == "down":
        subject = f"🔴 Service Down: {service_name}"
        message = (
            f"The service <strong>{name}</strong> is currently unreachable and not "
            "responding to health checks. Please investigate immediately."
        )
    elif status == "up":
        subject = f"✅ Service Recovered: {service_name}"
        message = (
            f"Great news! The service <strong>{name}</strong> has recovered and is "
            "now responding normally to health checks."
        )
    else:
        subject = f"⚠️ Service Degraded: {service_name}"
        message = (
            f"The service <strong>{name}</strong> is responding but experiencing high "
            f"latency (over {degraded_latency_ms}ms). Performance may be impacted."
        )
    return Notification(
        service_key=service_key,
        service_name=service_name,
        status=status,
        subject=subject,
        message=message,
        status_page_url=status_page_url,
    )


def _parse_dependencies(depends_on: str | Iterable[str] | None) -> list[str]:
    if not depends_on:
        return []
    items = depends_on.split(",") if isinstance(depends_on, str) else depends_on
    return [key.strip() for key in items if key and key.strip()]


class AlertManager:
    """Transition detection and multi-channel notification dispatch.

    Usage:
        manager = AlertManager(AsyncSessionLocal)
        await manager.reload_config()
        await manager.check_and_send_alerts(db, "plex", "Plex", ok=False, degraded=False)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the manager without a configuration.

        Args:
            session_factory: Factory for the sessions delivery tasks log with.
            settings: Application settings; defaults to the cached settings.
            transport: Optional httpx transport for outbound notifications.
        """
        self._session_factory = session_factory
        self.settings = settings or get_settings()
        self.config: AlertConfigData | None = None
        self._transport = transport
        self._pending: set[asyncio.Task[NotificationResult]] = set()

    async def reload_config(self) -> AlertConfigData | None:
        """Re-read the alert configuration from the database."""
        async with self._session_factory() as db:
            self.config = await load_alert_config(db)
        logger.info(
            f"Alert config reloaded (enabled={bool(self.config and self.config.enabled)})"
        )
        return self.config

    def set_config(self, config: AlertConfigData | None) -> None:
        self.config = config

    def resolve_status_page_url(self, fallback: str = "") -> str:
        """Dashboard link: configured URL, then environment, then ``fallback``."""
        if self.config is not None and self.config.status_page_url.strip():
            return normalize_status_page_url(self.config.status_page_url)
        if self.settings.status_page_url.strip():
            return normalize_status_page_url(self.settings.status_page_url)
        return normalize_status_page_url(fallback)

    async def check_and_send_alerts(
        self,
        db: AsyncSession,
        service_key: str,
        service_name: str,
        ok: bool,
        degraded: bool,
        depends_on: str | Iterable[str] | None = None,
    ) -> StatusType | None:
        """Evaluate a debounced check result and notify on transitions.

        The status history row is always updated, whether or not an alert
        was sent.

        Args:
            db: Database session.
            service_key: Service key.
            service_name: Name used in messages.
            ok: Debounced up/down status.
            degraded: Whether the service is up but slow.
            depends_on: Upstream service keys. When None, they are read
                from the service configuration.

        Returns:
            The status that was dispatched, or None.
        """
        config = self.config
        if config is None or not config.enabled:
            return None

        if depends_on is None:
            service = await get_service_by_key(db, service_key)
            depends_on = service.dependency_keys if service is not None else []

        for dependency in _parse_dependencies(depends_on):
            last = await get_last_status(db, dependency)
            if last is not None and not last[0]:
                await insert_log(
                    db,
                    LogLevel.INFO,
                    LogCategory.NOTIFICATION,
                    service_key,
                    "Alert suppressed: upstream dependency down",
                    f"depends_on={dependency}",
                )
                await upsert_status_history(db, service_key, ok, degraded)
                logger.info(f"Alert for {service_key} suppressed, dependency {dependency} is down")
                return None

        previous = await get_last_status(db, service_key)
        fired: StatusType | None = None

        if previous is None:
            if not ok and config.alert_on_down:
                fired = "down"
            elif ok and degraded and config.alert_on_degraded:
                fired = "degraded"
            suffix = " (first status)"
        else:
            prev_ok, prev_degraded = previous
            if not ok and prev_ok and config.alert_on_down:
                fired = "down"
            elif ok and not prev_ok and config.alert_on_up:
                fired = "up"
            elif ok and degraded and not prev_degraded and config.alert_on_degraded:
                fired = "degraded"
            suffix = ""

        if fired is not None:
            level, label = {
                "down": (LogLevel.ERROR, "Service went DOWN"),
                "up": (LogLevel.INFO, "Service RECOVERED"),
                "degraded": (LogLevel.WARN, "Service DEGRADED"),
            }[fired]
            await insert_log(
                db,
                level,
                LogCategory.NOTIFICATION,
                service_key,
                f"{label} - sending alert{suffix}",
                service_name,
            )
            notification = build_transition_notification(
                fired,
                service_key,
                service_name,
                self.resolve_status_page_url(),
                self.settings.degraded_latency_ms,
            )
            self.dispatch_all(notification, config)

        await upsert_status_history(db, service_key, ok, degraded)
        return fired

    def enabled_channels(self, config: AlertConfigData) -> list[str]:
        """Channels with enough configuration to attempt delivery."""
        channels = []
        if config.smtp_host and config.alert_email:
            channels.append("email")
        if config.discord_enabled and config.discord_webhook_url:
            channels.append("discord")
        if config.slack_enabled and config.slack_webhook_url:
            channels.append("slack")
        if config.telegram_enabled and config.telegram_bot_token and config.telegram_chat_id:
            channels.append("telegram")
        if config.webhook_enabled and config.webhook_url:
            channels.append("webhook")
        return channels

    def dispatch_all(
        self,
        notification: Notification,
        config: AlertConfigData | None = None,
    ) -> list[asyncio.Task[NotificationResult]]:
        """Start one delivery task per enabled channel and return them.

        Tasks are not awaited here.
        """
        config = config or self.config
        if config is None:
            return []

        tasks = []
        for channel in self.enabled_channels(config):
            task = asyncio.create_task(
                self._deliver(channel, config, notification),
                name=f"notify-{channel}-{notification.service_key}",
            )
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            tasks.append(task)
        return tasks

    async def wait_for_dispatches(self, timeout: float | None = None) -> list[NotificationResult]:
        """Wait for in-flight deliveries, e.g. at shutdown."""
        pending = list(self._pending)
        if not pending:
            return []
        done, _ = await asyncio.wait(pending, timeout=timeout)
        return [task.result() for task in done if not task.cancelled()]

    async def _send(self, channel: str, config: AlertConfigData, notification: Notification) -> str:
        """Deliver through one channel and return an audit detail string."""
        timeout = self.settings.notification_timeout_seconds
        if channel == "email":
            await send_email(
                config, notification.subject, render_email_html(notification), timeout=timeout
            )
            return f"to={config.alert_email}, subject={notification.subject}"
        if channel == "discord":
            status = await send_discord(
                config.discord_webhook_url,
                notification,
                timeout=timeout,
                transport=self._transport,
            )
        elif channel == "slack":
            status = await send_slack(
                config.slack_webhook_url,
                notification,
                timeout=timeout,
                transport=self._transport,
            )
        elif channel == "telegram":
            status = await send_telegram(
                config.telegram_bot_token,
                config.telegram_chat_id,
                notification,
                timeout=timeout,
                transport=self._transport,
            )
        elif channel == "webhook":
            status = await send_webhook(
                config.webhook_url,
                notification,
                secret=config.webhook_secret,
                timeout=timeout,
                transport=self._transport,
            )
        else:
            raise ValueError(f"unknown channel: {channel}")
        return f"status={status}"

    async def _deliver(
        self, channel: str, config: AlertConfigData, notification: Notification
    ) -> NotificationResult:
        label = "Email" if channel == "email" else f"{channel.capitalize()} notification"
        try:
            detail = await self._send(channel, config, notification)
        except ServicarrError as e:
            logger.warning(f"{label} failed for {notification.service_key}: {e}")
            result = NotificationResult(False, channel, str(e))
            level, message, detail = LogLevel.ERROR, f"{label} failed", str(e)
        except Exception as e:
            logger.exception(f"{label} failed unexpectedly for {notification.service_key}")
            result = NotificationResult(False, channel, str(e))
            level, message, detail = LogLevel.ERROR, f"{label} failed", str(e)
        else:
            result = NotificationResult(True, channel, f"{label} sent")
            level, message = LogLevel.INFO, f"{label} sent"

        category = LogCategory.EMAIL if channel == "email" else LogCategory.NOTIFICATION
        try:
            async with self._session_factory() as db:
                await insert_log(db, level, category, notification.service_key, message, detail)
        except SQLAlchemyError as e:
            logger.error(f"Failed to write audit log for {channel} delivery: {e}")
        return result

    async def send_test_notification(
        self, channel: str, fallback_base_url: str = ""
    ) -> NotificationResult:
        """Send a test message through one channel and wait for the outcome.

        Args:
            channel: One of email, discord, slack, telegram, webhook.
            fallback_base_url: Link used when no status page URL is configured.

        Returns:
            Result with a human-readable reason on failure.
        """
        if channel not in CHANNELS:
            return NotificationResult(False, channel, f"unknown channel: {channel}")

        config = self.config
        if config is None:
            return NotificationResult(False, channel, "alerts not configured")
        if channel == "email" and not config.enabled:
            return NotificationResult(False, channel, "alerts not configured or disabled")

        status_page_url = self.resolve_status_page_url(fallback_base_url)
        if channel == "email":
            notification = Notification(
                service_key="test",
                service_name="Test Service",
                status="up",
                subject=TEST_EMAIL_SUBJECT,
                message=(
                    "This is a test email from your Servicarr monitoring system. If you "
                    "received this, your email configuration is working correctly!"
                ),
                status_page_url=status_page_url,
            )
        else:
            notification = Notification(
                service_key="test",
                service_name="Test Service",
                status="up",
                subject=TEST_SUBJECT,
                message=(
                    f"This is a test notification from Servicarr. If you see this, "
                    f"{channel.capitalize()} notifications are working!"
                ),
                status_page_url=status_page_url,
            )

        result = await self._deliver(channel, config, notification)
        if result.success and channel == "email":
            result.message = f"Test email sent successfully to {config.alert_email}"
        elif result.success:
            result.message = f"Test {channel} notification sent"
        return result

    def summary(self) -> dict[str, Any]:
        config = self.config
        return {
            "enabled": bool(config and config.enabled),
            "channels": self.enabled_channels(config) if config else [],
            "pending": len(self._pending),
        }
