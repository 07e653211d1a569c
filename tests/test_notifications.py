"""Tests for notification channel payloads and delivery."""

import hashlib
import hmac
import json
import smtplib
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import httpx
import pytest

from servicarr.exceptions import ConfigurationIncompleteError, DispatchError
from servicarr.server.notifications.base import Notification, post_json
from servicarr.server.notifications.discord import build_discord_payload, send_discord
from servicarr.server.notifications.email import build_message, render_email_html, send_email
from servicarr.server.notifications.slack import build_slack_payload, send_slack
from servicarr.server.notifications.telegram import build_telegram_payload, send_telegram
from servicarr.server.notifications.webhook import (
    SIGNATURE_HEADER,
    build_webhook_payload,
    send_webhook,
    sign_payload,
    verify_signature,
)
from servicarr.server.schemas.alert import AlertConfigData


@pytest.fixture
def notification() -> Notification:
    return Notification(
        service_key="plex",
        service_name="Plex",
        status="down",
        subject="🔴 Service Down: Plex",
        message="The service <strong>Plex</strong> is currently unreachable.",
        status_page_url="https://status.example.com",
        timestamp=datetime(2024, 3, 1, 12, 30, 0, tzinfo=timezone.utc),
    )


class Recorder:
    """httpx MockTransport handler that records requests."""

    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": True})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class TestWebhookSignature:
    """Test HMAC signing of webhook bodies."""

    def test_signature_format(self):
        body = b'{"event":"status_change"}'
        expected = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()
        assert sign_payload("s3cret", body) == f"sha256={expected}"

    def test_verify_round_trip(self):
        body = b'{"status":"down"}'
        signature = sign_payload("s3cret", body)
        assert verify_signature("s3cret", body, signature)
        assert not verify_signature("s3cret", b'{"status":"dowN"}', signature)
        assert not verify_signature("other", body, signature)


class TestWebhook:
    """Test the generic webhook channel."""

    def test_payload(self, notification: Notification):
        payload = build_webhook_payload(notification)
        assert payload == {
            "event": "status_change",
            "service_key": "plex",
            "service_name": "Plex",
            "status": "down",
            "subject": "🔴 Service Down: Plex",
            "message": "The service Plex is currently unreachable.",
            "timestamp": "2024-03-01T12:30:00Z",
        }

    @pytest.mark.asyncio
    async def test_signed_delivery(self, notification: Notification):
        recorder = Recorder()
        status = await send_webhook(
            "https://hooks.example.com/servicarr",
            notification,
            secret="s3cret",
            transport=recorder.transport,
        )

        assert status == 200
        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.headers["User-Agent"] == "Servicarr/1.0"
        assert request.headers[SIGNATURE_HEADER] == sign_payload("s3cret", request.content)
        assert json.loads(request.content)["service_key"] == "plex"

    @pytest.mark.asyncio
    async def test_unsigned_without_secret(self, notification: Notification):
        recorder = Recorder()
        await send_webhook(
            "https://hooks.example.com/x", notification, transport=recorder.transport
        )
        assert SIGNATURE_HEADER not in recorder.requests[0].headers

    @pytest.mark.asyncio
    async def test_http_error_raises(self, notification: Notification):
        recorder = Recorder(status_code=500)
        with pytest.raises(DispatchError) as exc_info:
            await send_webhook(
                "https://hooks.example.com/x", notification, transport=recorder.transport
            )
        assert exc_info.value.status_code == 500
        assert exc_info.value.channel == "webhook"

    @pytest.mark.asyncio
    async def test_missing_url(self, notification: Notification):
        with pytest.raises(ConfigurationIncompleteError):
            await send_webhook("", notification)


class TestDiscord:
    """Test the Discord channel."""

    def test_embed(self, notification: Notification):
        payload = build_discord_payload(notification)
        embed = payload["embeds"][0]

        assert payload["username"] == "Servicarr"
        assert embed["title"] == notification.subject
        assert embed["description"] == "The service **Plex** is currently unreachable."
        assert embed["color"] == 0xEF4444
        assert [field["name"] for field in embed["fields"]] == ["Service", "Status", "Time"]
        assert embed["fields"][1]["value"] == "DOWN"
        assert embed["fields"][2]["value"] == "Fri, 01 Mar 2024 12:30:00 GMT"

    def test_escaped_names_are_unescaped(self):
        escaped = Notification(
            service_key="lab",
            service_name="R&D <lab>",
            status="down",
            subject="s",
            message="The service <strong>R&amp;D &lt;lab&gt;</strong> is down.",
        )
        description = build_discord_payload(escaped)["embeds"][0]["description"]
        assert description == "The service **R&D <lab>** is down."

    @pytest.mark.parametrize(("status", "color"), [("degraded", 0xEAB308), ("up", 0x22C55E)])
    def test_colors(self, notification: Notification, status: str, color: int):
        other = Notification(
            service_key="plex",
            service_name="Plex",
            status=status,
            subject="s",
            message="m",
        )
        assert build_discord_payload(other)["embeds"][0]["color"] == color

    @pytest.mark.asyncio
    async def test_delivery(self, notification: Notification):
        recorder = Recorder(status_code=204)
        status = await send_discord(
            "https://discord.test/api/webhooks/1/abc", notification, transport=recorder.transport
        )
        assert status == 204
        embed = json.loads(recorder.requests[0].content)["embeds"][0]
        assert embed["title"] == notification.subject

    @pytest.mark.asyncio
    async def test_missing_url(self, notification: Notification):
        with pytest.raises(ConfigurationIncompleteError):
            await send_discord("", notification)


class TestSlack:
    """Test the Slack channel."""

    def test_attachment(self, notification: Notification):
        payload = build_slack_payload(notification)
        attachment = payload["attachments"][0]

        assert payload["username"] == "Servicarr"
        assert payload["icon_emoji"] == ":red_circle:"
        assert attachment["color"] == "#ef4444"
        assert attachment["title"] == notification.subject
        assert attachment["text"] == "The service *Plex* is currently unreachable."
        assert attachment["fields"] == [
            {"title": "Service", "value": "Plex", "short": True},
            {"title": "Status", "value": "DOWN", "short": True},
        ]
        assert attachment["footer"] == "Servicarr Status Monitor"
        assert attachment["ts"] == 1709296200

    @pytest.mark.parametrize(
        ("status", "emoji", "color"),
        [("degraded", ":warning:", "#eab308"), ("up", ":white_check_mark:", "#22c55e")],
    )
    def test_status_styles(self, status: str, emoji: str, color: str):
        other = Notification(
            service_key="plex", service_name="Plex", status=status, subject="s", message="m"
        )
        payload = build_slack_payload(other)
        assert payload["icon_emoji"] == emoji
        assert payload["attachments"][0]["color"] == color

    @pytest.mark.asyncio
    async def test_delivery(self, notification: Notification):
        recorder = Recorder()
        status = await send_slack(
            "https://hooks.slack.test/services/1", notification, transport=recorder.transport
        )
        assert status == 200
        assert json.loads(recorder.requests[0].content)["attachments"][0]["title"] == (
            notification.subject
        )

    @pytest.mark.asyncio
    async def test_missing_url(self, notification: Notification):
        with pytest.raises(ConfigurationIncompleteError):
            await send_slack("", notification)

    @pytest.mark.asyncio
    async def test_rejected_by_endpoint(self, notification: Notification):
        with pytest.raises(DispatchError) as exc_info:
            await send_slack(
                "https://hooks.slack.test/services/1",
                notification,
                transport=Recorder(status_code=404).transport,
            )
        assert exc_info.value.channel == "slack"


class TestTelegram:
    """Test the Telegram channel."""

    def test_payload(self, notification: Notification):
        payload = build_telegram_payload("12345", notification)
        assert payload["chat_id"] == "12345"
        assert payload["parse_mode"] == "HTML"
        assert payload["text"] == (
            "<b>🔴 Service Down: Plex</b>\n\n"
            "The service <b>Plex</b> is currently unreachable.\n\n"
            "🕒 Fri, 01 Mar 2024 12:30:00 GMT"
        )

    def test_markup_in_names_is_escaped(self):
        escaped = Notification(
            service_key="lab",
            service_name="R&D <lab>",
            status="down",
            subject="🔴 Service Down: R&D <lab>",
            message="The service <strong>R&amp;D &lt;lab&gt;</strong> is down.",
        )
        text = build_telegram_payload("1", escaped)["text"]
        assert text.startswith("<b>🔴 Service Down: R&amp;D &lt;lab&gt;</b>")
        assert "<b>R&amp;D &lt;lab&gt;</b>" in text

    @pytest.mark.asyncio
    async def test_delivery_uses_bot_endpoint(self, notification: Notification):
        recorder = Recorder()
        await send_telegram("123:ABC", "42", notification, transport=recorder.transport)
        assert str(recorder.requests[0].url) == "https://api.telegram.org/bot123:ABC/sendMessage"

    @pytest.mark.asyncio
    async def test_missing_credentials(self, notification: Notification):
        with pytest.raises(ConfigurationIncompleteError):
            await send_telegram("", "42", notification)
        with pytest.raises(ConfigurationIncompleteError):
            await send_telegram("123:ABC", "", notification)


class TestPostJson:
    """Test the shared HTTP helper."""

    @pytest.mark.asyncio
    async def test_transport_error_is_sanitized(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("cannot reach https://hooks.example.com/?token=abc")

        with pytest.raises(DispatchError) as exc_info:
            await post_json(
                "webhook",
                "https://hooks.example.com/",
                b"{}",
                transport=httpx.MockTransport(handler),
            )
        assert "abc" not in str(exc_info.value)
        assert exc_info.value.status_code is None


class TestEmail:
    """Test the SMTP email channel."""

    @pytest.fixture
    def config(self) -> AlertConfigData:
        return AlertConfigData(
            enabled=True,
            smtp_host="smtp.example.com",
            smtp_port=587,
            smtp_user="monitor@example.com",
            smtp_password="pw",
            alert_email="ops@example.com",
        )

    def test_render_escapes_names(self, notification: Notification):
        other = Notification(
            service_key="x",
            service_name="<script>",
            status="up",
            subject="Up",
            message="The service <strong>x</strong> is up.",
        )
        html_body = render_email_html(other)
        assert "&lt;script&gt;" in html_body
        assert "<strong>x</strong>" in html_body
        assert "SERVICE UP" in html_body

        assert "https://status.example.com" in render_email_html(notification)

    def test_from_falls_back_to_user(self, config: AlertConfigData):
        message = build_message(config, "Subject", "<p>hi</p>")
        assert message["From"] == "monitor@example.com"
        assert message["To"] == "ops@example.com"

    @pytest.mark.asyncio
    async def test_incomplete_config_makes_no_connection(self, config: AlertConfigData):
        config.smtp_host = ""
        with patch("servicarr.server.notifications.email.smtplib.SMTP") as smtp_cls:
            with pytest.raises(ConfigurationIncompleteError, match="SMTP configuration incomplete"):
                await send_email(config, "Subject", "<p>hi</p>")
        smtp_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_recipient(self, config: AlertConfigData):
        config.alert_email = ""
        with pytest.raises(ConfigurationIncompleteError):
            await send_email(config, "Subject", "<p>hi</p>")

    @pytest.mark.asyncio
    async def test_starttls_and_auth_when_advertised(self, config: AlertConfigData):
        client = MagicMock()
        client.__enter__.return_value = client
        client.has_extn.side_effect = lambda name: name in ("starttls", "auth")

        with patch("servicarr.server.notifications.email.smtplib.SMTP", return_value=client):
            await send_email(config, "Subject", "<p>hi</p>")

        client.starttls.assert_called_once()
        client.login.assert_called_once_with("monitor@example.com", "pw")
        client.sendmail.assert_called_once()
        assert client.sendmail.call_args.args[1] == ["ops@example.com"]

    @pytest.mark.asyncio
    async def test_no_login_without_auth(self, config: AlertConfigData):
        client = MagicMock()
        client.__enter__.return_value = client
        client.has_extn.return_value = False

        with patch("servicarr.server.notifications.email.smtplib.SMTP", return_value=client):
            await send_email(config, "Subject", "<p>hi</p>")

        client.starttls.assert_not_called()
        client.login.assert_not_called()

    @pytest.mark.asyncio
    async def test_implicit_tls_port(self, config: AlertConfigData):
        config.smtp_port = 465
        client = MagicMock()
        client.__enter__.return_value = client
        client.has_extn.return_value = True

        with patch(
            "servicarr.server.notifications.email.smtplib.SMTP_SSL", return_value=client
        ) as ssl_cls, patch("servicarr.server.notifications.email.smtplib.SMTP") as plain_cls:
            await send_email(config, "Subject", "<p>hi</p>")

        ssl_cls.assert_called_once()
        plain_cls.assert_not_called()
        client.starttls.assert_not_called()

    @pytest.mark.asyncio
    async def test_smtp_failure_raises_dispatch_error(self, config: AlertConfigData):
        with patch(
            "servicarr.server.notifications.email.smtplib.SMTP",
            side_effect=smtplib.SMTPConnectError(421, b"busy"),
        ):
            with pytest.raises(DispatchError) as exc_info:
                await send_email(config, "Subject", "<p>hi</p>")
        assert exc_info.value.channel == "email"
