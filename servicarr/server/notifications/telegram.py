"""Telegram Bot API notifications."""

import html
import json
from typing import Any

import httpx

from servicarr.exceptions import ConfigurationIncompleteError
from servicarr.server.notifications.base import Notification, post_json, replace_strong

TELEGRAM_API_BASE = "https://api.telegram.org"


def build_telegram_payload(chat_id: str, notification: Notification) -> dict[str, Any]:
    text = (
        f"<b>{html.escape(notification.subject)}</b>\n\n"
        f"{replace_strong(notification.message, '<b>', '</b>')}\n\n"
        f"🕒 {notification.rfc1123_time}"
    )
    return {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}


async def send_telegram(
    bot_token: str,
    chat_id: str,
    notification: Notification,
    *,
    timeout: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """Send a notification through the Bot API ``sendMessage`` method.

    Returns:
        HTTP status code of the API response.
    """
    if not bot_token or not chat_id:
        raise ConfigurationIncompleteError("Telegram bot token and chat ID required")

    url = f"{TELEGRAM_API_BASE}/bot{bot_token}/sendMessage"
    body = json.dumps(build_telegram_payload(chat_id, notification)).encode()
    response = await post_json("telegram", url, body, timeout=timeout, transport=transport)
    return response.status_code
