"""Discord webhook notifications."""

import json
from typing import Any

import httpx

from servicarr.exceptions import ConfigurationIncompleteError
from servicarr.server.notifications.base import (
    PRODUCT_NAME,
    STATUS_COLORS,
    Notification,
    post_json,
    to_markdown,
)


def build_discord_payload(notification: Notification) -> dict[str, Any]:
    """Render a notification as a Discord embed."""
    return {
        "username": PRODUCT_NAME,
        "embeds": [
            {
                "title": notification.subject,
                "description": to_markdown(notification.message, "**"),
                "color": STATUS_COLORS.get(notification.status, 0),
                "fields": [
                    {"name": "Service", "value": notification.service_name, "inline": True},
                    {"name": "Status", "value": notification.status.upper(), "inline": True},
                    {"name": "Time", "value": notification.rfc1123_time, "inline": False},
                ],
                "footer": {"text": f"{PRODUCT_NAME} Status Monitor"},
            }
        ],
    }


async def send_discord(
    webhook_url: str,
    notification: Notification,
    *,
    timeout: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """Post a notification to a Discord webhook.

    Returns:
        HTTP status code of the webhook response.
    """
    if not webhook_url:
        raise ConfigurationIncompleteError("Discord webhook URL not configured")

    body = json.dumps(build_discord_payload(notification)).encode()
    response = await post_json("discord", webhook_url, body, timeout=timeout, transport=transport)
    return response.status_code
