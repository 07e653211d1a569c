"""Slack incoming-webhook notifications."""

import json
from typing import Any

import httpx

from servicarr.exceptions import ConfigurationIncompleteError
from servicarr.server.notifications.base import PRODUCT_NAME, Notification, post_json, to_markdown

SLACK_COLORS = {"down": "#ef4444", "degraded": "#eab308", "up": "#22c55e"}
SLACK_EMOJI = {"down": ":red_circle:", "degraded": ":warning:", "up": ":white_check_mark:"}


def build_slack_payload(notification: Notification) -> dict[str, Any]:
    """Render a notification as a legacy Slack attachment."""
    return {
        "username": PRODUCT_NAME,
        "icon_emoji": SLACK_EMOJI.get(notification.status, ""),
        "attachments": [
            {
                "color": SLACK_COLORS.get(notification.status, ""),
                "title": notification.subject,
                "text": to_markdown(notification.message, "*"),
                "fields": [
                    {"title": "Service", "value": notification.service_name, "short": True},
                    {"title": "Status", "value": notification.status.upper(), "short": True},
                ],
                "footer": f"{PRODUCT_NAME} Status Monitor",
                "ts": int(notification.timestamp.timestamp()),
            }
        ],
    }


async def send_slack(
    webhook_url: str,
    notification: Notification,
    *,
    timeout: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    if not webhook_url:
        raise ConfigurationIncompleteError("Slack webhook URL not configured")

    body = json.dumps(build_slack_payload(notification)).encode()
    response = await post_json("slack", webhook_url, body, timeout=timeout, transport=transport)
    return response.status_code
