"""Generic JSON webhook notifications with optional HMAC signing.

Receivers verify a delivery by recomputing
``"sha256=" + hex(HMAC-SHA256(secret, raw_body))`` and comparing it to the
``X-Servicarr-Signature`` header in constant time.
"""

import hashlib
import hmac
import json
from typing import Any

import httpx

from servicarr.exceptions import ConfigurationIncompleteError
from servicarr.server.notifications.base import Notification, post_json, replace_strong

SIGNATURE_HEADER = "X-Servicarr-Signature"


def build_webhook_payload(notification: Notification) -> dict[str, Any]:
    return {
        "event": "status_change",
        "service_key": notification.service_key,
        "service_name": notification.service_name,
        "status": notification.status,
        "subject": notification.subject,
        "message": replace_strong(notification.message, ""),
        "timestamp": notification.rfc3339_time,
    }


def sign_payload(secret: str, body: bytes) -> str:
    """Signature header value for ``body``."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    return hmac.compare_digest(sign_payload(secret, body), signature)


async def send_webhook(
    url: str,
    notification: Notification,
    *,
    secret: str = "",
    timeout: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """POST the status-change payload to ``url``.

    Returns:
        HTTP status code of the receiver's response.
    """
    if not url:
        raise ConfigurationIncompleteError("Webhook URL not configured")

    body = json.dumps(build_webhook_payload(notification)).encode()
    headers = {SIGNATURE_HEADER: sign_payload(secret, body)} if secret else {}
    response = await post_json(
        "webhook", url, body, headers=headers, timeout=timeout, transport=transport
    )
    return response.status_code
