"""Pydantic schemas for alert configuration and notification endpoints."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

NotificationChannel = Literal["email", "discord", "slack", "telegram", "webhook"]


class AlertConfigData(BaseModel):
    """Alert configuration with secrets in plaintext.

    This is the in-memory snapshot the alert manager works from; secrets
    are only encrypted in the database row.
    """

    enabled: bool = False

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_skip_verify: bool = False
    alert_email: str = ""
    from_email: str = ""

    discord_enabled: bool = False
    discord_webhook_url: str = ""

    slack_enabled: bool = False
    slack_webhook_url: str = ""

    telegram_enabled: bool = False
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""

    webhook_enabled: bool = False
    webhook_url: str = ""
    webhook_secret: str = ""

    alert_on_down: bool = True
    alert_on_degraded: bool = True
    alert_on_up: bool = False

    status_page_url: str = ""

    model_config = ConfigDict(from_attributes=True)


class TestNotificationRequest(BaseModel):
    """Schema for sending a test notification."""

    channel: NotificationChannel = Field(..., description="Channel to test", examples=["discord"])


class NotificationResultResponse(BaseModel):
    """Outcome of a notification attempt."""

    success: bool = Field(..., description="Whether the message was delivered")
    channel: str = Field(..., description="Notification channel")
    message: str = Field(..., description="Human-readable outcome")

    model_config = ConfigDict(from_attributes=True)


class ReloadResponse(BaseModel):
    enabled: bool = Field(..., description="Whether alerting is enabled after reload")
