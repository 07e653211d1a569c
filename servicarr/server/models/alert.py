"""Alert configuration model."""

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from servicarr.server.models.base import BaseModel

ALERT_CONFIG_ID = 1


class AlertConfig(BaseModel):
    """Singleton alerting configuration (row id 1).

    Secrets (SMTP password, Telegram bot token, webhook secret) are stored
    Fernet-encrypted in the ``*_encrypted`` columns.
    """

    __tablename__ = "alert_config"

    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Email
    smtp_host: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    smtp_port: Mapped[int] = mapped_column(Integer, nullable=False, default=587)
    smtp_user: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    smtp_password_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    smtp_skip_verify: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    alert_email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    from_email: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    # Discord
    discord_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    discord_webhook_url: Mapped[str] = mapped_column(String(1000), nullable=False, default="")

    # Slack
    slack_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    slack_webhook_url: Mapped[str] = mapped_column(String(1000), nullable=False, default="")

    # Telegram
    telegram_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    telegram_bot_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    telegram_chat_id: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    # Generic webhook
    webhook_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    webhook_url: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    webhook_secret_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Transition toggles
    alert_on_down: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    alert_on_degraded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    alert_on_up: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status_page_url: Mapped[str] = mapped_column(String(1000), nullable=False, default="")

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<AlertConfig(enabled={self.enabled}, discord={self.discord_enabled}, "
            f"slack={self.slack_enabled}, "
            f"telegram={self.telegram_enabled}, webhook={self.webhook_enabled})>"
        )
