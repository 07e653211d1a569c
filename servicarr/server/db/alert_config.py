"""Alert configuration store.

Secrets are encrypted on save and decrypted on load, so callers only
ever handle plaintext AlertConfigData.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from servicarr.server.core.security import decrypt_secret, encrypt_secret
from servicarr.server.models.alert import ALERT_CONFIG_ID, AlertConfig
from servicarr.server.schemas.alert import AlertConfigData

_SECRET_FIELDS = {
    "smtp_password": "smtp_password_encrypted",
    "telegram_bot_token": "telegram_bot_token_encrypted",
    "webhook_secret": "webhook_secret_encrypted",
}


async def load_alert_config(db: AsyncSession) -> AlertConfigData | None:
    """Load the singleton alert configuration, or None if never saved."""
    row = await db.get(AlertConfig, ALERT_CONFIG_ID)
    if row is None:
        return None

    values = {
        name: getattr(row, name)
        for name in AlertConfigData.model_fields
        if name not in _SECRET_FIELDS
    }
    for name, column in _SECRET_FIELDS.items():
        values[name] = decrypt_secret(getattr(row, column))
    return AlertConfigData(**values)


async def save_alert_config(db: AsyncSession, data: AlertConfigData) -> None:
    """Create or replace the singleton alert configuration."""
    row = await db.get(AlertConfig, ALERT_CONFIG_ID)
    if row is None:
        row = AlertConfig(id=ALERT_CONFIG_ID)
        db.add(row)

    for name, value in data.model_dump().items():
        if name in _SECRET_FIELDS:
            setattr(row, _SECRET_FIELDS[name], encrypt_secret(value))
        else:
            setattr(row, name, value)
    await db.commit()
