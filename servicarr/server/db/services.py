"""Service configuration store."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from servicarr.exceptions import ServiceNotFoundError
from servicarr.server.core.security import decrypt_secret, encrypt_secret
from servicarr.server.models.service import ServiceConfig

logger = logging.getLogger(__name__)

DEMO_SERVICE_KEY = "demo-service"
DEMO_SERVICE_NAME = "Demo Service"
_LEGACY_DEMO_URLS = ("", "https://httpstat.us/200")


async def list_services(db: AsyncSession) -> list[ServiceConfig]:
    """Return all configured services in display order."""
    stmt = select(ServiceConfig).order_by(ServiceConfig.display_order, ServiceConfig.id)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_service_by_key(db: AsyncSession, key: str) -> ServiceConfig | None:
    stmt = select(ServiceConfig).where(ServiceConfig.key == key)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def require_service(db: AsyncSession, key: str) -> ServiceConfig:
    """Return the service for ``key`` or raise ServiceNotFoundError."""
    service = await get_service_by_key(db, key)
    if service is None:
        raise ServiceNotFoundError(key)
    return service


async def create_service(
    db: AsyncSession,
    key: str,
    name: str,
    url: str,
    *,
    api_token: str | None = None,
    **fields,
) -> ServiceConfig:
    """Create a service, encrypting its API token.

    Args:
        db: Database session.
        key: Unique, immutable service key.
        name: Display name.
        url: Target URL or address.
        api_token: Optional plaintext API token.
        **fields: Any other ServiceConfig column.

    Returns:
        The persisted service.
    """
    service = ServiceConfig(
        key=key,
        name=name,
        url=url,
        api_token_encrypted=encrypt_secret(api_token),
        **fields,
    )
    db.add(service)
    await db.commit()
    await db.refresh(service)
    return service


def service_api_token(service: ServiceConfig) -> str:
    """Decrypted API token for a service, or an empty string."""
    return decrypt_secret(service.api_token_encrypted)


async def get_disabled_state(db: AsyncSession, key: str) -> bool:
    """Whether monitoring is disabled for ``key``. Unknown keys are not disabled."""
    stmt = select(ServiceConfig.disabled).where(ServiceConfig.key == key)
    result = await db.execute(stmt)
    return bool(result.scalar_one_or_none())


async def set_disabled_state(db: AsyncSession, key: str, disabled: bool) -> None:
    service = await require_service(db, key)
    service.disabled = disabled
    await db.commit()


async def ensure_demo_service(db: AsyncSession) -> bool:
    """Convert the built-in demo service to an always-up check.

    Only the untouched demo service (default name, legacy placeholder URL)
    is rewritten.

    Returns:
        True if the service was updated.
    """
    service = await get_service_by_key(db, DEMO_SERVICE_KEY)
    if service is None or service.name != DEMO_SERVICE_NAME:
        return False
    if service.check_type == "always_up":
        return False
    if service.url not in _LEGACY_DEMO_URLS:
        return False

    service.url = "http://localhost"
    service.check_type = "always_up"
    if service.expected_min == 0:
        service.expected_min = 200
    if service.expected_max == 0:
        service.expected_max = 299
    await db.commit()
    logger.info("Converted demo service to always_up check")
    return True
