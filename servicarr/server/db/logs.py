"""Audit log store."""

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from servicarr.server.models.log import SystemLog


class LogLevel:
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class LogCategory:
    CHECK = "check"
    EMAIL = "email"
    NOTIFICATION = "notification"
    SECURITY = "security"
    SYSTEM = "system"
    SCHEDULE = "schedule"


async def insert_log(
    db: AsyncSession,
    level: str,
    category: str,
    service_key: str,
    message: str,
    details: str = "",
) -> None:
    """Append an audit entry and commit."""
    db.add(
        SystemLog(
            level=level,
            category=category,
            service_key=service_key,
            message=message,
            details=details,
        )
    )
    await db.commit()


async def get_logs(
    db: AsyncSession,
    *,
    level: str | None = None,
    category: str | None = None,
    service_key: str | None = None,
    limit: int = 100,
) -> list[SystemLog]:
    """Return audit entries, newest first, with optional filters."""
    stmt = select(SystemLog)
    if level is not None:
        stmt = stmt.where(SystemLog.level == level)
    if category is not None:
        stmt = stmt.where(SystemLog.category == category)
    if service_key is not None:
        stmt = stmt.where(SystemLog.service_key == service_key)
    stmt = stmt.order_by(SystemLog.id.desc()).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def prune_logs(db: AsyncSession, keep: int) -> int:
    """Delete all but the newest ``keep`` audit entries.

    Returns:
        Number of rows deleted.
    """
    cutoff_stmt = select(SystemLog.id).order_by(SystemLog.id.desc()).offset(keep).limit(1)
    cutoff = (await db.execute(cutoff_stmt)).scalar_one_or_none()
    if cutoff is None:
        return 0
    result = await db.execute(delete(SystemLog).where(SystemLog.id <= cutoff))
    await db.commit()
    return result.rowcount or 0
