"""Check samples and alert status history."""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from servicarr.server.models.monitoring import Sample, ServiceStatusHistory


async def insert_sample(
    db: AsyncSession,
    ts: int,
    key: str,
    ok: bool,
    http_status: int,
    latency_ms: int | None,
) -> None:
    """Append one debounced check result."""
    db.add(
        Sample(
            ts=ts,
            service_key=key,
            ok=ok,
            http_status=http_status,
            latency_ms=latency_ms,
        )
    )
    await db.commit()


async def get_last_status(db: AsyncSession, key: str) -> tuple[bool, bool] | None:
    """Return the last (ok, degraded) acted upon for ``key``, or None."""
    stmt = select(ServiceStatusHistory.ok, ServiceStatusHistory.degraded).where(
        ServiceStatusHistory.service_key == key
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        return None
    return bool(row.ok), bool(row.degraded)


async def upsert_status_history(db: AsyncSession, key: str, ok: bool, degraded: bool) -> None:
    """Insert or overwrite the status history row for ``key``."""
    now = datetime.now(timezone.utc)
    stmt = sqlite_insert(ServiceStatusHistory).values(
        service_key=key, ok=ok, degraded=degraded, updated_at=now
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[ServiceStatusHistory.service_key],
        set_={"ok": ok, "degraded": degraded, "updated_at": now},
    )
    await db.execute(stmt)
    await db.commit()
