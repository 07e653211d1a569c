"""Three-tier rollup of check statistics.

Minutely buckets are folded into hourly buckets, hourly into daily. Each
job reads its source rows into memory before issuing any write, since
SQLite serializes writers on one connection and an open read cursor
would block the upserts that follow it.

A per-tier watermark in ``rollup_cursors`` records the upper boundary
already folded, so running a job twice never counts a bucket twice.
"""

import logging
import time
from typing import Any

from sqlalchemy import case, delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from servicarr.server.models.monitoring import (
    Heartbeat,
    RollupCursor,
    StatDaily,
    StatHourly,
    StatMinutely,
)

logger = logging.getLogger(__name__)

MINUTE = 60
HOUR = 3600
DAY = 86400

MINUTELY_RETENTION = 24 * HOUR
HOURLY_RETENTION = 30 * DAY
DAILY_RETENTION = 365 * DAY
HEARTBEAT_RETENTION = 24 * HOUR
IMPORTANT_HEARTBEAT_RETENTION = 7 * DAY

StatModel = type[StatMinutely] | type[StatHourly] | type[StatDaily]


def upsert_bucket(model: StatModel, values: dict[str, Any]):
    """Build an additive upsert into a rollup tier.

    On conflict, up/down and ping_count are summed, ping becomes the mean
    of both sides weighted by ping_count and ping_min/ping_max are merged.
    A side with no ping leaves the other side's ping untouched.
    """
    table = model.__table__
    stmt = sqlite_insert(model).values(**values)
    new = stmt.excluded

    old_count = table.c.ping_count
    new_count = new.ping_count
    ping = case(
        (new.ping.is_(None), table.c.ping),
        (table.c.ping.is_(None), new.ping),
        else_=(table.c.ping * old_count + new.ping * new_count)
        / func.max(old_count + new_count, 1),
    )
    ping_min = case(
        (new.ping_min.is_(None), table.c.ping_min),
        else_=func.coalesce(func.min(table.c.ping_min, new.ping_min), new.ping_min),
    )
    ping_max = case(
        (new.ping_max.is_(None), table.c.ping_max),
        else_=func.coalesce(func.max(table.c.ping_max, new.ping_max), new.ping_max),
    )

    return stmt.on_conflict_do_update(
        index_elements=[table.c.service_key, table.c.ts],
        set_={
            "up": table.c.up + new.up,
            "down": table.c.down + new.down,
            "ping": ping,
            "ping_count": table.c.ping_count + new.ping_count,
            "ping_min": ping_min,
            "ping_max": ping_max,
        },
    )


async def _get_watermark(db: AsyncSession, tier: str) -> int:
    cursor = await db.get(RollupCursor, tier)
    return cursor.watermark if cursor else 0


async def _set_watermark(db: AsyncSession, tier: str, watermark: int) -> None:
    cursor = await db.get(RollupCursor, tier)
    if cursor is None:
        db.add(RollupCursor(tier=tier, watermark=watermark))
    else:
        cursor.watermark = watermark


async def _fold(
    db: AsyncSession,
    source: StatModel,
    target: StatModel,
    tier: str,
    period: int,
    boundary: int,
) -> tuple[int, int]:
    """Fold ``source`` buckets in [watermark, boundary) into ``target``.

    Returns:
        Tuple of (rows written, watermark after the fold).
    """
    watermark = await _get_watermark(db, tier)
    if boundary <= watermark:
        return 0, watermark

    bucket = (source.ts // period * period).label("bucket")
    stmt = (
        select(
            source.service_key,
            bucket,
            func.sum(source.up).label("up"),
            func.sum(source.down).label("down"),
            (
                func.sum(source.ping * source.ping_count)
                / func.nullif(func.sum(source.ping_count), 0)
            ).label("ping"),
            func.coalesce(func.sum(source.ping_count), 0).label("ping_count"),
            func.min(source.ping_min).label("ping_min"),
            func.max(source.ping_max).label("ping_max"),
        )
        .where(source.ts >= watermark, source.ts < boundary)
        .group_by(source.service_key, bucket)
    )
    # Materialize before writing
    rows = (await db.execute(stmt)).all()

    for row in rows:
        await db.execute(
            upsert_bucket(
                target,
                {
                    "service_key": row.service_key,
                    "ts": int(row.bucket),
                    "up": int(row.up or 0),
                    "down": int(row.down or 0),
                    "ping": row.ping,
                    "ping_count": int(row.ping_count),
                    "ping_min": row.ping_min,
                    "ping_max": row.ping_max,
                },
            )
        )
    await _set_watermark(db, tier, boundary)
    return len(rows), boundary


async def aggregate_hourly_stats(db: AsyncSession, now: float | None = None) -> int:
    """Fold minutely buckets older than an hour into hourly buckets.

    Then deletes minutely buckets older than 24 hours that have already
    been folded.

    Args:
        db: Database session.
        now: Current unix time; defaults to the wall clock.

    Returns:
        Number of hourly buckets written.
    """
    now = int(now if now is not None else time.time())
    boundary = (now - HOUR) // HOUR * HOUR

    written, watermark = await _fold(db, StatMinutely, StatHourly, "hourly", HOUR, boundary)
    cutoff = min(now - MINUTELY_RETENTION, watermark)
    await db.execute(delete(StatMinutely).where(StatMinutely.ts < cutoff))
    await db.commit()

    logger.info(f"Aggregated {written} hourly stat buckets")
    return written


async def aggregate_daily_stats(db: AsyncSession, now: float | None = None) -> int:
    """Fold hourly buckets older than a day into daily buckets.

    Only hours already complete in the hourly tier are folded. Afterwards
    hourly buckets older than 30 days and daily buckets older than 365
    days are deleted.

    Returns:
        Number of daily buckets written.
    """
    now = int(now if now is not None else time.time())
    hourly_watermark = await _get_watermark(db, "hourly")
    boundary = min((now - DAY) // DAY * DAY, hourly_watermark // DAY * DAY)

    written, watermark = await _fold(db, StatHourly, StatDaily, "daily", DAY, boundary)
    cutoff = min(now - HOURLY_RETENTION, watermark)
    await db.execute(delete(StatHourly).where(StatHourly.ts < cutoff))
    await db.execute(delete(StatDaily).where(StatDaily.ts < now - DAILY_RETENTION))
    await db.commit()

    logger.info(f"Aggregated {written} daily stat buckets")
    return written


async def cleanup_old_heartbeats(db: AsyncSession, now: float | None = None) -> int:
    """Delete routine heartbeats after 24h and all heartbeats after 7 days.

    Returns:
        Number of heartbeats deleted.
    """
    now = int(now if now is not None else time.time())
    routine = await db.execute(
        delete(Heartbeat).where(
            Heartbeat.important.is_(False), Heartbeat.ts < now - HEARTBEAT_RETENTION
        )
    )
    expired = await db.execute(
        delete(Heartbeat).where(Heartbeat.ts < now - IMPORTANT_HEARTBEAT_RETENTION)
    )
    await db.commit()

    deleted = (routine.rowcount or 0) + (expired.rowcount or 0)
    if deleted:
        logger.info(f"Cleaned up {deleted} old heartbeats")
    return deleted
