"""Uptime and latency statistics.

StatsEngine owns one UptimeCalculator per service (the in-memory ring of
recent heartbeats) plus a short-lived cache of computed uptime figures.
It is constructed once by the application and shared by the scheduler
and the API.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import Integer, cast, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from servicarr.server.core.aggregation import MINUTE, upsert_bucket
from servicarr.server.core.cache import TTLCache
from servicarr.server.core.checker import sanitize_error
from servicarr.server.models.monitoring import Heartbeat, Sample, StatMinutely

logger = logging.getLogger(__name__)

RECENT_HEARTBEAT_LIMIT = 100

WINDOW_24H = timedelta(hours=24)
WINDOW_7D = timedelta(days=7)
WINDOW_30D = timedelta(days=30)


@dataclass(frozen=True)
class RecentHeartbeat:
    """In-memory copy of a recorded heartbeat."""

    status: int
    time: datetime
    ping: int | None
    http_status: int
    msg: str
    important: bool


@dataclass
class UptimeStats:
    """Uptime percentages, average latency and last check time for a service."""

    uptime_24h: float
    uptime_7d: float
    uptime_30d: float
    avg_latency: float
    last_checked: datetime | None = None


def _window_key(window: timedelta) -> int:
    return int(window.total_seconds())


class UptimeCalculator:
    """Recent heartbeats and uptime queries for one service."""

    def __init__(
        self, service_key: str, cache: TTLCache, history_size: int = RECENT_HEARTBEAT_LIMIT
    ):
        self.service_key = service_key
        self._cache = cache
        self._recent: deque[RecentHeartbeat] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    @property
    def cache_key(self) -> str:
        return f"uptime:{self.service_key}"

    def add_heartbeat(
        self,
        status: int,
        ping: int | None,
        http_status: int,
        msg: str,
        at: datetime | None = None,
    ) -> bool:
        """Append a heartbeat to the ring buffer.

        Returns:
            True if the status differs from the previous heartbeat, or this
            is the first heartbeat seen.
        """
        with self._lock:
            important = not self._recent or self._recent[-1].status != status
            self._recent.append(
                RecentHeartbeat(
                    status=status,
                    time=at or datetime.now(timezone.utc),
                    ping=ping,
                    http_status=http_status,
                    msg=msg,
                    important=important,
                )
            )
        self._cache.delete(self.cache_key)
        return important

    def get_recent_heartbeats(self, count: int = RECENT_HEARTBEAT_LIMIT) -> list[RecentHeartbeat]:
        """Snapshot of up to ``count`` heartbeats, newest first."""
        with self._lock:
            snapshot = list(self._recent)
        snapshot.reverse()
        return snapshot[: max(count, 0)]

    async def get_uptime(
        self, db: AsyncSession, window: timedelta, now: float | None = None
    ) -> float:
        """Percentage of ok samples within ``window``.

        A window without samples reports 100.0.
        """
        window_key = _window_key(window)
        cached = self._cache.get(self.cache_key)
        if cached is not None and window_key in cached:
            return cached[window_key]

        since = int((now if now is not None else time.time()) - window.total_seconds())
        stmt = select(
            func.coalesce(func.sum(cast(Sample.ok, Integer)), 0),
            func.count(),
        ).where(Sample.service_key == self.service_key, Sample.ts >= since)
        up_count, total = (await db.execute(stmt)).one()

        if not total:
            return 100.0

        uptime = float(up_count) / float(total) * 100

        # Entries for other windows are kept alongside this one.
        merged = dict(self._cache.get(self.cache_key) or {})
        merged[window_key] = uptime
        self._cache.set(self.cache_key, merged)
        return uptime

    async def get_average_latency(
        self, db: AsyncSession, window: timedelta, now: float | None = None
    ) -> float:
        """Mean latency of samples with a recorded latency; 0 without data."""
        since = int((now if now is not None else time.time()) - window.total_seconds())
        stmt = select(func.avg(Sample.latency_ms)).where(
            Sample.service_key == self.service_key,
            Sample.ts >= since,
            Sample.latency_ms.is_not(None),
        )
        avg = (await db.execute(stmt)).scalar()
        return float(avg) if avg is not None else 0.0


class StatsEngine:
    """Registry of per-service calculators and the shared stats cache.

    Usage:
        engine = StatsEngine(cache_ttl=30)
        important = await engine.record_heartbeat(db, "plex", True, 42, 200, "")
        stats = await engine.get_uptime_stats(db, "plex")
    """

    def __init__(self, cache_ttl: float = 30.0, history_size: int = RECENT_HEARTBEAT_LIMIT) -> None:
        self.cache = TTLCache(cache_ttl)
        self.history_size = history_size
        self._calculators: dict[str, UptimeCalculator] = {}
        self._lock = threading.Lock()

    def get_calculator(self, service_key: str) -> UptimeCalculator:
        """Return the calculator for ``service_key``, creating it on first use."""
        with self._lock:
            calc = self._calculators.get(service_key)
            if calc is None:
                calc = UptimeCalculator(service_key, self.cache, self.history_size)
                self._calculators[service_key] = calc
            return calc

    def remove_calculator(self, service_key: str) -> None:
        """Forget a deleted service's heartbeats and cached figures."""
        with self._lock:
            self._calculators.pop(service_key, None)
        self.invalidate(service_key)

    def invalidate(self, service_key: str) -> None:
        self.cache.delete(f"uptime:{service_key}")
        self.cache.delete(f"uptime_stats:{service_key}")

    def get_recent_heartbeats(
        self, service_key: str, count: int = RECENT_HEARTBEAT_LIMIT
    ) -> list[RecentHeartbeat]:
        return self.get_calculator(service_key).get_recent_heartbeats(count)

    async def record_heartbeat(
        self,
        db: AsyncSession,
        service_key: str,
        ok: bool,
        ping: int | None,
        http_status: int,
        msg: str,
        now: float | None = None,
    ) -> bool:
        """Record a check outcome as a heartbeat and in its minutely bucket.

        The message is sanitized before it is stored. Database errors are
        logged and do not propagate; the in-memory history is still
        updated.

        Args:
            db: Database session.
            service_key: Service key.
            ok: Debounced status.
            ping: Latency in milliseconds, if measured.
            http_status: HTTP status code, 0 when not applicable.
            msg: Error message from the check.
            now: Unix time of the check; defaults to the wall clock.

        Returns:
            Whether the heartbeat marks a status change.
        """
        ts = now if now is not None else time.time()
        safe_msg = sanitize_error(msg)
        status = 1 if ok else 0

        calc = self.get_calculator(service_key)
        important = calc.add_heartbeat(
            status, ping, http_status, safe_msg, at=datetime.fromtimestamp(ts, timezone.utc)
        )
        self.cache.delete(f"uptime_stats:{service_key}")

        try:
            db.add(
                Heartbeat(
                    service_key=service_key,
                    status=status,
                    ts=int(ts),
                    msg=safe_msg,
                    ping=ping,
                    http_status=http_status,
                    important=important,
                )
            )
            await db.execute(
                upsert_bucket(
                    StatMinutely,
                    {
                        "service_key": service_key,
                        "ts": int(ts) // MINUTE * MINUTE,
                        "up": 1 if ok else 0,
                        "down": 0 if ok else 1,
                        "ping": ping,
                        "ping_count": 0 if ping is None else 1,
                        "ping_min": ping,
                        "ping_max": ping,
                    },
                )
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Error recording heartbeat for {service_key}: {e}")

        return important

    async def get_uptime_stats(
        self, db: AsyncSession, service_key: str, now: float | None = None
    ) -> UptimeStats:
        """Uptime over 24h/7d/30d, 24h average latency and last check time.

        Cached per service for the cache TTL.
        """
        cache_key = f"uptime_stats:{service_key}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        calc = self.get_calculator(service_key)
        stats = UptimeStats(
            uptime_24h=await calc.get_uptime(db, WINDOW_24H, now),
            uptime_7d=await calc.get_uptime(db, WINDOW_7D, now),
            uptime_30d=await calc.get_uptime(db, WINDOW_30D, now),
            avg_latency=await calc.get_average_latency(db, WINDOW_24H, now),
        )

        stmt = select(func.max(Heartbeat.ts)).where(Heartbeat.service_key == service_key)
        last_ts = (await db.execute(stmt)).scalar()
        if last_ts is not None:
            stats.last_checked = datetime.fromtimestamp(last_ts, timezone.utc)

        self.cache.set(cache_key, stats)
        return stats
