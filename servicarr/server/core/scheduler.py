"""Background scheduler for monitoring tasks.

Uses APScheduler's AsyncIOScheduler to run the check coordination tick,
the statistics rollups, heartbeat cleanup and the stats cache purge.
"""

import logging
from collections.abc import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicarr.server.core.aggregation import (
    aggregate_daily_stats,
    aggregate_hourly_stats,
    cleanup_old_heartbeats,
)
from servicarr.server.core.config import Settings, get_settings
from servicarr.server.core.monitor import Monitor

logger = logging.getLogger(__name__)

# Job IDs
CHECKS_JOB_ID = "service_checks"
HOURLY_ROLLUP_JOB_ID = "hourly_rollup"
DAILY_ROLLUP_JOB_ID = "daily_rollup"
HEARTBEAT_CLEANUP_JOB_ID = "heartbeat_cleanup"
CACHE_PURGE_JOB_ID = "stats_cache_purge"


class MonitoringScheduler:
    """Owns the AsyncIOScheduler and its monitoring jobs.

    Every job runs with ``max_instances=1`` so a slow tick is skipped
    rather than overlapped.
    """

    def __init__(
        self,
        monitor: Monitor,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self.monitor = monitor
        self._session_factory = session_factory
        self.settings = settings or get_settings()
        self.scheduler = scheduler or AsyncIOScheduler()

    def configure(self) -> None:
        """Register (or replace) all monitoring jobs."""
        self._add_job(
            self._run_checks,
            IntervalTrigger(seconds=self.settings.scheduler_tick_seconds),
            CHECKS_JOB_ID,
            "Service Checks",
        )
        self._add_job(
            self._run_hourly_rollup,
            IntervalTrigger(hours=1),
            HOURLY_ROLLUP_JOB_ID,
            "Hourly Stats Rollup",
        )
        self._add_job(
            self._run_daily_rollup,
            IntervalTrigger(days=1),
            DAILY_ROLLUP_JOB_ID,
            "Daily Stats Rollup",
        )
        self._add_job(
            self._run_heartbeat_cleanup,
            IntervalTrigger(hours=1),
            HEARTBEAT_CLEANUP_JOB_ID,
            "Heartbeat Cleanup",
        )
        self._add_job(
            self._purge_stats_cache,
            IntervalTrigger(seconds=self.settings.stats_cache_ttl_seconds),
            CACHE_PURGE_JOB_ID,
            "Stats Cache Purge",
        )
        logger.info(
            f"Scheduler: Added monitoring jobs with {self.settings.scheduler_tick_seconds}s tick"
        )

    def _add_job(
        self,
        func: Callable[[], Awaitable[None]],
        trigger: IntervalTrigger,
        job_id: str,
        name: str,
    ) -> None:
        self.scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            name=name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    async def _run_checks(self) -> None:
        outcomes = await self.monitor.run_due_checks()
        if outcomes:
            logger.debug(f"Scheduler: Checked {len(outcomes)} services")

    async def _run_maintenance(
        self, name: str, job: Callable[[AsyncSession], Awaitable[int]]
    ) -> None:
        try:
            async with self._session_factory() as db:
                await job(db)
        except SQLAlchemyError as e:
            logger.error(f"Scheduler: {name} failed: {e}")

    async def _run_hourly_rollup(self) -> None:
        await self._run_maintenance("Hourly rollup", aggregate_hourly_stats)

    async def _run_daily_rollup(self) -> None:
        await self._run_maintenance("Daily rollup", aggregate_daily_stats)

    async def _run_heartbeat_cleanup(self) -> None:
        await self._run_maintenance("Heartbeat cleanup", cleanup_old_heartbeats)

    async def _purge_stats_cache(self) -> None:
        purged = self.monitor.stats.cache.purge_expired()
        if purged:
            logger.debug(f"Scheduler: Purged {purged} expired stats cache entries")

    async def start(self) -> None:
        """Register jobs and start the scheduler."""
        self.configure()
        self.scheduler.start()
        logger.info("Scheduler: Started")

    async def stop(self) -> None:
        """Gracefully shutdown scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
        logger.info("Scheduler: Stopped")
