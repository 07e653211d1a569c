"""Check pipeline: probe, debounce, record, alert.

Monitor ties the check executor, failure tracker, statistics engine and
alert manager together. The scheduler calls ``run_due_checks`` on every
coordination tick; the API calls ``check_now``, ``ingest_now`` and
``set_monitoring_enabled``.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicarr.server.core.alerts import AlertManager
from servicarr.server.core.checker import CheckOptions, CheckResult, check
from servicarr.server.core.config import Settings, get_settings
from servicarr.server.core.stats import StatsEngine
from servicarr.server.core.tracker import FailureTracker
from servicarr.server.db.logs import LogCategory, LogLevel, insert_log, prune_logs
from servicarr.server.db.samples import insert_sample
from servicarr.server.db.services import (
    list_services,
    require_service,
    service_api_token,
    set_disabled_state,
)
from servicarr.server.models.service import ServiceConfig
from servicarr.server.notifications.base import StatusType

logger = logging.getLogger(__name__)

MIN_SERVICE_INTERVAL_SECONDS = 10

Checker = Callable[[CheckOptions], Awaitable[CheckResult]]


@dataclass
class CheckOutcome:
    """Debounced result of one service check."""

    service_key: str
    name: str
    check_type: str
    raw_ok: bool
    ok: bool
    degraded: bool
    http_status: int = 0
    latency_ms: int | None = None
    error: str = ""
    consecutive_failures: int = 0
    important: bool = False
    disabled: bool = False
    alert: StatusType | None = None
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Monitor:
    """Runs service checks and feeds their results through the pipeline.

    Usage:
        monitor = Monitor(AsyncSessionLocal, FailureTracker(), StatsEngine(), alert_manager)
        outcomes = await monitor.run_due_checks()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tracker: FailureTracker,
        stats: StatsEngine,
        alerts: AlertManager,
        settings: Settings | None = None,
        *,
        checker: Checker = check,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self.tracker = tracker
        self.stats = stats
        self.alerts = alerts
        self.settings = settings or get_settings()
        self._checker = checker
        self._clock = clock
        self._last_run: dict[str, float] = {}
        self._last_log_prune: float | None = None

    def interval_for(self, service: ServiceConfig) -> float:
        """Seconds between checks; short or unset intervals use the default."""
        if service.check_interval < MIN_SERVICE_INTERVAL_SECONDS:
            return float(self.settings.poll_interval_seconds)
        return float(service.check_interval)

    def _is_due(self, service: ServiceConfig, now: float) -> bool:
        last = self._last_run.get(service.key)
        return last is None or now - last >= self.interval_for(service)

    async def run_due_checks(self) -> list[CheckOutcome]:
        """One coordination tick.

        Reloads the service list, forgets state for removed services and
        checks every enabled service whose interval has elapsed. A failure
        while checking one service is logged and does not stop the others.
        """
        try:
            async with self._session_factory() as db:
                services = await list_services(db)
        except SQLAlchemyError as e:
            logger.warning(f"Scheduler: Failed to reload services: {e}")
            return []

        valid_keys = {service.key for service in services}
        for key in [k for k in self._last_run if k not in valid_keys]:
            del self._last_run[key]
            self.stats.remove_calculator(key)
        self.tracker.prune(valid_keys)

        now = self._clock()
        outcomes: list[CheckOutcome] = []
        for service in services:
            if not self._is_due(service, now):
                continue
            self._last_run[service.key] = now

            if service.disabled:
                continue

            try:
                outcomes.append(await self.check_service(service, alert=True))
            except Exception:
                logger.exception(f"Scheduler: Check for {service.key} failed")

        if (
            self._last_log_prune is None
            or now - self._last_log_prune > self.settings.log_prune_interval_seconds
        ):
            await self._prune_logs()
            self._last_log_prune = now

        return outcomes

    async def _prune_logs(self) -> None:
        try:
            async with self._session_factory() as db:
                deleted = await prune_logs(db, self.settings.log_retention_count)
        except SQLAlchemyError as e:
            logger.warning(f"Scheduler: Failed to prune audit log: {e}")
            return
        if deleted:
            logger.info(f"Scheduler: Pruned {deleted} audit log entries")

    async def check_service(self, service: ServiceConfig, alert: bool = True) -> CheckOutcome:
        """Probe one service and record the debounced outcome.

        Args:
            service: Service to check.
            alert: Whether to write the check audit entry and run alerting.
        """
        options = CheckOptions.from_service(
            service,
            api_token=service_api_token(service),
            default_timeout=self.settings.default_check_timeout_seconds,
        )
        result = await self._checker(options)

        failures = self.tracker.update(service.key, result.ok)
        ok = self.tracker.is_ok(result.ok, failures)
        degraded = (
            ok
            and result.latency_ms is not None
            and result.latency_ms > self.settings.degraded_latency_ms
        )

        if result.error:
            logger.info(
                f"Check {service.key}: {result.error} "
                f"(failures: {failures}/{self.tracker.threshold})"
            )

        checked_at = time.time()
        outcome = CheckOutcome(
            service_key=service.key,
            name=service.display_name,
            check_type=options.kind.value,
            raw_ok=result.ok,
            ok=ok,
            degraded=degraded,
            http_status=result.http_status,
            latency_ms=result.latency_ms,
            error=result.error,
            consecutive_failures=failures,
            checked_at=datetime.fromtimestamp(checked_at, timezone.utc),
        )

        async with self._session_factory() as db:
            outcome.important = await self.stats.record_heartbeat(
                db,
                service.key,
                ok,
                result.latency_ms,
                result.http_status,
                result.error,
                now=checked_at,
            )
            try:
                await insert_sample(
                    db, int(checked_at), service.key, ok, result.http_status, result.latency_ms
                )
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"Error inserting sample for {service.key}: {e}")

            if alert:
                await self._log_check(db, service, outcome)
                outcome.alert = await self.alerts.check_and_send_alerts(
                    db,
                    service.key,
                    service.display_name,
                    ok,
                    degraded,
                    depends_on=service.dependency_keys,
                )

        return outcome

    async def _log_check(
        self, db: AsyncSession, service: ServiceConfig, outcome: CheckOutcome
    ) -> None:
        if outcome.latency_ms is not None:
            details = (
                f"status={outcome.http_status}, latency={outcome.latency_ms}ms, "
                f"interval={service.check_interval}s"
            )
        else:
            details = f"status={outcome.http_status}, interval={service.check_interval}s"

        if not outcome.ok:
            level, message = LogLevel.ERROR, "Service check failed"
            if outcome.error:
                details += f", error={outcome.error}"
        elif outcome.degraded:
            level, message = LogLevel.WARN, "Service degraded (slow response)"
        else:
            level, message = LogLevel.INFO, "Service check passed"

        try:
            await insert_log(db, level, LogCategory.CHECK, service.key, message, details)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Error writing check log for {service.key}: {e}")

    async def check_now(self, key: str) -> CheckOutcome:
        """Check one service immediately, without alerting.

        A disabled service is not probed; its outcome is reported as
        disabled.

        Raises:
            ServiceNotFoundError: If no service has this key.
        """
        async with self._session_factory() as db:
            service = await require_service(db, key)

        if service.disabled:
            return CheckOutcome(
                service_key=service.key,
                name=service.display_name,
                check_type=service.check_type,
                raw_ok=False,
                ok=False,
                degraded=False,
                disabled=True,
            )
        return await self.check_service(service, alert=False)

    async def ingest_now(self) -> list[CheckOutcome]:
        """Check every enabled service immediately, without alerting."""
        async with self._session_factory() as db:
            services = await list_services(db)

        outcomes = []
        for service in services:
            if service.disabled:
                continue
            try:
                outcomes.append(await self.check_service(service, alert=False))
            except Exception:
                logger.exception(f"Immediate check for {service.key} failed")
        return outcomes

    async def set_monitoring_enabled(self, key: str, enabled: bool) -> None:
        """Enable or disable checks for a service.

        Disabling clears the failure counter so re-enabling starts fresh.

        Raises:
            ServiceNotFoundError: If no service has this key.
        """
        async with self._session_factory() as db:
            await set_disabled_state(db, key, not enabled)
            await insert_log(
                db,
                LogLevel.INFO,
                LogCategory.SYSTEM,
                key,
                "Monitoring enabled" if enabled else "Monitoring disabled",
            )
        if not enabled:
            self.tracker.reset(key)
        logger.info(f"Monitoring {'enabled' if enabled else 'disabled'} for {key}")
