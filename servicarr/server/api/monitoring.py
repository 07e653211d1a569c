"""Monitoring statistics and on-demand check API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from servicarr.exceptions import ServiceNotFoundError
from servicarr.server.api.deps import get_monitor, get_stats_engine
from servicarr.server.core.monitor import Monitor
from servicarr.server.core.stats import RECENT_HEARTBEAT_LIMIT, StatsEngine
from servicarr.server.db.init import get_db
from servicarr.server.db.logs import get_logs
from servicarr.server.db.services import get_service_by_key
from servicarr.server.schemas.monitoring import (
    CheckOutcomeResponse,
    HeartbeatResponse,
    LogEntryResponse,
    MonitoringToggleRequest,
    MonitoringToggleResponse,
    UptimeStatsResponse,
)

router = APIRouter(prefix="/api/v1/monitoring", tags=["monitoring"])


async def _require_service(db: AsyncSession, key: str) -> None:
    if await get_service_by_key(db, key) is None:
        raise HTTPException(status_code=404, detail="unknown service")


@router.get("/services/{key}/stats", response_model=UptimeStatsResponse)
async def get_service_stats(
    key: str,
    db: AsyncSession = Depends(get_db),
    stats: StatsEngine = Depends(get_stats_engine),
) -> UptimeStatsResponse:
    """Get uptime over 24h/7d/30d and 24h average latency for a service."""
    await _require_service(db, key)
    uptime = await stats.get_uptime_stats(db, key)
    return UptimeStatsResponse(service_key=key, **uptime.__dict__)


@router.get("/services/{key}/heartbeats", response_model=list[HeartbeatResponse])
async def get_recent_heartbeats(
    key: str,
    limit: int = Query(50, ge=1, le=RECENT_HEARTBEAT_LIMIT, description="Maximum heartbeats"),
    db: AsyncSession = Depends(get_db),
    stats: StatsEngine = Depends(get_stats_engine),
) -> list[HeartbeatResponse]:
    """Get the most recent heartbeats for a service, newest first."""
    await _require_service(db, key)
    return [
        HeartbeatResponse.model_validate(hb) for hb in stats.get_recent_heartbeats(key, limit)
    ]


@router.post("/services/{key}/check", response_model=CheckOutcomeResponse)
async def check_service_now(
    key: str,
    monitor: Monitor = Depends(get_monitor),
) -> CheckOutcomeResponse:
    """Run a check for one service immediately.

    Records the result like a scheduled check but never sends alerts.
    """
    try:
        outcome = await monitor.check_now(key)
    except ServiceNotFoundError:
        raise HTTPException(status_code=404, detail="unknown service")
    return CheckOutcomeResponse.model_validate(outcome)


@router.post("/ingest", response_model=list[CheckOutcomeResponse])
async def ingest_now(monitor: Monitor = Depends(get_monitor)) -> list[CheckOutcomeResponse]:
    """Check every enabled service immediately, without alerting."""
    outcomes = await monitor.ingest_now()
    return [CheckOutcomeResponse.model_validate(o) for o in outcomes]


@router.put("/services/{key}/monitoring", response_model=MonitoringToggleResponse)
async def toggle_monitoring(
    key: str,
    update: MonitoringToggleRequest,
    monitor: Monitor = Depends(get_monitor),
) -> MonitoringToggleResponse:
    """Enable or disable monitoring for a service."""
    try:
        await monitor.set_monitoring_enabled(key, update.enabled)
    except ServiceNotFoundError:
        raise HTTPException(status_code=404, detail="unknown service")
    return MonitoringToggleResponse(service=key, enabled=update.enabled)


@router.get("/logs", response_model=list[LogEntryResponse])
async def list_logs(
    level: Optional[str] = Query(None, description="Filter by level"),
    category: Optional[str] = Query(None, description="Filter by category"),
    service_key: Optional[str] = Query(None, description="Filter by service key"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum results to return"),
    db: AsyncSession = Depends(get_db),
) -> list[LogEntryResponse]:
    """Get audit log entries, newest first."""
    entries = await get_logs(
        db, level=level, category=category, service_key=service_key, limit=limit
    )
    return [LogEntryResponse.model_validate(e) for e in entries]
