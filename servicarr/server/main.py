from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from servicarr.server.api.alerts import router as alerts_router
from servicarr.server.api.monitoring import router as monitoring_router
from servicarr.server.core.alerts import AlertManager
from servicarr.server.core.config import get_settings
from servicarr.server.core.log_config import configure_logging
from servicarr.server.core.monitor import Monitor
from servicarr.server.core.scheduler import MonitoringScheduler
from servicarr.server.core.stats import StatsEngine
from servicarr.server.core.tracker import FailureTracker
from servicarr.server.db.init import AsyncSessionLocal, init_db
from servicarr.server.db.services import ensure_demo_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    await init_db()
    async with AsyncSessionLocal() as db:
        await ensure_demo_service(db)

    tracker = FailureTracker(settings.failure_threshold)
    stats = StatsEngine(cache_ttl=settings.stats_cache_ttl_seconds)
    alerts = AlertManager(AsyncSessionLocal, settings)
    await alerts.reload_config()
    monitor = Monitor(AsyncSessionLocal, tracker, stats, alerts, settings)
    scheduler = MonitoringScheduler(monitor, AsyncSessionLocal, settings)

    app.state.tracker = tracker
    app.state.stats = stats
    app.state.alerts = alerts
    app.state.monitor = monitor
    app.state.scheduler = scheduler

    if settings.enable_scheduler:
        await scheduler.start()
    yield
    await scheduler.stop()
    await alerts.wait_for_dispatches(timeout=settings.notification_timeout_seconds)


app = FastAPI(title=get_settings().api_title, version=get_settings().api_version, lifespan=lifespan)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routers
app.include_router(alerts_router)
app.include_router(monitoring_router)


@app.get("/")
async def root() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}
