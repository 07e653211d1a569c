"""FastAPI dependencies for the application-wide monitoring objects.

The lifespan stores these on ``app.state``; tests can place their own.
"""

from fastapi import Request

from servicarr.server.core.alerts import AlertManager
from servicarr.server.core.monitor import Monitor
from servicarr.server.core.stats import StatsEngine


def get_monitor(request: Request) -> Monitor:
    return request.app.state.monitor


def get_stats_engine(request: Request) -> StatsEngine:
    return request.app.state.stats


def get_alert_manager(request: Request) -> AlertManager:
    return request.app.state.alerts
