"""Database models for the Servicarr status monitor."""

from servicarr.server.models.alert import ALERT_CONFIG_ID, AlertConfig
from servicarr.server.models.base import Base, BaseModel
from servicarr.server.models.log import SystemLog
from servicarr.server.models.monitoring import (
    Heartbeat,
    RollupCursor,
    Sample,
    ServiceStatusHistory,
    StatDaily,
    StatHourly,
    StatMinutely,
)
from servicarr.server.models.service import ServiceConfig

__all__ = [
    "Base",
    "BaseModel",
    "ServiceConfig",
    "Sample",
    "Heartbeat",
    "StatMinutely",
    "StatHourly",
    "StatDaily",
    "RollupCursor",
    "ServiceStatusHistory",
    "AlertConfig",
    "ALERT_CONFIG_ID",
    "SystemLog",
]
