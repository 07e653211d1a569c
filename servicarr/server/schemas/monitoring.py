"""Pydantic schemas for Monitoring API endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UptimeStatsResponse(BaseModel):
    """Schema for a service's uptime statistics."""

    service_key: str = Field(..., description="Service key")
    uptime_24h: float = Field(..., ge=0, le=100, description="Uptime percentage over 24 hours")
    uptime_7d: float = Field(..., ge=0, le=100, description="Uptime percentage over 7 days")
    uptime_30d: float = Field(..., ge=0, le=100, description="Uptime percentage over 30 days")
    avg_latency: float = Field(..., ge=0, description="Average latency over 24 hours (ms)")
    last_checked: Optional[datetime] = Field(None, description="Time of the last check")

    model_config = ConfigDict(from_attributes=True)


class HeartbeatResponse(BaseModel):
    """Schema for a recent heartbeat."""

    status: int = Field(..., description="1 for up, 0 for down")
    time: datetime = Field(..., description="Check timestamp")
    ping: Optional[int] = Field(None, description="Latency in milliseconds")
    http_status: int = Field(..., description="HTTP status code (0 if not applicable)")
    msg: str = Field("", description="Sanitized error message")
    important: bool = Field(..., description="Whether the status changed at this heartbeat")

    model_config = ConfigDict(from_attributes=True)


class CheckOutcomeResponse(BaseModel):
    """Schema for an on-demand check result."""

    service_key: str = Field(..., description="Service key")
    name: str = Field(..., description="Service display name")
    check_type: str = Field(..., description="Probe used (http, tcp, dns, always_up)")
    ok: bool = Field(..., description="Debounced status")
    degraded: bool = Field(..., description="Up but slower than the degraded threshold")
    http_status: int = Field(0, description="HTTP status code")
    latency_ms: Optional[int] = Field(None, description="Latency in milliseconds")
    error: str = Field("", description="Sanitized error message")
    consecutive_failures: int = Field(0, description="Consecutive raw failures")
    disabled: bool = Field(False, description="Whether monitoring is disabled")
    checked_at: datetime = Field(..., description="Check timestamp")

    model_config = ConfigDict(from_attributes=True)


class MonitoringToggleRequest(BaseModel):
    """Schema for enabling or disabling monitoring of a service."""

    enabled: bool = Field(
        ..., description="Whether the service should be checked", examples=[False]
    )


class MonitoringToggleResponse(BaseModel):
    service: str = Field(..., description="Service key")
    enabled: bool = Field(..., description="Whether the service is checked")


class LogEntryResponse(BaseModel):
    """Schema for an audit log entry."""

    id: int = Field(..., description="Entry ID")
    level: str = Field(..., description="debug, info, warn or error")
    category: str = Field(..., description="check, email, notification, security, system, schedule")
    service_key: str = Field("", description="Related service key")
    message: str = Field(..., description="Message")
    details: str = Field("", description="Details")
    created_at: datetime = Field(..., description="Entry timestamp")

    model_config = ConfigDict(from_attributes=True)
