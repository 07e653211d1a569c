"""Check samples, heartbeats, rollup buckets and status history models.

Timestamps in these tables are unix seconds so rollup buckets can be
computed with integer floor division.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from servicarr.server.models.base import Base, IntegerIDMixin


class Sample(Base, IntegerIDMixin):
    """One debounced check result. Append-only."""

    __tablename__ = "samples"
    __table_args__ = (Index("ix_samples_key_ts", "service_key", "ts"),)

    ts: Mapped[int] = mapped_column(Integer, nullable=False)
    service_key: Mapped[str] = mapped_column(String(100), nullable=False)
    ok: Mapped[bool] = mapped_column(Boolean, nullable=False)
    http_status: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    latency_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Sample(key={self.service_key}, ts={self.ts}, ok={self.ok}, "
            f"latency={self.latency_ms}ms)>"
        )


class Heartbeat(Base, IntegerIDMixin):
    """One recorded check, flagged important when the status changed."""

    __tablename__ = "heartbeats"
    __table_args__ = (Index("ix_heartbeats_key_ts", "service_key", "ts"),)

    service_key: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[int] = mapped_column(Integer, nullable=False)
    ts: Mapped[int] = mapped_column(Integer, nullable=False)
    msg: Mapped[str] = mapped_column(Text, nullable=False, default="")
    ping: Mapped[int | None] = mapped_column(Integer, nullable=True)
    http_status: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    important: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Heartbeat(key={self.service_key}, ts={self.ts}, status={self.status}, "
            f"important={self.important})>"
        )


class _StatBucket:
    """Columns shared by the minutely, hourly and daily rollup tiers."""

    service_key: Mapped[str] = mapped_column(String(100), primary_key=True)
    ts: Mapped[int] = mapped_column(Integer, primary_key=True)
    up: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    down: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ping: Mapped[float | None] = mapped_column(Float, nullable=True)
    # Checks that reported a latency; the weight of ``ping``
    ping_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ping_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ping_max: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<{type(self).__name__}(key={self.service_key}, ts={self.ts}, "
            f"up={self.up}, down={self.down})>"
        )


class StatMinutely(_StatBucket, Base):
    __tablename__ = "stat_minutely"


class StatHourly(_StatBucket, Base):
    __tablename__ = "stat_hourly"


class StatDaily(_StatBucket, Base):
    __tablename__ = "stat_daily"


class RollupCursor(Base):
    """Upper boundary of source buckets already folded into the next tier."""

    __tablename__ = "rollup_cursors"

    tier: Mapped[str] = mapped_column(String(20), primary_key=True)
    watermark: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        """String representation."""
        return f"<RollupCursor(tier={self.tier}, watermark={self.watermark})>"


class ServiceStatusHistory(Base):
    """Last status the alert manager acted upon for a service."""

    __tablename__ = "service_status_history"

    service_key: Mapped[str] = mapped_column(String(100), primary_key=True)
    ok: Mapped[bool] = mapped_column(Boolean, nullable=False)
    degraded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ServiceStatusHistory(key={self.service_key}, ok={self.ok}, "
            f"degraded={self.degraded})>"
        )
