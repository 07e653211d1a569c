"""Declarative base and shared column mixins."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class IntegerIDMixin:
    """Autoincrementing integer primary key."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class BaseModel(Base, IntegerIDMixin, TimestampMixin):
    """Abstract base for configuration and audit tables.

    High-volume tables (samples, heartbeats, stat buckets) subclass ``Base``
    directly and carry integer unix timestamps instead.
    """

    __abstract__ = True
