"""Audit log model."""

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from servicarr.server.models.base import BaseModel


class SystemLog(BaseModel):
    """Operator-visible audit entry (checks, notifications, suppression)."""

    __tablename__ = "system_logs"
    __table_args__ = (Index("ix_system_logs_category", "category"),)

    level: Mapped[str] = mapped_column(String(10), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    service_key: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[str] = mapped_column(Text, nullable=False, default="")

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<SystemLog(id={self.id}, level={self.level}, category={self.category}, "
            f"key={self.service_key})>"
        )
