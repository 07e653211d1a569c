"""Monitored service configuration model."""

from typing import Literal

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from servicarr.server.models.base import BaseModel

CheckTypeName = Literal["http", "tcp", "dns", "always_up", "demo"]


class ServiceConfig(BaseModel):
    """A monitored target.

    The key is the stable identifier used by samples, heartbeats, rollups
    and status history; it never changes after creation.
    """

    __tablename__ = "services"

    key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    url: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    service_type: Mapped[str] = mapped_column(String(50), nullable=False, default="custom")
    check_type: Mapped[str] = mapped_column(String(20), nullable=False, default="http")
    check_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    timeout: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    expected_min: Mapped[int] = mapped_column(Integer, nullable=False, default=200)
    expected_max: Mapped[int] = mapped_column(Integer, nullable=False, default=399)
    api_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    depends_on: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @property
    def display_name(self) -> str:
        """Name used in notifications, falling back to the key."""
        return self.name or self.key

    @property
    def dependency_keys(self) -> list[str]:
        """Upstream service keys parsed from the comma-separated depends_on."""
        return [k.strip() for k in (self.depends_on or "").split(",") if k.strip()]

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ServiceConfig(id={self.id}, key={self.key}, "
            f"check_type={self.check_type}, disabled={self.disabled})>"
        )
