from __future__ import annotations

import enum
import uuid

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from cardflow.models.base import Base, TimestampMixin, UUIDMixin


class EntropyScope(str, enum.Enum):
    TENANT = "tenant"
    BOARD = "board"


class EntropyConfig(Base, UUIDMixin, TimestampMixin):
    """Auto-postpone period for a whole tenant or a single board."""

    __tablename__ = "entropy_configs"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    scope: Mapped[str] = mapped_column(String(20), nullable=False)
    scope_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    auto_postpone_period_seconds: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (UniqueConstraint("scope", "scope_id", name="uq_entropy_configs_scope"),)
