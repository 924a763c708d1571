from __future__ import annotations

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from cardflow.models.base import Base, TimestampMixin, UTCDateTime, UUIDMixin, utcnow


class CardStatus(str, enum.Enum):
    DRAFTED = "drafted"
    PUBLISHED = "published"


class EffectiveState(str, enum.Enum):
    DRAFTED = "drafted"
    ACTIVE = "active"
    TRIAGE = "triage"
    CLOSED = "closed"
    NOT_NOW = "not_now"


class Card(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "cards"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    board_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False
    )
    # NULL means "awaiting triage"
    column_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("columns.id", ondelete="SET NULL"), nullable=True
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    creator_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=CardStatus.DRAFTED.value)

    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    closed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    postponed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    postponed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    due_on: Mapped[date | None] = mapped_column(Date)

    last_active_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    is_golden: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    activity_spike_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("board_id", "number", name="uq_cards_board_number"),
        Index("ix_cards_board_activity", "board_id", "status", "last_active_at"),
    )

    @property
    def effective_state(self) -> EffectiveState:
        """Derived lifecycle state; never stored."""
        if self.status == CardStatus.DRAFTED.value:
            return EffectiveState.DRAFTED
        if self.closed_at is not None:
            return EffectiveState.CLOSED
        if self.postponed_at is not None:
            return EffectiveState.NOT_NOW
        if self.column_id is None:
            return EffectiveState.TRIAGE
        return EffectiveState.ACTIVE

    def __repr__(self) -> str:
        return f"<Card(id={self.id}, number={self.number}, status={self.status})>"


class Watch(Base, UUIDMixin, TimestampMixin):
    """A user subscribed to notifications about one card."""

    __tablename__ = "watches"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    card_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    __table_args__ = (UniqueConstraint("card_id", "user_id", name="uq_watches_card_user"),)
