from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from cardflow.models.base import Base, JSONType, UTCDateTime, UUIDMixin, utcnow


class EventAction(str, enum.Enum):
    CARD_CREATED = "card_created"
    CARD_PUBLISHED = "card_published"
    CARD_CLOSED = "card_closed"
    CARD_POSTPONED = "card_postponed"
    CARD_REOPENED = "card_reopened"
    CARD_RESUMED = "card_resumed"
    CARD_TRIAGED = "card_triaged"
    CARD_GILDED = "card_gilded"
    CARD_UNGILDED = "card_ungilded"
    CARD_DELETED = "card_deleted"
    COMMENT_CREATED = "comment_created"


class TargetType(str, enum.Enum):
    CARD = "card"
    COMMENT = "comment"
    BOARD = "board"


@dataclass(frozen=True)
class Target:
    """Reference to the row an event or notification is about.

    The referenced row may since have been deleted; readers must tolerate that.
    """

    type: TargetType
    id: uuid.UUID

    @classmethod
    def card(cls, card_id: uuid.UUID) -> Target:
        return cls(TargetType.CARD, card_id)

    @classmethod
    def comment(cls, comment_id: uuid.UUID) -> Target:
        return cls(TargetType.COMMENT, comment_id)

    @classmethod
    def board(cls, board_id: uuid.UUID) -> Target:
        return cls(TargetType.BOARD, board_id)

    def as_dict(self) -> dict:
        return {"type": self.type.value, "id": str(self.id)}


class Event(Base, UUIDMixin):
    """Append-only record of a state change or collaboration action."""

    __tablename__ = "events"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    board_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    actor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)

    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_events_tenant_target", "tenant_id", "target_type", "target_id"),
        Index("ix_events_tenant_action", "tenant_id", "action", "created_at"),
    )

    @property
    def target(self) -> Target:
        return Target(TargetType(self.target_type), self.target_id)

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, action={self.action}, target={self.target_type}:{self.target_id})>"
