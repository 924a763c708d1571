from __future__ import annotations

from cardflow.models.card import Card
from cardflow.models.comment import Comment
from cardflow.models.event import Event
from cardflow.models.notification import Notification
from cardflow.schemas.card import CardRead, CommentRead
from cardflow.schemas.event import EventRead, NotificationRead, TargetRead
from cardflow.services import lifecycle_engine


def card_read(card: Card) -> CardRead:
    return CardRead(
        id=card.id,
        board_id=card.board_id,
        column_id=card.column_id,
        number=card.number,
        title=card.title,
        status=card.status,
        effective_state=card.effective_state.value,
        allowed_actions=lifecycle_engine.allowed_actions(card),
        closed_at=card.closed_at,
        closed_by=card.closed_by,
        postponed_at=card.postponed_at,
        postponed_by=card.postponed_by,
        due_on=card.due_on,
        last_active_at=card.last_active_at,
        is_golden=card.is_golden,
        activity_spike_at=card.activity_spike_at,
    )


def event_read(event: Event) -> EventRead:
    return EventRead(
        id=event.id,
        board_id=event.board_id,
        actor_id=event.actor_id,
        action=event.action,
        target=TargetRead(type=event.target_type, id=event.target_id),
        payload=event.payload,
        created_at=event.created_at,
    )


def notification_read(notif: Notification, event: Event | None) -> NotificationRead:
    return NotificationRead(
        id=notif.id,
        event=event_read(event) if event else None,
        source=TargetRead(type=notif.source_type, id=notif.source_id),
        created_at=notif.created_at,
        delivered_at=notif.delivered_at,
        read_at=notif.read_at,
    )


def comment_read(comment: Comment) -> CommentRead:
    return CommentRead.model_validate(comment)
