from cardflow.models.base import Base
from cardflow.models.card import Card, CardStatus, EffectiveState, Watch
from cardflow.models.comment import Comment
from cardflow.models.entropy_config import EntropyConfig, EntropyScope
from cardflow.models.event import Event, EventAction, Target, TargetType
from cardflow.models.notification import BundleStatus, Notification, NotificationBundle
from cardflow.models.tenant import Board, BoardColumn, Tenant

__all__ = [
    "Base",
    "Tenant",
    "Board",
    "BoardColumn",
    "Card",
    "CardStatus",
    "EffectiveState",
    "Watch",
    "Comment",
    "EntropyConfig",
    "EntropyScope",
    "Event",
    "EventAction",
    "Target",
    "TargetType",
    "Notification",
    "NotificationBundle",
    "BundleStatus",
]
