import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class TargetRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str
    id: uuid.UUID


class EventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    board_id: uuid.UUID | None
    actor_id: uuid.UUID
    action: str
    target: TargetRead
    payload: dict | None
    created_at: datetime


class EventList(BaseModel):
    items: list[EventRead]
    total: int


class NotificationRead(BaseModel):
    id: uuid.UUID
    event: EventRead | None
    source: TargetRead
    created_at: datetime
    delivered_at: datetime | None
    read_at: datetime | None


class NotificationList(BaseModel):
    items: list[NotificationRead]
    total: int
    page: int
    page_size: int
