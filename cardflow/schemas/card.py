from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

# Limits for the free-form transition params dict
_MAX_PARAM_KEYS = 20


class CardCreate(BaseModel):
    board_id: uuid.UUID
    title: str = ""
    column_id: uuid.UUID | None = None
    due_on: date | None = None


class TransitionRequest(BaseModel):
    params: dict[str, Any] | None = None

    @field_validator("params")
    @classmethod
    def validate_params(cls, v: dict | None) -> dict | None:
        if v is not None and len(v) > _MAX_PARAM_KEYS:
            raise ValueError(f"params exceeds maximum of {_MAX_PARAM_KEYS} keys")
        return v


class GoldenUpdate(BaseModel):
    golden: bool


class CardRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    board_id: uuid.UUID
    column_id: uuid.UUID | None
    number: int
    title: str
    status: str
    effective_state: str
    allowed_actions: list[str]
    closed_at: datetime | None
    closed_by: uuid.UUID | None
    postponed_at: datetime | None
    postponed_by: uuid.UUID | None
    due_on: date | None
    last_active_at: datetime
    is_golden: bool
    activity_spike_at: datetime | None


class ExpiryWarningRead(BaseModel):
    card: CardRead
    period_seconds: int
    expires_at: datetime
    progress: float


class CommentCreate(BaseModel):
    body: str


class CommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    card_id: uuid.UUID
    author_id: uuid.UUID
    body: str
    created_at: datetime
