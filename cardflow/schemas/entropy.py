from __future__ import annotations

import uuid

from pydantic import BaseModel, Field


class EntropyConfigUpdate(BaseModel):
    auto_postpone_period_seconds: int = Field(gt=0)


class EntropyConfigRead(BaseModel):
    scope: str
    scope_id: uuid.UUID
    auto_postpone_period_seconds: int
    # False when no row exists and the value shown is inherited
    configured: bool
