"""Realtime change-feed schemas."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class EventKind(str, Enum):
    """Kind of appointment change."""

    CREATED = "created"
    CANCELLED = "cancelled"


class RealtimeEvent(BaseModel):
    """One entry of the change log."""

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    appointment: dict[str, Any]
    cursor: int


class UpdateBatch(BaseModel):
    """Events after a cursor, plus the cursor to poll from next."""

    events: list[RealtimeEvent]
    cursor: int
