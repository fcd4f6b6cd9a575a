"""Appointment schemas for request/response validation."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.schemas.providers import ProviderSummary, RoomSummary


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"


class NoteKind(str, Enum):
    """Appointment note kind enumeration."""

    NOTE = "note"
    NOTIFICATION = "notification"


class NoteInput(BaseModel):
    """Free-text note supplied when booking."""

    body: str = Field(..., min_length=3, max_length=500)


class AppointmentCreate(BaseModel):
    """Schema for booking a new appointment."""

    provider_id: UUID
    room_id: UUID
    patient_id: UUID
    title: str = Field(..., min_length=3, max_length=160)
    start_at: str = Field(..., description="ISO-8601 instant with offset or zone")
    duration_minutes: int | None = Field(None, ge=5, le=240)
    notes: list[NoteInput] = Field(default_factory=list, max_length=3)


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str | None = Field(None, min_length=3, max_length=240)


def _split_ids(value: Any) -> Any:
    """Accept repeated values as well as comma-separated lists."""
    if value is None:
        return None
    items = value if isinstance(value, list | tuple) else [value]
    ids = [part.strip() for item in items for part in str(item).split(",") if part.strip()]
    return ids or None


class AppointmentFilters(BaseModel):
    """Schema for appointment listing filters."""

    start: str | None = None
    end: str | None = None
    status: AppointmentStatus | None = None
    provider_ids: list[UUID] | None = None
    room_ids: list[UUID] | None = None
    include_notes: bool = False

    @field_validator("provider_ids", "room_ids", mode="before")
    @classmethod
    def split_ids(cls, v: Any) -> Any:
        """Normalize id filters."""
        return _split_ids(v)


class ProviderRef(BaseModel):
    """Provider fields embedded in an appointment."""

    id: UUID
    full_name: str
    initials: str
    color: str


class RoomRef(BaseModel):
    """Room fields embedded in an appointment."""

    id: UUID
    name: str
    color: str


class PatientRef(BaseModel):
    """Patient fields embedded in an appointment."""

    id: UUID
    full_name: str
    reference: str


class AppointmentNoteResponse(BaseModel):
    """Schema for an appointment note."""

    id: int
    author_role: str
    author_name: str
    kind: NoteKind
    body: str
    created_at: datetime


class AppointmentDetail(BaseModel):
    """Schema for appointment detail response."""

    id: UUID
    title: str
    status: AppointmentStatus
    timezone: str
    start_at: datetime
    end_at: datetime
    slot_minutes: int
    provider: ProviderRef
    room: RoomRef
    patient: PatientRef
    cancel_reason: str | None = None
    cancelled_at: datetime | None = None
    created_by: str
    created_by_role: str
    notes: list[AppointmentNoteResponse] = Field(default_factory=list)


class ListMeta(BaseModel):
    """Listing window and the change cursor it was read at."""

    range_start: datetime
    range_end: datetime
    timezone: str
    cursor: int


class AppointmentListResponse(BaseModel):
    """Schema for appointment listing response."""

    appointments: list[AppointmentDetail]
    providers: list[ProviderSummary]
    rooms: list[RoomSummary]
    meta: ListMeta
