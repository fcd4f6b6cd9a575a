"""Provider and room roster schemas."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class ProviderRole(str, Enum):
    """Provider role enumeration."""

    DENTIST = "dentist"
    ORTHODONTIST = "orthodontist"
    HYGIENIST = "hygienist"


class ProviderSummary(BaseModel):
    """Provider entry of the scheduling roster."""

    id: UUID
    full_name: str
    initials: str
    specialty: str | None = None
    role: ProviderRole
    color: str
    next_available_at: datetime | None = None


class RoomSummary(BaseModel):
    """Room entry of the scheduling roster."""

    id: UUID
    name: str
    color: str
    floor: str | None = None
    equipment: str | None = None
