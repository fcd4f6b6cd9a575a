"""Database models."""

from app.models.appointments import appointment_notes, appointments
from app.models.base import metadata
from app.models.patients import patients
from app.models.providers import providers, rooms

__all__ = [
    "appointment_notes",
    "appointments",
    "metadata",
    "patients",
    "providers",
    "rooms",
]
