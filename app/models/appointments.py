"""Appointments and appointment notes tables using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Table,
    Text,
    Uuid,
    func,
)

from app.models.base import metadata

appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # References
    Column("provider_id", Uuid, ForeignKey("providers.id", ondelete="RESTRICT"), nullable=False),
    Column("room_id", Uuid, ForeignKey("rooms.id", ondelete="RESTRICT"), nullable=False),
    Column("patient_id", Uuid, ForeignKey("patients.id", ondelete="RESTRICT"), nullable=False),
    Column("title", Text, nullable=False),
    # Status management
    Column("status", Text, nullable=False, server_default="scheduled"),
    # Slot, stored in UTC; timezone is the display label
    Column("timezone", Text, nullable=False),
    Column("start_at", DateTime(timezone=True), nullable=False),
    Column("end_at", DateTime(timezone=True), nullable=False),
    Column("slot_minutes", Integer, nullable=False),
    # Provenance
    Column("created_by", Text, nullable=False),
    Column("created_by_role", Text, nullable=False),
    # Cancellation
    Column("cancel_reason", Text, nullable=True),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    # Constraints
    CheckConstraint(
        "status IN ('scheduled', 'cancelled')",
        name="appointments_status_check",
    ),
    CheckConstraint("slot_minutes > 0", name="appointments_slot_minutes_check"),
    CheckConstraint("end_at > start_at", name="appointments_interval_check"),
    Index("appointments_provider_idx", "provider_id", "start_at"),
    Index("appointments_room_idx", "room_id", "start_at"),
    Index("appointments_status_idx", "status"),
    Index("appointments_start_idx", "start_at"),
)

appointment_notes = Table(
    "appointment_notes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "appointment_id",
        Uuid,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("author_role", Text, nullable=False),
    Column("author_name", Text, nullable=False),
    Column("kind", Text, nullable=False, server_default="note"),
    Column("body", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "kind IN ('note', 'notification')",
        name="appointment_notes_kind_check",
    ),
)
