"""Provider and room table models using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    Table,
    Text,
    Uuid,
    func,
    text,
)

from app.models.base import metadata

providers = Table(
    "providers",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("full_name", Text, nullable=False, unique=True),
    Column("initials", Text, nullable=False),
    Column("specialty", Text, nullable=True),
    Column("role", Text, nullable=False, server_default="dentist"),
    Column("color", Text, nullable=False, server_default="#0ea5e9"),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    Column("default_duration_minutes", Integer, nullable=False, server_default=text("30")),
    # Derived: start of the nearest future scheduled appointment
    Column("next_available_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "role IN ('dentist', 'orthodontist', 'hygienist')",
        name="providers_role_check",
    ),
    CheckConstraint("default_duration_minutes > 0", name="providers_duration_check"),
)

rooms = Table(
    "rooms",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("name", Text, nullable=False, unique=True),
    Column("color", Text, nullable=False, server_default="#6366f1"),
    Column("floor", Text, nullable=True),
    Column("equipment", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
