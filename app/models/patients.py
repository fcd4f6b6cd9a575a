"""Patients table model using SQLAlchemy Core.

Patient records are owned by the patient registry; scheduling only reads
them to resolve appointment references.
"""

from uuid import uuid4

from sqlalchemy import Column, DateTime, Table, Text, Uuid, func

from app.models.base import metadata

patients = Table(
    "patients",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("reference", Text, nullable=False, unique=True),
    Column("full_name", Text, nullable=False),
    # Soft delete (anonymization keeps the row)
    Column("deleted_at", DateTime(timezone=True), nullable=True, index=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
