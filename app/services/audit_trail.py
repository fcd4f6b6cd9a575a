"""Notes and system notifications attached to appointments."""

from collections.abc import Iterable, Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.timeutils import ensure_utc
from app.models.appointments import appointment_notes
from app.schemas.actors import Actor
from app.schemas.appointments import AppointmentNoteResponse, NoteKind


class AuditTrail:
    """Append-only trail of human notes and system notifications."""

    @staticmethod
    def creation_message(role: str) -> str:
        """Notification body recorded when a slot is booked."""
        return f"slot created by {role}"

    @staticmethod
    def cancellation_message(reason: str | None) -> str:
        """Notification body recorded when a slot is cancelled."""
        return f"cancelled: {reason}" if reason else "cancelled"

    @staticmethod
    async def _append(
        db: AsyncSession,
        appointment_id: UUID,
        actor: Actor,
        kind: NoteKind,
        bodies: Sequence[str],
        now: datetime,
    ) -> None:
        if not bodies:
            return
        created_at = ensure_utc(now)
        await db.execute(
            insert(appointment_notes),
            [
                {
                    "appointment_id": appointment_id,
                    "author_role": actor.role.value,
                    "author_name": actor.id,
                    "kind": kind.value,
                    "body": body,
                    "created_at": created_at,
                }
                for body in bodies
            ],
        )

    @staticmethod
    async def add_notes(
        db: AsyncSession,
        appointment_id: UUID,
        actor: Actor,
        bodies: Sequence[str],
        now: datetime,
    ) -> None:
        """Attach free-text notes written by ``actor``."""
        await AuditTrail._append(db, appointment_id, actor, NoteKind.NOTE, bodies, now)

    @staticmethod
    async def notify(
        db: AsyncSession,
        appointment_id: UUID,
        actor: Actor,
        body: str,
        now: datetime,
    ) -> None:
        """Record a system notification triggered by ``actor``."""
        await AuditTrail._append(db, appointment_id, actor, NoteKind.NOTIFICATION, [body], now)

    @staticmethod
    async def notes_for(
        db: AsyncSession,
        appointment_ids: Iterable[UUID],
    ) -> dict[UUID, list[AppointmentNoteResponse]]:
        """
        Fetch notes for several appointments in one query.

        Returns:
            Notes grouped by appointment id, oldest first
        """
        ids = list(appointment_ids)
        if not ids:
            return {}

        stmt = (
            select(appointment_notes)
            .where(appointment_notes.c.appointment_id.in_(ids))
            .order_by(appointment_notes.c.created_at.asc(), appointment_notes.c.id.asc())
        )
        result = await db.execute(stmt)

        grouped: dict[UUID, list[AppointmentNoteResponse]] = {}
        for row in result.mappings():
            note = AppointmentNoteResponse(
                id=row["id"],
                author_role=row["author_role"],
                author_name=row["author_name"],
                kind=row["kind"],
                body=row["body"],
                created_at=ensure_utc(row["created_at"]),
            )
            grouped.setdefault(row["appointment_id"], []).append(note)
        return grouped
