"""Appointment scheduling engine."""

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import and_, insert, or_, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.core.exceptions import (
    DoubleBookingError,
    InvalidSlotAlignmentError,
    InvalidSlotDurationError,
    ReferenceNotFoundError,
)
from app.core.timeutils import (
    compute_listing_range,
    ensure_utc,
    get_zone,
    is_slot_aligned,
    normalize_instant,
    utc_now,
)
from app.database import is_serialization_failure, unit_of_work
from app.models.appointments import appointments
from app.models.patients import patients
from app.models.providers import providers, rooms
from app.schemas.actors import Actor
from app.schemas.appointments import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentDetail,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentNoteResponse,
    AppointmentStatus,
    ListMeta,
    PatientRef,
    ProviderRef,
    RoomRef,
)
from app.schemas.providers import ProviderSummary, RoomSummary
from app.schemas.realtime import EventKind
from app.services.audit_trail import AuditTrail
from app.services.availability_service import AvailabilityService
from app.services.change_broker import ChangeBroker

logger = structlog.get_logger(__name__)

# Appointment columns plus the embedded provider/room/patient summaries
_DETAIL_COLUMNS = (
    appointments,
    providers.c.full_name.label("provider_full_name"),
    providers.c.initials.label("provider_initials"),
    providers.c.color.label("provider_color"),
    rooms.c.name.label("room_name"),
    rooms.c.color.label("room_color"),
    patients.c.full_name.label("patient_full_name"),
    patients.c.reference.label("patient_reference"),
)


def _detail_query() -> Any:
    return select(*_DETAIL_COLUMNS).select_from(
        appointments.join(providers, providers.c.id == appointments.c.provider_id)
        .join(rooms, rooms.c.id == appointments.c.room_id)
        .join(patients, patients.c.id == appointments.c.patient_id)
    )


def _to_detail(row: Any, notes: list[AppointmentNoteResponse] | None = None) -> AppointmentDetail:
    cancelled_at = row["cancelled_at"]
    return AppointmentDetail(
        id=row["id"],
        title=row["title"],
        status=row["status"],
        timezone=row["timezone"],
        start_at=ensure_utc(row["start_at"]),
        end_at=ensure_utc(row["end_at"]),
        slot_minutes=row["slot_minutes"],
        provider=ProviderRef(
            id=row["provider_id"],
            full_name=row["provider_full_name"],
            initials=row["provider_initials"],
            color=row["provider_color"],
        ),
        room=RoomRef(id=row["room_id"], name=row["room_name"], color=row["room_color"]),
        patient=PatientRef(
            id=row["patient_id"],
            full_name=row["patient_full_name"],
            reference=row["patient_reference"],
        ),
        cancel_reason=row["cancel_reason"],
        cancelled_at=ensure_utc(cancelled_at) if cancelled_at else None,
        created_by=row["created_by"],
        created_by_role=row["created_by_role"],
        notes=notes or [],
    )


class AppointmentService:
    """
    Books, lists and cancels appointments.

    Each mutation runs as one unit of work: the appointment row, its audit
    notes and the provider availability cache commit together or not at all.
    Overlap protection relies on the store's transaction isolation, not on
    in-process locks.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        broker: ChangeBroker,
        *,
        slot_minutes: int | None = None,
        timezone: str | None = None,
        isolation_level: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the engine.

        Args:
            session_factory: Factory opening one session per operation
            broker: Change feed receiving created/cancelled events
            slot_minutes: Base slot granularity (settings if None)
            timezone: Canonical practice timezone (settings if None)
            isolation_level: Isolation level for bookings (settings if None)
            clock: Source of the current instant
        """
        self.session_factory = session_factory
        self.broker = broker
        self.slot_minutes = slot_minutes or settings.appointment_slot_minutes
        self.timezone_name = timezone or settings.practice_timezone
        self.tz: ZoneInfo = get_zone(self.timezone_name)
        self.isolation_level = isolation_level or settings.database_isolation_level
        self.clock = clock

    async def list_appointments(self, filters: AppointmentFilters) -> AppointmentListResponse:
        """
        List appointments starting inside a window, with the scheduling roster.

        Args:
            filters: Window, status, provider/room and notes options

        Returns:
            Appointments ordered by start, providers, rooms and listing meta
        """
        # Read before querying: a concurrent write is then replayed, never missed
        cursor = self.broker.cursor
        window = compute_listing_range(filters.start, filters.end, self.tz, now=self.clock())

        conditions = [
            appointments.c.start_at >= ensure_utc(window.start),
            appointments.c.start_at < ensure_utc(window.end),
        ]
        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)
        if filters.provider_ids:
            conditions.append(appointments.c.provider_id.in_(filters.provider_ids))
        if filters.room_ids:
            conditions.append(appointments.c.room_id.in_(filters.room_ids))

        async with self.session_factory() as db:
            stmt = (
                _detail_query()
                .where(and_(*conditions))
                .order_by(appointments.c.start_at.asc(), appointments.c.created_at.asc())
            )
            rows = (await db.execute(stmt)).mappings().all()

            notes_by_appointment: dict[UUID, list[AppointmentNoteResponse]] = {}
            if filters.include_notes and rows:
                notes_by_appointment = await AuditTrail.notes_for(db, [row["id"] for row in rows])

            roster = await self._provider_roster(db)
            room_roster = await self._room_roster(db)

        return AppointmentListResponse(
            appointments=[_to_detail(row, notes_by_appointment.get(row["id"])) for row in rows],
            providers=roster,
            rooms=room_roster,
            meta=ListMeta(
                range_start=ensure_utc(window.start),
                range_end=ensure_utc(window.end),
                timezone=self.timezone_name,
                cursor=cursor,
            ),
        )

    async def get_appointment(self, appointment_id: UUID) -> AppointmentDetail:
        """
        Get appointment detail with its notes.

        Raises:
            ReferenceNotFoundError: If the appointment does not exist
        """
        async with self.session_factory() as db:
            detail = await self._load_detail(db, appointment_id)
        if detail is None:
            raise ReferenceNotFoundError("appointment", appointment_id)
        return detail

    async def create_appointment(self, data: AppointmentCreate, actor: Actor) -> AppointmentDetail:
        """
        Book a slot for a provider, room and patient.

        Args:
            data: Booking request
            actor: Caller identity used for provenance and audit notes

        Returns:
            Detail of the new appointment

        Raises:
            InvalidDateTimeError: If ``start_at`` cannot be parsed
            ReferenceNotFoundError: If provider, room or patient is missing
            InvalidSlotAlignmentError: If start is off the slot grid
            InvalidSlotDurationError: If duration is not a slot multiple
            DoubleBookingError: If provider or room is taken in the interval
        """
        start = normalize_instant(data.start_at, self.tz)
        appointment_id = uuid4()

        try:
            async with unit_of_work(self.session_factory, self.isolation_level) as db:
                provider = await self._require(db, providers, data.provider_id, "provider")
                await self._require(db, rooms, data.room_id, "room")
                await self._require(
                    db,
                    patients,
                    data.patient_id,
                    "patient",
                    patients.c.deleted_at.is_(None),
                )

                base = self.slot_minutes
                slot_minutes = data.duration_minutes or provider["default_duration_minutes"] or base
                if not is_slot_aligned(start, base):
                    raise InvalidSlotAlignmentError(base)
                if slot_minutes % base != 0:
                    raise InvalidSlotDurationError(slot_minutes, base)

                end = start + timedelta(minutes=slot_minutes)

                if await self._has_conflict(db, data.provider_id, data.room_id, start, end):
                    logger.info(
                        "appointment_double_booking_rejected",
                        provider_id=str(data.provider_id),
                        room_id=str(data.room_id),
                        start_at=start.isoformat(),
                    )
                    raise DoubleBookingError()

                now = ensure_utc(self.clock())
                await db.execute(
                    insert(appointments).values(
                        id=appointment_id,
                        provider_id=data.provider_id,
                        room_id=data.room_id,
                        patient_id=data.patient_id,
                        title=data.title,
                        status=AppointmentStatus.SCHEDULED.value,
                        timezone=self.timezone_name,
                        start_at=ensure_utc(start),
                        end_at=ensure_utc(end),
                        slot_minutes=slot_minutes,
                        created_by=actor.id,
                        created_by_role=actor.role.value,
                        created_at=now,
                        updated_at=now,
                    )
                )
                await AuditTrail.add_notes(
                    db, appointment_id, actor, [note.body for note in data.notes], now
                )
                await AuditTrail.notify(
                    db, appointment_id, actor, AuditTrail.creation_message(actor.role.value), now
                )
                await AvailabilityService.refresh(db, data.provider_id, now)
        except DBAPIError as e:
            if is_serialization_failure(e):
                # A concurrent booking committed first
                logger.info(
                    "appointment_double_booking_rejected",
                    provider_id=str(data.provider_id),
                    room_id=str(data.room_id),
                    start_at=start.isoformat(),
                    reason="serialization_failure",
                )
                raise DoubleBookingError() from e
            raise

        detail = await self.get_appointment(appointment_id)
        self.broker.emit(EventKind.CREATED, detail.model_dump(mode="json"))

        logger.info(
            "appointment_created",
            appointment_id=str(appointment_id),
            provider_id=str(data.provider_id),
            room_id=str(data.room_id),
            start_at=detail.start_at.isoformat(),
            slot_minutes=detail.slot_minutes,
            actor_role=actor.role.value,
        )
        return detail

    async def cancel_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentCancel,
        actor: Actor,
    ) -> AppointmentDetail:
        """
        Cancel an appointment; cancelling twice is a no-op.

        Args:
            appointment_id: Appointment to cancel
            data: Optional reason
            actor: Caller identity used for the audit note

        Returns:
            Current appointment detail

        Raises:
            ReferenceNotFoundError: If the appointment does not exist
        """
        async with unit_of_work(self.session_factory) as db:
            result = await db.execute(
                select(appointments.c.status, appointments.c.provider_id)
                .where(appointments.c.id == appointment_id)
                .with_for_update()
            )
            current = result.mappings().first()
            if current is None:
                raise ReferenceNotFoundError("appointment", appointment_id)

            already_cancelled = current["status"] == AppointmentStatus.CANCELLED.value
            if not already_cancelled:
                now = ensure_utc(self.clock())
                await db.execute(
                    update(appointments)
                    .where(appointments.c.id == appointment_id)
                    .values(
                        status=AppointmentStatus.CANCELLED.value,
                        cancel_reason=data.reason,
                        cancelled_at=now,
                        updated_at=now,
                    )
                )
                await AuditTrail.notify(
                    db, appointment_id, actor, AuditTrail.cancellation_message(data.reason), now
                )
                await AvailabilityService.refresh(db, current["provider_id"], now)

        detail = await self.get_appointment(appointment_id)
        if already_cancelled:
            logger.debug("appointment_already_cancelled", appointment_id=str(appointment_id))
            return detail

        self.broker.emit(EventKind.CANCELLED, detail.model_dump(mode="json"))
        logger.info(
            "appointment_cancelled",
            appointment_id=str(appointment_id),
            reason=data.reason,
            actor_role=actor.role.value,
        )
        return detail

    async def _load_detail(self, db: AsyncSession, appointment_id: UUID) -> AppointmentDetail | None:
        result = await db.execute(_detail_query().where(appointments.c.id == appointment_id))
        row = result.mappings().first()
        if row is None:
            return None
        notes = await AuditTrail.notes_for(db, [appointment_id])
        return _to_detail(row, notes.get(appointment_id))

    @staticmethod
    async def _require(
        db: AsyncSession,
        table: Any,
        entity_id: UUID,
        resource: str,
        *extra: Any,
    ) -> Any:
        result = await db.execute(select(table).where(table.c.id == entity_id, *extra))
        row = result.mappings().first()
        if row is None:
            raise ReferenceNotFoundError(resource, entity_id)
        return row

    @staticmethod
    async def _has_conflict(
        db: AsyncSession,
        provider_id: UUID,
        room_id: UUID,
        start: datetime,
        end: datetime,
    ) -> bool:
        # Half-open intervals: touching slots do not overlap
        stmt = (
            select(appointments.c.id)
            .where(
                and_(
                    appointments.c.status == AppointmentStatus.SCHEDULED.value,
                    appointments.c.start_at < ensure_utc(end),
                    appointments.c.end_at > ensure_utc(start),
                    or_(
                        appointments.c.provider_id == provider_id,
                        appointments.c.room_id == room_id,
                    ),
                )
            )
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.first() is not None

    @staticmethod
    async def _provider_roster(db: AsyncSession) -> list[ProviderSummary]:
        result = await db.execute(
            select(providers)
            .where(providers.c.is_active.is_(True))
            .order_by(providers.c.full_name.asc())
        )
        return [
            ProviderSummary(
                id=row["id"],
                full_name=row["full_name"],
                initials=row["initials"],
                specialty=row["specialty"],
                role=row["role"],
                color=row["color"],
                next_available_at=(
                    ensure_utc(row["next_available_at"]) if row["next_available_at"] else None
                ),
            )
            for row in result.mappings()
        ]

    @staticmethod
    async def _room_roster(db: AsyncSession) -> list[RoomSummary]:
        result = await db.execute(select(rooms).order_by(rooms.c.name.asc()))
        return [
            RoomSummary(
                id=row["id"],
                name=row["name"],
                color=row["color"],
                floor=row["floor"],
                equipment=row["equipment"],
            )
            for row in result.mappings()
        ]
