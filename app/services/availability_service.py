"""Provider availability cache maintenance."""

from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.timeutils import ensure_utc, utc_now
from app.models.appointments import appointments
from app.models.providers import providers
from app.schemas.appointments import AppointmentStatus

logger = structlog.get_logger(__name__)


class AvailabilityService:
    """Keeps ``providers.next_available_at`` in step with bookings."""

    @staticmethod
    async def next_scheduled_start(
        db: AsyncSession,
        provider_id: UUID,
        now: datetime,
    ) -> datetime | None:
        """Start of the provider's earliest scheduled appointment after ``now``."""
        stmt = (
            select(appointments.c.start_at)
            .where(
                and_(
                    appointments.c.provider_id == provider_id,
                    appointments.c.status == AppointmentStatus.SCHEDULED.value,
                    appointments.c.start_at > ensure_utc(now),
                )
            )
            .order_by(appointments.c.start_at.asc())
            .limit(1)
        )
        result = await db.execute(stmt)
        start_at = result.scalar_one_or_none()
        return ensure_utc(start_at) if start_at is not None else None

    @staticmethod
    async def refresh(
        db: AsyncSession,
        provider_id: UUID,
        now: datetime | None = None,
    ) -> datetime | None:
        """
        Recompute a provider's next available instant.

        Runs on the caller's session so the write commits or rolls back with
        the booking change that triggered it.

        Args:
            db: Session inside the caller's transaction
            provider_id: Provider to refresh
            now: Reference instant (current time if None)

        Returns:
            New ``next_available_at`` value
        """
        reference = ensure_utc(now or utc_now())
        next_start = await AvailabilityService.next_scheduled_start(db, provider_id, reference)

        await db.execute(
            update(providers)
            .where(providers.c.id == provider_id)
            .values(next_available_at=next_start, updated_at=reference)
        )

        logger.debug(
            "provider_availability_refreshed",
            provider_id=str(provider_id),
            next_available_at=next_start.isoformat() if next_start else None,
        )
        return next_start

    @staticmethod
    async def refresh_all(
        db: AsyncSession,
        now: datetime | None = None,
    ) -> dict[UUID, datetime | None]:
        """Recompute every provider; returns the new value per provider id."""
        reference = ensure_utc(now or utc_now())
        result = await db.execute(select(providers.c.id).order_by(providers.c.full_name))
        refreshed: dict[UUID, datetime | None] = {}
        for provider_id in result.scalars().all():
            refreshed[provider_id] = await AvailabilityService.refresh(db, provider_id, reference)
        return refreshed
