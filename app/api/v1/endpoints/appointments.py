"""Appointment endpoints."""

import asyncio
from uuid import UUID

from fastapi import APIRouter, Query, Request, Response, status

from app.dependencies import ChangeFeed, Clinician, SchedulingService, StaffMember
from app.schemas.appointments import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentDetail,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentStatus,
)
from app.schemas.realtime import UpdateBatch

router = APIRouter()

DISCONNECT_CHECK_INTERVAL = 1.0


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    actor: StaffMember,
    service: SchedulingService,
    start: str | None = Query(None, description="ISO-8601 range start"),
    end: str | None = Query(None, description="ISO-8601 range end"),
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    provider_id: list[str] | None = Query(None),
    room_id: list[str] | None = Query(None),
    include_notes: bool = Query(False),
) -> AppointmentListResponse:
    """
    List appointments in a window, defaulting to the current week.

    Args:
        actor: Authenticated staff member
        service: Scheduling engine
        start: Range start
        end: Range end
        status_filter: Filter by status
        provider_id: Provider ids, repeated or comma-separated
        room_id: Room ids, repeated or comma-separated
        include_notes: Attach notes to each appointment

    Returns:
        Appointments, rosters and the cursor to long-poll from
    """
    filters = AppointmentFilters(
        start=start,
        end=end,
        status=status_filter,
        provider_ids=provider_id,
        room_ids=room_id,
        include_notes=include_notes,
    )
    return await service.list_appointments(filters)


@router.post(
    "/",
    response_model=AppointmentDetail,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    actor: StaffMember,
    service: SchedulingService,
) -> AppointmentDetail:
    """
    Book a slot for a provider, room and patient.

    Returns:
        Created appointment

    Raises:
        SchedulingError: On unknown references, misaligned slots or conflicts
    """
    return await service.create_appointment(data, actor)


async def _cancel_on_disconnect(request: Request, task: asyncio.Task) -> None:
    """Cancel a pending long-poll once its client goes away."""
    while not task.done():
        if await request.is_disconnected():
            task.cancel()
            return
        await asyncio.sleep(DISCONNECT_CHECK_INTERVAL)


@router.get(
    "/updates",
    response_model=UpdateBatch,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Long-poll appointment changes",
)
async def poll_updates(
    request: Request,
    response: Response,
    actor: StaffMember,
    broker: ChangeFeed,
    cursor: int = Query(0, ge=0, description="Last cursor seen by the client"),
) -> UpdateBatch:
    """
    Wait for changes after ``cursor``.

    Returns as soon as events exist, or after the poll timeout with no
    events and the unchanged cursor; the client then polls again.
    """
    response.headers["Cache-Control"] = "no-store"

    poll = asyncio.create_task(broker.poll(cursor))
    watcher = asyncio.create_task(_cancel_on_disconnect(request, poll))
    try:
        return await poll
    finally:
        watcher.cancel()


@router.get(
    "/{appointment_id}",
    response_model=AppointmentDetail,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    actor: StaffMember,
    service: SchedulingService,
) -> AppointmentDetail:
    """
    Get a specific appointment with its notes.

    Raises:
        ReferenceNotFoundError: If appointment not found
    """
    return await service.get_appointment(appointment_id)


@router.patch(
    "/{appointment_id}/cancel",
    response_model=AppointmentDetail,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    actor: Clinician,
    service: SchedulingService,
    data: AppointmentCancel | None = None,
) -> AppointmentDetail:
    """
    Cancel an appointment; repeated cancellations return it unchanged.

    Args:
        appointment_id: Appointment ID
        actor: Practitioner or admin
        service: Scheduling engine
        data: Optional cancellation reason

    Returns:
        Cancelled appointment
    """
    return await service.cancel_appointment(appointment_id, data or AppointmentCancel(), actor)
