"""Script to seed providers, rooms, patients and a week of appointments."""

import asyncio
from datetime import timedelta
from uuid import uuid4

from sqlalchemy import delete, insert

from app.config import settings
from app.core.timeutils import get_zone, start_of_week, utc_now
from app.database import AsyncSessionLocal, engine, unit_of_work
from app.models import appointment_notes, appointments, patients, providers, rooms
from app.schemas.actors import Actor, ActorRole
from app.schemas.appointments import AppointmentCreate
from app.services.appointment_service import AppointmentService
from app.services.change_broker import ChangeBroker

PROVIDERS = [
    {
        "full_name": "Dr Jade Nguyen",
        "initials": "JN",
        "specialty": "General dentistry",
        "role": "dentist",
        "color": "#22d3ee",
        "default_duration_minutes": 45,
    },
    {
        "full_name": "Dr Marc Dupont",
        "initials": "MD",
        "specialty": "Orthodontics",
        "role": "orthodontist",
        "color": "#f97316",
        "default_duration_minutes": 30,
    },
]

ROOMS = [
    {"name": "Room 1", "color": "#38bdf8", "floor": "1st", "equipment": "Planmeca chair"},
    {"name": "Room 2", "color": "#a855f7", "floor": "1st", "equipment": "Microscope"},
]

PATIENTS = [
    {"reference": "PAT-0001", "full_name": "Agenda Patient 1"},
    {"reference": "PAT-0002", "full_name": "Agenda Patient 2"},
    {"reference": "PAT-0003", "full_name": "Agenda Patient 3"},
]


async def seed() -> None:
    """Replace scheduling data with a small demo week."""
    provider_ids = [uuid4() for _ in PROVIDERS]
    room_ids = [uuid4() for _ in ROOMS]
    patient_ids = [uuid4() for _ in PATIENTS]

    async with unit_of_work(AsyncSessionLocal) as db:
        for table in (appointment_notes, appointments, providers, rooms, patients):
            await db.execute(delete(table))
        await db.execute(
            insert(providers),
            [{"id": pid, **row} for pid, row in zip(provider_ids, PROVIDERS, strict=True)],
        )
        await db.execute(
            insert(rooms),
            [{"id": rid, **row} for rid, row in zip(room_ids, ROOMS, strict=True)],
        )
        await db.execute(
            insert(patients),
            [{"id": pid, **row} for pid, row in zip(patient_ids, PATIENTS, strict=True)],
        )

    service = AppointmentService(AsyncSessionLocal, ChangeBroker())
    actor = Actor(id="seed", role=ActorRole.ADMIN)
    monday = start_of_week(utc_now().astimezone(get_zone(settings.practice_timezone)))

    for day in range(5):
        for index, provider_id in enumerate(provider_ids):
            start = monday + timedelta(days=day, hours=9 + 2 * index)
            await service.create_appointment(
                AppointmentCreate(
                    provider_id=provider_id,
                    room_id=room_ids[index],
                    patient_id=patient_ids[(day + index) % len(patient_ids)],
                    title="Check-up",
                    start_at=start.isoformat(),
                ),
                actor,
            )

    print("✓ Scheduling data seeded successfully!")


async def main() -> None:
    try:
        await seed()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
