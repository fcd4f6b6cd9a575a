"""Script to recompute every provider's next available slot."""

import asyncio
import sys

from app.database import AsyncSessionLocal, engine, unit_of_work
from app.services.availability_service import AvailabilityService


async def recompute_availability() -> None:
    """Refresh ``next_available_at`` for all providers in one transaction."""
    async with unit_of_work(AsyncSessionLocal) as db:
        refreshed = await AvailabilityService.refresh_all(db)

    for provider_id, next_start in refreshed.items():
        label = next_start.isoformat() if next_start else "available now"
        print(f"Provider {provider_id}: next availability {label}")

    print(f"✓ Availability refreshed for {len(refreshed)} provider(s)")


async def main() -> None:
    try:
        await recompute_availability()
    except Exception as e:
        print(f"✗ Availability refresh failed: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
