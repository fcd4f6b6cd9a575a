"""Timezone-aware instant parsing and slot arithmetic."""

import re
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import NamedTuple
from zoneinfo import ZoneInfo

from app.core.exceptions import InvalidDateTimeError, InvalidRangeError

# 2025-03-03T09:00:00[Europe/Paris] or 2025-03-03T09:00:00+01:00[Europe/Paris]
_ZONED_RE = re.compile(r"^(?P<instant>[^\[\]]+)\[(?P<zone>[^\[\]]+)\]$")


class ListingRange(NamedTuple):
    """Half-open [start, end) window in the canonical timezone."""

    start: datetime
    end: datetime


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


@lru_cache
def get_zone(name: str) -> ZoneInfo:
    """Get a cached ZoneInfo instance."""
    return ZoneInfo(name)


def ensure_utc(value: datetime) -> datetime:
    """Convert to aware UTC; naive values are read back from stores as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def normalize_instant(raw: str | datetime, tz: ZoneInfo) -> datetime:
    """
    Parse an ISO-8601 instant and convert it to the canonical timezone.

    Args:
        raw: ISO string with an offset (``Z`` allowed), a bracketed zone
            suffix, or an aware datetime
        tz: Canonical timezone

    Returns:
        Aware datetime expressed in ``tz``

    Raises:
        InvalidDateTimeError: If the value is unparsable or has no timezone
    """
    if isinstance(raw, datetime):
        if raw.tzinfo is None:
            raise InvalidDateTimeError(raw)
        return raw.astimezone(tz)

    if not isinstance(raw, str) or not raw.strip():
        raise InvalidDateTimeError(raw)

    value = raw.strip()
    zone: ZoneInfo | None = None
    match = _ZONED_RE.match(value)
    if match:
        value = match.group("instant")
        try:
            zone = get_zone(match.group("zone"))
        except (KeyError, ValueError) as e:
            raise InvalidDateTimeError(raw) from e

    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise InvalidDateTimeError(raw) from e

    if parsed.tzinfo is None:
        if zone is None:
            raise InvalidDateTimeError(raw)
        parsed = parsed.replace(tzinfo=zone)

    return parsed.astimezone(tz)


def is_slot_aligned(instant: datetime, slot_minutes: int) -> bool:
    """Check that an instant sits exactly on a slot boundary."""
    return instant.minute % slot_minutes == 0 and instant.second == 0 and instant.microsecond == 0


def start_of_week(instant: datetime) -> datetime:
    """Monday 00:00 of the week containing ``instant``, in its own timezone."""
    monday = instant.date() - timedelta(days=instant.weekday())
    return datetime(monday.year, monday.month, monday.day, tzinfo=instant.tzinfo)


def _truncate_to_minute(instant: datetime) -> datetime:
    return instant.replace(second=0, microsecond=0)


def compute_listing_range(
    start: str | datetime | None,
    end: str | datetime | None,
    tz: ZoneInfo,
    now: datetime | None = None,
) -> ListingRange:
    """
    Derive the listing window.

    Missing start defaults to the beginning of the current calendar week,
    missing end to seven calendar days after start.

    Raises:
        InvalidDateTimeError: If a supplied bound cannot be parsed
        InvalidRangeError: If end is not after start
    """
    current = (now or utc_now()).astimezone(tz)

    range_start = normalize_instant(start, tz) if start else start_of_week(current)
    if end:
        range_end = normalize_instant(end, tz)
    else:
        # Wall-clock arithmetic keeps midnight-to-midnight across DST changes
        range_end = range_start + timedelta(days=7)

    range_start = _truncate_to_minute(range_start)
    range_end = _truncate_to_minute(range_end)
    if range_end <= range_start:
        raise InvalidRangeError()

    return ListingRange(range_start, range_end)
