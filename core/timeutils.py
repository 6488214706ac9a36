"""
Clock helpers shared by the scheduler and the delivery coordinator.

All instants handled by the service are timezone-aware. Naive datetimes coming
from storage backends without timezone support (e.g. SQLite) are taken as UTC.
"""
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable

Clock = Callable[[], datetime]

# Scheduler cadence: every two hours, aligned to even wall-clock hours
CYCLE_PERIOD = timedelta(hours=2)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime (naive values are assumed UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_hour(now: datetime, tz: tzinfo) -> int:
    return as_utc(now).astimezone(tz).hour


def top_of_hour(now: datetime, tz: tzinfo) -> datetime:
    """Start of the local hour containing now, as a UTC instant."""
    local = as_utc(now).astimezone(tz)
    return local.replace(minute=0, second=0, microsecond=0).astimezone(timezone.utc)


def next_even_hour(now: datetime, tz: tzinfo) -> datetime:
    """
    Next top-of-hour instant strictly after the current local hour whose local
    hour is even. Local hour h maps to h + (2 - h % 2): 13 -> 14, 14 -> 16.

    Steps one hour at a time in UTC so DST transitions never produce a
    non-existent local time.
    """
    candidate = top_of_hour(now, tz)
    for _ in range(48):
        candidate = candidate + timedelta(hours=1)
        local = candidate.astimezone(tz)
        if local.minute == 0 and local.hour % 2 == 0:
            return candidate
    raise ValueError(f"no even local hour found after {now.isoformat()} in {tz}")


def minutes_until_next_even_hour(now: datetime) -> int:
    """
    Minutes until the next UTC boundary where hour % 2 == 0 and minute == 0.
    Returns 0 when now already sits on such a boundary.
    """
    now = as_utc(now)
    return (120 - (now.hour % 2 * 60 + now.minute)) % 120
