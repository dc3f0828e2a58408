"""
Calendar-month cycle arithmetic.

A cycle is one calendar month in the deployment's collection timezone and is
identified by a sortable "YYYY-MM" key.
"""

import calendar
from datetime import datetime, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from hundi.config import settings


def collection_tz() -> ZoneInfo:
    """Timezone whose calendar defines cycle boundaries."""
    return ZoneInfo(settings.collection_timezone)


def _to_local(timestamp: datetime, tz: Optional[ZoneInfo]) -> datetime:
    # Naive timestamps are already local wall-clock time
    if timestamp.tzinfo is None:
        return timestamp
    return timestamp.astimezone(tz or collection_tz())


def cycle_key(timestamp: datetime, tz: Optional[ZoneInfo] = None) -> str:
    """Format the (year, month) of a timestamp as "YYYY-MM"."""
    local = _to_local(timestamp, tz)
    return f"{local.year:04d}-{local.month:02d}"


def add_months(timestamp: datetime, months: int = 1, tz: Optional[ZoneInfo] = None) -> datetime:
    """
    Advance a timestamp by whole calendar months.

    Keeps the day-of-month and time of day. When the target month is shorter,
    the day is clamped to its last day (Jan 31 -> Feb 28/29).
    The arithmetic happens on the local calendar; aware inputs come back in
    their original timezone.
    """
    local = _to_local(timestamp, tz)
    
    month_index = local.month - 1 + months
    year = local.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    
    advanced = local.replace(year=year, month=month, day=min(local.day, last_day))
    
    if timestamp.tzinfo is None:
        return advanced
    return advanced.astimezone(timestamp.tzinfo)


def parse_cycle_key(key: str) -> Tuple[int, int]:
    """Split "YYYY-MM" into (year, month)."""
    year_part, _, month_part = key.partition("-")
    year, month = int(year_part), int(month_part)
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid cycle key: {key}")
    return year, month


def cycle_bounds(key: str, tz: Optional[ZoneInfo] = None) -> Tuple[datetime, datetime]:
    """Half-open [start, end) of a cycle as aware UTC datetimes."""
    year, month = parse_cycle_key(key)
    zone = tz or collection_tz()
    start = datetime(year, month, 1, tzinfo=zone)
    end = add_months(start, 1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def localize(timestamp: datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    """Attach the collection timezone to naive timestamps; aware ones pass through."""
    if timestamp.tzinfo is not None:
        return timestamp
    return timestamp.replace(tzinfo=tz or collection_tz())
