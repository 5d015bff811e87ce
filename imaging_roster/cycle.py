"""
cycle.py — Calendar / rotation resolver

Pure date arithmetic: the 6-day 4-on/2-off rotation and the date helpers
the assigners share. Nothing here reads roster state.
"""

from datetime import date, datetime, timedelta
from typing import List, Optional, Union

from imaging_roster.schedule_config import (
    CYCLE_LENGTH,
    DEFAULT_CYCLE_START,
    GROUP_OFFSETS,
    OFF,
    WORK_DAYS_PER_CYCLE,
)

DateLike = Union[date, datetime, str]


def to_date(value: DateLike) -> date:
    """Coerce an ISO string, datetime or date to a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def to_iso(value: DateLike) -> str:
    return to_date(value).isoformat()


def date_range(start: DateLike, end: DateLike) -> List[str]:
    """All ISO dates in [start, end], inclusive. Empty if end < start."""
    d = to_date(start)
    last = to_date(end)
    out = []
    while d <= last:
        out.append(d.isoformat())
        d += timedelta(days=1)
    return out


def previous_day(value: DateLike) -> str:
    return (to_date(value) - timedelta(days=1)).isoformat()


def requirement_index(value: DateLike) -> int:
    """Weekday index for stationRequirements: 0 = Sunday ... 6 = Saturday."""
    return (to_date(value).weekday() + 1) % 7


def base_rotation_status(
    value: DateLike,
    group_id: Optional[str],
    cycle_start_date: DateLike = DEFAULT_CYCLE_START,
) -> Optional[str]:
    """
    Return OFF if the group rests on this date, else None.

    None means "no verdict" (working is the default), including every date
    before the cycle start.
    """
    diff_days = (to_date(value) - to_date(cycle_start_date)).days
    if diff_days < 0:
        return None
    group = getattr(group_id, "value", group_id)
    offset = GROUP_OFFSETS.get(group, 0)
    cycle_day = (diff_days + offset) % CYCLE_LENGTH
    if cycle_day >= WORK_DAYS_PER_CYCLE:
        return OFF
    return None
