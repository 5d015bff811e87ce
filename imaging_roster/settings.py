"""
settings.py — Administrative operations on SystemSettings

Stations and their weekday headcount, the holiday / event calendar, roster
cycles, the rotation anchor and the dashboard row order. Every mutating call
updates ctx.settings in place and persists it with ctx.save_settings().

ensure_settings_integrity() normalizes settings loaded from any source and is
applied by config.load_settings and RestEntityStore.get_settings.
"""

import logging
from typing import List, Optional, Union

from imaging_roster.context import RosterContext
from imaging_roster.cycle import DateLike, to_iso
from imaging_roster.models import DateEventType, Holiday, RosterCycle, SystemSettings
from imaging_roster.schedule_config import (
    DEFAULT_CYCLE_START,
    DEFAULT_DAILY_REQUIREMENT,
    DUTY_ROLES,
    OFF,
    SENTINEL_STATIONS,
    UNASSIGNED,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Integrity
# ---------------------------------------------------------------------------

def ensure_settings_integrity(settings: SystemSettings) -> SystemSettings:
    """
    Fill gaps left by older or hand-edited settings:
      - missing cycle start → DEFAULT_CYCLE_START
      - scalar or missing station requirement → the value repeated 7 times
        (missing defaults to 1)
      - holiday without a type → NATIONAL
    Mutates and returns the same object.
    """
    if not settings.cycle_start_date:
        settings.cycle_start_date = DEFAULT_CYCLE_START
    if settings.station_requirements is None:
        settings.station_requirements = {}
    if settings.station_display_order is None:
        settings.station_display_order = []

    for station in settings.stations:
        if station == OFF:
            continue
        req = settings.station_requirements.get(station)
        if isinstance(req, list) and len(req) == 7:
            settings.station_requirements[station] = [int(v) for v in req]
            continue
        value = int(req) if isinstance(req, (int, float)) else DEFAULT_DAILY_REQUIREMENT[0]
        settings.station_requirements[station] = [value] * 7

    for holiday in settings.holidays.values():
        if holiday.type is None:
            holiday.type = DateEventType.NATIONAL
    return settings


# ---------------------------------------------------------------------------
# Stations
# ---------------------------------------------------------------------------

def add_station(ctx: RosterContext, name: str) -> bool:
    """Add a station with one seat every day. False if it already exists."""
    name = name.strip()
    if not name or name in ctx.settings.stations:
        return False
    ctx.settings.stations.append(name)
    ctx.settings.station_requirements[name] = list(DEFAULT_DAILY_REQUIREMENT)
    ctx.save_settings()
    logger.info(f"Station added: {name}")
    return True


def remove_station(ctx: RosterContext, name: str) -> None:
    ctx.settings.stations = [s for s in ctx.settings.stations if s != name]
    ctx.settings.station_requirements.pop(name, None)
    ctx.save_settings()
    logger.info(f"Station removed: {name}")


def update_station_requirement(ctx: RosterContext, name: str, day_index: int, count: int) -> bool:
    """Set the headcount for one weekday (0 = Sunday). False for unknown stations."""
    if not 0 <= day_index <= 6:
        raise ValueError(f"day_index must be 0-6, got {day_index}")
    if count < 0:
        raise ValueError(f"count must be >= 0, got {count}")
    req = ctx.settings.station_requirements.get(name)
    if req is None:
        return False
    req[day_index] = count
    ctx.save_settings()
    return True


# ---------------------------------------------------------------------------
# Display order
# ---------------------------------------------------------------------------

def station_display_order(settings: SystemSettings) -> List[str]:
    """
    Saved row order merged with every current row: stations, duty roles,
    then UNASSIGNED and OFF. Saved entries that no longer exist are dropped;
    new rows are appended.
    """
    stations = [s for s in settings.stations if s not in SENTINEL_STATIONS]
    all_rows: List[str] = []
    for item in stations + list(DUTY_ROLES) + [UNASSIGNED, OFF]:
        if item not in all_rows:
            all_rows.append(item)

    saved = settings.station_display_order or []
    merged = [item for item in saved if item in all_rows]
    merged += [item for item in all_rows if item not in saved]
    return merged


def update_station_display_order(ctx: RosterContext, new_order: List[str]) -> None:
    ctx.settings.station_display_order = list(new_order)
    ctx.save_settings()


# ---------------------------------------------------------------------------
# Calendar events
# ---------------------------------------------------------------------------

def add_holiday(
    ctx: RosterContext,
    value: DateLike,
    name: str = "",
    event_type: Union[DateEventType, str] = DateEventType.NATIONAL,
) -> bool:
    """Add a calendar event. One event per date; False if the date is taken."""
    date_str = to_iso(value)
    if date_str in ctx.settings.holidays:
        return False
    holidays = dict(ctx.settings.holidays)
    holidays[date_str] = Holiday(date=date_str, name=name, type=event_type)
    ctx.settings.holidays = {d: holidays[d] for d in sorted(holidays)}
    ctx.save_settings()
    logger.info(f"Event added: {date_str} {name} ({DateEventType(event_type).value})")
    return True


def remove_holiday(ctx: RosterContext, value: DateLike) -> None:
    date_str = to_iso(value)
    if ctx.settings.holidays.pop(date_str, None) is not None:
        ctx.save_settings()


def get_event(settings: SystemSettings, value: DateLike) -> Optional[Holiday]:
    return settings.event(to_iso(value))


# ---------------------------------------------------------------------------
# Cycles
# ---------------------------------------------------------------------------

def add_cycle(ctx: RosterContext, cycle: RosterCycle) -> None:
    """Add a reporting cycle; cycles are kept newest first."""
    if to_iso(cycle.end_date) < to_iso(cycle.start_date):
        raise ValueError(f"Cycle {cycle.id} ends before it starts")
    ctx.settings.cycles.append(cycle)
    ctx.settings.cycles.sort(key=lambda c: c.start_date, reverse=True)
    ctx.save_settings()


def delete_cycle(ctx: RosterContext, cycle_id: str) -> None:
    ctx.settings.cycles = [c for c in ctx.settings.cycles if c.id != cycle_id]
    ctx.save_settings()


def find_cycle(settings: SystemSettings, value: DateLike) -> Optional[RosterCycle]:
    """The cycle whose [start, end] contains the date, if any."""
    date_str = to_iso(value)
    for cycle in settings.cycles:
        if cycle.start_date <= date_str <= cycle.end_date:
            return cycle
    return None


def toggle_cycle_confirmation(ctx: RosterContext, cycle_id: str, confirmed: Optional[bool] = None) -> bool:
    """
    Flip (or set) a cycle's confirmed flag. Returns the new value.

    Raises:
        KeyError: unknown cycle id.
    """
    for cycle in ctx.settings.cycles:
        if cycle.id == cycle_id:
            cycle.is_confirmed = (not cycle.is_confirmed) if confirmed is None else bool(confirmed)
            ctx.save_settings()
            logger.info(f"Cycle {cycle_id} confirmed={cycle.is_confirmed}")
            return cycle.is_confirmed
    raise KeyError(cycle_id)


def update_cycle_start_date(ctx: RosterContext, value: DateLike) -> None:
    """Move the rotation anchor. Affects every resolved status from now on."""
    ctx.settings.cycle_start_date = to_iso(value)
    ctx.save_settings()
