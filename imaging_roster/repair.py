"""
repair.py — Overflow placement for workers the station trials left UNASSIGNED

Runs after engine.auto_schedule has committed a date (only with overflow=True).
Every worker who is still UNASSIGNED that day is offered the overflow list:

    Tech Support, Admin, Floor Control, then active stations by priority

restricted to stations configured in SystemSettings. The worker takes the
first station where they are certified OR learning, subject to:
  - a duty holder never lands on a duty-incompatible station
  - pool stations (Tech Support, Admin) take any number of people
  - any other station already staffed by a certified person only accepts
    a learner (shadowing), never a second certified person

Placements are auto-generated, so the next auto_schedule run clears them.
"""

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from imaging_roster.context import RosterContext
from imaging_roster.engine import StationCounts, active_stations
from imaging_roster.models import Shift, User
from imaging_roster.schedule_config import (
    ADMIN,
    FLOOR_CONTROL,
    TECH_SUPPORT,
    UNASSIGNED,
    WORK,
    is_pool_station,
)
from imaging_roster.skills import blocked_by_duty, can_fill, is_certified, is_learning
from imaging_roster.status import status_on
from imaging_roster.store import StoreError

logger = logging.getLogger(__name__)

OVERFLOW_HEAD: List[str] = [TECH_SUPPORT, ADMIN, FLOOR_CONTROL]


def overflow_stations(ctx: RosterContext) -> List[str]:
    """Ordered, de-duplicated overflow list limited to configured stations."""
    configured = set(ctx.settings.stations)
    out: List[str] = []
    for station in OVERFLOW_HEAD + active_stations(ctx.settings):
        if station in configured and station not in out:
            out.append(station)
    return out


def unplaced_workers(ctx: RosterContext, date_str: str) -> List[User]:
    """WORK-status users with no station on the date (absent or UNASSIGNED shift)."""
    out = []
    for user in ctx.users:
        if status_on(ctx, user.id, date_str) != WORK:
            continue
        shift = ctx.shift(user.id, date_str)
        if shift is None or shift.station == UNASSIGNED:
            out.append(user)
    return out


def _has_certified_holder(ctx: RosterContext, date_str: str, station: str,
                          pending: Dict[str, Shift]) -> bool:
    shifts = {s.user_id: s for s in ctx.shifts_on(date_str)}
    shifts.update(pending)
    for s in shifts.values():
        if s.station != station:
            continue
        holder = ctx.user(s.user_id)
        if holder is not None and is_certified(holder, station):
            return True
    return False


def pick_overflow_station(
    ctx: RosterContext,
    user: User,
    date_str: str,
    stations: List[str],
    pending: Optional[Dict[str, Shift]] = None,
) -> Optional[str]:
    """First acceptable overflow station for the user, or None."""
    pending = pending or {}
    shift = ctx.shift(user.id, date_str)
    for station in stations:
        if not can_fill(user, station, allow_learning=True):
            continue
        if blocked_by_duty(shift, station):
            continue
        if not is_pool_station(station) and not is_learning(user, station):
            if _has_certified_holder(ctx, date_str, station, pending):
                continue
        return station
    return None


def place_overflow(
    ctx: RosterContext,
    date_str: str,
    counts: Optional[StationCounts] = None,
) -> Tuple[Dict[str, str], List[StoreError]]:
    """
    Place every still-UNASSIGNED worker on the date.

    Args:
        ctx:      Roster snapshot.
        date_str: ISO date already committed by the station trials.
        counts:   Fairness counters to bump for each placement (optional).

    Returns:
        (user_id → station placed, store errors)
    """
    stations = overflow_stations(ctx)
    pending: Dict[str, Shift] = {}
    placed: Dict[str, str] = {}

    for user in unplaced_workers(ctx, date_str):
        existing = ctx.shift(user.id, date_str)
        station = pick_overflow_station(ctx, user, date_str, stations, pending)
        if station is None:
            logger.debug(f"{date_str}: no overflow station for {user.id}")
            continue
        shift = replace(existing) if existing else Shift(user_id=user.id, date=date_str)
        shift.station = station
        shift.is_auto_generated = True
        pending[user.id] = shift
        placed[user.id] = station
        tier = "certified" if is_certified(user, station) else "learning"
        logger.debug(f"{date_str}: overflow {user.id} → {station} [{tier}]")

    errors = ctx.save_shifts(pending.values())
    if counts is not None:
        for user_id, station in placed.items():
            counts[user_id][station] += 1

    if placed:
        logger.info(f"{date_str}: overflow placed {len(placed)} worker(s)")
    return placed, errors
