"""
engine.py — Station auto-assignment

Core algorithm: bounded randomized local search, one date at a time.

  For each date in range (CLOSED dates skipped):
    slots  = every active station repeated by its weekday headcount,
             scarcest first (schedule_config.STATION_PRIORITY), minus seats
             already taken by a manual assignment
    pool   = staff resolved WORK who hold no manual station
    Up to MAX_TRIALS trials:
      shuffle pool
      for each slot:
        rank remaining pool by how often each person already worked this
        station (ties keep the shuffled order)
        take the first certified person who is not a duty holder being sent
        to a duty-incompatible station
    Keep the trial with the fewest unfilled slots. A perfect trial ends the
    search once MIN_TRIALS have run.
    Commit the best trial as auto-generated shifts (one batch per date),
    give leftover workers an UNASSIGNED record, then bump the fairness
    counters so the next date sees them.

Shortfalls are returned in AssignmentResult.unfilled, never raised.

See schedule_config.py, repair.py (optional overflow pass)
"""

import logging
import random
from collections import defaultdict
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

from imaging_roster.context import RosterContext
from imaging_roster.cycle import DateLike, date_range, requirement_index, to_iso
from imaging_roster.models import Shift, SystemSettings, User
from imaging_roster.schedule_config import (
    MAX_TRIALS,
    MIN_TRIALS,
    SENTINEL_STATIONS,
    UNASSIGNED,
    WORK,
    station_priority,
)
from imaging_roster.skills import blocked_by_duty, is_certified
from imaging_roster.status import status_on
from imaging_roster.store import StoreError

logger = logging.getLogger(__name__)

# user_id → station → times assigned
StationCounts = Dict[str, Dict[str, int]]


@dataclass
class UnfilledSlot:
    date: str
    station: str


@dataclass
class AssignmentResult:
    start: str
    end: str
    assignments: Dict[str, Dict[str, str]] = field(default_factory=dict)   # date → user_id → station
    unfilled: List[UnfilledSlot] = field(default_factory=list)
    trials_run: Dict[str, int] = field(default_factory=dict)
    skipped_dates: List[str] = field(default_factory=list)
    overflow: Dict[str, Dict[str, str]] = field(default_factory=dict)      # date → user_id → station
    store_errors: List[StoreError] = field(default_factory=list)

    @property
    def unfilled_count(self) -> int:
        return len(self.unfilled)

    def unfilled_on(self, date_str: str) -> List[str]:
        return [u.station for u in self.unfilled if u.date == date_str]


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

def active_stations(settings: SystemSettings) -> List[str]:
    """Non-sentinel stations, scarcest first; ties keep configured order."""
    stations = [s for s in settings.stations if s not in SENTINEL_STATIONS]
    return sorted(stations, key=station_priority)


def is_manual_station(shift: Optional[Shift]) -> bool:
    """A station someone set by hand (or via leave) that the engine must not move."""
    return shift is not None and not shift.is_auto_generated and shift.has_station


def build_slots(ctx: RosterContext, date_str: str) -> List[str]:
    """Station slot multiset for a date, in priority order."""
    idx = requirement_index(date_str)
    taken: Dict[str, int] = defaultdict(int)
    for s in ctx.shifts_on(date_str):
        if is_manual_station(s):
            taken[s.station] += 1

    slots: List[str] = []
    for station in active_stations(ctx.settings):
        open_seats = ctx.settings.requirement(station, idx) - taken[station]
        slots.extend([station] * max(open_seats, 0))
    return slots


def eligible_pool(ctx: RosterContext, date_str: str) -> List[User]:
    return [
        u for u in ctx.users
        if status_on(ctx, u.id, date_str) == WORK
        and not is_manual_station(ctx.shift(u.id, date_str))
    ]


def seed_station_counts(ctx: RosterContext) -> StationCounts:
    """Historical per-user-per-station counts from every placed shift."""
    counts: StationCounts = defaultdict(lambda: defaultdict(int))
    for s in ctx.shifts_between():
        if s.has_station:
            counts[s.user_id][s.station] += 1
    return counts


def clear_auto_stations(ctx: RosterContext, start: str, end: str) -> List[StoreError]:
    """
    Reset every auto-generated station in range to UNASSIGNED. Roles stay.

    On CLOSED dates an auto-generated record with no hand-set roles is
    deleted instead, so the closure resolves the person OFF again.
    """
    errors: List[StoreError] = []
    cleared = 0
    for date_str in date_range(start, end):
        if ctx.settings.is_closed(date_str):
            stale = [
                s.key for s in ctx.shifts_on(date_str)
                if s.is_auto_generated and (not s.special_roles or s.is_role_auto_generated)
            ]
            cleared += len(stale)
            errors.extend(ctx.delete_shifts(stale))
        batch = [
            replace(s, station=UNASSIGNED)
            for s in ctx.shifts_on(date_str)
            if s.is_auto_generated and s.station != UNASSIGNED
        ]
        cleared += len(batch)
        errors.extend(ctx.save_shifts(batch))
    logger.debug(f"Cleared {cleared} auto-generated station(s) in {start}..{end}")
    return errors


# ---------------------------------------------------------------------------
# Core: one trial / best of many
# ---------------------------------------------------------------------------

def _run_trial(
    ctx: RosterContext,
    date_str: str,
    slots: List[str],
    pool: List[User],
    counts: StationCounts,
    rng: random.Random,
) -> Tuple[Dict[str, str], List[str]]:
    """One randomized greedy pass. Returns (user_id → station, unfilled stations)."""
    remaining = list(pool)
    rng.shuffle(remaining)
    allocation: Dict[str, str] = {}
    unfilled: List[str] = []

    for station in slots:
        # sorted() is stable, so equal counts keep this trial's shuffled order
        ranked = sorted(remaining, key=lambda u: counts[u.id][station])
        chosen = None
        for user in ranked:
            if not is_certified(user, station):
                continue
            if blocked_by_duty(ctx.shift(user.id, date_str), station):
                continue
            chosen = user
            break

        if chosen is None:
            unfilled.append(station)
            continue
        allocation[chosen.id] = station
        remaining = [u for u in remaining if u.id != chosen.id]

    return allocation, unfilled


def best_allocation(
    ctx: RosterContext,
    date_str: str,
    slots: List[str],
    pool: List[User],
    counts: StationCounts,
    rng: random.Random,
    trials: int = MAX_TRIALS,
) -> Tuple[Dict[str, str], List[str], int]:
    """
    Run up to `trials` randomized trials and keep the one with fewest unfilled.

    Returns:
        (allocation, unfilled_stations, trials_run)
    """
    trials = max(1, min(trials, MAX_TRIALS))
    best: Optional[Tuple[Dict[str, str], List[str]]] = None
    run = 0

    for run in range(1, trials + 1):
        allocation, unfilled = _run_trial(ctx, date_str, slots, pool, counts, rng)
        if best is None or len(unfilled) < len(best[1]):
            best = (allocation, unfilled)
        if not best[1] and run >= MIN_TRIALS:
            break

    return best[0], best[1], run


def _commit(
    ctx: RosterContext,
    date_str: str,
    pool: List[User],
    allocation: Dict[str, str],
) -> List[StoreError]:
    batch: List[Shift] = []
    for user in pool:
        existing = ctx.shift(user.id, date_str)
        station = allocation.get(user.id)
        if station is not None:
            shift = replace(existing) if existing else Shift(user_id=user.id, date=date_str)
            shift.station = station
            shift.is_auto_generated = True
            batch.append(shift)
        elif existing is None:
            batch.append(Shift(user_id=user.id, date=date_str, is_auto_generated=True))
    return ctx.save_shifts(batch)


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def auto_schedule(
    ctx: RosterContext,
    start: DateLike,
    end: DateLike,
    trials: int = MAX_TRIALS,
    rng: Optional[random.Random] = None,
    seed: Optional[int] = None,
    overflow: bool = False,
) -> AssignmentResult:
    """
    Fill daily station headcount for every date in [start, end].

    Args:
        ctx:      Roster snapshot; writes go through to its store.
        start:    First date (inclusive).
        end:      Last date (inclusive).
        trials:   Randomized trials per date (capped at MAX_TRIALS).
        rng:      Random source; defaults to random.Random(seed).
        seed:     Seed used when rng is not given.
        overflow: If True, place leftover workers with repair.place_overflow
                  (may use learning-tier capabilities).

    Returns:
        AssignmentResult with the committed allocation and any shortfall.
    """
    if rng is None:
        rng = random.Random(seed)
    start_str, end_str = to_iso(start), to_iso(end)
    result = AssignmentResult(start=start_str, end=end_str)

    result.store_errors.extend(clear_auto_stations(ctx, start_str, end_str))
    counts = seed_station_counts(ctx)

    for date_str in date_range(start_str, end_str):
        if ctx.settings.is_closed(date_str):
            result.skipped_dates.append(date_str)
            logger.info(f"{date_str}: closed, skipping")
            continue

        slots = build_slots(ctx, date_str)
        pool = eligible_pool(ctx, date_str)
        allocation, unfilled, run = best_allocation(ctx, date_str, slots, pool, counts, rng, trials)

        errors = _commit(ctx, date_str, pool, allocation)
        result.store_errors.extend(errors)
        for user_id, station in allocation.items():
            counts[user_id][station] += 1

        result.assignments[date_str] = dict(allocation)
        result.trials_run[date_str] = run
        result.unfilled.extend(UnfilledSlot(date_str, st) for st in unfilled)

        if unfilled:
            logger.warning(f"{date_str}: {len(unfilled)} slot(s) unfilled: {unfilled}")
        logger.info(
            f"Scheduled {date_str}: {len(allocation)}/{len(slots)} slots, "
            f"pool={len(pool)}, trials={run}"
        )

        if overflow:
            from imaging_roster.repair import place_overflow

            placed, overflow_errors = place_overflow(ctx, date_str, counts)
            result.overflow[date_str] = placed
            result.store_errors.extend(overflow_errors)

    logger.info(
        f"Auto-schedule {start_str}..{end_str}: {sum(len(a) for a in result.assignments.values())} "
        f"placements, {result.unfilled_count} unfilled"
    )
    return result
