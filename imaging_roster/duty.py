"""
duty.py — Special-duty auto-assignment (OPENING / LATE by default)

For each date (CLOSED dates skipped), for each role independently:
  1. Skip if someone already holds the role that day (one holder per role).
  2. Candidates: resolved WORK, certified for the role (learning tier never
     counts), not sitting at a manually set duty-incompatible station, and
     not holding a duty role that conflicts (see skills.roles_conflict).
  3. Rank: did not hold this role yesterday, then fewest past holds of the
     role, then random.
  4. Give the role to the top candidate. A new shift is created as
     UNASSIGNED; an auto-generated duty-incompatible station is reset to
     UNASSIGNED.

No candidate → the role stays open for that date (DutyResult.unfilled).
A date's assignments are written as one batch, then the counters advance.
"""

import logging
import random
from collections import defaultdict
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence

from imaging_roster.context import RosterContext
from imaging_roster.cycle import DateLike, date_range, previous_day, to_iso
from imaging_roster.engine import is_manual_station
from imaging_roster.models import Shift, User
from imaging_roster.schedule_config import (
    DEFAULT_AUTO_DUTY_ROLES,
    UNASSIGNED,
    WORK,
    is_duty_incompatible_station,
)
from imaging_roster.skills import is_certified, roles_conflict
from imaging_roster.status import status_on
from imaging_roster.store import StoreError

logger = logging.getLogger(__name__)

# role → user_id → times held
RoleCounts = Dict[str, Dict[str, int]]


@dataclass
class UnfilledDuty:
    date: str
    role: str


@dataclass
class DutyResult:
    start: str
    end: str
    assignments: Dict[str, Dict[str, str]] = field(default_factory=dict)   # date → role → user_id
    unfilled: List[UnfilledDuty] = field(default_factory=list)
    skipped_dates: List[str] = field(default_factory=list)
    store_errors: List[StoreError] = field(default_factory=list)

    @property
    def unfilled_count(self) -> int:
        return len(self.unfilled)


def seed_role_counts(
    ctx: RosterContext,
    roles: Sequence[str],
    start: Optional[str] = None,
    end: Optional[str] = None,
) -> RoleCounts:
    """Count past holds of each role per user within [start, end]."""
    counts: RoleCounts = {role: defaultdict(int) for role in roles}
    for s in ctx.shifts_between(start, end):
        for role in s.special_roles:
            if role in counts:
                counts[role][s.user_id] += 1
    return counts


def _held_on(ctx: RosterContext, user_id: str, date_str: str, role: str) -> bool:
    shift = ctx.shift(user_id, date_str)
    return shift is not None and role in shift.special_roles


def duty_candidates(
    ctx: RosterContext,
    date_str: str,
    role: str,
    pending: Optional[Dict[str, Shift]] = None,
) -> List[User]:
    """Users who may take `role` on `date_str`, in roster order."""
    pending = pending or {}
    pairs = ctx.settings.compatible_duty_pairs
    out = []
    for user in ctx.users:
        if not is_certified(user, role):
            continue
        if status_on(ctx, user.id, date_str) != WORK:
            continue
        shift = pending.get(user.id) or ctx.shift(user.id, date_str)
        if shift is not None:
            if is_manual_station(shift) and is_duty_incompatible_station(shift.station):
                continue
            if roles_conflict(shift.special_roles, role, pairs):
                continue
        out.append(user)
    return out


def rank_candidates(
    ctx: RosterContext,
    candidates: List[User],
    date_str: str,
    role: str,
    counts: RoleCounts,
    rng: random.Random,
) -> List[User]:
    yesterday = previous_day(date_str)
    tiebreak = {u.id: rng.random() for u in candidates}
    return sorted(
        candidates,
        key=lambda u: (
            _held_on(ctx, u.id, yesterday, role),
            counts[role][u.id],
            tiebreak[u.id],
        ),
    )


def _give_role(ctx: RosterContext, user: User, date_str: str, role: str,
               pending: Dict[str, Shift]) -> Shift:
    existing = pending.get(user.id) or ctx.shift(user.id, date_str)
    if existing is None:
        shift = Shift(user_id=user.id, date=date_str, station=UNASSIGNED, is_auto_generated=True)
    else:
        shift = replace(existing, special_roles=list(existing.special_roles))
    if role not in shift.special_roles:
        shift.special_roles.append(role)
    shift.is_role_auto_generated = True
    if is_duty_incompatible_station(shift.station):
        logger.debug(f"{date_str}: {user.id} leaves {shift.station} for {role}")
        shift.station = UNASSIGNED
    pending[user.id] = shift
    return shift


def auto_assign_special_roles(
    ctx: RosterContext,
    start: DateLike,
    end: DateLike,
    roles: Sequence[str] = DEFAULT_AUTO_DUTY_ROLES,
    rng: Optional[random.Random] = None,
    seed: Optional[int] = None,
    history_start: Optional[DateLike] = None,
    history_end: Optional[DateLike] = None,
) -> DutyResult:
    """
    Assign each duty role to one person per date in [start, end].

    Args:
        ctx:           Roster snapshot; writes go through to its store.
        roles:         Duty roles to fill, in the order they are processed.
        rng / seed:    Random source for the final tie-break.
        history_start: Start of the window used to seed fairness counters
                       (defaults to `start`).
        history_end:   End of that window (defaults to `end`).

    Returns:
        DutyResult with assignments and unfilled (date, role) pairs.
    """
    if rng is None:
        rng = random.Random(seed)
    start_str, end_str = to_iso(start), to_iso(end)
    result = DutyResult(start=start_str, end=end_str)

    counts = seed_role_counts(
        ctx,
        roles,
        to_iso(history_start) if history_start is not None else start_str,
        to_iso(history_end) if history_end is not None else end_str,
    )

    for date_str in date_range(start_str, end_str):
        if ctx.settings.is_closed(date_str):
            result.skipped_dates.append(date_str)
            continue

        pending: Dict[str, Shift] = {}
        given: Dict[str, str] = {}
        for role in roles:
            holders = [s.user_id for s in ctx.shifts_on(date_str) if role in s.special_roles]
            if holders:
                logger.debug(f"{date_str}: {role} already held by {holders[0]}")
                continue

            candidates = duty_candidates(ctx, date_str, role, pending)
            if not candidates:
                logger.warning(f"{date_str}: no eligible candidate for {role}")
                result.unfilled.append(UnfilledDuty(date_str, role))
                continue

            chosen = rank_candidates(ctx, candidates, date_str, role, counts, rng)[0]
            _give_role(ctx, chosen, date_str, role, pending)
            given[role] = chosen.id
            logger.debug(f"{date_str} {role} → {chosen.id} (held {counts[role][chosen.id]}x)")

        result.store_errors.extend(ctx.save_shifts(pending.values()))
        for role, user_id in given.items():
            counts[role][user_id] += 1
        result.assignments[date_str] = given

    logger.info(
        f"Duty assignment {start_str}..{end_str} for {list(roles)}: "
        f"{sum(len(v) for v in result.assignments.values())} given, "
        f"{result.unfilled_count} unfilled"
    )
    return result
