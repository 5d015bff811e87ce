"""
constraints.py — Constraint audit over a roster snapshot

Hard constraints (must NOT violate):
  - UNCERTIFIED_STATION: auto-placed person neither certified nor learning
    the station (manual placements are checked only with include_manual=True)
  - STATION_ON_OFF_DAY: auto station on a CLOSED date or an approved leave day
  - DUTY_DOUBLE_HOLDER: one duty role held by two people on one date
  - DUTY_CONFLICT: one person holds duty roles that may not coexist
  - DUTY_INCOMPATIBLE_STATION: duty holder at floor control / remote / satellite

Soft constraints (minimize violations):
  - CONSECUTIVE_DUTY: same person holds the same duty role two days running
  - UNFILLED_SLOT: station headcount below the weekday requirement

Severity enum and ConstraintViolation dataclass are importable for
dry_run.py reporting.

Usage:
  checker = ConstraintChecker(ctx)
  hard, soft = checker.check_all("2024-03-01", "2024-03-31")
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from itertools import combinations
from typing import Any, Dict, List, Optional, Sequence, Tuple

from imaging_roster.context import RosterContext
from imaging_roster.cycle import DateLike, date_range, previous_day, requirement_index, to_iso
from imaging_roster.engine import active_stations
from imaging_roster.schedule_config import (
    DEFAULT_AUTO_DUTY_ROLES,
    is_duty_incompatible_station,
)
from imaging_roster.skills import can_fill, roles_conflict

logger = logging.getLogger(__name__)


class ConstraintSeverity(Enum):
    HARD = "hard"
    SOFT = "soft"


@dataclass
class ConstraintViolation:
    severity: ConstraintSeverity
    constraint_type: str
    description: str
    date: Optional[str] = None
    staff: Optional[str] = None
    station: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.severity.value.upper()}] {self.constraint_type}"]
        if self.date:
            parts.append(f"date={self.date}")
        if self.staff:
            parts.append(f"staff={self.staff}")
        if self.station:
            parts.append(f"station={self.station}")
        parts.append(f"→ {self.description}")
        return " | ".join(parts)


class ConstraintChecker:
    """
    Validates the shifts in a RosterContext against hard and soft constraints.

    Reads only; never writes to the context or its store.
    """

    def __init__(
        self,
        ctx: RosterContext,
        include_manual: bool = False,
        consecutive_roles: Sequence[str] = DEFAULT_AUTO_DUTY_ROLES,
    ):
        self.ctx = ctx
        self.include_manual = include_manual
        self.consecutive_roles = tuple(consecutive_roles)

    def _name(self, user_id: str) -> str:
        user = self.ctx.user(user_id)
        return user.name if user else user_id

    # -----------------------------------------------------------------------
    # HARD: Certification
    # -----------------------------------------------------------------------

    def check_certification(self, dates: List[str]) -> List[ConstraintViolation]:
        """Hard: every station placement needs the capability (or training for it)."""
        violations = []
        for date_str in dates:
            for s in self.ctx.shifts_on(date_str):
                if not s.has_station:
                    continue
                if not s.is_auto_generated and not self.include_manual:
                    continue
                user = self.ctx.user(s.user_id)
                if user is None or can_fill(user, s.station, allow_learning=True):
                    continue
                violations.append(ConstraintViolation(
                    severity=ConstraintSeverity.HARD,
                    constraint_type="UNCERTIFIED_STATION",
                    description=f"{user.name} placed at {s.station} without certification",
                    date=date_str,
                    staff=user.id,
                    station=s.station,
                    details={"auto": s.is_auto_generated},
                ))
        return violations

    # -----------------------------------------------------------------------
    # HARD: Placement on a day off
    # -----------------------------------------------------------------------

    def check_off_day_placement(self, dates: List[str]) -> List[ConstraintViolation]:
        """
        Hard: an auto-generated station on a CLOSED date or on an approved
        leave day. (A station record itself resolves WORK, so the check looks
        at what the person would resolve to without it.)
        """
        violations = []
        for date_str in dates:
            closed = self.ctx.settings.is_closed(date_str)
            for s in self.ctx.shifts_on(date_str):
                if not s.is_auto_generated or not s.has_station:
                    continue
                leave = self.ctx.approved_leave_on(s.user_id, date_str)
                if not closed and leave is None:
                    continue
                reason = "calendar closure" if closed else f"approved leave {leave.id}"
                violations.append(ConstraintViolation(
                    severity=ConstraintSeverity.HARD,
                    constraint_type="STATION_ON_OFF_DAY",
                    description=f"{self._name(s.user_id)} scheduled ({s.station}) during {reason}",
                    date=date_str,
                    staff=s.user_id,
                    station=s.station,
                ))
        return violations

    # -----------------------------------------------------------------------
    # HARD: Duty roles
    # -----------------------------------------------------------------------

    def check_duty_holders(self, dates: List[str]) -> List[ConstraintViolation]:
        """Hard: each duty role has at most one holder per date."""
        violations = []
        for date_str in dates:
            holders: Dict[str, List[str]] = defaultdict(list)
            for s in self.ctx.shifts_on(date_str):
                for role in s.special_roles:
                    holders[role].append(s.user_id)
            for role, ids in holders.items():
                if len(ids) > 1:
                    violations.append(ConstraintViolation(
                        severity=ConstraintSeverity.HARD,
                        constraint_type="DUTY_DOUBLE_HOLDER",
                        description=f"{role} held by {len(ids)} people: {sorted(ids)}",
                        date=date_str,
                        details={"role": role, "holders": sorted(ids)},
                    ))
        return violations

    def check_duty_conflicts(self, dates: List[str]) -> List[ConstraintViolation]:
        """Hard: a person's duty roles must be pairwise compatible."""
        pairs = self.ctx.settings.compatible_duty_pairs
        violations = []
        for date_str in dates:
            for s in self.ctx.shifts_on(date_str):
                for a, b in combinations(s.special_roles, 2):
                    if roles_conflict([a], b, pairs):
                        violations.append(ConstraintViolation(
                            severity=ConstraintSeverity.HARD,
                            constraint_type="DUTY_CONFLICT",
                            description=f"{self._name(s.user_id)} holds both {a} and {b}",
                            date=date_str,
                            staff=s.user_id,
                            details={"roles": [a, b]},
                        ))
        return violations

    def check_duty_station(self, dates: List[str]) -> List[ConstraintViolation]:
        """Hard: duty holders stay off floor control, remote and satellite stations."""
        violations = []
        for date_str in dates:
            for s in self.ctx.shifts_on(date_str):
                if s.special_roles and is_duty_incompatible_station(s.station):
                    violations.append(ConstraintViolation(
                        severity=ConstraintSeverity.HARD,
                        constraint_type="DUTY_INCOMPATIBLE_STATION",
                        description=(
                            f"{self._name(s.user_id)} holds {s.special_roles} "
                            f"but is placed at {s.station}"
                        ),
                        date=date_str,
                        staff=s.user_id,
                        station=s.station,
                    ))
        return violations

    # -----------------------------------------------------------------------
    # SOFT: Consecutive duty
    # -----------------------------------------------------------------------

    def check_consecutive_duty(self, dates: List[str]) -> List[ConstraintViolation]:
        """Soft: the same person holding the same role on consecutive dates."""
        violations = []
        for date_str in dates:
            yesterday = previous_day(date_str)
            for s in self.ctx.shifts_on(date_str):
                for role in s.special_roles:
                    if role not in self.consecutive_roles:
                        continue
                    prev = self.ctx.shift(s.user_id, yesterday)
                    if prev is not None and role in prev.special_roles:
                        violations.append(ConstraintViolation(
                            severity=ConstraintSeverity.SOFT,
                            constraint_type="CONSECUTIVE_DUTY",
                            description=f"{self._name(s.user_id)} holds {role} on {yesterday} and {date_str}",
                            date=date_str,
                            staff=s.user_id,
                            details={"role": role},
                        ))
        return violations

    # -----------------------------------------------------------------------
    # SOFT: Unfilled slots
    # -----------------------------------------------------------------------

    def check_unfilled(self, dates: List[str]) -> List[ConstraintViolation]:
        """Soft: station headcount below requirement (CLOSED dates excluded)."""
        violations = []
        stations = active_stations(self.ctx.settings)
        for date_str in dates:
            if self.ctx.settings.is_closed(date_str):
                continue
            idx = requirement_index(date_str)
            staffed: Dict[str, int] = defaultdict(int)
            for s in self.ctx.shifts_on(date_str):
                staffed[s.station] += 1
            for station in stations:
                required = self.ctx.settings.requirement(station, idx)
                if staffed[station] < required:
                    violations.append(ConstraintViolation(
                        severity=ConstraintSeverity.SOFT,
                        constraint_type="UNFILLED_SLOT",
                        description=f"{station} has {staffed[station]}/{required} on {date_str}",
                        date=date_str,
                        station=station,
                        details={"required": required, "staffed": staffed[station]},
                    ))
        return violations

    # -----------------------------------------------------------------------
    # Run all checks
    # -----------------------------------------------------------------------

    def check_all(
        self,
        start: DateLike,
        end: DateLike,
    ) -> Tuple[List[ConstraintViolation], List[ConstraintViolation]]:
        """
        Run all hard and soft constraint checks over [start, end].

        Returns:
            (hard_violations, soft_violations)
        """
        dates = date_range(to_iso(start), to_iso(end))
        hard: List[ConstraintViolation] = []
        soft: List[ConstraintViolation] = []

        hard.extend(self.check_certification(dates))
        hard.extend(self.check_off_day_placement(dates))
        hard.extend(self.check_duty_holders(dates))
        hard.extend(self.check_duty_conflicts(dates))
        hard.extend(self.check_duty_station(dates))
        soft.extend(self.check_consecutive_duty(dates))
        soft.extend(self.check_unfilled(dates))

        if hard:
            logger.warning(f"{len(hard)} hard violation(s) in {dates[0]}..{dates[-1]}")
        return hard, soft
