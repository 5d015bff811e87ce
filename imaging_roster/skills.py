"""
skills.py — Capability matching for stations and duty roles

Each user carries two disjoint tag sets:
  - capabilities           certified; usable by every assigner
  - learning_capabilities  in training; usable only by the overflow
                           placement pass (repair.place_overflow), never by
                           the station trials or the duty assigner

Duty coexistence: one person may hold two duty roles on a day only if the
pair is listed in SystemSettings.compatible_duty_pairs.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from imaging_roster.models import Shift, SystemSettings, User
from imaging_roster.schedule_config import (
    DUTY_ROLES,
    SENTINEL_STATIONS,
    is_duty_incompatible_station,
)


# ---------------------------------------------------------------------------
# Query Functions
# ---------------------------------------------------------------------------

def is_certified(user: User, tag: str) -> bool:
    return tag in user.capabilities


def is_learning(user: User, tag: str) -> bool:
    return tag in user.learning_capabilities


def can_fill(user: User, tag: str, allow_learning: bool = False) -> bool:
    """Certified, or (only when allow_learning) in training for the tag."""
    if is_certified(user, tag):
        return True
    return allow_learning and is_learning(user, tag)


def get_qualified_staff(
    users: Sequence[User],
    tag: str,
    include_learning: bool = False,
) -> List[User]:
    """
    Filter users to those who can fill a station or duty tag.

    Returns:
        Filtered list (preserves original order)
    """
    return [u for u in users if can_fill(u, tag, allow_learning=include_learning)]


def duty_roles_of(shift: Optional[Shift]) -> List[str]:
    if shift is None:
        return []
    return list(shift.special_roles)


def holds_duty(shift: Optional[Shift]) -> bool:
    return bool(duty_roles_of(shift))


def _pair_allowed(a: str, b: str, compatible_pairs: Iterable[Sequence[str]]) -> bool:
    return any({a, b} == set(pair) for pair in compatible_pairs)


def roles_conflict(
    existing_roles: Iterable[str],
    new_role: str,
    compatible_pairs: Iterable[Sequence[str]],
) -> bool:
    """
    True if new_role cannot join existing_roles on the same person.

    Holding the same role again is not a conflict; any other role conflicts
    unless the pair is explicitly compatible.
    """
    pairs = [list(p) for p in compatible_pairs]
    for role in existing_roles:
        if role == new_role:
            continue
        if not _pair_allowed(role, new_role, pairs):
            return True
    return False


def blocked_by_duty(shift: Optional[Shift], station: str) -> bool:
    """True if the shift's duty roles forbid placing the person at station."""
    return holds_duty(shift) and is_duty_incompatible_station(station)


# ---------------------------------------------------------------------------
# Audit helpers
# ---------------------------------------------------------------------------

def get_capability_summary(users: Sequence[User]) -> Dict[str, List[str]]:
    """
    Return a dict of tag → list of user names (certified only) for audit.

    Useful for validating roster coverage and printing the skill matrix.
    """
    summary: Dict[str, List[str]] = {}
    for u in users:
        for tag in sorted(u.capabilities):
            summary.setdefault(tag, []).append(u.name)
    return summary


def validate_station_coverage(
    users: Sequence[User],
    settings: SystemSettings,
    duty_roles: Optional[Sequence[str]] = None,
) -> List[str]:
    """
    Validate that every staffed station and every duty role has at least one
    certified person.

    Returns:
        List of warning strings (empty = all OK)
    """
    warnings = []
    for station in settings.stations:
        if station in SENTINEL_STATIONS:
            continue
        required = max(settings.requirement(station, i) for i in range(7))
        if required <= 0:
            continue
        qualified = get_qualified_staff(users, station)
        if len(qualified) < required:
            warnings.append(
                f"Station '{station}' needs up to {required} per day but only "
                f"{len(qualified)} certified staff"
            )

    for role in duty_roles if duty_roles is not None else DUTY_ROLES:
        qualified = get_qualified_staff(users, role)
        if not qualified:
            warnings.append(f"Duty role '{role}' has NO certified staff")
        elif len(qualified) < 2:
            warnings.append(
                f"Duty role '{role}' has only {len(qualified)} certified person "
                f"({qualified[0].name}), need ≥2 to avoid consecutive days"
            )
    return warnings
