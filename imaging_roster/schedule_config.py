"""
schedule_config.py — Shared vocabulary and tuning constants for the roster engine

SENTINEL STATIONS
─────────────────
  OFF         the day is blocked (leave, rest day, closure override)
  UNASSIGNED  working, but not yet placed at a station

  Both are stored verbatim in Shift.station and must round-trip exactly
  through any entity store.

DUTY ROLES
──────────
  OPENING, LATE, ASSIST, SCHEDULER — carried in Shift.specialRoles,
  independent of the station. OPENING and LATE are the scarce roles that
  the special-duty assigner fills by default.

ROTATION
────────
  6-day cycle, 4 on / 2 off. Group phase offsets stagger the three groups:
    A → 0, B → 2, C → 4
  so exactly one group rests on any cycle day.

STATION PRIORITY
────────────────
  Slots are offered scarcest-first. Matching is by substring so that site
  variants ("Remote", "Remote Night") share a priority. Unlisted stations
  sort last, keeping their configured order.

DUTY-INCOMPATIBLE STATIONS
──────────────────────────
  A duty holder may not be placed at floor control, remote reading, or the
  satellite site (Dazhi). Matching is by substring.
"""

from typing import Dict, FrozenSet, List, Tuple

# ---------------------------------------------------------------------------
# Sentinels and status verdicts
# ---------------------------------------------------------------------------
OFF = "OFF"
UNASSIGNED = "UNASSIGNED"
SENTINEL_STATIONS: FrozenSet[str] = frozenset({OFF, UNASSIGNED})

WORK = "WORK"

# ---------------------------------------------------------------------------
# Duty roles
# ---------------------------------------------------------------------------
OPENING = "OPENING"
LATE = "LATE"
ASSIST = "ASSIST"
SCHEDULER = "SCHEDULER"

DUTY_ROLES: Tuple[str, ...] = (OPENING, LATE, ASSIST, SCHEDULER)
DEFAULT_AUTO_DUTY_ROLES: Tuple[str, ...] = (OPENING, LATE)

# Pairs of duty roles one person may hold on the same day.
# Everything not listed here is mutually exclusive.
DEFAULT_COMPATIBLE_DUTY_PAIRS: List[List[str]] = [
    [OPENING, ASSIST],
]

# ---------------------------------------------------------------------------
# Stations
# ---------------------------------------------------------------------------
REMOTE = "Remote"
FLOOR_CONTROL = "Floor Control"
MR3T = "MR3T"
MR1_5T = "MR1.5T"
CT = "CT"
US1 = "US1"
US2 = "US2"
US3 = "US3"
US4 = "US4"
BMD_DX = "BMD/DX"
DAZHI = "Dazhi"
TECH_SUPPORT = "Tech Support"
ADMIN = "Admin"

DEFAULT_STATIONS: List[str] = [
    REMOTE, FLOOR_CONTROL, MR3T, MR1_5T, CT,
    US1, US2, US3, US4, BMD_DX, DAZHI,
    TECH_SUPPORT, ADMIN,
    UNASSIGNED, OFF,
]

# Sunday-first, matching SystemSettings.stationRequirements
DEFAULT_DAILY_REQUIREMENT: List[int] = [1, 1, 1, 1, 1, 1, 1]

STATION_PRIORITY: List[str] = [
    REMOTE,
    FLOOR_CONTROL,
    MR3T,
    MR1_5T,
    CT,
    US1, US2, US3, US4, "US",
    "BMD",
    DAZHI,
    TECH_SUPPORT,
    ADMIN,
]

DUTY_INCOMPATIBLE_KEYWORDS: Tuple[str, ...] = (FLOOR_CONTROL, REMOTE, DAZHI)

# Overflow placement: stations that accept any number of people
POOL_STATIONS: Tuple[str, ...] = (TECH_SUPPORT, ADMIN)

# Station categories used by period statistics
REMOTE_KEYWORDS: Tuple[str, ...] = (REMOTE,)
SATELLITE_KEYWORDS: Tuple[str, ...] = (DAZHI,)

# ---------------------------------------------------------------------------
# Rotation
# ---------------------------------------------------------------------------
DEFAULT_CYCLE_START = "2024-01-01"
CYCLE_LENGTH = 6
WORK_DAYS_PER_CYCLE = 4
GROUP_OFFSETS: Dict[str, int] = {"A": 0, "B": 2, "C": 4}

# ---------------------------------------------------------------------------
# Auto-assignment
# ---------------------------------------------------------------------------
MAX_TRIALS = 50
MIN_TRIALS = 10        # trials to run before a perfect trial may end the search

# ---------------------------------------------------------------------------
# Leave rules
# ---------------------------------------------------------------------------
LONG_LEAVE_MIN_DAYS = 4
LONG_LEAVE_MAX_DAYS = 12

# ---------------------------------------------------------------------------
# Fairness
# ---------------------------------------------------------------------------
FAIRNESS_TARGETS: Dict[str, float] = {
    "cv_target": 0.10,      # work-day CV across staff
    "role_cv_target": 0.25, # per duty role CV across certified staff
}


def station_priority(station: str) -> int:
    """Return the scarcity rank of a station (lower is scarcer)."""
    for idx, keyword in enumerate(STATION_PRIORITY):
        if keyword in station:
            return idx
    return len(STATION_PRIORITY)


def is_duty_incompatible_station(station: str) -> bool:
    """True if a duty holder must not be placed at this station."""
    if not station or station in SENTINEL_STATIONS:
        return False
    return any(keyword in station for keyword in DUTY_INCOMPATIBLE_KEYWORDS)


def is_pool_station(station: str) -> bool:
    return any(keyword in station for keyword in POOL_STATIONS)
