"""
config.py — File loaders for the roster engine

Loads staff, settings, leave requests and existing shifts from the config
directory and bundles them into an InMemoryEntityStore for offline runs.

users.csv columns:
  id, name, alias, email, role, group, capabilities, learning_capabilities

Capability columns accept comma, semicolon or pipe delimiters, e.g.
  "MR3T,CT,OPENING"   "MR3T; CT"   "US1|US2"
Tags are kept case-sensitive (they must match station names exactly).
"""

import json
import logging
from pathlib import Path
from typing import Any, List, Optional

from imaging_roster.models import LeaveRequest, Shift, SystemSettings, User
from imaging_roster.settings import ensure_settings_integrity
from imaging_roster.store import InMemoryEntityStore

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_USERS_PATH     = DEFAULT_CONFIG_DIR / "users.csv"
DEFAULT_SETTINGS_PATH  = DEFAULT_CONFIG_DIR / "settings.json"
DEFAULT_LEAVES_PATH    = DEFAULT_CONFIG_DIR / "leaves.json"
DEFAULT_SHIFTS_PATH    = DEFAULT_CONFIG_DIR / "shifts.json"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:   # NaN from pandas
        return True
    return not str(value).strip()


def _parse_capabilities(raw: Any) -> List[str]:
    """
    Robust parser for capability strings.
    Handles:
      - comma-separated:  "MR3T,CT,OPENING"
      - semicolon-sep:    "MR3T;CT"
      - pipe-sep:         "US1|US2"
      - single value:     "CT"
    Station names may contain spaces ("Floor Control"), so spaces are not
    delimiters.
    """
    if _is_blank(raw):
        return []
    s = str(raw).strip().strip('"').strip("'")
    s = s.replace(";", ",").replace("|", ",")
    parts = [p.strip().strip('"').strip("'") for p in s.split(",")]
    return [p for p in parts if p]


def _read_json(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def load_users(users_path: Optional[Path] = None) -> List[User]:
    """
    Load staff from users.csv.

    Missing role defaults to EMPLOYEE, missing group to A.
    Raises FileNotFoundError if the file is absent and ValueError on
    duplicate ids.
    """
    import pandas as pd

    path = Path(users_path) if users_path else DEFAULT_USERS_PATH
    if not path.exists():
        raise FileNotFoundError(f"Users file not found: {path}")

    df = pd.read_csv(path, dtype=str)

    users: List[User] = []
    for _, row in df.iterrows():
        role = row.get("role")
        group = row.get("group")
        users.append(User(
            id=str(row["id"]).strip(),
            name=str(row["name"]).strip(),
            alias="" if _is_blank(row.get("alias")) else str(row["alias"]).strip(),
            email="" if _is_blank(row.get("email")) else str(row["email"]).strip(),
            role="EMPLOYEE" if _is_blank(role) else str(role).strip().upper(),
            group_id="A" if _is_blank(group) else str(group).strip().upper(),
            capabilities=_parse_capabilities(row.get("capabilities")),
            learning_capabilities=_parse_capabilities(row.get("learning_capabilities")),
        ))

    ids = [u.id for u in users]
    dupes = sorted({i for i in ids if ids.count(i) > 1})
    if dupes:
        raise ValueError(f"Duplicate user ids in {path}: {dupes}")

    logger.info(f"Loaded {len(users)} users from {path}")
    return users


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def load_settings(settings_path: Optional[Path] = None) -> SystemSettings:
    """Load settings JSON (camelCase). Missing file → defaults."""
    path = Path(settings_path) if settings_path else DEFAULT_SETTINGS_PATH
    if not path.exists():
        logger.warning(f"Settings not found: {path}. Using defaults.")
        return ensure_settings_integrity(SystemSettings())
    settings = ensure_settings_integrity(SystemSettings.from_dict(_read_json(path)))
    logger.info(
        f"Loaded settings from {path}: {len(settings.stations)} stations, "
        f"{len(settings.holidays)} calendar events"
    )
    return settings


def save_settings(settings: SystemSettings, settings_path: Optional[Path] = None) -> None:
    path = Path(settings_path) if settings_path else DEFAULT_SETTINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, indent=2, ensure_ascii=False)
    logger.info(f"Settings saved to {path}")


# ---------------------------------------------------------------------------
# Leaves and shifts
# ---------------------------------------------------------------------------

def load_leaves(leaves_path: Optional[Path] = None) -> List[LeaveRequest]:
    """Load leave requests (a JSON list). Missing file → []."""
    path = Path(leaves_path) if leaves_path else DEFAULT_LEAVES_PATH
    if not path.exists():
        logger.warning(f"Leave requests not found: {path}. Starting with none.")
        return []
    leaves = [LeaveRequest.from_dict(d) for d in _read_json(path)]
    logger.info(f"Loaded {len(leaves)} leave requests from {path}")
    return leaves


def load_shifts(shifts_path: Optional[Path] = None) -> List[Shift]:
    """Load existing shift records (a JSON list). Missing file → []."""
    path = Path(shifts_path) if shifts_path else DEFAULT_SHIFTS_PATH
    if not path.exists():
        return []
    shifts = [Shift.from_dict(d) for d in _read_json(path)]
    logger.info(f"Loaded {len(shifts)} shifts from {path}")
    return shifts


def save_shifts(shifts: List[Shift], shifts_path: Optional[Path] = None) -> None:
    path = Path(shifts_path) if shifts_path else DEFAULT_SHIFTS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    ordered = sorted(shifts, key=lambda s: (s.date, s.user_id))
    with open(path, "w", encoding="utf-8") as f:
        json.dump([s.to_dict() for s in ordered], f, indent=2, ensure_ascii=False)
    logger.info(f"Saved {len(ordered)} shifts to {path}")


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

def build_store(
    users_path: Optional[Path] = None,
    settings_path: Optional[Path] = None,
    leaves_path: Optional[Path] = None,
    shifts_path: Optional[Path] = None,
) -> InMemoryEntityStore:
    """Load every config file into an InMemoryEntityStore."""
    return InMemoryEntityStore(
        users=load_users(users_path),
        shifts=load_shifts(shifts_path),
        leaves=load_leaves(leaves_path),
        settings=load_settings(settings_path),
    )
