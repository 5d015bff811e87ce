"""
statistics.py — Per-person period statistics and fairness metrics

period_statistics() walks every date in a period and resolves each person's
status, so rows reflect rotation, closures and leave even where no shift
record exists. A WORK day without a station counts toward total work only.

Location split:
  remote    station matches REMOTE_KEYWORDS
  satellite station matches SATELLITE_KEYWORDS
  main      any other WORK day
  on_site = total_work - remote
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from imaging_roster.context import RosterContext
from imaging_roster.cycle import DateLike, date_range, to_iso
from imaging_roster.schedule_config import (
    DUTY_ROLES,
    OFF,
    REMOTE_KEYWORDS,
    SATELLITE_KEYWORDS,
    SENTINEL_STATIONS,
)
from imaging_roster.skills import is_certified
from imaging_roster.status import status_on

logger = logging.getLogger(__name__)


def _matches(station: str, keywords: Sequence[str]) -> bool:
    return any(k in station for k in keywords)


def user_statistics(ctx: RosterContext, user_id: str, dates: List[str]) -> Dict[str, Any]:
    user = ctx.user(user_id)
    row: Dict[str, Any] = {
        "user_id": user_id,
        "name": user.name if user else user_id,
        "total_work": 0,
        "off": 0,
        "remote": 0,
        "satellite": 0,
        "main": 0,
        "on_site": 0,
        "stations": {},
        "roles": {role: 0 for role in DUTY_ROLES},
    }
    for date_str in dates:
        if status_on(ctx, user_id, date_str) == OFF:
            row["off"] += 1
            continue
        row["total_work"] += 1

        shift = ctx.shift(user_id, date_str)
        station = shift.station if shift else ""
        if _matches(station, REMOTE_KEYWORDS):
            row["remote"] += 1
        elif _matches(station, SATELLITE_KEYWORDS):
            row["satellite"] += 1
        else:
            row["main"] += 1

        if station and station not in SENTINEL_STATIONS:
            row["stations"][station] = row["stations"].get(station, 0) + 1
        for role in (shift.special_roles if shift else []):
            row["roles"][role] = row["roles"].get(role, 0) + 1

    row["on_site"] = row["total_work"] - row["remote"]
    return row


def period_statistics(ctx: RosterContext, start: DateLike, end: DateLike) -> List[Dict[str, Any]]:
    """One row per user for [start, end], in roster order."""
    dates = date_range(to_iso(start), to_iso(end))
    rows = [user_statistics(ctx, u.id, dates) for u in ctx.users]
    logger.debug(f"Statistics for {len(rows)} users over {len(dates)} days")
    return rows


def statistics_frame(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    """
    Flatten statistics rows into a DataFrame indexed by name.

    Per-station counts become `station:<name>` columns, duty roles
    `role:<ROLE>` columns; missing counts are 0.
    """
    flat = []
    for row in rows:
        record = {k: v for k, v in row.items() if k not in ("stations", "roles")}
        record.update({f"station:{k}": v for k, v in row["stations"].items()})
        record.update({f"role:{k}": v for k, v in row["roles"].items()})
        flat.append(record)
    df = pd.DataFrame(flat)
    if df.empty:
        return df
    count_cols = [c for c in df.columns if c not in ("user_id", "name")]
    df[count_cols] = df[count_cols].fillna(0).astype(int)
    return df.set_index("name")


def _spread(values: List[float]) -> Dict[str, float]:
    if not values:
        return {"mean": 0.0, "std": 0.0, "cv": 0.0, "min": 0, "max": 0}
    arr = np.asarray(values, dtype=float)
    mean = float(np.mean(arr))
    std = float(np.std(arr))
    return {
        "mean": mean,
        "std": std,
        "cv": (std / mean * 100) if mean > 0 else 0.0,
        "min": float(arr.min()),
        "max": float(arr.max()),
    }


def calculate_fairness_metrics(
    rows: List[Dict[str, Any]],
    ctx: Optional[RosterContext] = None,
    roles: Sequence[str] = DUTY_ROLES,
) -> Dict[str, Any]:
    """
    Work-day spread across staff plus a spread per duty role.

    With a ctx, each role's spread only counts staff certified for the role
    (nobody else could ever hold it).

    Returns:
        {
          mean, std, cv, min, max,     # total_work; cv as a percentage
          counts: {name: int},
          roles: {role: {mean, std, cv, min, max}},
        }
    """
    counts = {row["name"]: row["total_work"] for row in rows}
    metrics: Dict[str, Any] = _spread(list(counts.values()))
    metrics["counts"] = counts

    role_metrics: Dict[str, Dict[str, float]] = {}
    for role in roles:
        values = []
        for row in rows:
            if ctx is not None:
                user = ctx.user(row["user_id"])
                if user is None or not is_certified(user, role):
                    continue
            values.append(row["roles"].get(role, 0))
        role_metrics[role] = _spread(values)
    metrics["roles"] = role_metrics
    return metrics
