"""
dry_run.py — Offline roster run over local config files

Full orchestration:
  1. Load users, settings, leave requests, existing shifts
  2. Validate inputs (station and duty coverage)
  3. Auto-assign stations (optionally with the overflow pass)
  4. Auto-assign special duties
  5. Check constraints (hard + soft)
  6. Period statistics and fairness metrics
  7. Print summary to console (optionally save resulting shifts)

Usage:
  python -m imaging_roster.dry_run --start 2024-03-01 --end 2024-03-31
  python -m imaging_roster.dry_run --start 2024-03-01 --end 2024-03-31 --seed 7 --overflow
"""

import argparse
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from imaging_roster.config import build_store, save_shifts
from imaging_roster.constraints import ConstraintChecker
from imaging_roster.context import RosterContext
from imaging_roster.duty import auto_assign_special_roles
from imaging_roster.engine import auto_schedule
from imaging_roster.schedule_config import DEFAULT_AUTO_DUTY_ROLES, FAIRNESS_TARGETS
from imaging_roster.skills import get_capability_summary, validate_station_coverage
from imaging_roster.statistics import (
    calculate_fairness_metrics,
    period_statistics,
    statistics_frame,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Main orchestrator
# ---------------------------------------------------------------------------

def run_dry_run(
    start_date: date,
    end_date: date,
    users_path: Optional[Path] = None,
    settings_path: Optional[Path] = None,
    leaves_path: Optional[Path] = None,
    shifts_path: Optional[Path] = None,
    roles: Sequence[str] = DEFAULT_AUTO_DUTY_ROLES,
    seed: Optional[int] = None,
    overflow: bool = False,
    save_path: Optional[Path] = None,
) -> Dict[str, Any]:
    """
    Run station and duty assignment over local files; nothing leaves the process
    unless save_path is given.

    Returns:
        Dict with ctx, station/duty results, violations, statistics, metrics
    """
    sep = "=" * 70
    print(f"\n{sep}")
    print(f"  DRY RUN — in-memory store")
    print(f"  Period: {start_date} → {end_date}")
    print(f"{sep}\n")

    # ── 1. Load ────────────────────────────────────────────────────────────
    print("Step 1/6: Loading configuration...")
    store = build_store(users_path, settings_path, leaves_path, shifts_path)
    ctx = RosterContext.from_store(store)
    print(
        f"  ✓ {len(ctx.users)} staff | {len(ctx.settings.stations)} stations | "
        f"{len(ctx.leaves)} leave requests | {len(ctx.shifts_between())} existing shifts"
    )

    # ── 2. Validate ────────────────────────────────────────────────────────
    print("\nStep 2/6: Validating coverage...")
    coverage_warnings = validate_station_coverage(ctx.users, ctx.settings, roles)
    for w in coverage_warnings:
        print(f"  ⚠ WARNING: {w}")
    if not coverage_warnings:
        print("  ✓ Every station and duty role has certified staff")
    print(f"  ✓ Capability coverage: {len(get_capability_summary(ctx.users))} tags across roster")

    # ── 3. Stations ────────────────────────────────────────────────────────
    print("\nStep 3/6: Assigning stations...")
    stations = auto_schedule(ctx, start_date, end_date, seed=seed, overflow=overflow)
    placed = sum(len(a) for a in stations.assignments.values())
    print(f"  ✓ {placed} placements over {len(stations.assignments)} dates "
          f"({len(stations.skipped_dates)} closed)")
    if overflow:
        print(f"  ✓ Overflow placed {sum(len(o) for o in stations.overflow.values())}")
    if stations.unfilled:
        print(f"  ✗ {stations.unfilled_count} station slot(s) unfilled")

    # ── 4. Duties ──────────────────────────────────────────────────────────
    print("\nStep 4/6: Assigning special duties...")
    duties = auto_assign_special_roles(ctx, start_date, end_date, roles=roles, seed=seed)
    given = sum(len(v) for v in duties.assignments.values())
    print(f"  ✓ {given} duty assignments for {', '.join(roles)}")
    for miss in duties.unfilled:
        print(f"  ✗ {miss.date}  {miss.role}  → no eligible holder")

    # ── 5. Constraints ─────────────────────────────────────────────────────
    print("\nStep 5/6: Checking constraints...")
    checker = ConstraintChecker(ctx, consecutive_roles=roles)
    hard, soft = checker.check_all(start_date, end_date)
    status = "✓" if not hard else "✗"
    print(f"  {status} Hard violations: {len(hard)}")
    print(f"    Soft violations: {len(soft)}")
    for v in hard:
        print(f"    {v}")

    # ── 6. Statistics ──────────────────────────────────────────────────────
    print("\nStep 6/6: Statistics...")
    rows = period_statistics(ctx, start_date, end_date)
    metrics = calculate_fairness_metrics(rows, ctx, roles=roles)
    frame = statistics_frame(rows)

    cv_target = FAIRNESS_TARGETS["cv_target"] * 100
    role_target = FAIRNESS_TARGETS["role_cv_target"] * 100
    cv_icon = "✓" if metrics["cv"] < cv_target else "✗"
    print(f"  {cv_icon} Work-day CV: {metrics['cv']:.2f}% (target <{cv_target:.0f}%)")
    for role in roles:
        role_cv = metrics["roles"][role]["cv"]
        icon = "✓" if role_cv < role_target else "✗"
        print(f"  {icon} {role:<10} CV: {role_cv:6.2f}% (target <{role_target:.0f}%)")

    store_errors = stations.store_errors + duties.store_errors
    if store_errors:
        print(f"  ✗ {len(store_errors)} store write failure(s)")

    if save_path is not None:
        save_shifts(ctx.shifts_between(), Path(save_path))
        print(f"  ✓ Shifts saved to {save_path}")

    # ── Summary ────────────────────────────────────────────────────────────
    print(f"\n{sep}")
    print("  SUMMARY")
    print(f"{sep}")
    print(f"  Period:            {start_date} → {end_date}")
    print(f"  Station slots:     {placed} filled, {stations.unfilled_count} unfilled")
    print(f"  Duties:            {given} given, {duties.unfilled_count} unfilled")
    print(f"  Hard violations:   {len(hard)}  {status}")
    print(f"  Soft violations:   {len(soft)}")
    if not frame.empty:
        columns = ["total_work", "off", "remote", "satellite", "on_site"]
        columns += [f"role:{r}" for r in roles if f"role:{r}" in frame.columns]
        print()
        print(frame[columns].to_string())
    print(f"\n{sep}\n")

    return {
        "ctx":             ctx,
        "stations":        stations,
        "duties":          duties,
        "hard_violations": hard,
        "soft_violations": soft,
        "statistics":      rows,
        "metrics":         metrics,
    }


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[Sequence[str]] = None):
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    parser = argparse.ArgumentParser(
        description="Dry-run station and duty assignment over local config files"
    )
    parser.add_argument("--start",    required=True, help="Start date YYYY-MM-DD")
    parser.add_argument("--end",      required=True, help="End date YYYY-MM-DD")
    parser.add_argument("--users",    default=None,  help="users.csv (default: config/users.csv)")
    parser.add_argument("--settings", default=None,  help="settings.json (default: config/settings.json)")
    parser.add_argument("--leaves",   default=None,  help="leaves.json (default: config/leaves.json)")
    parser.add_argument("--shifts",   default=None,  help="Existing shifts JSON (default: config/shifts.json)")
    parser.add_argument("--roles",    nargs="+", default=list(DEFAULT_AUTO_DUTY_ROLES),
                        help="Duty roles to auto-assign (default: OPENING LATE)")
    parser.add_argument("--seed",     type=int, default=None, help="Random seed for reproducible runs")
    parser.add_argument("--overflow", action="store_true",
                        help="Place leftover workers (learning capabilities allowed)")
    parser.add_argument("--save",     default=None, help="Write resulting shifts to this JSON file")
    args = parser.parse_args(argv)

    try:
        start = datetime.strptime(args.start, "%Y-%m-%d").date()
        end   = datetime.strptime(args.end,   "%Y-%m-%d").date()
    except ValueError as e:
        print(f"Invalid date format: {e}")
        sys.exit(1)

    if start > end:
        print("Error: start date must be before end date")
        sys.exit(1)

    def _path(value):
        return Path(value) if value else None

    run_dry_run(
        start, end,
        users_path=_path(args.users),
        settings_path=_path(args.settings),
        leaves_path=_path(args.leaves),
        shifts_path=_path(args.shifts),
        roles=args.roles,
        seed=args.seed,
        overflow=args.overflow,
        save_path=_path(args.save),
    )


if __name__ == "__main__":
    main()
