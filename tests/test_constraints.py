"""
tests/test_constraints.py — Constraint audit over roster snapshots

Tests: each hard and soft check, manual placements, configured duty pairs,
and a clean audit after the assigners run.
"""

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from imaging_roster.constraints import ConstraintChecker, ConstraintSeverity
from imaging_roster.context import RosterContext
from imaging_roster.duty import auto_assign_special_roles
from imaging_roster.engine import auto_schedule
from imaging_roster.models import (
    DateEventType,
    Holiday,
    LeaveRequest,
    LeaveStatus,
    LeaveType,
    Shift,
    SystemSettings,
    User,
)
from imaging_roster.schedule_config import (
    ASSIST,
    CT,
    FLOOR_CONTROL,
    LATE,
    MR3T,
    OFF,
    OPENING,
    REMOTE,
    UNASSIGNED,
)

DAY = "2024-01-01"
NEXT = "2024-01-02"


def _user(uid, caps=(), learning=(), group="A"):
    return User(id=uid, name=uid.upper(), group_id=group,
                capabilities=set(caps), learning_capabilities=set(learning))


def _settings(stations=(CT, UNASSIGNED, OFF), requirements=None, holidays=None):
    reqs = requirements if requirements is not None else {s: [0] * 7 for s in stations}
    return SystemSettings(stations=list(stations), station_requirements=reqs,
                          holidays=holidays or {})


def _types(violations):
    return [v.constraint_type for v in violations]


# ---------------------------------------------------------------------------
# Certification
# ---------------------------------------------------------------------------

class TestCertification:

    def test_uncertified_auto_placement(self):
        ctx = RosterContext([_user("u1", learning=[MR3T])],
                            shifts=[Shift("u1", DAY, station=CT, is_auto_generated=True)],
                            settings=_settings())
        violations = ConstraintChecker(ctx).check_certification([DAY])
        assert _types(violations) == ["UNCERTIFIED_STATION"]
        assert violations[0].severity == ConstraintSeverity.HARD
        assert violations[0].details["auto"] is True

    def test_learner_placement_allowed(self):
        ctx = RosterContext([_user("u1", learning=[CT])],
                            shifts=[Shift("u1", DAY, station=CT, is_auto_generated=True)],
                            settings=_settings())
        assert ConstraintChecker(ctx).check_certification([DAY]) == []

    def test_manual_placement_ignored_by_default(self):
        ctx = RosterContext([_user("u1")],
                            shifts=[Shift("u1", DAY, station=CT)],
                            settings=_settings())
        assert ConstraintChecker(ctx).check_certification([DAY]) == []
        assert len(ConstraintChecker(ctx, include_manual=True).check_certification([DAY])) == 1

    def test_certified_is_clean(self):
        ctx = RosterContext([_user("u1", [CT])],
                            shifts=[Shift("u1", DAY, station=CT, is_auto_generated=True)],
                            settings=_settings())
        assert ConstraintChecker(ctx).check_certification([DAY]) == []


# ---------------------------------------------------------------------------
# Placement on days off
# ---------------------------------------------------------------------------

class TestOffDayPlacement:

    def test_station_on_closed_date(self):
        closed = {DAY: Holiday(DAY, "Closed", DateEventType.CLOSED)}
        ctx = RosterContext([_user("u1", [CT])],
                            shifts=[Shift("u1", DAY, station=CT, is_auto_generated=True)],
                            settings=_settings(holidays=closed))
        violations = ConstraintChecker(ctx).check_off_day_placement([DAY])
        assert _types(violations) == ["STATION_ON_OFF_DAY"]
        assert "calendar closure" in violations[0].description

    def test_station_on_approved_leave(self):
        leave = LeaveRequest("lv1", "u1", DAY, DAY, LeaveType.PRE_SCHEDULED,
                             status=LeaveStatus.APPROVED)
        ctx = RosterContext([_user("u1", [CT])],
                            shifts=[Shift("u1", DAY, station=CT, is_auto_generated=True)],
                            leaves=[leave], settings=_settings())
        violations = ConstraintChecker(ctx).check_off_day_placement([DAY])
        assert _types(violations) == ["STATION_ON_OFF_DAY"]
        assert "lv1" in violations[0].description

    def test_unassigned_record_on_closed_date_not_flagged(self):
        closed = {DAY: Holiday(DAY, "Closed", DateEventType.CLOSED)}
        ctx = RosterContext([_user("u1", [CT])],
                            shifts=[Shift("u1", DAY, special_roles=[OPENING], is_auto_generated=True)],
                            settings=_settings(holidays=closed))
        assert ConstraintChecker(ctx).check_off_day_placement([DAY]) == []

    def test_manual_station_on_closed_date_allowed(self):
        closed = {DAY: Holiday(DAY, "Closed", DateEventType.CLOSED)}
        ctx = RosterContext([_user("u1", [CT])],
                            shifts=[Shift("u1", DAY, station=CT)],
                            settings=_settings(holidays=closed))
        assert ConstraintChecker(ctx).check_off_day_placement([DAY]) == []


# ---------------------------------------------------------------------------
# Duty roles
# ---------------------------------------------------------------------------

class TestDutyChecks:

    def test_double_holder(self):
        shifts = [
            Shift("u1", DAY, special_roles=[OPENING]),
            Shift("u2", DAY, special_roles=[OPENING]),
        ]
        ctx = RosterContext([_user("u1"), _user("u2")], shifts=shifts, settings=_settings())
        violations = ConstraintChecker(ctx).check_duty_holders([DAY])
        assert _types(violations) == ["DUTY_DOUBLE_HOLDER"]
        assert violations[0].details["holders"] == ["u1", "u2"]

    def test_conflicting_roles(self):
        ctx = RosterContext([_user("u1")],
                            shifts=[Shift("u1", DAY, special_roles=[OPENING, LATE])],
                            settings=_settings())
        assert _types(ConstraintChecker(ctx).check_duty_conflicts([DAY])) == ["DUTY_CONFLICT"]

    def test_compatible_pair_allowed(self):
        ctx = RosterContext([_user("u1")],
                            shifts=[Shift("u1", DAY, special_roles=[OPENING, ASSIST])],
                            settings=_settings())
        assert ConstraintChecker(ctx).check_duty_conflicts([DAY]) == []

    def test_configured_pair_allowed(self):
        settings = _settings()
        settings.compatible_duty_pairs = [[OPENING, LATE]]
        ctx = RosterContext([_user("u1")],
                            shifts=[Shift("u1", DAY, special_roles=[OPENING, LATE])],
                            settings=settings)
        assert ConstraintChecker(ctx).check_duty_conflicts([DAY]) == []

    @pytest.mark.parametrize("station", [FLOOR_CONTROL, REMOTE, "Dazhi"])
    def test_duty_at_incompatible_station(self, station):
        ctx = RosterContext([_user("u1")],
                            shifts=[Shift("u1", DAY, station=station, special_roles=[LATE])],
                            settings=_settings())
        violations = ConstraintChecker(ctx).check_duty_station([DAY])
        assert _types(violations) == ["DUTY_INCOMPATIBLE_STATION"]
        assert violations[0].station == station

    def test_duty_at_modality_station_ok(self):
        ctx = RosterContext([_user("u1")],
                            shifts=[Shift("u1", DAY, station=MR3T, special_roles=[LATE])],
                            settings=_settings())
        assert ConstraintChecker(ctx).check_duty_station([DAY]) == []


# ---------------------------------------------------------------------------
# Soft checks
# ---------------------------------------------------------------------------

class TestSoftChecks:

    def test_consecutive_duty(self):
        shifts = [
            Shift("u1", DAY, special_roles=[OPENING]),
            Shift("u1", NEXT, special_roles=[OPENING]),
        ]
        ctx = RosterContext([_user("u1")], shifts=shifts, settings=_settings())
        violations = ConstraintChecker(ctx).check_consecutive_duty([DAY, NEXT])
        assert _types(violations) == ["CONSECUTIVE_DUTY"]
        assert violations[0].severity == ConstraintSeverity.SOFT
        assert violations[0].date == NEXT

    def test_consecutive_untracked_role_ignored(self):
        shifts = [
            Shift("u1", DAY, special_roles=[ASSIST]),
            Shift("u1", NEXT, special_roles=[ASSIST]),
        ]
        ctx = RosterContext([_user("u1")], shifts=shifts, settings=_settings())
        assert ConstraintChecker(ctx).check_consecutive_duty([DAY, NEXT]) == []

    def test_unfilled_slot(self):
        settings = _settings(requirements={CT: [2] * 7})
        ctx = RosterContext([_user("u1", [CT])],
                            shifts=[Shift("u1", DAY, station=CT)],
                            settings=settings)
        violations = ConstraintChecker(ctx).check_unfilled([DAY])
        assert _types(violations) == ["UNFILLED_SLOT"]
        assert violations[0].details == {"required": 2, "staffed": 1}

    def test_unfilled_skips_closed_date(self):
        closed = {DAY: Holiday(DAY, "Closed", DateEventType.CLOSED)}
        settings = _settings(requirements={CT: [1] * 7}, holidays=closed)
        ctx = RosterContext([], settings=settings)
        assert ConstraintChecker(ctx).check_unfilled([DAY]) == []


# ---------------------------------------------------------------------------
# Full audit
# ---------------------------------------------------------------------------

class TestCheckAll:

    def test_str_format(self):
        ctx = RosterContext([_user("u1")],
                            shifts=[Shift("u1", DAY, special_roles=[OPENING, LATE])],
                            settings=_settings())
        hard, _ = ConstraintChecker(ctx).check_all(DAY, DAY)
        text = str(hard[0])
        assert text.startswith("[HARD] DUTY_CONFLICT")
        assert f"date={DAY}" in text

    def test_assigners_leave_no_hard_violations(self):
        users = [
            _user("u1", [CT, REMOTE, OPENING, LATE]),
            _user("u2", [CT, REMOTE, OPENING, LATE]),
            _user("u3", [CT, FLOOR_CONTROL, OPENING]),
            _user("u4", [REMOTE, FLOOR_CONTROL, LATE]),
        ]
        stations = [REMOTE, FLOOR_CONTROL, CT, UNASSIGNED, OFF]
        settings = _settings(stations=stations, requirements={s: [1] * 7 for s in stations[:3]})
        ctx = RosterContext(users, settings=settings)

        auto_schedule(ctx, DAY, "2024-01-04", seed=3)
        auto_assign_special_roles(ctx, DAY, "2024-01-04", seed=3)

        hard, _ = ConstraintChecker(ctx).check_all(DAY, "2024-01-04")
        assert hard == []
