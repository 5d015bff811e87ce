"""
Tests for the special-duty auto-assigner (OPENING / LATE)
"""

import sys
from collections import Counter
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from imaging_roster.context import RosterContext
from imaging_roster.duty import auto_assign_special_roles, duty_candidates, seed_role_counts
from imaging_roster.engine import auto_schedule
from imaging_roster.models import DateEventType, Holiday, Shift, SystemSettings, User
from imaging_roster.schedule_config import (
    ASSIST,
    CT,
    FLOOR_CONTROL,
    LATE,
    OPENING,
    REMOTE,
    UNASSIGNED,
)
from imaging_roster.store import InMemoryEntityStore, StoreError

DAYS = ["2024-01-01", "2024-01-02", "2024-01-03", "2024-01-04"]   # group A works


def _user(uid, caps, group="A", learning=()):
    return User(id=uid, name=uid.upper(), group_id=group,
                capabilities=set(caps), learning_capabilities=set(learning))


def _ctx(users, shifts=(), holidays=(), requirements=None):
    settings = SystemSettings(
        station_requirements=requirements or {},
        holidays={h.date: h for h in holidays},
    )
    return RosterContext(users, shifts=list(shifts), settings=settings)


class FailOnDateStore(InMemoryEntityStore):
    """Rejects any shift batch touching one date."""

    def __init__(self, fail_date, **kwargs):
        super().__init__(**kwargs)
        self.fail_date = fail_date

    def upsert_shifts(self, shifts):
        batch = list(shifts)
        if any(s.date == self.fail_date for s in batch):
            raise StoreError(f"write rejected for {self.fail_date}")
        super().upsert_shifts(batch)


def _holders(ctx, date_str, role):
    return [s.user_id for s in ctx.shifts_on(date_str) if role in s.special_roles]


class TestAssignment:

    def test_one_holder_per_role_per_day(self):
        users = [_user(f"u{i}", [OPENING, LATE]) for i in range(3)]
        ctx = _ctx(users)
        result = auto_assign_special_roles(ctx, DAYS[0], DAYS[-1], seed=4)
        assert result.unfilled == []
        for d in DAYS:
            opening, late = _holders(ctx, d, OPENING), _holders(ctx, d, LATE)
            assert len(opening) == 1
            assert len(late) == 1
            assert opening != late

    def test_new_record_is_unassigned_and_flagged(self):
        ctx = _ctx([_user("u1", [OPENING])])
        auto_assign_special_roles(ctx, DAYS[0], DAYS[0], roles=(OPENING,), seed=1)
        shift = ctx.shift("u1", DAYS[0])
        assert shift.station == UNASSIGNED
        assert shift.special_roles == [OPENING]
        assert shift.is_role_auto_generated is True

    def test_avoids_consecutive_days(self):
        ctx = _ctx([_user("a", [OPENING]), _user("b", [OPENING])])
        result = auto_assign_special_roles(ctx, DAYS[0], DAYS[-1], roles=(OPENING,), seed=9)
        sequence = [result.assignments[d][OPENING] for d in DAYS]
        for prev, cur in zip(sequence, sequence[1:]):
            assert prev != cur
        assert Counter(sequence) == Counter({"a": 2, "b": 2})

    def test_certified_only(self):
        ctx = _ctx([_user("u1", [CT], learning=[OPENING])])
        result = auto_assign_special_roles(ctx, DAYS[0], DAYS[0], roles=(OPENING,), seed=1)
        assert [(u.date, u.role) for u in result.unfilled] == [(DAYS[0], OPENING)]
        assert ctx.shift("u1", DAYS[0]) is None

    def test_off_staff_excluded(self):
        # group C rests on 2024-01-01
        ctx = _ctx([_user("c1", [OPENING], group="C")])
        result = auto_assign_special_roles(ctx, DAYS[0], DAYS[0], roles=(OPENING,), seed=1)
        assert result.unfilled_count == 1

    def test_existing_holder_kept(self):
        manual = Shift("u1", DAYS[0], station=CT, special_roles=[OPENING])
        ctx = _ctx([_user("u1", [OPENING]), _user("u2", [OPENING])], shifts=[manual])
        result = auto_assign_special_roles(ctx, DAYS[0], DAYS[0], roles=(OPENING,), seed=1)
        assert result.assignments[DAYS[0]] == {}
        assert _holders(ctx, DAYS[0], OPENING) == ["u1"]

    def test_closed_date_skipped(self):
        closure = Holiday(DAYS[1], "Closure", DateEventType.CLOSED)
        ctx = _ctx([_user("u1", [OPENING])], holidays=[closure])
        result = auto_assign_special_roles(ctx, DAYS[0], DAYS[2], roles=(OPENING,), seed=1)
        assert result.skipped_dates == [DAYS[1]]
        assert ctx.shift("u1", DAYS[1]) is None


class TestCoexistence:

    def test_compatible_pair_allowed(self):
        assisting = Shift("u1", DAYS[0], special_roles=[ASSIST])
        ctx = _ctx([_user("u1", [OPENING, ASSIST])], shifts=[assisting])
        result = auto_assign_special_roles(ctx, DAYS[0], DAYS[0], roles=(OPENING,), seed=1)
        assert result.assignments[DAYS[0]] == {OPENING: "u1"}
        assert ctx.shift("u1", DAYS[0]).special_roles == [ASSIST, OPENING]

    def test_incompatible_pair_blocked(self):
        late = Shift("u1", DAYS[0], special_roles=[LATE])
        ctx = _ctx([_user("u1", [OPENING, LATE])], shifts=[late])
        result = auto_assign_special_roles(ctx, DAYS[0], DAYS[0], roles=(OPENING,), seed=1)
        assert result.unfilled_count == 1
        assert ctx.shift("u1", DAYS[0]).special_roles == [LATE]

    def test_configured_pairs_respected(self):
        late = Shift("u1", DAYS[0], special_roles=[LATE])
        ctx = _ctx([_user("u1", [OPENING, LATE])], shifts=[late])
        ctx.settings.compatible_duty_pairs = [[OPENING, LATE]]
        result = auto_assign_special_roles(ctx, DAYS[0], DAYS[0], roles=(OPENING,), seed=1)
        assert result.assignments[DAYS[0]] == {OPENING: "u1"}

    def test_one_person_never_gets_both_defaults(self):
        ctx = _ctx([_user("u1", [OPENING, LATE])])
        result = auto_assign_special_roles(ctx, DAYS[0], DAYS[0], seed=1)
        assert result.assignments[DAYS[0]] == {OPENING: "u1"}
        assert [(u.date, u.role) for u in result.unfilled] == [(DAYS[0], LATE)]


class TestIncompatibleStations:

    def test_manual_floor_control_excluded(self):
        manual = Shift("u1", DAYS[0], station=FLOOR_CONTROL)
        ctx = _ctx([_user("u1", [OPENING, FLOOR_CONTROL])], shifts=[manual])
        assert duty_candidates(ctx, DAYS[0], OPENING) == []

    def test_auto_remote_reset(self):
        auto = Shift("u1", DAYS[0], station=REMOTE, is_auto_generated=True)
        ctx = _ctx([_user("u1", [OPENING, REMOTE])], shifts=[auto])
        auto_assign_special_roles(ctx, DAYS[0], DAYS[0], roles=(OPENING,), seed=1)
        shift = ctx.shift("u1", DAYS[0])
        assert shift.station == UNASSIGNED
        assert shift.special_roles == [OPENING]

    def test_compatible_station_kept(self):
        auto = Shift("u1", DAYS[0], station=CT, is_auto_generated=True)
        ctx = _ctx([_user("u1", [OPENING, CT])], shifts=[auto])
        auto_assign_special_roles(ctx, DAYS[0], DAYS[0], roles=(OPENING,), seed=1)
        assert ctx.shift("u1", DAYS[0]).station == CT


class TestFairnessCounters:

    def test_seed_counts_from_history(self):
        history = [
            Shift("a", "2023-12-30", special_roles=[OPENING]),
            Shift("a", "2023-12-31", special_roles=[OPENING, ASSIST]),
            Shift("b", "2023-12-31", special_roles=[LATE]),
        ]
        ctx = _ctx([_user("a", []), _user("b", [])], shifts=history)
        counts = seed_role_counts(ctx, (OPENING, LATE), "2023-12-01", "2023-12-31")
        assert counts[OPENING]["a"] == 2
        assert counts[LATE]["b"] == 1
        assert ASSIST not in counts

    def test_history_window_tilts_first_pick(self):
        history = [Shift("a", f"2023-12-{d:02d}", special_roles=[OPENING]) for d in (20, 22, 24)]
        ctx = _ctx([_user("a", [OPENING]), _user("b", [OPENING])], shifts=history)
        result = auto_assign_special_roles(
            ctx, DAYS[0], DAYS[0], roles=(OPENING,), seed=1,
            history_start="2023-12-01", history_end="2023-12-31",
        )
        assert result.assignments[DAYS[0]] == {OPENING: "b"}

    def test_runs_after_station_assignment(self):
        users = [_user(f"u{i}", [OPENING, LATE, CT, REMOTE]) for i in range(4)]
        ctx = _ctx(users, requirements={CT: [1] * 7, REMOTE: [1] * 7})
        auto_schedule(ctx, DAYS[0], DAYS[-1], seed=2)
        auto_assign_special_roles(ctx, DAYS[0], DAYS[-1], seed=2)
        for d in DAYS:
            for s in ctx.shifts_on(d):
                if s.special_roles:
                    assert s.station != REMOTE


class TestStoreFailures:

    def test_failed_date_reported_later_dates_processed(self):
        store = FailOnDateStore(DAYS[1], users=[_user("u1", [OPENING])])
        ctx = RosterContext.from_store(store)
        result = auto_assign_special_roles(ctx, DAYS[0], DAYS[2], roles=(OPENING,), seed=2)

        assert len(result.store_errors) == 1
        assert result.store_errors[0].keys == [("u1", DAYS[1])]
        # snapshot keeps the role the store refused
        assert ctx.shift("u1", DAYS[1]).special_roles == [OPENING]
        assert store.list_shifts(DAYS[1], DAYS[1]) == []
        assert result.assignments[DAYS[2]] == {OPENING: "u1"}
        assert [s.date for s in store.list_shifts()] == [DAYS[0], DAYS[2]]

    def test_refused_batch_still_counts_toward_fairness(self):
        users = [_user("u1", [OPENING]), _user("u2", [OPENING])]
        store = FailOnDateStore(DAYS[0], users=users)
        ctx = RosterContext.from_store(store)
        result = auto_assign_special_roles(ctx, DAYS[0], DAYS[1], roles=(OPENING,), seed=9)
        first = result.assignments[DAYS[0]][OPENING]
        second = result.assignments[DAYS[1]][OPENING]
        assert result.store_errors[0].keys == [(first, DAYS[0])]
        assert first != second
