"""
tests/test_repair.py — Overflow placement for workers left UNASSIGNED.

Tests: overflow_stations ordering, pick_overflow_station rules, place_overflow.
"""

import sys
from collections import defaultdict
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from imaging_roster.context import RosterContext
from imaging_roster.models import Shift, SystemSettings, User
from imaging_roster.repair import (
    overflow_stations,
    pick_overflow_station,
    place_overflow,
    unplaced_workers,
)
from imaging_roster.schedule_config import (
    ADMIN,
    CT,
    FLOOR_CONTROL,
    MR3T,
    OFF,
    OPENING,
    REMOTE,
    TECH_SUPPORT,
    UNASSIGNED,
)

DAY = "2024-01-01"


def _user(uid, caps=(), learning=(), group="A"):
    return User(id=uid, name=uid.upper(), group_id=group,
                capabilities=set(caps), learning_capabilities=set(learning))


def _ctx(users, shifts=(), stations=None):
    settings = SystemSettings() if stations is None else SystemSettings(stations=stations)
    return RosterContext(users, shifts=list(shifts), settings=settings)


# ---------------------------------------------------------------------------
# Station list
# ---------------------------------------------------------------------------

class TestOverflowStations:

    def test_pool_stations_first(self):
        ctx = _ctx([], stations=[CT, REMOTE, ADMIN, TECH_SUPPORT, FLOOR_CONTROL, UNASSIGNED, OFF])
        assert overflow_stations(ctx) == [TECH_SUPPORT, ADMIN, FLOOR_CONTROL, REMOTE, CT]

    def test_unconfigured_stations_dropped(self):
        ctx = _ctx([], stations=[CT, UNASSIGNED, OFF])
        assert overflow_stations(ctx) == [CT]


# ---------------------------------------------------------------------------
# Placement rules
# ---------------------------------------------------------------------------

class TestPickStation:

    def test_certified_pool_station(self):
        ctx = _ctx([_user("u1", [ADMIN, CT])])
        assert pick_overflow_station(ctx, ctx.user("u1"), DAY, overflow_stations(ctx)) == ADMIN

    def test_second_certified_person_not_stacked(self):
        holder = Shift("h", DAY, station=CT, is_auto_generated=True)
        ctx = _ctx([_user("h", [CT]), _user("u1", [CT])], shifts=[holder])
        assert pick_overflow_station(ctx, ctx.user("u1"), DAY, overflow_stations(ctx)) is None

    def test_learner_shadows_certified_holder(self):
        holder = Shift("h", DAY, station=CT, is_auto_generated=True)
        ctx = _ctx([_user("h", [CT]), _user("u1", learning=[CT])], shifts=[holder])
        assert pick_overflow_station(ctx, ctx.user("u1"), DAY, overflow_stations(ctx)) == CT

    def test_uncertified_holder_does_not_block(self):
        holder = Shift("h", DAY, station=MR3T, is_auto_generated=True)
        ctx = _ctx([_user("h", learning=[MR3T]), _user("u1", [MR3T])], shifts=[holder])
        assert pick_overflow_station(ctx, ctx.user("u1"), DAY, overflow_stations(ctx)) == MR3T

    def test_duty_holder_skips_floor_control(self):
        duty = Shift("u1", DAY, special_roles=[OPENING])
        ctx = _ctx([_user("u1", [FLOOR_CONTROL, CT])], shifts=[duty])
        assert pick_overflow_station(ctx, ctx.user("u1"), DAY, overflow_stations(ctx)) == CT


# ---------------------------------------------------------------------------
# place_overflow
# ---------------------------------------------------------------------------

class TestPlaceOverflow:

    def test_only_unplaced_workers(self):
        users = [
            _user("placed", [ADMIN]),
            _user("waiting", [ADMIN]),
            _user("resting", [ADMIN], group="C"),
        ]
        shifts = [
            Shift("placed", DAY, station=CT, is_auto_generated=True),
            Shift("waiting", DAY, station=UNASSIGNED, is_auto_generated=True),
        ]
        ctx = _ctx(users, shifts=shifts)
        assert [u.id for u in unplaced_workers(ctx, DAY)] == ["waiting"]

    def test_places_and_counts(self):
        users = [_user("a", [TECH_SUPPORT]), _user("b", [TECH_SUPPORT])]
        ctx = _ctx(users)
        counts = defaultdict(lambda: defaultdict(int))
        placed, errors = place_overflow(ctx, DAY, counts)
        assert placed == {"a": TECH_SUPPORT, "b": TECH_SUPPORT}
        assert errors == []
        assert counts["a"][TECH_SUPPORT] == 1
        shift = ctx.shift("b", DAY)
        assert shift.station == TECH_SUPPORT
        assert shift.is_auto_generated is True

    def test_second_certified_in_same_pass_not_stacked(self):
        users = [_user("a", [CT]), _user("b", [CT])]
        ctx = _ctx(users, stations=[CT, UNASSIGNED, OFF])
        placed, _ = place_overflow(ctx, DAY)
        assert placed == {"a": CT}
        assert ctx.shift("b", DAY) is None

    def test_roles_preserved(self):
        duty = Shift("u1", DAY, special_roles=[OPENING], is_auto_generated=True)
        ctx = _ctx([_user("u1", [ADMIN])], shifts=[duty])
        place_overflow(ctx, DAY)
        shift = ctx.shift("u1", DAY)
        assert shift.station == ADMIN
        assert shift.special_roles == [OPENING]
