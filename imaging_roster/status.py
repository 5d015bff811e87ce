"""
status.py — Work/off resolution for one person on one date

Precedence, first match wins:
  1. A shift record: station OFF → OFF, anything else (incl. UNASSIGNED) → WORK
  2. A CLOSED calendar event → OFF
  3. The group's rotation rest day → OFF
  4. An APPROVED leave covering the date → OFF
  5. WORK

Always evaluated against the live context; never cache the result inside a
run, because leave approvals and assigner commits change shifts mid-run.
"""

from typing import List

from imaging_roster.context import RosterContext
from imaging_roster.cycle import DateLike, base_rotation_status, to_iso
from imaging_roster.models import User
from imaging_roster.schedule_config import OFF, WORK


def status_on(ctx: RosterContext, user_id: str, value: DateLike) -> str:
    """Return WORK or OFF for (user_id, date). Unknown users are OFF."""
    date_str = to_iso(value)
    user = ctx.user(user_id)
    if user is None:
        return OFF

    shift = ctx.shift(user_id, date_str)
    if shift is not None:
        return OFF if shift.station == OFF else WORK

    if ctx.settings.is_closed(date_str):
        return OFF

    if base_rotation_status(date_str, user.group_id, ctx.settings.cycle_start_date) == OFF:
        return OFF

    if ctx.approved_leave_on(user_id, date_str) is not None:
        return OFF

    return WORK


def users_working_on(ctx: RosterContext, value: DateLike) -> List[User]:
    return [u for u in ctx.users if status_on(ctx, u.id, value) == WORK]


def users_off_on(ctx: RosterContext, value: DateLike) -> List[User]:
    return [u for u in ctx.users if status_on(ctx, u.id, value) == OFF]
