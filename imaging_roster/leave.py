"""
leave.py — Leave request workflow

State machine:

    create ──► WAITING_FOR_TARGET   (SWAP_SHIFT, DUTY_SWAP)
           └─► PENDING              (everything else)

    WAITING_FOR_TARGET ──target AGREED──►   PENDING
                       ──target REJECTED──► REJECTED

    PENDING ──supervisor APPROVED──► APPROVED  (writes shifts, once)
            ──supervisor REJECTED──► REJECTED

APPROVED and REJECTED are terminal. Only APPROVED touches shift records, and
every shift it writes is a manual override (is_auto_generated = False), so a
later auto-assign run never clobbers it.

Shift effect of an approved request, per date in range:
    PRE_SCHEDULED, LONG_LEAVE  requester → OFF
    CANCEL_LEAVE               requester → UNASSIGNED
    SWAP_SHIFT                 requester → OFF, target → UNASSIGNED
    DUTY_SWAP                  duty role(s) move from requester to target
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Optional, Union

from imaging_roster.context import RosterContext
from imaging_roster.cycle import DateLike, date_range, to_date, to_iso
from imaging_roster.models import (
    SWAP_TYPES,
    LeaveRequest,
    LeaveStatus,
    LeaveType,
    Shift,
    TargetApproval,
    User,
)
from imaging_roster.schedule_config import (
    DUTY_ROLES,
    LATE,
    LONG_LEAVE_MAX_DAYS,
    LONG_LEAVE_MIN_DAYS,
    OFF,
    OPENING,
    UNASSIGNED,
)
from imaging_roster.skills import holds_duty, is_certified
from imaging_roster.status import users_off_on, users_working_on
from imaging_roster.store import StoreError

logger = logging.getLogger(__name__)


class LeaveValidationError(ValueError):
    """Malformed leave request; nothing was written."""


class LeaveTransitionError(ValueError):
    """Transition not allowed from the request's current state or by this responder."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def leave_days(start: DateLike, end: DateLike) -> int:
    """Inclusive length of a leave range in days."""
    return (to_date(end) - to_date(start)).days + 1


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

def validate_leave_request(
    ctx: RosterContext,
    user_id: str,
    leave_type: LeaveType,
    start_date: str,
    end_date: str,
    target_user_id: Optional[str] = None,
    role_to_swap: Optional[str] = None,
) -> None:
    """Raise LeaveValidationError if the request cannot enter the workflow."""
    if ctx.user(user_id) is None:
        raise LeaveValidationError(f"Unknown requester {user_id!r}")

    if end_date < start_date:
        raise LeaveValidationError(
            f"End date {end_date} is before start date {start_date}"
        )

    if leave_type == LeaveType.LONG_LEAVE:
        days = leave_days(start_date, end_date)
        if days < LONG_LEAVE_MIN_DAYS or days > LONG_LEAVE_MAX_DAYS:
            raise LeaveValidationError(
                f"Long leave must be {LONG_LEAVE_MIN_DAYS}-{LONG_LEAVE_MAX_DAYS} days "
                f"(requested {days})"
            )

    if leave_type in SWAP_TYPES:
        if not target_user_id:
            raise LeaveValidationError(f"{leave_type.value} requires a target user")
        if target_user_id == user_id:
            raise LeaveValidationError("Cannot swap with yourself")
        if ctx.user(target_user_id) is None:
            raise LeaveValidationError(f"Unknown target user {target_user_id!r}")

    if role_to_swap is not None and role_to_swap not in DUTY_ROLES:
        raise LeaveValidationError(f"{role_to_swap!r} is not a duty role")


def create_leave(
    ctx: RosterContext,
    user_id: str,
    leave_type: Union[LeaveType, str],
    start_date: DateLike,
    end_date: Optional[DateLike] = None,
    target_user_id: Optional[str] = None,
    role_to_swap: Optional[str] = None,
    reason: str = "",
    leave_id: Optional[str] = None,
) -> LeaveRequest:
    """
    Validate and file a new leave request.

    Swap types start in WAITING_FOR_TARGET, everything else in PENDING.

    Raises:
        LeaveValidationError: before any write, if the request is malformed.
    """
    try:
        leave_type = LeaveType(leave_type)
    except ValueError:
        raise LeaveValidationError(f"Unknown leave type {leave_type!r}") from None

    start = to_iso(start_date)
    end = to_iso(end_date) if end_date is not None else start
    validate_leave_request(ctx, user_id, leave_type, start, end, target_user_id, role_to_swap)

    is_swap = leave_type in SWAP_TYPES
    leave = LeaveRequest(
        id=leave_id or uuid.uuid4().hex[:9],
        user_id=user_id,
        start_date=start,
        end_date=end,
        type=leave_type,
        status=LeaveStatus.WAITING_FOR_TARGET if is_swap else LeaveStatus.PENDING,
        target_user_id=target_user_id if is_swap else None,
        role_to_swap=role_to_swap if leave_type == LeaveType.DUTY_SWAP else None,
        reason=reason,
        created_at=_now(),
    )
    ctx.insert_leave(leave)
    logger.info(
        f"Leave {leave.id} filed: {leave.type.value} {start}..{end} by {user_id} "
        f"→ {leave.status.value}"
    )
    return leave


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def _get(ctx: RosterContext, leave_id: str) -> LeaveRequest:
    leave = ctx.leave(leave_id)
    if leave is None:
        raise LeaveTransitionError(f"Leave {leave_id} not found")
    return leave


def respond_as_target(
    ctx: RosterContext,
    leave_id: str,
    responder_id: str,
    approval: Union[TargetApproval, str],
) -> LeaveRequest:
    """Swap target agrees (→ PENDING) or refuses (→ REJECTED)."""
    leave = _get(ctx, leave_id)
    approval = TargetApproval(approval)

    if not leave.is_swap:
        raise LeaveTransitionError(f"Leave {leave.id} is {leave.type.value}, it has no target")
    if leave.status != LeaveStatus.WAITING_FOR_TARGET:
        raise LeaveTransitionError(
            f"Leave {leave.id} is {leave.status.value}, not waiting for its target"
        )
    if responder_id != leave.target_user_id:
        raise LeaveTransitionError(
            f"{responder_id} is not the target of leave {leave.id}"
        )

    new_status = LeaveStatus.PENDING if approval == TargetApproval.AGREED else LeaveStatus.REJECTED
    ctx.update_leave(leave, target_approval=approval, status=new_status)
    logger.info(f"Leave {leave.id}: target {approval.value} → {new_status.value}")
    return leave


def respond_as_supervisor(
    ctx: RosterContext,
    leave_id: str,
    approver_id: str,
    decision: Union[LeaveStatus, str],
) -> LeaveRequest:
    """
    Supervisor approves or rejects a PENDING request.

    Approval writes the shift mutation. If any shift write fails the request
    stays APPROVED and a StoreError listing the failed keys is raised.
    """
    leave = _get(ctx, leave_id)
    decision = LeaveStatus(decision)
    if leave.is_terminal:
        raise LeaveTransitionError(f"Leave {leave.id} is already {leave.status.value}")
    if decision not in (LeaveStatus.APPROVED, LeaveStatus.REJECTED):
        raise LeaveTransitionError(f"Supervisor cannot set status {decision.value}")

    if leave.status != LeaveStatus.PENDING:
        raise LeaveTransitionError(
            f"Leave {leave.id} is {leave.status.value}, not PENDING"
        )
    approver = ctx.user(approver_id)
    if approver is None or not approver.is_manager:
        raise LeaveTransitionError(f"{approver_id} may not approve leave requests")

    ctx.update_leave(leave, status=decision, approver_id=approver_id, processed_at=_now())
    logger.info(f"Leave {leave.id}: {decision.value} by {approver_id}")

    if decision == LeaveStatus.APPROVED:
        errors = apply_leave_to_shifts(ctx, leave)
        if errors:
            keys = [k for e in errors for k in e.keys]
            raise StoreError(
                f"Leave {leave.id} approved but {len(keys)} shift write(s) failed",
                keys=keys,
            )
    return leave


# ---------------------------------------------------------------------------
# Shift mutation
# ---------------------------------------------------------------------------

def _editable(ctx: RosterContext, user_id: str, date_str: str) -> Shift:
    existing = ctx.shift(user_id, date_str)
    if existing is None:
        return Shift(user_id=user_id, date=date_str)
    return replace(existing, special_roles=list(existing.special_roles))


def _set_station(ctx: RosterContext, user_id: str, date_str: str, station: str) -> Shift:
    shift = _editable(ctx, user_id, date_str)
    shift.station = station
    shift.is_auto_generated = False
    if station == OFF:
        # nobody holds a duty on a day off
        shift.special_roles = []
        shift.is_role_auto_generated = False
    return shift


def _duty_swap(ctx: RosterContext, leave: LeaveRequest, date_str: str) -> List[Shift]:
    requester = ctx.shift(leave.user_id, date_str)
    if requester is None:
        logger.warning(f"Leave {leave.id}: {leave.user_id} has no shift on {date_str}, nothing to swap")
        return []

    if leave.role_to_swap:
        moving = [r for r in requester.special_roles if r == leave.role_to_swap]
    else:
        moving = [r for r in requester.special_roles if r in DUTY_ROLES]
    if not moving:
        logger.warning(f"Leave {leave.id}: {leave.user_id} holds no swappable role on {date_str}")
        return []

    giver = _editable(ctx, leave.user_id, date_str)
    giver.special_roles = [r for r in giver.special_roles if r not in moving]
    giver.is_auto_generated = False
    giver.is_role_auto_generated = False

    taker = _editable(ctx, leave.target_user_id, date_str)
    taker.special_roles = taker.special_roles + [r for r in moving if r not in taker.special_roles]
    taker.is_auto_generated = False
    taker.is_role_auto_generated = False
    return [giver, taker]


def apply_leave_to_shifts(ctx: RosterContext, leave: LeaveRequest) -> List[StoreError]:
    """Write the approved leave's shift changes, one batch per date."""
    errors: List[StoreError] = []
    for date_str in date_range(leave.start_date, leave.end_date):
        if leave.type in (LeaveType.PRE_SCHEDULED, LeaveType.LONG_LEAVE):
            batch = [_set_station(ctx, leave.user_id, date_str, OFF)]
        elif leave.type == LeaveType.CANCEL_LEAVE:
            batch = [_set_station(ctx, leave.user_id, date_str, UNASSIGNED)]
        elif leave.type == LeaveType.SWAP_SHIFT:
            batch = [_set_station(ctx, leave.user_id, date_str, OFF)]
            if leave.target_user_id:
                batch.append(_set_station(ctx, leave.target_user_id, date_str, UNASSIGNED))
        else:
            batch = _duty_swap(ctx, leave, date_str)
        errors.extend(ctx.save_shifts(batch))
    logger.info(
        f"Leave {leave.id} applied to {leave_days(leave.start_date, leave.end_date)} day(s)"
    )
    return errors


# ---------------------------------------------------------------------------
# Swap partner lookup
# ---------------------------------------------------------------------------

def swap_candidates(ctx: RosterContext, user_id: str, value: DateLike) -> List[User]:
    """Colleagues who are off on the date and could take the requester's shift."""
    return [u for u in users_off_on(ctx, value) if u.id != user_id]


def duty_swap_candidates(
    ctx: RosterContext,
    user_id: str,
    value: DateLike,
    role: Optional[str] = None,
) -> List[User]:
    """
    Colleagues who could take over the requester's duty role on the date:
    working, certified for the role, and holding no duty of their own.

    role defaults to the requester's OPENING or LATE role that day.
    Returns [] if the requester holds nothing to swap.
    """
    date_str = to_iso(value)
    if role is None:
        own = ctx.shift(user_id, date_str)
        held = [r for r in (own.special_roles if own else []) if r in (OPENING, LATE)]
        if not held:
            return []
        role = held[0]

    out = []
    for u in users_working_on(ctx, date_str):
        if u.id == user_id or not is_certified(u, role):
            continue
        if holds_duty(ctx.shift(u.id, date_str)):
            continue
        out.append(u)
    return out
