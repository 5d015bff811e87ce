"""
Imaging Roster Engine

Modules:
- cycle: 6-day rotation resolver and date helpers
- status: WORK/OFF resolution per person per date
- leave: Leave request workflow and its shift mutations
- engine: Station auto-assignment (randomized multi-trial greedy)
- duty: Special-duty auto-assignment (OPENING / LATE)
- repair: Overflow placement for leftover workers
- settings: Station, calendar and cycle administration
- store / rest_client: Entity store contract, in-memory and HTTP stores
"""

from .context import RosterContext
from .cycle import base_rotation_status, date_range
from .duty import DutyResult, auto_assign_special_roles
from .engine import AssignmentResult, auto_schedule
from .leave import (
    LeaveTransitionError,
    LeaveValidationError,
    create_leave,
    respond_as_supervisor,
    respond_as_target,
)
from .status import status_on
from .store import EntityStore, InMemoryEntityStore, StoreError

__all__ = [
    "RosterContext",
    "base_rotation_status",
    "date_range",
    "DutyResult",
    "auto_assign_special_roles",
    "AssignmentResult",
    "auto_schedule",
    "LeaveTransitionError",
    "LeaveValidationError",
    "create_leave",
    "respond_as_supervisor",
    "respond_as_target",
    "status_on",
    "EntityStore",
    "InMemoryEntityStore",
    "StoreError",
]
