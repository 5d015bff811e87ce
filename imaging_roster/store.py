"""
store.py — Entity store contract and the in-process implementation

The engine only needs read-all and upsert/insert/delete-by-key. Any store
must make a write visible to the next read in the same process.

  EntityStore          contract (methods raise NotImplementedError)
  InMemoryEntityStore  dict-backed, holds the camelCase persisted form
  StoreError           raised on write failure; carries the failed keys

See rest_client.RestEntityStore for the HTTP implementation.
"""

import copy
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from imaging_roster.models import LeaveRequest, Shift, SystemSettings, User

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """A write to the backing store failed."""

    def __init__(self, message: str, keys: Optional[List[Any]] = None):
        super().__init__(message)
        self.keys = list(keys or [])


class EntityStore:
    """Persistence contract used by RosterContext."""

    # -- reads ---------------------------------------------------------------
    def list_users(self) -> List[User]:
        raise NotImplementedError

    def list_shifts(self, start: Optional[str] = None, end: Optional[str] = None) -> List[Shift]:
        raise NotImplementedError

    def list_leaves(self) -> List[LeaveRequest]:
        raise NotImplementedError

    def get_settings(self) -> SystemSettings:
        raise NotImplementedError

    # -- writes --------------------------------------------------------------
    def upsert_shift(self, shift: Shift) -> None:
        self.upsert_shifts([shift])

    def upsert_shifts(self, shifts: Iterable[Shift]) -> None:
        raise NotImplementedError

    def delete_shift(self, user_id: str, date_str: str) -> None:
        raise NotImplementedError

    def insert_leave(self, leave: LeaveRequest) -> None:
        raise NotImplementedError

    def update_leave(self, leave_id: str, fields: Dict[str, Any]) -> None:
        raise NotImplementedError

    def upsert_settings(self, settings: SystemSettings) -> None:
        raise NotImplementedError

    def insert_user(self, user: User) -> None:
        raise NotImplementedError

    def update_user(self, user_id: str, fields: Dict[str, Any]) -> None:
        raise NotImplementedError

    def delete_user(self, user_id: str) -> None:
        raise NotImplementedError


class InMemoryEntityStore(EntityStore):
    """
    Dict-backed store. Records are kept in their persisted (camelCase) form
    so reads always hand back fresh objects.
    """

    def __init__(
        self,
        users: Optional[Iterable[User]] = None,
        shifts: Optional[Iterable[Shift]] = None,
        leaves: Optional[Iterable[LeaveRequest]] = None,
        settings: Optional[SystemSettings] = None,
    ):
        self._users: Dict[str, Dict[str, Any]] = {}
        self._shifts: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._leaves: Dict[str, Dict[str, Any]] = {}
        self._settings: Dict[str, Any] = (settings or SystemSettings()).to_dict()

        for u in users or []:
            self._users[u.id] = u.to_dict()
        for s in shifts or []:
            self._shifts[s.key] = s.to_dict()
        for leave in leaves or []:
            self._leaves[leave.id] = leave.to_dict()

    # -- reads ---------------------------------------------------------------
    def list_users(self) -> List[User]:
        return [User.from_dict(d) for d in self._users.values()]

    def list_shifts(self, start: Optional[str] = None, end: Optional[str] = None) -> List[Shift]:
        out = []
        for d in self._shifts.values():
            if start and d["date"] < start:
                continue
            if end and d["date"] > end:
                continue
            out.append(Shift.from_dict(d))
        return out

    def list_leaves(self) -> List[LeaveRequest]:
        return [LeaveRequest.from_dict(d) for d in self._leaves.values()]

    def get_settings(self) -> SystemSettings:
        return SystemSettings.from_dict(copy.deepcopy(self._settings))

    # -- writes --------------------------------------------------------------
    def upsert_shifts(self, shifts: Iterable[Shift]) -> None:
        for s in shifts:
            self._shifts[s.key] = s.to_dict()

    def delete_shift(self, user_id: str, date_str: str) -> None:
        self._shifts.pop((user_id, date_str), None)

    def insert_leave(self, leave: LeaveRequest) -> None:
        if leave.id in self._leaves:
            raise StoreError(f"Leave {leave.id} already exists", keys=[leave.id])
        self._leaves[leave.id] = leave.to_dict()

    def update_leave(self, leave_id: str, fields: Dict[str, Any]) -> None:
        if leave_id not in self._leaves:
            raise StoreError(f"Leave {leave_id} not found", keys=[leave_id])
        self._leaves[leave_id].update(fields)

    def upsert_settings(self, settings: SystemSettings) -> None:
        self._settings = settings.to_dict()

    def insert_user(self, user: User) -> None:
        if user.id in self._users:
            raise StoreError(f"User {user.id} already exists", keys=[user.id])
        self._users[user.id] = user.to_dict()

    def update_user(self, user_id: str, fields: Dict[str, Any]) -> None:
        if user_id not in self._users:
            raise StoreError(f"User {user_id} not found", keys=[user_id])
        self._users[user_id].update(fields)

    def delete_user(self, user_id: str) -> None:
        self._users.pop(user_id, None)
