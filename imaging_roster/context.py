"""
context.py — Explicit roster state for one engine run

RosterContext holds the Users / Shifts / Leaves / Settings snapshot that the
resolvers and assigners read, and writes every mutation through to the
entity store (if one is attached). Reads always hit the snapshot, so a write
made earlier in a run is visible to the next status lookup.

A failed store write is logged and returned to the caller; the snapshot keeps
the mutation, so the caller should treat it as drift and re-sync (refresh()).
"""

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Tuple

from imaging_roster.models import LeaveRequest, LeaveStatus, Shift, SystemSettings, User
from imaging_roster.store import EntityStore, StoreError

logger = logging.getLogger(__name__)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class RosterContext:

    def __init__(
        self,
        users: Iterable[User],
        shifts: Optional[Iterable[Shift]] = None,
        leaves: Optional[Iterable[LeaveRequest]] = None,
        settings: Optional[SystemSettings] = None,
        store: Optional[EntityStore] = None,
    ):
        self.store = store
        self.settings = settings or SystemSettings()
        self._users: Dict[str, User] = {}
        self._shifts: Dict[Tuple[str, str], Shift] = {}
        self._leaves: Dict[str, LeaveRequest] = {}
        self._load(users, shifts or [], leaves or [])

    @classmethod
    def from_store(cls, store: EntityStore) -> "RosterContext":
        """Snapshot everything the store holds."""
        ctx = cls(
            users=store.list_users(),
            shifts=store.list_shifts(),
            leaves=store.list_leaves(),
            settings=store.get_settings(),
            store=store,
        )
        logger.info(
            f"Loaded roster snapshot: {len(ctx._users)} users, "
            f"{len(ctx._shifts)} shifts, {len(ctx._leaves)} leave requests"
        )
        return ctx

    def _load(self, users, shifts, leaves) -> None:
        self._users = {u.id: u for u in users}
        self._shifts = {s.key: s for s in shifts}
        self._leaves = {leave.id: leave for leave in leaves}

    def refresh(self) -> None:
        """Re-read the snapshot from the store (after a write failure)."""
        if self.store is None:
            return
        self.settings = self.store.get_settings()
        self._load(self.store.list_users(), self.store.list_shifts(), self.store.list_leaves())

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    @property
    def users(self) -> List[User]:
        return list(self._users.values())

    def user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def shift(self, user_id: str, date_str: str) -> Optional[Shift]:
        return self._shifts.get((user_id, date_str))

    def shifts_on(self, date_str: str) -> List[Shift]:
        return [s for s in self._shifts.values() if s.date == date_str]

    def shifts_between(self, start: Optional[str] = None, end: Optional[str] = None) -> List[Shift]:
        return [
            s for s in self._shifts.values()
            if (not start or s.date >= start) and (not end or s.date <= end)
        ]

    @property
    def leaves(self) -> List[LeaveRequest]:
        return list(self._leaves.values())

    def leave(self, leave_id: str) -> Optional[LeaveRequest]:
        return self._leaves.get(leave_id)

    def approved_leave_on(self, user_id: str, date_str: str) -> Optional[LeaveRequest]:
        for leave in self._leaves.values():
            if (
                leave.user_id == user_id
                and leave.status == LeaveStatus.APPROVED
                and leave.covers(date_str)
            ):
                return leave
        return None

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def save_shifts(self, shifts: Iterable[Shift]) -> List[StoreError]:
        """
        Apply a batch of shifts to the snapshot, then to the store.

        Returns the store errors (empty on success). The snapshot is not
        rolled back on failure.
        """
        batch = [replace(s, special_roles=list(s.special_roles)) for s in shifts]
        if not batch:
            return []
        for s in batch:
            self._shifts[s.key] = s
        if self.store is None:
            return []
        try:
            self.store.upsert_shifts(batch)
        except StoreError as e:
            if not e.keys:
                e.keys = [s.key for s in batch]
            logger.error(f"Store write failed for {len(batch)} shift(s): {e}")
            return [e]
        return []

    def delete_shifts(self, keys: Iterable[Tuple[str, str]]) -> List[StoreError]:
        """
        Drop (user_id, date) records from the snapshot, then from the store.

        Returns the store errors, one per failed key. The snapshot is not
        rolled back on failure.
        """
        errors: List[StoreError] = []
        for user_id, date_str in keys:
            self._shifts.pop((user_id, date_str), None)
            if self.store is None:
                continue
            try:
                self.store.delete_shift(user_id, date_str)
            except StoreError as e:
                if not e.keys:
                    e.keys = [(user_id, date_str)]
                logger.error(f"Store delete failed for {user_id} on {date_str}: {e}")
                errors.append(e)
        return errors

    def insert_leave(self, leave: LeaveRequest) -> None:
        if self.store is not None:
            self.store.insert_leave(leave)
        self._leaves[leave.id] = leave

    def update_leave(self, leave: LeaveRequest, **changes) -> LeaveRequest:
        """
        Persist only the changed fields, then set them on the leave request.

        A StoreError is logged and re-raised; the leave keeps its old values.
        """
        if self.store is not None:
            persisted = replace(leave, **changes).to_dict()
            fields = {_camel(k): persisted[_camel(k)] for k in changes}
            try:
                self.store.update_leave(leave.id, fields)
            except StoreError as e:
                logger.error(f"Store update failed for leave {leave.id} {sorted(fields)}: {e}")
                raise
        for name, value in changes.items():
            setattr(leave, name, value)
        self._leaves[leave.id] = leave
        return leave

    def save_settings(self) -> None:
        if self.store is not None:
            self.store.upsert_settings(self.settings)

    def add_user(self, user: User) -> None:
        if self.store is not None:
            self.store.insert_user(user)
        self._users[user.id] = user
