"""
REST Entity Store
Persists roster entities through a PostgREST-style HTTP API (e.g. Supabase)

Tables:
  users     one row per User (camelCase columns)
  shifts    one row per Shift, primary key id = "{userId}-{date}"
  leaves    one row per LeaveRequest
  settings  a single row {id: 1, data: <SystemSettings JSON>}

Reads raise requests exceptions to the caller. Writes raise StoreError so the
assigners can log the failed keys and carry on.
"""

import logging
import os
from typing import Any, Dict, Iterable, List, Optional

import requests

from imaging_roster.models import LeaveRequest, Shift, SystemSettings, User
from imaging_roster.settings import ensure_settings_integrity
from imaging_roster.store import EntityStore, StoreError

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = 1


class RestEntityStore(EntityStore):
    """
    EntityStore over a PostgREST endpoint.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ):
        """
        Args:
            base_url: REST root, e.g. https://xyz.supabase.co/rest/v1
            api_key:  Service or anon key; sent as apikey and Bearer token
            session:  Optional pre-built session (tests inject a fake)
            timeout:  Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

        self.session = session or requests.Session()
        self.session.headers.update({
            'apikey': api_key,
            'Authorization': f'Bearer {api_key}',
            'Content-Type': 'application/json',
        })

    @classmethod
    def from_env(cls, prefix: str = "ROSTER_REST") -> "RestEntityStore":
        """Build from {prefix}_URL and {prefix}_KEY environment variables."""
        url = os.environ.get(f"{prefix}_URL")
        key = os.environ.get(f"{prefix}_KEY")
        if not url or not key:
            raise ValueError(f"{prefix}_URL and {prefix}_KEY must both be set")
        return cls(url, key)

    def _url(self, table: str) -> str:
        return f"{self.base_url}/{table}"

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def _select(self, table: str, params: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        query = {'select': '*'}
        query.update(params or {})
        try:
            response = self.session.get(self._url(table), params=query, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"Error reading {table}: {e}")
            raise
        rows = response.json()
        logger.debug(f"Read {len(rows)} row(s) from {table}")
        return rows

    def list_users(self) -> List[User]:
        return [User.from_dict(r) for r in self._select('users')]

    def list_shifts(self, start: Optional[str] = None, end: Optional[str] = None) -> List[Shift]:
        params: Dict[str, str] = {}
        if start and end:
            params['and'] = f'(date.gte.{start},date.lte.{end})'
        elif start:
            params['date'] = f'gte.{start}'
        elif end:
            params['date'] = f'lte.{end}'
        return [Shift.from_dict(r) for r in self._select('shifts', params)]

    def list_leaves(self) -> List[LeaveRequest]:
        return [LeaveRequest.from_dict(r) for r in self._select('leaves')]

    def get_settings(self) -> SystemSettings:
        rows = self._select('settings', {'id': f'eq.{SETTINGS_ROW_ID}'})
        if not rows:
            logger.warning("No settings row found, using defaults")
            return ensure_settings_integrity(SystemSettings())
        return ensure_settings_integrity(SystemSettings.from_dict(rows[0].get('data') or {}))

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def _send(
        self,
        method: str,
        table: str,
        keys: List[Any],
        payload: Any = None,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        try:
            response = self.session.request(
                method,
                self._url(table),
                json=payload,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise StoreError(f"{method} {table} failed: {e}", keys=keys) from e

    def _upsert(self, table: str, rows: List[Dict[str, Any]], keys: List[Any]) -> None:
        if not rows:
            return
        self._send(
            'POST', table, keys, payload=rows,
            headers={'Prefer': 'resolution=merge-duplicates,return=minimal'},
        )

    def upsert_shifts(self, shifts: Iterable[Shift]) -> None:
        batch = list(shifts)
        self._upsert('shifts', [s.to_dict() for s in batch], [s.key for s in batch])
        logger.debug(f"Upserted {len(batch)} shift(s)")

    def delete_shift(self, user_id: str, date_str: str) -> None:
        self._send('DELETE', 'shifts', [(user_id, date_str)],
                   params={'id': f'eq.{user_id}-{date_str}'})

    def insert_leave(self, leave: LeaveRequest) -> None:
        self._send('POST', 'leaves', [leave.id], payload=leave.to_dict())

    def update_leave(self, leave_id: str, fields: Dict[str, Any]) -> None:
        self._send('PATCH', 'leaves', [leave_id], payload=fields,
                   params={'id': f'eq.{leave_id}'})

    def upsert_settings(self, settings: SystemSettings) -> None:
        self._upsert('settings', [{'id': SETTINGS_ROW_ID, 'data': settings.to_dict()}],
                     [SETTINGS_ROW_ID])

    def insert_user(self, user: User) -> None:
        self._send('POST', 'users', [user.id], payload=user.to_dict())

    def update_user(self, user_id: str, fields: Dict[str, Any]) -> None:
        self._send('PATCH', 'users', [user_id], payload=fields,
                   params={'id': f'eq.{user_id}'})

    def delete_user(self, user_id: str) -> None:
        self._send('DELETE', 'users', [user_id], params={'id': f'eq.{user_id}'})
