"""
models.py — Roster entities

User, Shift, LeaveRequest and SystemSettings as dataclasses. Every entity
round-trips through a camelCase dict (to_dict / from_dict), which is the
shape the entity stores persist.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from imaging_roster.schedule_config import (
    DEFAULT_COMPATIBLE_DUTY_PAIRS,
    DEFAULT_CYCLE_START,
    DEFAULT_STATIONS,
    OFF,
    UNASSIGNED,
)


class UserRole(str, Enum):
    EMPLOYEE = "EMPLOYEE"
    SUPERVISOR = "SUPERVISOR"
    SYSTEM_ADMIN = "SYSTEM_ADMIN"


class StaffGroup(str, Enum):
    A = "A"
    B = "B"
    C = "C"


class LeaveType(str, Enum):
    PRE_SCHEDULED = "PRE_SCHEDULED"
    CANCEL_LEAVE = "CANCEL_LEAVE"
    LONG_LEAVE = "LONG_LEAVE"
    SWAP_SHIFT = "SWAP_SHIFT"
    DUTY_SWAP = "DUTY_SWAP"


class LeaveStatus(str, Enum):
    PENDING = "PENDING"
    WAITING_FOR_TARGET = "WAITING_FOR_TARGET"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class TargetApproval(str, Enum):
    AGREED = "AGREED"
    REJECTED = "REJECTED"


class DateEventType(str, Enum):
    NATIONAL = "NATIONAL"
    MEETING = "MEETING"
    CLOSED = "CLOSED"


SWAP_TYPES = frozenset({LeaveType.SWAP_SHIFT, LeaveType.DUTY_SWAP})
MANAGER_ROLES = frozenset({UserRole.SUPERVISOR, UserRole.SYSTEM_ADMIN})


def _tags(raw: Optional[Iterable[str]]) -> Set[str]:
    if not raw:
        return set()
    return {str(t).strip() for t in raw if str(t).strip()}


def _unique(items: Iterable[str]) -> List[str]:
    out: List[str] = []
    for item in items:
        if item not in out:
            out.append(item)
    return out


def _week(req: Any) -> List[int]:
    """A station requirement as seven Sunday-first headcounts."""
    if isinstance(req, (int, float)):
        return [int(req)] * 7
    return [int(v) for v in req]


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------

@dataclass
class User:
    id: str
    name: str
    group_id: StaffGroup = StaffGroup.A
    role: UserRole = UserRole.EMPLOYEE
    alias: str = ""
    email: str = ""
    capabilities: Set[str] = field(default_factory=set)
    learning_capabilities: Set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        self.group_id = StaffGroup(self.group_id)
        self.role = UserRole(self.role)
        self.capabilities = _tags(self.capabilities)
        self.learning_capabilities = _tags(self.learning_capabilities)

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "alias": self.alias,
            "email": self.email,
            "role": self.role.value,
            "groupId": self.group_id.value,
            "capabilities": sorted(self.capabilities),
            "learningCapabilities": sorted(self.learning_capabilities),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            group_id=data.get("groupId", StaffGroup.A),
            role=data.get("role", UserRole.EMPLOYEE),
            alias=data.get("alias", "") or "",
            email=data.get("email", "") or "",
            capabilities=data.get("capabilities") or [],
            learning_capabilities=data.get("learningCapabilities") or [],
        )


# ---------------------------------------------------------------------------
# Shift
# ---------------------------------------------------------------------------

@dataclass
class Shift:
    """One person on one date. Keyed by (user_id, date)."""

    user_id: str
    date: str
    station: str = UNASSIGNED
    special_roles: List[str] = field(default_factory=list)
    is_auto_generated: bool = False
    is_role_auto_generated: bool = False

    def __post_init__(self) -> None:
        self.special_roles = _unique(self.special_roles or [])

    @property
    def id(self) -> str:
        return f"{self.user_id}-{self.date}"

    @property
    def key(self) -> Tuple[str, str]:
        return (self.user_id, self.date)

    @property
    def has_station(self) -> bool:
        """True if placed at a real station (not a sentinel)."""
        return self.station not in (OFF, UNASSIGNED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "date": self.date,
            "station": self.station,
            "specialRoles": list(self.special_roles),
            "isAutoGenerated": self.is_auto_generated,
            "isRoleAutoGenerated": self.is_role_auto_generated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Shift":
        return cls(
            user_id=str(data["userId"]),
            date=str(data["date"]),
            station=data.get("station") or UNASSIGNED,
            special_roles=list(data.get("specialRoles") or []),
            is_auto_generated=bool(data.get("isAutoGenerated", False)),
            is_role_auto_generated=bool(data.get("isRoleAutoGenerated", False)),
        )


# ---------------------------------------------------------------------------
# LeaveRequest
# ---------------------------------------------------------------------------

@dataclass
class LeaveRequest:
    id: str
    user_id: str
    start_date: str
    end_date: str
    type: LeaveType
    status: LeaveStatus = LeaveStatus.PENDING
    target_user_id: Optional[str] = None
    target_approval: Optional[TargetApproval] = None
    role_to_swap: Optional[str] = None
    approver_id: Optional[str] = None
    reason: str = ""
    created_at: Optional[str] = None
    processed_at: Optional[str] = None

    def __post_init__(self) -> None:
        self.type = LeaveType(self.type)
        self.status = LeaveStatus(self.status)
        if self.target_approval is not None:
            self.target_approval = TargetApproval(self.target_approval)

    @property
    def is_swap(self) -> bool:
        return self.type in SWAP_TYPES

    @property
    def is_terminal(self) -> bool:
        return self.status in (LeaveStatus.APPROVED, LeaveStatus.REJECTED)

    def covers(self, date_str: str) -> bool:
        return self.start_date <= date_str <= self.end_date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "type": self.type.value,
            "status": self.status.value,
            "targetUserId": self.target_user_id,
            "targetApproval": self.target_approval.value if self.target_approval else None,
            "roleToSwap": self.role_to_swap,
            "approverId": self.approver_id,
            "reason": self.reason,
            "createdAt": self.created_at,
            "processedAt": self.processed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LeaveRequest":
        return cls(
            id=str(data["id"]),
            user_id=str(data["userId"]),
            start_date=str(data["startDate"]),
            end_date=str(data.get("endDate") or data["startDate"]),
            type=data["type"],
            status=data.get("status", LeaveStatus.PENDING),
            target_user_id=data.get("targetUserId") or None,
            target_approval=data.get("targetApproval") or None,
            role_to_swap=data.get("roleToSwap") or None,
            approver_id=data.get("approverId") or None,
            reason=data.get("reason", "") or "",
            created_at=data.get("createdAt"),
            processed_at=data.get("processedAt"),
        )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@dataclass
class Holiday:
    date: str
    name: str = ""
    type: DateEventType = DateEventType.NATIONAL

    def __post_init__(self) -> None:
        self.type = DateEventType(self.type or DateEventType.NATIONAL)

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "name": self.name, "type": self.type.value}


@dataclass
class RosterCycle:
    """A named reporting period, e.g. one month of roster."""

    id: str
    name: str
    start_date: str
    end_date: str
    is_confirmed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "isConfirmed": self.is_confirmed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RosterCycle":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            start_date=str(data["startDate"]),
            end_date=str(data["endDate"]),
            is_confirmed=bool(data.get("isConfirmed", False)),
        )


@dataclass
class SystemSettings:
    stations: List[str] = field(default_factory=lambda: list(DEFAULT_STATIONS))
    station_requirements: Dict[str, List[int]] = field(default_factory=dict)
    cycle_start_date: str = DEFAULT_CYCLE_START
    cycles: List[RosterCycle] = field(default_factory=list)
    holidays: Dict[str, Holiday] = field(default_factory=dict)
    station_display_order: List[str] = field(default_factory=list)
    compatible_duty_pairs: List[List[str]] = field(
        default_factory=lambda: [list(p) for p in DEFAULT_COMPATIBLE_DUTY_PAIRS]
    )

    def requirement(self, station: str, weekday_index: int) -> int:
        """Required headcount for a station; weekday_index 0 = Sunday."""
        req = self.station_requirements.get(station)
        if not req:
            return 0
        if isinstance(req, (int, float)):
            return int(req)
        return int(req[weekday_index])

    def event(self, date_str: str) -> Optional[Holiday]:
        return self.holidays.get(date_str)

    def is_closed(self, date_str: str) -> bool:
        event = self.holidays.get(date_str)
        return event is not None and event.type == DateEventType.CLOSED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stations": list(self.stations),
            "stationRequirements": {k: _week(v) for k, v in self.station_requirements.items()},
            "cycleStartDate": self.cycle_start_date,
            "cycles": [c.to_dict() for c in self.cycles],
            "holidays": [self.holidays[d].to_dict() for d in sorted(self.holidays)],
            "stationDisplayOrder": list(self.station_display_order),
            "compatibleDutyPairs": [list(p) for p in self.compatible_duty_pairs],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SystemSettings":
        raw_holidays = data.get("holidays") or []
        if isinstance(raw_holidays, dict):
            raw_holidays = [dict(v, date=k) for k, v in raw_holidays.items()]
        holidays = {
            h["date"]: Holiday(date=h["date"], name=h.get("name", ""), type=h.get("type"))
            for h in raw_holidays
        }
        settings = cls(
            stations=list(data.get("stations") or DEFAULT_STATIONS),
            station_requirements=dict(data.get("stationRequirements") or {}),
            cycle_start_date=data.get("cycleStartDate") or DEFAULT_CYCLE_START,
            cycles=[RosterCycle.from_dict(c) for c in data.get("cycles") or []],
            holidays=holidays,
            station_display_order=list(data.get("stationDisplayOrder") or []),
        )
        if data.get("compatibleDutyPairs") is not None:
            settings.compatible_duty_pairs = [list(p) for p in data["compatibleDutyPairs"]]
        return settings
