"""Data models for room coordination."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any

from .constants import (
    DEFAULT_DAY_END,
    DEFAULT_DAY_START,
    DEFAULT_MEMBER_PRIORITY,
    DEFAULT_MIN_CLASS_DURATION_MINUTES,
    DEFAULT_MIN_HOURS_PER_WEEK,
    DEFAULT_WINDOW_PRIORITY,
    MAX_PRIORITY,
    MIN_PRIORITY,
)
from .exceptions import InvalidPriorityError, InvalidRangeError, MissingFieldError
from .utils import (
    minutes_to_time,
    normalize_time,
    normalize_weekday,
    parse_date,
    parse_datetime,
    time_to_minutes,
    validate_range,
    weekday_of,
)


def new_id() -> str:
    """Generate a short unique record id."""
    return uuid.uuid4().hex[:12]


def _require(data: dict[str, Any], key: str, record: str) -> Any:
    if key not in data or data[key] is None:
        raise MissingFieldError(key, record)
    return data[key]


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class TravelMode(str, Enum):
    """How the owner travels between members."""

    NONE = "none"
    DRIVING = "driving"
    TRANSIT = "transit"
    WALKING = "walking"
    BICYCLING = "bicycling"


class SlotKind(str, Enum):
    """What a slot occupies."""

    CLASS = "class"
    TRAVEL = "travel"


class AssignmentMode(str, Enum):
    """Member ordering used by the allocator."""

    PRIORITY_FIRST = "priority_first"
    FIRST_COME = "first_come"
    FROM_TODAY = "from_today"


class RequestType(str, Enum):
    """Type of exchange request."""

    SLOT_REQUEST = "slot_request"
    SLOT_SWAP = "slot_swap"
    SLOT_RELEASE = "slot_release"
    CHAIN_REQUEST = "chain_request"


class RequestStatus(str, Enum):
    """Exchange request status."""

    PENDING = "pending"
    NEEDS_CHAIN_CONFIRMATION = "needs_chain_confirmation"
    WAITING_FOR_CHAIN = "waiting_for_chain"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class ResponseAction(str, Enum):
    """Target's answer to a request."""

    APPROVE = "approve"
    REJECT = "reject"


class ChainAction(str, Enum):
    """Chain head's decision on a proposed chain."""

    PROCEED = "proceed"
    CANCEL = "cancel"


TERMINAL_STATUSES = frozenset(
    {RequestStatus.APPROVED, RequestStatus.REJECTED, RequestStatus.CANCELLED}
)

# Forward-only status transitions
ALLOWED_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset(
        {
            RequestStatus.APPROVED,
            RequestStatus.REJECTED,
            RequestStatus.CANCELLED,
            RequestStatus.NEEDS_CHAIN_CONFIRMATION,
            RequestStatus.WAITING_FOR_CHAIN,
        }
    ),
    RequestStatus.NEEDS_CHAIN_CONFIRMATION: frozenset(
        {RequestStatus.WAITING_FOR_CHAIN, RequestStatus.REJECTED, RequestStatus.CANCELLED}
    ),
    RequestStatus.WAITING_FOR_CHAIN: frozenset(
        {RequestStatus.APPROVED, RequestStatus.REJECTED, RequestStatus.CANCELLED}
    ),
    RequestStatus.APPROVED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}


@dataclass
class PreferenceWindow:
    """A recurring (weekday) or date-specific availability window."""

    start: str
    end: str
    priority: int = DEFAULT_WINDOW_PRIORITY
    weekday: int | None = None
    specific_date: date | None = None

    def __post_init__(self) -> None:
        self.start = normalize_time(self.start, "start")
        self.end = normalize_time(self.end, "end")
        validate_range(self.start_minutes, self.end_minutes, "preference window")
        if isinstance(self.priority, bool) or self.priority not in range(
            MIN_PRIORITY, MAX_PRIORITY + 1
        ):
            raise InvalidPriorityError(self.priority)
        if self.specific_date is not None:
            self.specific_date = parse_date(self.specific_date, "specific_date")
        if self.weekday is not None:
            self.weekday = normalize_weekday(self.weekday)
        if self.specific_date is None and self.weekday is None:
            raise MissingFieldError("weekday", "preference window")
        if self.specific_date is not None and self.weekday is None:
            self.weekday = weekday_of(self.specific_date)

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end)

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    @property
    def is_recurring(self) -> bool:
        return self.specific_date is None

    @property
    def key(self) -> tuple[str, str | int]:
        """Matching key: exact date for date windows, weekday for recurring ones."""
        if self.specific_date is not None:
            return ("date", self.specific_date.isoformat())
        return ("weekday", self.weekday)

    def applies_to(self, day: date) -> bool:
        """Check if this window covers the given calendar date."""
        if self.specific_date is not None:
            return self.specific_date == day
        return self.weekday == weekday_of(day)

    def with_range(self, start_minutes: int, end_minutes: int) -> "PreferenceWindow":
        """Copy of this window with a different time range, same key and priority."""
        return replace(
            self, start=minutes_to_time(start_minutes), end=minutes_to_time(end_minutes)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start,
            "end": self.end,
            "priority": self.priority,
            "weekday": self.weekday,
            "specific_date": _iso(self.specific_date),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PreferenceWindow":
        return cls(
            start=_require(data, "start", "preference window"),
            end=_require(data, "end", "preference window"),
            priority=data.get("priority", DEFAULT_WINDOW_PRIORITY),
            weekday=data.get("weekday"),
            specific_date=data.get("specific_date"),
        )


@dataclass
class BlockingCommitment:
    """Non-negotiable personal occupancy, recurring or on a single date."""

    title: str
    start: str
    end: str
    weekdays: list[int] = field(default_factory=list)
    specific_date: date | None = None

    def __post_init__(self) -> None:
        self.start = normalize_time(self.start, "start")
        self.end = normalize_time(self.end, "end")
        validate_range(self.start_minutes, self.end_minutes, "blocking commitment")
        self.weekdays = sorted({normalize_weekday(d) for d in self.weekdays})
        if self.specific_date is not None:
            self.specific_date = parse_date(self.specific_date, "specific_date")
        if self.specific_date is None and not self.weekdays:
            raise MissingFieldError("weekdays", f"blocking commitment '{self.title}'")

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end)

    def applies_to(self, day: date) -> bool:
        if self.specific_date is not None:
            return self.specific_date == day
        return weekday_of(day) in self.weekdays

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "start": self.start,
            "end": self.end,
            "weekdays": self.weekdays,
            "specific_date": _iso(self.specific_date),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BlockingCommitment":
        return cls(
            title=data.get("title", ""),
            start=_require(data, "start", "blocking commitment"),
            end=_require(data, "end", "blocking commitment"),
            weekdays=list(data.get("weekdays", [])),
            specific_date=data.get("specific_date"),
        )


@dataclass
class CalendarBlock:
    """An entry written into a personal calendar by the committer."""

    title: str
    date: date
    start: str
    end: str
    room_id: str
    member_id: str
    includes_travel: bool = False

    def __post_init__(self) -> None:
        self.date = parse_date(self.date, "date")
        self.start = normalize_time(self.start, "start")
        self.end = normalize_time(self.end, "end")

    @property
    def identity(self) -> tuple[str, str, str, str, str]:
        """Duplicate-detection key."""
        return (self.date.isoformat(), self.start, self.end, self.room_id, self.member_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "date": self.date.isoformat(),
            "start": self.start,
            "end": self.end,
            "room_id": self.room_id,
            "member_id": self.member_id,
            "includes_travel": self.includes_travel,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CalendarBlock":
        return cls(
            title=data.get("title", ""),
            date=_require(data, "date", "calendar block"),
            start=_require(data, "start", "calendar block"),
            end=_require(data, "end", "calendar block"),
            room_id=data.get("room_id", ""),
            member_id=data.get("member_id", ""),
            includes_travel=data.get("includes_travel", False),
        )


@dataclass
class PreferenceBackup:
    """Per-room undo log of preference segments removed at commit."""

    room_id: str
    deleted_windows: list[PreferenceWindow] = field(default_factory=list)
    deleted_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "room_id": self.room_id,
            "deleted_windows": [w.to_dict() for w in self.deleted_windows],
            "deleted_at": self.deleted_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PreferenceBackup":
        return cls(
            room_id=_require(data, "room_id", "preference backup"),
            deleted_windows=[
                PreferenceWindow.from_dict(w) for w in data.get("deleted_windows", [])
            ],
            deleted_at=parse_datetime(data.get("deleted_at")) or datetime.now(),
        )


@dataclass
class Member:
    """A person's own record: location, availability and personal calendar."""

    id: str
    name: str = ""
    latitude: float | None = None
    longitude: float | None = None
    recurring_windows: list[PreferenceWindow] = field(default_factory=list)
    date_windows: list[PreferenceWindow] = field(default_factory=list)
    blocking_commitments: list[BlockingCommitment] = field(default_factory=list)
    personal_calendar: list[CalendarBlock] = field(default_factory=list)
    deleted_preferences_by_room: dict[str, PreferenceBackup] = field(default_factory=dict)
    version: int = 0

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def windows(self) -> list[PreferenceWindow]:
        """All preference windows, recurring first."""
        return [*self.recurring_windows, *self.date_windows]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "recurring_windows": [w.to_dict() for w in self.recurring_windows],
            "date_windows": [w.to_dict() for w in self.date_windows],
            "blocking_commitments": [c.to_dict() for c in self.blocking_commitments],
            "personal_calendar": [b.to_dict() for b in self.personal_calendar],
            "deleted_preferences_by_room": {
                room_id: backup.to_dict()
                for room_id, backup in self.deleted_preferences_by_room.items()
            },
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Member":
        return cls(
            id=str(_require(data, "id", "member")),
            name=data.get("name", ""),
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            recurring_windows=[
                PreferenceWindow.from_dict(w) for w in data.get("recurring_windows", [])
            ],
            date_windows=[
                PreferenceWindow.from_dict(w) for w in data.get("date_windows", [])
            ],
            blocking_commitments=[
                BlockingCommitment.from_dict(c) for c in data.get("blocking_commitments", [])
            ],
            personal_calendar=[
                CalendarBlock.from_dict(b) for b in data.get("personal_calendar", [])
            ],
            deleted_preferences_by_room={
                room_id: PreferenceBackup.from_dict(backup)
                for room_id, backup in data.get("deleted_preferences_by_room", {}).items()
            },
            version=data.get("version", 0),
        )


@dataclass
class CarryOverEntry:
    """One week's carry-over amount.

    `previous_hours` and `previous_priority` hold the member's state before
    the week was allocated, so a rerun of the same week starts from there.
    """

    week: date
    hours: float
    recorded_at: datetime = field(default_factory=datetime.now)
    previous_hours: float = 0.0
    previous_priority: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "week": self.week.isoformat(),
            "hours": self.hours,
            "recorded_at": self.recorded_at.isoformat(),
            "previous_hours": self.previous_hours,
            "previous_priority": self.previous_priority,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CarryOverEntry":
        return cls(
            week=parse_date(_require(data, "week", "carry-over entry"), "week"),
            hours=float(data.get("hours", 0.0)),
            recorded_at=parse_datetime(data.get("recorded_at")) or datetime.now(),
            previous_hours=float(data.get("previous_hours", 0.0)),
            previous_priority=data.get("previous_priority"),
        )


@dataclass
class RoomMember:
    """Membership of a member in a room."""

    member_id: str
    joined_at: datetime | None = None
    carry_over_hours: float = 0.0
    carry_over_history: list[CarryOverEntry] = field(default_factory=list)
    total_progress_hours: float = 0.0
    priority: int = DEFAULT_MEMBER_PRIORITY

    def entry_for_week(self, week: date) -> CarryOverEntry | None:
        for entry in reversed(self.carry_over_history):
            if entry.week == week:
                return entry
        return None

    def carry_over_for_week(self, week: date) -> float:
        """Hours carried over in the given week (0 if not recorded)."""
        entry = self.entry_for_week(week)
        return entry.hours if entry is not None else 0.0

    def state_before_week(self, week: date) -> tuple[float, int]:
        """Carry-over hours and priority as they stood before the week was allocated."""
        entry = self.entry_for_week(week)
        if entry is None or entry.previous_priority is None:
            return self.carry_over_hours, self.priority
        return entry.previous_hours, entry.previous_priority

    def record_carry_over(self, entry: CarryOverEntry, priority: int) -> None:
        """Store a week's carry-over, replacing an earlier entry for that week.

        The current carry-over and priority follow the entry unless a later
        week has already been recorded.
        """
        self.carry_over_history = [e for e in self.carry_over_history if e.week != entry.week]
        self.carry_over_history.append(entry)
        self.carry_over_history.sort(key=lambda e: e.week)
        if self.carry_over_history[-1] is entry:
            self.carry_over_hours = entry.hours
            self.priority = priority

    def to_dict(self) -> dict[str, Any]:
        return {
            "member_id": self.member_id,
            "joined_at": _iso(self.joined_at),
            "carry_over_hours": self.carry_over_hours,
            "carry_over_history": [e.to_dict() for e in self.carry_over_history],
            "total_progress_hours": self.total_progress_hours,
            "priority": self.priority,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RoomMember":
        return cls(
            member_id=str(_require(data, "member_id", "room member")),
            joined_at=parse_datetime(data.get("joined_at"), "joined_at"),
            carry_over_hours=float(data.get("carry_over_hours", 0.0)),
            carry_over_history=[
                CarryOverEntry.from_dict(e) for e in data.get("carry_over_history", [])
            ],
            total_progress_hours=float(data.get("total_progress_hours", 0.0)),
            priority=data.get("priority", DEFAULT_MEMBER_PRIORITY),
        )


@dataclass
class BlockedWindow:
    """Room-wide blocked time, every day."""

    name: str
    start: str
    end: str

    def __post_init__(self) -> None:
        self.start = normalize_time(self.start, "start")
        self.end = normalize_time(self.end, "end")
        validate_range(self.start_minutes, self.end_minutes, "blocked window")

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BlockedWindow":
        return cls(
            name=data.get("name", ""),
            start=_require(data, "start", "blocked window"),
            end=_require(data, "end", "blocked window"),
        )


@dataclass
class DateException:
    """Room-wide blocked time on one date."""

    specific_date: date
    start: str
    end: str
    name: str = ""

    def __post_init__(self) -> None:
        self.specific_date = parse_date(self.specific_date, "specific_date")
        self.start = normalize_time(self.start, "start")
        self.end = normalize_time(self.end, "end")
        validate_range(self.start_minutes, self.end_minutes, "date exception")

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end)

    def to_dict(self) -> dict[str, Any]:
        return {
            "specific_date": self.specific_date.isoformat(),
            "start": self.start,
            "end": self.end,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DateException":
        return cls(
            specific_date=_require(data, "specific_date", "date exception"),
            start=_require(data, "start", "date exception"),
            end=_require(data, "end", "date exception"),
            name=data.get("name", ""),
        )


@dataclass
class RoomSettings:
    """Room-wide scheduling bounds."""

    day_start: str = DEFAULT_DAY_START
    day_end: str = DEFAULT_DAY_END
    blocked_windows: list[BlockedWindow] = field(default_factory=list)
    date_exceptions: list[DateException] = field(default_factory=list)
    min_hours_per_week: float = DEFAULT_MIN_HOURS_PER_WEEK
    min_class_duration_minutes: int = DEFAULT_MIN_CLASS_DURATION_MINUTES

    def __post_init__(self) -> None:
        self.day_start = normalize_time(self.day_start, "day_start")
        self.day_end = normalize_time(self.day_end, "day_end")
        validate_range(time_to_minutes(self.day_start), time_to_minutes(self.day_end), "day bounds")
        if self.min_hours_per_week < 0:
            raise InvalidRangeError("min_hours_per_week must not be negative")

    @property
    def day_bounds(self) -> tuple[int, int]:
        return (time_to_minutes(self.day_start), time_to_minutes(self.day_end))

    def blocked_ranges_for(self, day: date) -> list[tuple[int, int, str]]:
        """Blocked (start, end, name) ranges that apply on a date."""
        ranges = [(b.start_minutes, b.end_minutes, b.name) for b in self.blocked_windows]
        ranges.extend(
            (e.start_minutes, e.end_minutes, e.name)
            for e in self.date_exceptions
            if e.specific_date == day
        )
        return ranges

    def to_dict(self) -> dict[str, Any]:
        return {
            "day_start": self.day_start,
            "day_end": self.day_end,
            "blocked_windows": [b.to_dict() for b in self.blocked_windows],
            "date_exceptions": [e.to_dict() for e in self.date_exceptions],
            "min_hours_per_week": self.min_hours_per_week,
            "min_class_duration_minutes": self.min_class_duration_minutes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RoomSettings":
        return cls(
            day_start=data.get("day_start", DEFAULT_DAY_START),
            day_end=data.get("day_end", DEFAULT_DAY_END),
            blocked_windows=[BlockedWindow.from_dict(b) for b in data.get("blocked_windows", [])],
            date_exceptions=[DateException.from_dict(e) for e in data.get("date_exceptions", [])],
            min_hours_per_week=float(data.get("min_hours_per_week", DEFAULT_MIN_HOURS_PER_WEEK)),
            min_class_duration_minutes=data.get(
                "min_class_duration_minutes", DEFAULT_MIN_CLASS_DURATION_MINUTES
            ),
        )


@dataclass
class SlotRef:
    """A date and time range, independent of any slot record."""

    date: date
    start: str
    end: str

    def __post_init__(self) -> None:
        self.date = parse_date(self.date, "date")
        self.start = normalize_time(self.start, "start")
        self.end = normalize_time(self.end, "end")
        validate_range(self.start_minutes, self.end_minutes, "slot")

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end)

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date.isoformat(), "start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SlotRef":
        return cls(
            date=_require(data, "date", "slot reference"),
            start=_require(data, "start", "slot reference"),
            end=_require(data, "end", "slot reference"),
        )

    def __str__(self) -> str:
        return f"{self.date.isoformat()} {self.start}-{self.end}"


@dataclass
class Slot:
    """An occupied interval in the room timeline."""

    member_id: str
    date: date
    start: str
    end: str
    kind: SlotKind = SlotKind.CLASS
    confirmed_to_calendar: bool = False
    subject: str = ""
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        self.date = parse_date(self.date, "date")
        self.start = normalize_time(self.start, "start")
        self.end = normalize_time(self.end, "end")
        validate_range(self.start_minutes, self.end_minutes, "slot")
        self.kind = SlotKind(self.kind)

    @property
    def weekday(self) -> int:
        return weekday_of(self.date)

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end)

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    def ref(self) -> SlotRef:
        return SlotRef(date=self.date, start=self.start, end=self.end)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "member_id": self.member_id,
            "date": self.date.isoformat(),
            "weekday": self.weekday,
            "start": self.start,
            "end": self.end,
            "kind": self.kind.value,
            "confirmed_to_calendar": self.confirmed_to_calendar,
            "subject": self.subject,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Slot":
        return cls(
            id=data.get("id") or new_id(),
            member_id=str(_require(data, "member_id", "slot")),
            date=_require(data, "date", "slot"),
            start=_require(data, "start", "slot"),
            end=_require(data, "end", "slot"),
            kind=SlotKind(data.get("kind", SlotKind.CLASS.value)),
            confirmed_to_calendar=data.get("confirmed_to_calendar", False),
            subject=data.get("subject", ""),
        )


@dataclass
class ChainHop:
    """One planned move in a chain: member leaves from_slot for to_slot."""

    member_id: str
    from_slot: SlotRef
    to_slot: SlotRef

    def to_dict(self) -> dict[str, Any]:
        return {
            "member_id": self.member_id,
            "from_slot": self.from_slot.to_dict(),
            "to_slot": self.to_slot.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChainHop":
        return cls(
            member_id=str(_require(data, "member_id", "chain hop")),
            from_slot=SlotRef.from_dict(_require(data, "from_slot", "chain hop")),
            to_slot=SlotRef.from_dict(_require(data, "to_slot", "chain hop")),
        )


@dataclass
class ChainData:
    """Persisted state of a chain relocation.

    The path lists the moves agreed so far, in order: the first hop moves the
    original target into the first candidate's slot, each later hop moves the
    previous candidate into the next candidate's slot.
    """

    root_request_id: str
    head_id: str
    path: list[ChainHop] = field(default_factory=list)
    visited_member_ids: list[str] = field(default_factory=list)
    tried_candidate_ids: list[str] = field(default_factory=list)
    candidate_member_id: str | None = None
    candidate_slot_id: str | None = None

    @property
    def hop(self) -> int:
        return len(self.path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "root_request_id": self.root_request_id,
            "head_id": self.head_id,
            "path": [h.to_dict() for h in self.path],
            "visited_member_ids": self.visited_member_ids,
            "tried_candidate_ids": self.tried_candidate_ids,
            "candidate_member_id": self.candidate_member_id,
            "candidate_slot_id": self.candidate_slot_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChainData":
        return cls(
            root_request_id=str(_require(data, "root_request_id", "chain data")),
            head_id=str(_require(data, "head_id", "chain data")),
            path=[ChainHop.from_dict(h) for h in data.get("path", [])],
            visited_member_ids=list(data.get("visited_member_ids", [])),
            tried_candidate_ids=list(data.get("tried_candidate_ids", [])),
            candidate_member_id=data.get("candidate_member_id"),
            candidate_slot_id=data.get("candidate_slot_id"),
        )


@dataclass
class StatusChange:
    """One entry in a request's status history."""

    status: RequestStatus
    at: datetime = field(default_factory=datetime.now)
    note: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status.value, "at": self.at.isoformat(), "note": self.note}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StatusChange":
        return cls(
            status=RequestStatus(_require(data, "status", "status change")),
            at=parse_datetime(data.get("at")) or datetime.now(),
            note=data.get("note", ""),
        )


@dataclass
class ExchangeRequest:
    """A request to take, swap or release a slot, or one hop of a chain."""

    type: RequestType
    requester_id: str
    target_member_id: str
    target_slot: SlotRef
    status: RequestStatus = RequestStatus.PENDING
    requester_slot_ids: list[str] = field(default_factory=list)
    chain_data: ChainData | None = None
    message: str = ""
    response: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    responded_at: datetime | None = None
    history: list[StatusChange] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "requester_id": self.requester_id,
            "target_member_id": self.target_member_id,
            "target_slot": self.target_slot.to_dict(),
            "status": self.status.value,
            "requester_slot_ids": self.requester_slot_ids,
            "chain_data": self.chain_data.to_dict() if self.chain_data else None,
            "message": self.message,
            "response": self.response,
            "created_at": self.created_at.isoformat(),
            "responded_at": _iso(self.responded_at),
            "history": [h.to_dict() for h in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExchangeRequest":
        chain = data.get("chain_data")
        return cls(
            id=data.get("id") or new_id(),
            type=RequestType(_require(data, "type", "exchange request")),
            requester_id=str(_require(data, "requester_id", "exchange request")),
            target_member_id=str(_require(data, "target_member_id", "exchange request")),
            target_slot=SlotRef.from_dict(_require(data, "target_slot", "exchange request")),
            status=RequestStatus(data.get("status", RequestStatus.PENDING.value)),
            requester_slot_ids=list(data.get("requester_slot_ids", [])),
            chain_data=ChainData.from_dict(chain) if chain else None,
            message=data.get("message", ""),
            response=data.get("response", ""),
            created_at=parse_datetime(data.get("created_at")) or datetime.now(),
            responded_at=parse_datetime(data.get("responded_at")),
            history=[StatusChange.from_dict(h) for h in data.get("history", [])],
        )


@dataclass
class Room:
    """A coordination room: owner, members, slots and exchange requests."""

    id: str
    owner_id: str
    name: str = ""
    members: list[RoomMember] = field(default_factory=list)
    slots: list[Slot] = field(default_factory=list)
    requests: list[ExchangeRequest] = field(default_factory=list)
    settings: RoomSettings = field(default_factory=RoomSettings)
    travel_mode: TravelMode = TravelMode.NONE
    confirmed_travel_mode: TravelMode | None = None
    auto_confirm_at: datetime | None = None
    auto_confirm_duration_minutes: int | None = None
    confirmed_at: datetime | None = None
    version: int = 0

    @property
    def effective_travel_mode(self) -> TravelMode:
        return self.confirmed_travel_mode or self.travel_mode

    @property
    def member_ids(self) -> list[str]:
        return [m.member_id for m in self.members]

    def non_owner_members(self) -> list[RoomMember]:
        """Memberships excluding the owner, in join order."""
        return [m for m in self.members if m.member_id != self.owner_id]

    def get_room_member(self, member_id: str) -> RoomMember | None:
        for member in self.members:
            if member.member_id == member_id:
                return member
        return None

    def join_index(self, member_id: str) -> int:
        """Position of a member in join order (by joined_at, then list order)."""
        ordered = sorted(
            enumerate(self.members),
            key=lambda item: (
                item[1].joined_at is None,
                item[1].joined_at or datetime.min,
                item[0],
            ),
        )
        for position, (_, member) in enumerate(ordered):
            if member.member_id == member_id:
                return position
        return len(self.members)

    def get_slot(self, slot_id: str) -> Slot | None:
        for slot in self.slots:
            if slot.id == slot_id:
                return slot
        return None

    def class_slots(self) -> list[Slot]:
        return [s for s in self.slots if s.kind == SlotKind.CLASS]

    def slots_on(self, day: date) -> list[Slot]:
        """Class slots on a date."""
        return [s for s in self.slots if s.kind == SlotKind.CLASS and s.date == day]

    def slots_for(self, member_id: str) -> list[Slot]:
        """Class slots occupied by a member."""
        return [s for s in self.slots if s.kind == SlotKind.CLASS and s.member_id == member_id]

    def get_request(self, request_id: str) -> ExchangeRequest | None:
        for request in self.requests:
            if request.id == request_id:
                return request
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "owner_id": self.owner_id,
            "members": [m.to_dict() for m in self.members],
            "slots": [s.to_dict() for s in self.slots],
            "requests": [r.to_dict() for r in self.requests],
            "settings": self.settings.to_dict(),
            "travel_mode": self.travel_mode.value,
            "confirmed_travel_mode": (
                self.confirmed_travel_mode.value if self.confirmed_travel_mode else None
            ),
            "auto_confirm_at": _iso(self.auto_confirm_at),
            "auto_confirm_duration_minutes": self.auto_confirm_duration_minutes,
            "confirmed_at": _iso(self.confirmed_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Room":
        confirmed_mode = data.get("confirmed_travel_mode")
        return cls(
            id=str(_require(data, "id", "room")),
            owner_id=str(_require(data, "owner_id", "room")),
            name=data.get("name", ""),
            members=[RoomMember.from_dict(m) for m in data.get("members", [])],
            slots=[Slot.from_dict(s) for s in data.get("slots", [])],
            requests=[ExchangeRequest.from_dict(r) for r in data.get("requests", [])],
            settings=RoomSettings.from_dict(data.get("settings", {})),
            travel_mode=TravelMode(data.get("travel_mode", TravelMode.NONE.value)),
            confirmed_travel_mode=TravelMode(confirmed_mode) if confirmed_mode else None,
            auto_confirm_at=parse_datetime(data.get("auto_confirm_at"), "auto_confirm_at"),
            auto_confirm_duration_minutes=data.get("auto_confirm_duration_minutes"),
            confirmed_at=parse_datetime(data.get("confirmed_at"), "confirmed_at"),
            version=data.get("version", 0),
        )
