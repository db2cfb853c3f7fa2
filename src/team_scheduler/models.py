"""Scheduling records consumed and produced by the core.

Everything here is a plain in-memory value. Persistence, transport and
identity management belong to the caller; the core only needs the fields
below. All timestamps are timezone-aware and share one fixed offset
(``SCHEDULE_TZ``).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import InvalidConfigurationError

logger = logging.getLogger(__name__)

SCHEDULE_TZ = timezone.utc
SLOT_MINUTES = 30
SLOTS_PER_DAY = 24 * 60 // SLOT_MINUTES
SLOT_DURATION = timedelta(minutes=SLOT_MINUTES)
MINUTES_PER_DAY = 24 * 60


def slot_start(day: date, index: int) -> datetime:
    """Start of slot ``index`` on ``day`` (0 = 00:00, 47 = 23:30)."""
    minutes = index * SLOT_MINUTES
    return datetime.combine(day, time(minutes // 60, minutes % 60), tzinfo=SCHEDULE_TZ)


@dataclass(frozen=True)
class Task:
    id: int
    team_id: int
    title: str
    duration_minutes: int
    assignee_id: int | None = None
    deadline: datetime | None = None
    priority: int = 3  # 1 = highest
    splittable: bool = True
    tags: str = ""

    @property
    def required_slots(self) -> int:
        return max(1, math.ceil(self.duration_minutes / SLOT_MINUTES))


@dataclass(frozen=True)
class WorkHourRule:
    """Recurring weekly availability.

    ``user_id`` of None marks a team-wide default that applies to every
    member the caller supplies.
    """

    team_id: int
    day_of_week: int  # 1 = Monday ... 7 = Sunday
    start_minute: int
    end_minute: int
    user_id: int | None = None

    def validate(self) -> None:
        if not 1 <= self.day_of_week <= 7:
            raise InvalidConfigurationError(
                f"day of week must be 1-7, got {self.day_of_week}", "day_of_week"
            )
        if not 0 <= self.start_minute < self.end_minute <= MINUTES_PER_DAY:
            raise InvalidConfigurationError(
                f"expected 0 <= start < end <= {MINUTES_PER_DAY}, "
                f"got {self.start_minute}-{self.end_minute}",
                "start_minute",
            )


class RecurrenceKind(Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @classmethod
    def parse(cls, value: RecurrenceKind | str | None) -> RecurrenceKind:
        if value is None:
            return cls.NONE
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        if not normalized:
            return cls.NONE
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidConfigurationError(
                f"unknown recurrence kind {value!r}", "recurrence"
            ) from None


@dataclass(frozen=True)
class CalendarEvent:
    id: int
    team_id: int
    title: str
    start: datetime
    end: datetime
    owner_id: int | None = None
    attendees: str | None = None  # comma separated user ids, e.g. "3,5,9"
    fixed: bool = True
    recurrence: RecurrenceKind | str | None = None
    recurrence_end: datetime | None = None

    @property
    def recurrence_kind(self) -> RecurrenceKind:
        return RecurrenceKind.parse(self.recurrence)

    def attendee_ids(self) -> list[int]:
        if not self.attendees or not self.attendees.strip():
            return []
        try:
            return [int(part) for part in self.attendees.split(",") if part.strip()]
        except ValueError:
            raise InvalidConfigurationError(
                f"cannot parse attendee list {self.attendees!r}", "attendees"
            ) from None

    def affected_user_ids(self) -> list[int]:
        """Attendees, or the owner when the event has no attendees."""
        try:
            attendee_ids = self.attendee_ids()
        except InvalidConfigurationError as e:
            logger.warning(f"Event {self.id}: {e.message}; falling back to owner")
            attendee_ids = []
        if attendee_ids:
            return attendee_ids
        return [self.owner_id] if self.owner_id is not None else []


@dataclass
class TimeSlot:
    """A 30-minute unit of one person's time."""

    day: date
    index: int
    start: datetime
    end: datetime
    user_id: int
    available: bool = True
    preference: float = 1.0

    @classmethod
    def for_index(
        cls, day: date, index: int, user_id: int, preference: float = 1.0
    ) -> TimeSlot:
        start = slot_start(day, index)
        return cls(
            day=day,
            index=index,
            start=start,
            end=start + SLOT_DURATION,
            user_id=user_id,
            preference=preference,
        )

    @property
    def key(self) -> tuple[int, date, int]:
        return (self.user_id, self.day, self.index)

    def is_consecutive(self, other: TimeSlot) -> bool:
        # Covers neighbours within a day and 23:30 -> 00:00 across midnight.
        if self.user_id != other.user_id:
            return False
        return self.end == other.start or other.end == self.start


class AssignmentSource(str, Enum):
    TASK = "TASK"
    EVENT = "EVENT"
    MANUAL = "MANUAL"


class AssignmentMeta(BaseModel):
    """Split bookkeeping attached to an assignment.

    Serialized as ``{"slots": 3, "split": false, "userId": 1, "splitIndex": 0}``
    (plus ``totalGroups`` for split tasks) only when the caller persists it.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    slots: int = Field(..., ge=1, description="Number of slots covered")
    split: bool = Field(False, description="Whether the task was split")
    user_id: int = Field(..., alias="userId", description="Owning user")
    split_index: int = Field(0, ge=0, alias="splitIndex")
    total_groups: int | None = Field(None, ge=1, alias="totalGroups")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def from_json(cls, raw: str) -> AssignmentMeta:
        return cls.model_validate_json(raw)


@dataclass
class Assignment:
    schedule_id: int | None
    task_id: int | None
    title: str
    start: datetime
    end: datetime
    source: AssignmentSource = AssignmentSource.TASK
    slot_index: int | None = None
    meta: AssignmentMeta | None = None

    @property
    def is_task(self) -> bool:
        return self.task_id is not None

    @property
    def owner_id(self) -> int | None:
        return self.meta.user_id if self.meta is not None else None

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: Assignment) -> bool:
        return self.start < other.end and self.end > other.start

    def moved_to(
        self, start: datetime, end: datetime, slot_index: int | None
    ) -> Assignment:
        return replace(self, start=start, end=end, slot_index=slot_index)


@dataclass
class Schedule:
    team_id: int
    range_start: date
    range_end: date
    score: int = 0
    created_by: int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(SCHEDULE_TZ))
    id: int | None = None


class UnassignedReason(str, Enum):
    NO_AVAILABLE_SLOTS = "no_available_slots"
    DEADLINE_PASSED = "deadline_passed"
    INSUFFICIENT_TIME = "insufficient_time"


_REASON_MESSAGES = {
    UnassignedReason.NO_AVAILABLE_SLOTS: "No available time slots",
    UnassignedReason.DEADLINE_PASSED: "The deadline has already passed",
    UnassignedReason.INSUFFICIENT_TIME: "Insufficient time before the deadline",
}


@dataclass(frozen=True)
class UnassignedTask:
    task_id: int
    title: str
    reason: UnassignedReason

    @property
    def message(self) -> str:
        return _REASON_MESSAGES[self.reason]


@dataclass
class SchedulingInput:
    """Everything one scheduling run needs, as loaded by the caller."""

    team_id: int
    range_start: date
    range_end: date
    tasks: list[Task] = field(default_factory=list)
    work_hours: list[WorkHourRule] = field(default_factory=list)
    calendar_events: list[CalendarEvent] = field(default_factory=list)
    member_ids: list[int] = field(default_factory=list)
