"""Time slot generation.

Work-hour rules are expanded into 30-minute slots per user and date, then
calendar events (one-off or recurring) knock out every slot they overlap.
Only the slots that survive are returned.
"""

from __future__ import annotations

import calendar
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from .exceptions import InvalidConfigurationError
from .models import (
    SCHEDULE_TZ,
    SLOT_MINUTES,
    SLOTS_PER_DAY,
    CalendarEvent,
    RecurrenceKind,
    TimeSlot,
    WorkHourRule,
    slot_start,
)

logger = logging.getLogger(__name__)

SlotMap = dict[int, list[TimeSlot]]


@dataclass(frozen=True)
class SlotGeneratorConfig:
    night_start_hour: int = 22
    night_end_hour: int = 7
    night_preference: float = 0.05
    lunch_hour: int = 12
    lunch_preference: float = 0.8
    evening_hour: int = 18
    evening_preference: float = 0.9
    weekend_preference_cap: float = 0.3


def slot_preference(
    start: datetime, is_weekend: bool, config: SlotGeneratorConfig | None = None
) -> float:
    """Desirability of a slot by its hour of day, in [0, 1]."""
    if config is None:
        config = SlotGeneratorConfig()

    hour = start.hour
    if hour >= config.night_start_hour or hour < config.night_end_hour:
        return config.night_preference

    preference = 1.0
    if hour == config.lunch_hour:
        preference = config.lunch_preference
    elif hour == config.evening_hour:
        preference = config.evening_preference

    if is_weekend:
        return min(preference, config.weekend_preference_cap)
    return preference


def _add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last_day))


# n-th occurrence date of a recurring event, counted from its first date.
# Month arithmetic clamps to the end of shorter months (Jan 31 -> Feb 28).
OCCURRENCE_STEPS: dict[RecurrenceKind, Callable[[date, int], date]] = {
    RecurrenceKind.DAILY: lambda first, n: first + timedelta(days=n),
    RecurrenceKind.WEEKLY: lambda first, n: first + timedelta(weeks=n),
    RecurrenceKind.MONTHLY: lambda first, n: _add_months(first, n),
    RecurrenceKind.YEARLY: lambda first, n: _add_months(first, 12 * n),
}


def expand_occurrences(
    event: CalendarEvent, range_start: date, range_end: date
) -> list[date]:
    """Dates on which ``event`` occurs inside ``[range_start, range_end]``.

    Occurrences start at the event's own date and stop at its recurrence end
    date, or at ``range_end`` when the recurrence is open-ended.
    """
    kind = event.recurrence_kind
    first = event.start.date()
    if kind is RecurrenceKind.NONE:
        return [first] if range_start <= first <= range_end else []

    step = OCCURRENCE_STEPS[kind]
    last = event.recurrence_end.date() if event.recurrence_end else range_end
    window_start = max(range_start, first)
    window_end = min(range_end, last)
    if window_end < window_start:
        return []

    occurrences = []
    n = 0
    while True:
        occurrence = step(first, n)
        if occurrence > window_end:
            break
        if occurrence >= window_start:
            occurrences.append(occurrence)
        n += 1
    return occurrences


def _date_range(start: date, end: date) -> Iterable[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


class SlotGenerator:
    """Builds each user's available slots for a date range."""

    def __init__(self, config: SlotGeneratorConfig | None = None):
        self.config = config or SlotGeneratorConfig()

    def generate(
        self,
        work_hours: Sequence[WorkHourRule],
        calendar_events: Sequence[CalendarEvent],
        range_start: date,
        range_end: date,
        member_ids: Sequence[int] | None = None,
    ) -> SlotMap:
        logger.info(f"Generating time slots: range={range_start} ~ {range_end}")

        user_slots = self._slots_from_work_hours(
            work_hours, range_start, range_end, member_ids or []
        )
        logger.info(f"Work-hour slots generated for {len(user_slots)} users")

        self._block_events(user_slots, calendar_events, range_start, range_end)

        available: SlotMap = {}
        for user_id, slots_by_key in user_slots.items():
            available[user_id] = sorted(
                (slot for slot in slots_by_key.values() if slot.available),
                key=lambda slot: (slot.day, slot.index),
            )

        total = sum(len(slots) for slots in available.values())
        logger.info(f"Available slots: {total}")
        return available

    def _slots_from_work_hours(
        self,
        work_hours: Sequence[WorkHourRule],
        range_start: date,
        range_end: date,
        member_ids: Sequence[int],
    ) -> dict[int, dict[tuple[date, int], TimeSlot]]:
        valid_rules = []
        for rule in work_hours:
            try:
                rule.validate()
            except InvalidConfigurationError as e:
                logger.warning(f"Skipping work-hour rule {rule}: {e.message}")
                continue
            valid_rules.append(rule)

        user_slots: dict[int, dict[tuple[date, int], TimeSlot]] = {}
        for day in _date_range(range_start, range_end):
            day_of_week = day.isoweekday()
            is_weekend = day_of_week >= 6
            for rule in valid_rules:
                if rule.day_of_week != day_of_week:
                    continue

                owners = [rule.user_id] if rule.user_id is not None else member_ids
                first_index = rule.start_minute // SLOT_MINUTES
                end_index = min(rule.end_minute // SLOT_MINUTES, SLOTS_PER_DAY)
                for user_id in owners:
                    slots = user_slots.setdefault(user_id, {})
                    for index in range(first_index, end_index):
                        if (day, index) in slots:
                            continue
                        preference = slot_preference(
                            slot_start(day, index), is_weekend, self.config
                        )
                        slots[day, index] = TimeSlot.for_index(
                            day, index, user_id, preference
                        )
        return user_slots

    def _block_events(
        self,
        user_slots: dict[int, dict[tuple[date, int], TimeSlot]],
        calendar_events: Sequence[CalendarEvent],
        range_start: date,
        range_end: date,
    ) -> None:
        for event in calendar_events:
            # Occurrences starting before the range can still run into its first day.
            lookback = timedelta(days=max((event.end - event.start).days, 0) + 1)
            try:
                occurrences = expand_occurrences(event, range_start - lookback, range_end)
            except InvalidConfigurationError as e:
                logger.warning(f"Skipping calendar event {event.id}: {e.message}")
                continue

            if event.recurrence_kind is RecurrenceKind.NONE:
                intervals = [(event.start, event.end)]
            else:
                length = event.end - event.start
                intervals = []
                for occurrence in occurrences:
                    offset = timedelta(days=(occurrence - event.start.date()).days)
                    intervals.append((event.start + offset, event.start + offset + length))

            for user_id in event.affected_user_ids():
                slots = user_slots.get(user_id)
                if not slots:
                    continue
                for blocked_start, blocked_end in intervals:
                    self._block_interval(slots, blocked_start, blocked_end, event)

    @staticmethod
    def _block_interval(
        slots: dict[tuple[date, int], TimeSlot],
        blocked_start: datetime,
        blocked_end: datetime,
        event: CalendarEvent,
    ) -> None:
        blocked_start = blocked_start.astimezone(SCHEDULE_TZ)
        blocked_end = blocked_end.astimezone(SCHEDULE_TZ)
        if blocked_end <= blocked_start:
            return
        last_day = (blocked_end - timedelta(microseconds=1)).date()
        for day in _date_range(blocked_start.date(), last_day):
            for index in range(SLOTS_PER_DAY):
                slot = slots.get((day, index))
                if slot is None or not slot.available:
                    continue
                if slot.start < blocked_end and slot.end > blocked_start:
                    slot.available = False
                    logger.debug(
                        f"Slot blocked: user={slot.user_id}, date={day}, "
                        f"index={index}, event={event.title}"
                    )


def generate_available_slots(
    work_hours: Sequence[WorkHourRule],
    calendar_events: Sequence[CalendarEvent],
    range_start: date,
    range_end: date,
    member_ids: Sequence[int] | None = None,
    *,
    config: SlotGeneratorConfig | None = None,
) -> SlotMap:
    return SlotGenerator(config).generate(
        work_hours, calendar_events, range_start, range_end, member_ids
    )
