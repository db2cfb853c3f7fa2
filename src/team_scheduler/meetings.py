"""Meeting time suggestions for a group of participants."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from .config import Settings, get_settings
from .models import SLOT_MINUTES, SLOTS_PER_DAY, CalendarEvent, TimeSlot, WorkHourRule
from .pipeline import default_work_hours
from .slots import SlotGenerator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MeetingSuggestion:
    start: datetime
    end: datetime
    preference: float
    available_participants: int
    total_participants: int


def _relevant_rules(
    work_hours: Sequence[WorkHourRule], participant_ids: Sequence[int]
) -> list[WorkHourRule]:
    participants = set(participant_ids)
    return [
        rule
        for rule in work_hours
        if rule.user_id is None or rule.user_id in participants
    ]


def _relevant_events(
    calendar_events: Sequence[CalendarEvent], participant_ids: Sequence[int]
) -> list[CalendarEvent]:
    participants = set(participant_ids)
    return [
        event
        for event in calendar_events
        if participants.intersection(event.affected_user_ids())
    ]


def suggest_meeting_times(
    work_hours: Sequence[WorkHourRule],
    calendar_events: Sequence[CalendarEvent],
    participant_ids: Sequence[int],
    duration_minutes: int,
    start_date: date,
    search_days: int | None = None,
    generator: SlotGenerator | None = None,
    *,
    team_id: int = 0,
    settings: Settings | None = None,
) -> list[MeetingSuggestion]:
    """Times at which every participant is free for ``duration_minutes``.

    A suggestion covers consecutive slots on a single date. Suggestions are
    ordered by mean slot preference (highest first), then by start time.
    """
    settings = settings or get_settings()
    generator = generator or SlotGenerator()
    if search_days is None:
        search_days = settings.meeting_search_days
    participant_ids = list(dict.fromkeys(participant_ids))
    if not participant_ids or search_days < 1:
        return []

    end_date = start_date + timedelta(days=search_days - 1)
    logger.info(
        f"Suggesting meeting times: participants={participant_ids}, "
        f"duration={duration_minutes}min, range={start_date} ~ {end_date}"
    )

    rules = _relevant_rules(work_hours, participant_ids)
    if not rules:
        logger.warning("No work hours for the participants; using the default window")
        rules = default_work_hours(team_id, settings)

    available = generator.generate(
        rules,
        _relevant_events(calendar_events, participant_ids),
        start_date,
        end_date,
        participant_ids,
    )

    required = max(1, math.ceil(duration_minutes / SLOT_MINUTES))
    by_user: list[dict[tuple[date, int], TimeSlot]] = []
    for user_id in participant_ids:
        slots = available.get(user_id)
        if not slots:
            logger.info(f"Participant {user_id} has no available slots")
            return []
        by_user.append({(slot.day, slot.index): slot for slot in slots})

    common = set(by_user[0])
    for slots in by_user[1:]:
        common &= slots.keys()

    suggestions = []
    for day in sorted({day for day, _ in common}):
        for first_index in range(SLOTS_PER_DAY - required + 1):
            keys = [(day, first_index + offset) for offset in range(required)]
            if not all(key in common for key in keys):
                continue
            preference = sum(
                slots[key].preference for slots in by_user for key in keys
            ) / (len(keys) * len(by_user))
            start = by_user[0][keys[0]].start
            suggestions.append(
                MeetingSuggestion(
                    start=start,
                    end=start + timedelta(minutes=required * SLOT_MINUTES),
                    preference=preference,
                    available_participants=len(participant_ids),
                    total_participants=len(participant_ids),
                )
            )

    suggestions.sort(key=lambda s: (-s.preference, s.start))
    logger.info(f"Meeting suggestions found: {len(suggestions)}")
    return suggestions
