"""Tests for time slot generation."""

from datetime import date, datetime, timedelta, timezone

import pytest

from team_scheduler.models import CalendarEvent, RecurrenceKind, WorkHourRule
from team_scheduler.slots import (
    SlotGenerator,
    expand_occurrences,
    generate_available_slots,
    slot_preference,
)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def rule(day_of_week, start_minute, end_minute, user_id=1) -> WorkHourRule:
    return WorkHourRule(
        team_id=1,
        day_of_week=day_of_week,
        start_minute=start_minute,
        end_minute=end_minute,
        user_id=user_id,
    )


def event(start, end, **kwargs) -> CalendarEvent:
    return CalendarEvent(id=1, team_id=1, title="Event", start=start, end=end, **kwargs)


def indices(slots, day):
    return [slot.index for slot in slots if slot.day == day]


class TestWorkHourExpansion:
    """Work-hour rules become 30-minute slots."""

    def test_monday_window(self, monday, monday_rule):
        slots = generate_available_slots([monday_rule], [], monday, monday + timedelta(days=6))
        assert list(slots) == [1]
        assert indices(slots[1], monday) == list(range(18, 36))
        assert all(slot.day == monday for slot in slots[1])

    def test_slot_length_and_unique_indices(self, monday):
        rules = [rule(dow, 0, 1440) for dow in range(1, 8)]
        slots = generate_available_slots(rules, [], monday, monday + timedelta(days=6))
        for slot in slots[1]:
            assert slot.end == slot.start + timedelta(minutes=30)
        for offset in range(7):
            assert indices(slots[1], monday + timedelta(days=offset)) == list(range(48))

    def test_team_rule_applies_to_members(self, monday):
        team_rule = rule(1, 540, 600, user_id=None)
        slots = generate_available_slots([team_rule], [], monday, monday, member_ids=[4, 5])
        assert sorted(slots) == [4, 5]
        assert indices(slots[4], monday) == [18, 19]

    def test_team_rule_without_members_produces_nothing(self, monday):
        slots = generate_available_slots([rule(1, 540, 600, user_id=None)], [], monday, monday)
        assert slots == {}

    def test_overlapping_rules_do_not_duplicate(self, monday):
        slots = generate_available_slots(
            [rule(1, 540, 720), rule(1, 660, 780)], [], monday, monday
        )
        assert indices(slots[1], monday) == list(range(18, 26))

    def test_invalid_rules_are_skipped(self, monday):
        rules = [rule(8, 540, 600), rule(1, 700, 600), rule(1, 540, 600)]
        slots = generate_available_slots(rules, [], monday, monday)
        assert indices(slots[1], monday) == [18, 19]

    def test_generation_is_idempotent(self, monday, monday_rule):
        events = [event(utc(2024, 1, 8, 10), utc(2024, 1, 8, 11), owner_id=1)]
        generator = SlotGenerator()
        first = generator.generate([monday_rule], events, monday, monday + timedelta(days=6))
        second = generator.generate([monday_rule], events, monday, monday + timedelta(days=6))
        assert first == second


class TestSlotPreference:
    @pytest.mark.parametrize(
        "hour, expected",
        [(0, 0.05), (6, 0.05), (7, 1.0), (10, 1.0), (12, 0.8), (18, 0.9), (21, 1.0), (22, 0.05)],
    )
    def test_weekday_hours(self, hour, expected):
        assert slot_preference(utc(2024, 1, 8, hour), is_weekend=False) == expected

    @pytest.mark.parametrize("hour, expected", [(10, 0.3), (12, 0.3), (23, 0.05)])
    def test_weekend_cap(self, hour, expected):
        assert slot_preference(utc(2024, 1, 13, hour), is_weekend=True) == expected

    def test_generated_slots_carry_preference(self):
        saturday = date(2024, 1, 13)
        slots = generate_available_slots([rule(6, 600, 660)], [], saturday, saturday)
        assert [slot.preference for slot in slots[1]] == [0.3, 0.3]


class TestEventBlocking:
    """Calendar events knock out overlapping slots."""

    def test_one_off_event_blocks_overlap(self, monday, monday_rule):
        events = [event(utc(2024, 1, 8, 10), utc(2024, 1, 8, 11), owner_id=1)]
        slots = generate_available_slots([monday_rule], events, monday, monday)
        remaining = indices(slots[1], monday)
        assert 20 not in remaining and 21 not in remaining
        assert len(remaining) == 16

    def test_partial_overlap_blocks_both_slots(self, monday, monday_rule):
        events = [event(utc(2024, 1, 8, 10, 15), utc(2024, 1, 8, 10, 45), owner_id=1)]
        slots = generate_available_slots([monday_rule], events, monday, monday)
        assert 20 not in indices(slots[1], monday)
        assert 21 not in indices(slots[1], monday)
        assert 22 in indices(slots[1], monday)

    def test_attendees_are_blocked_owner_is_not(self, monday):
        rules = [rule(1, 540, 660, user_id=1), rule(1, 540, 660, user_id=2), rule(1, 540, 660, user_id=3)]
        events = [event(utc(2024, 1, 8, 9), utc(2024, 1, 8, 10), owner_id=3, attendees="1,2")]
        slots = generate_available_slots(rules, events, monday, monday)
        assert indices(slots[1], monday) == [20, 21]
        assert indices(slots[2], monday) == [20, 21]
        assert indices(slots[3], monday) == [18, 19, 20, 21]

    def test_event_spanning_midnight(self, monday):
        rules = [rule(1, 0, 1440), rule(2, 0, 1440)]
        events = [event(utc(2024, 1, 8, 23), utc(2024, 1, 9, 1), owner_id=1)]
        slots = generate_available_slots(rules, events, monday, monday + timedelta(days=1))
        assert indices(slots[1], monday)[-1] == 45
        assert indices(slots[1], monday + timedelta(days=1))[0] == 2

    def test_weekly_event_blocks_each_monday(self, monday, monday_rule):
        weekly = event(
            utc(2024, 1, 8, 10), utc(2024, 1, 8, 11), owner_id=1, recurrence=RecurrenceKind.WEEKLY
        )
        range_end = date(2024, 2, 4)
        slots = generate_available_slots([monday_rule], [weekly], monday, range_end)
        mondays = [monday + timedelta(weeks=n) for n in range(4)]
        expected = [i for i in range(18, 36) if i not in (20, 21)]
        for day in mondays:
            assert indices(slots[1], day) == expected
        assert len(slots[1]) == 4 * 16

    def test_recurrence_end_stops_blocking(self, monday, monday_rule):
        weekly = event(
            utc(2024, 1, 8, 10),
            utc(2024, 1, 8, 11),
            owner_id=1,
            recurrence="weekly",
            recurrence_end=utc(2024, 1, 16),
        )
        slots = generate_available_slots([monday_rule], [weekly], monday, date(2024, 1, 28))
        assert 20 not in indices(slots[1], date(2024, 1, 15))
        assert 20 in indices(slots[1], date(2024, 1, 22))

    def test_recurring_event_started_before_range(self, monday, monday_rule):
        weekly = event(utc(2024, 1, 1, 10), utc(2024, 1, 1, 11), owner_id=1, recurrence="WEEKLY")
        slots = generate_available_slots([monday_rule], [weekly], monday, monday)
        assert 20 not in indices(slots[1], monday)

    def test_overnight_occurrence_from_day_before_range(self):
        tuesday = date(2024, 1, 9)
        daily = event(utc(2024, 1, 1, 23), utc(2024, 1, 2, 1), owner_id=1, recurrence="daily")
        slots = generate_available_slots([rule(2, 0, 1440)], [daily], tuesday, tuesday)
        remaining = indices(slots[1], tuesday)
        # Monday's occurrence covers 00:00-01:00, Tuesday's covers 23:00-24:00.
        assert remaining == list(range(2, 46))

    def test_unknown_recurrence_is_skipped(self, monday, monday_rule):
        odd = event(utc(2024, 1, 8, 10), utc(2024, 1, 8, 11), owner_id=1, recurrence="fortnightly")
        slots = generate_available_slots([monday_rule], [odd], monday, monday)
        assert indices(slots[1], monday) == list(range(18, 36))

    def test_event_for_unknown_user_is_ignored(self, monday, monday_rule):
        other = event(utc(2024, 1, 8, 10), utc(2024, 1, 8, 11), owner_id=99)
        slots = generate_available_slots([monday_rule], [other], monday, monday)
        assert len(slots[1]) == 18


class TestExpandOccurrences:
    def test_one_off_inside_and_outside_range(self):
        single = event(utc(2024, 1, 8, 10), utc(2024, 1, 8, 11))
        assert expand_occurrences(single, date(2024, 1, 1), date(2024, 1, 31)) == [date(2024, 1, 8)]
        assert expand_occurrences(single, date(2024, 2, 1), date(2024, 2, 28)) == []

    def test_daily(self):
        daily = event(utc(2024, 1, 8, 10), utc(2024, 1, 8, 11), recurrence="daily")
        assert expand_occurrences(daily, date(2024, 1, 10), date(2024, 1, 12)) == [
            date(2024, 1, 10),
            date(2024, 1, 11),
            date(2024, 1, 12),
        ]

    def test_monthly_clamps_to_month_end(self):
        monthly = event(utc(2024, 1, 31, 10), utc(2024, 1, 31, 11), recurrence="monthly")
        assert expand_occurrences(monthly, date(2024, 1, 1), date(2024, 4, 30)) == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
            date(2024, 4, 30),
        ]

    def test_yearly(self):
        yearly = event(utc(2020, 2, 29, 10), utc(2020, 2, 29, 11), recurrence="yearly")
        assert expand_occurrences(yearly, date(2023, 1, 1), date(2024, 12, 31)) == [
            date(2023, 2, 28),
            date(2024, 2, 29),
        ]

    def test_recurrence_ended_before_range(self):
        weekly = event(
            utc(2024, 1, 1, 10),
            utc(2024, 1, 1, 11),
            recurrence="weekly",
            recurrence_end=utc(2024, 1, 5),
        )
        assert expand_occurrences(weekly, date(2024, 1, 8), date(2024, 1, 31)) == []
