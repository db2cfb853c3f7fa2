from datetime import date, datetime, timezone

import pytest

from team_scheduler.config import get_settings
from team_scheduler.models import Schedule, WorkHourRule

MONDAY = date(2024, 1, 8)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Each test sees settings built from its own environment"""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def monday() -> date:
    return MONDAY


@pytest.fixture
def now() -> datetime:
    """Sunday midnight before the test week"""
    return datetime(2024, 1, 7, tzinfo=timezone.utc)


@pytest.fixture
def schedule(monday) -> Schedule:
    return Schedule(team_id=1, range_start=monday, range_end=date(2024, 1, 14), id=10)


@pytest.fixture
def monday_rule() -> WorkHourRule:
    """User 1 works Monday 09:00-18:00"""
    return WorkHourRule(team_id=1, day_of_week=1, start_minute=540, end_minute=1080, user_id=1)
