"""Shared test fixtures for the slotpool test suite."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime

import pytest

from slotpool.models import EventTypeConfig, TimeRange

QUERY_DAY = date(2024, 3, 5)  # a Tuesday


def at(hhmm: str, day: date = QUERY_DAY) -> datetime:
    """Return an aware UTC datetime for ``HH:MM`` on *day*."""
    hour, minute = (int(part) for part in hhmm.split(":"))
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=UTC)


def busy(start: str, end: str) -> TimeRange:
    return TimeRange(start=at(start), end=at(end))


@pytest.fixture
def query_day() -> date:
    return QUERY_DAY


@pytest.fixture
def make_event_type() -> Callable[..., EventTypeConfig]:
    """Factory for EventTypeConfig with small, readable defaults."""

    def _make(**overrides) -> EventTypeConfig:
        values = {
            "id": 7,
            "length": 30,
            "users": ["alice"],
        }
        values.update(overrides)
        return EventTypeConfig.model_validate(values)

    return _make
