"""Default candidate slot source: evenly spaced start times inside working hours."""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Protocol

from slotpool.models import MINUTES_PER_DAY, WorkingHours


class CandidateSource(Protocol):
    """Produces one user's ordered candidate start times for a day."""

    def __call__(
        self,
        *,
        day: date,
        tz: tzinfo,
        frequency: timedelta,
        event_length: timedelta,
        minimum_booking_notice: timedelta,
        working_hours: Sequence[WorkingHours],
        now: datetime,
    ) -> list[datetime]: ...


def wire_weekday(day: date) -> int:
    """Weekday in the wire convention (0 = Sunday ... 6 = Saturday)."""
    return (day.weekday() + 1) % 7


def _minutes(value: timedelta) -> int:
    return int(value.total_seconds() // 60)


def _first_offset(day: date, earliest: datetime, frequency_minutes: int) -> int:
    """Minute-of-day of the first candidate, or ``MINUTES_PER_DAY`` for none."""
    earliest_day = earliest.date()
    if day > earliest_day:
        return 0
    if day < earliest_day:
        return MINUTES_PER_DAY
    minute_of_day = earliest.hour * 60 + earliest.minute
    if earliest.second or earliest.microsecond:
        minute_of_day += 1
    return math.ceil(minute_of_day / frequency_minutes) * frequency_minutes


def _fits_working_hours(
    start_minute: int,
    length_minutes: int,
    windows: Sequence[WorkingHours],
) -> bool:
    end_minute = start_minute + length_minutes
    return any(
        window.start_time <= start_minute and end_minute <= window.end_time for window in windows
    )


def generate_candidates(
    *,
    day: date,
    tz: tzinfo,
    frequency: timedelta,
    event_length: timedelta,
    minimum_booking_notice: timedelta,
    working_hours: Sequence[WorkingHours],
    now: datetime,
) -> list[datetime]:
    """Generate candidate starts for *day* every *frequency* minutes.

    Starts are laid on a grid anchored at local midnight.  Nothing earlier
    than ``now + minimum_booking_notice`` is offered, and every candidate's
    full event span must sit inside one of the working-hour windows that
    apply to *day*'s weekday.
    """
    frequency_minutes = _minutes(frequency)
    if frequency_minutes <= 0:
        raise ValueError("frequency must be at least one minute")
    length_minutes = _minutes(event_length)

    weekday = wire_weekday(day)
    windows = [window for window in working_hours if weekday in window.days]
    if not windows:
        return []

    earliest = (now + minimum_booking_notice).astimezone(tz)
    midnight = datetime.combine(day, time.min, tzinfo=tz)

    candidates: list[datetime] = []
    first_offset = _first_offset(day, earliest, frequency_minutes)
    for offset in range(first_offset, MINUTES_PER_DAY, frequency_minutes):
        if _fits_working_hours(offset, length_minutes, windows):
            candidates.append(midnight + timedelta(minutes=offset))
    return candidates
