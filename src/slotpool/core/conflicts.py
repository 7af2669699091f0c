"""Busy-interval conflict filtering for candidate event start times.

A candidate survives when its occupied span, padded by the event's
before/after buffers, clears every busy interval the user reported and does
not run past the day's finalization boundary.  Busy intervals are scanned in
their given order and the first match disqualifies the candidate.

Note on buffer clearance: the padded candidate boundaries are compared
against a busy window that is itself padded by both buffers
(``start - before``, ``end + after``), so buffers effectively compound.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Literal

from slotpool.models import BufferSpec, TimeRange

logger = logging.getLogger(__name__)

Inclusivity = Literal["()", "[)", "(]", "[]"]


def _is_between(value: datetime, a: datetime, b: datetime, inclusivity: Inclusivity = "()") -> bool:
    """Return True when *value* lies between *a* and *b*, in either bound order."""
    open_left = inclusivity[0] == "("
    open_right = inclusivity[1] == ")"
    after_a = value > a if open_left else value >= a
    before_a = value < a if open_left else value <= a
    before_b = value < b if open_right else value <= b
    after_b = value > b if open_right else value >= b
    return (after_a and before_b) or (before_a and after_b)


def _floor_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def conflicts_with(
    start: datetime,
    busy_time: TimeRange,
    *,
    event_length: timedelta,
    buffers: BufferSpec,
) -> bool:
    """Return True when a slot starting at *start* collides with *busy_time*.

    Checks run in priority order: start inside the busy interval, end inside
    it, busy interval starting inside the slot, then before/after buffer
    clearance against the padded busy window.
    """
    slot_end = start + event_length
    slot_start_with_before = start - buffers.before
    slot_end_with_after = slot_end + buffers.after
    padded_start = busy_time.start - buffers.before
    padded_end = busy_time.end + buffers.after

    if _is_between(start, busy_time.start, busy_time.end, "[)"):
        return True
    if _is_between(slot_end, busy_time.start, busy_time.end):
        return True
    if _is_between(busy_time.start, start, slot_end):
        return True
    if _is_between(slot_start_with_before, padded_start, padded_end):
        return True
    return _is_between(slot_end_with_after, padded_start, padded_end)


def filter_candidates(
    candidates: Sequence[datetime],
    busy: Sequence[TimeRange],
    *,
    event_length: timedelta,
    buffers: BufferSpec,
) -> list[datetime]:
    """Drop every candidate that conflicts with *busy* or overruns the day.

    The finalization boundary is the end of the last candidate's own event
    span; a candidate whose buffered end passes it is discarded before any
    busy interval is inspected.  The result preserves input order and the
    input sequence is left untouched.
    """
    if not candidates:
        return []

    finalization_time = _floor_minute(candidates[-1] + event_length)

    kept: list[datetime] = []
    for start in candidates:
        slot_end_with_after = start + event_length + buffers.after
        if _floor_minute(slot_end_with_after) > finalization_time:
            continue
        if any(
            conflicts_with(start, busy_time, event_length=event_length, buffers=buffers)
            for busy_time in busy
        ):
            continue
        kept.append(start)

    logger.debug(
        "Filtered candidates (kept=%d, dropped=%d, busy=%d)",
        len(kept),
        len(candidates) - len(kept),
        len(busy),
    )
    return kept
