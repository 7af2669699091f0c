"""Availability query orchestration.

``SlotsQuery`` drives one fetch, candidates and conflict-filter pipeline per
participating user, pools the per-user results, and exposes a three-state
result (``loading``, ``error``, ``ready``).  Every refresh takes a new
generation token; a refresh only publishes its outcome while its token is
still the latest, so a superseded query can never overwrite a newer one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, tzinfo
from enum import StrEnum
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from slotpool.client import AvailabilityTransportError
from slotpool.config import ConfigurationError
from slotpool.core.candidates import CandidateSource, generate_candidates
from slotpool.core.conflicts import filter_candidates
from slotpool.core.logging import reset_query_context, set_query_context
from slotpool.core.pooling import pool_slots
from slotpool.core.telemetry import get_tracer, record_span_error
from slotpool.models import AvailabilityRecord, EventTypeConfig, Slot, UserSlots

logger = logging.getLogger(__name__)


class SlotsState(StrEnum):
    """Lifecycle of the orchestrator's result container."""

    loading = "loading"
    error = "error"
    ready = "ready"


@dataclass(frozen=True)
class SlotsResult:
    """Immutable snapshot of a query outcome; replaced wholesale on every write."""

    state: SlotsState
    slots: tuple[Slot, ...] = ()
    error: BaseException | None = None
    day: date | None = None

    @property
    def loading(self) -> bool:
        return self.state is SlotsState.loading

    @classmethod
    def pending(cls, day: date) -> SlotsResult:
        return cls(state=SlotsState.loading, day=day)

    @classmethod
    def failed(cls, day: date, error: BaseException) -> SlotsResult:
        return cls(state=SlotsState.error, error=error, day=day)

    @classmethod
    def completed(cls, day: date, slots: list[Slot]) -> SlotsResult:
        return cls(state=SlotsState.ready, slots=tuple(slots), day=day)


class AvailabilityFetcher(Protocol):
    async def fetch_availability(
        self,
        username: str,
        *,
        date_from: datetime,
        date_to: datetime,
        event_type_id: int,
    ) -> AvailabilityRecord: ...


def _coerce_zoneinfo(timezone: str) -> ZoneInfo | tzinfo:
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, falling back to UTC", timezone)
        return UTC


def day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Return the start and end of *day* in *tz*."""
    return (
        datetime.combine(day, time.min, tzinfo=tz),
        datetime.combine(day, time.max, tzinfo=tz),
    )


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SlotsQuery:
    """Computes pooled slots for an event type's participants, one day at a time."""

    def __init__(
        self,
        fetcher: AvailabilityFetcher,
        event_type: EventTypeConfig,
        *,
        timezone: str = "UTC",
        candidate_source: CandidateSource = generate_candidates,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._fetcher = fetcher
        self._event_type = event_type
        self._tz = _coerce_zoneinfo(timezone)
        self._candidate_source = candidate_source
        self._clock = clock
        self._generation = 0
        self._result = SlotsResult(state=SlotsState.ready)
        self._background: set[asyncio.Task[SlotsResult]] = set()

    @property
    def result(self) -> SlotsResult:
        return self._result

    @property
    def generation(self) -> int:
        return self._generation

    def change_date(self, day: date) -> asyncio.Task[SlotsResult]:
        """Start a refresh for *day* without waiting; must run inside an event loop.

        The result container flips to ``loading`` immediately.
        """
        self._generation += 1
        self._result = SlotsResult.pending(day)
        task = asyncio.create_task(self._run(day, self._generation))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def refresh(self, day: date) -> SlotsResult:
        """Recompute slots for *day*, superseding any in-flight refresh.

        Returns this invocation's own outcome.  It is published to
        ``result`` only if no newer refresh started in the meantime.
        """
        self._generation += 1
        self._result = SlotsResult.pending(day)
        return await self._run(day, self._generation)

    def _publish(self, generation: int, result: SlotsResult) -> bool:
        if generation != self._generation:
            return False
        self._result = result
        return True

    async def _run(self, day: date, generation: int) -> SlotsResult:
        token = set_query_context(str(self._event_type.id))
        try:
            result = await self._traced_compute(day)
        finally:
            reset_query_context(token)

        if not self._publish(generation, result):
            logger.info(
                "Discarding superseded availability result (date=%s, generation=%d, current=%d)",
                day.isoformat(),
                generation,
                self._generation,
            )
        return result

    async def _traced_compute(self, day: date) -> SlotsResult:
        """Run one computation inside a span; every exception becomes an error result."""
        event_type = self._event_type
        policy = event_type.scheduling_type

        with get_tracer().start_as_current_span("slotpool.refresh") as span:
            span.set_attribute("slotpool.event_type_id", event_type.id)
            span.set_attribute("slotpool.participants", len(event_type.users))
            span.set_attribute("slotpool.policy", policy.value if policy else "none")
            span.set_attribute("slotpool.date", day.isoformat())
            try:
                slots = await self._compute(day)
            except (AvailabilityTransportError, ConfigurationError) as exc:
                record_span_error(span, exc)
                logger.warning(
                    "Availability query failed (date=%s, error_type=%s): %s",
                    day.isoformat(),
                    type(exc).__name__,
                    exc,
                )
                return SlotsResult.failed(day, exc)
            except Exception as exc:
                record_span_error(span, exc)
                logger.exception(
                    "Availability query crashed (date=%s, error_type=%s)",
                    day.isoformat(),
                    type(exc).__name__,
                )
                return SlotsResult.failed(day, exc)

            logger.info(
                "Availability query ready (date=%s, participants=%d, slots=%d)",
                day.isoformat(),
                len(event_type.users),
                len(slots),
            )
            return SlotsResult.completed(day, slots)

    async def _compute(self, day: date) -> list[Slot]:
        now = self._clock()
        date_from, date_to = day_bounds(day, self._tz)

        tasks = [
            asyncio.create_task(self._user_slots(user, day, now, date_from, date_to))
            for user in self._event_type.users
        ]
        try:
            per_user = await asyncio.gather(*tasks)
        except BaseException:
            # First failure wins; cancel siblings still in flight.
            for task in tasks:
                task.cancel()
            raise

        return pool_slots(per_user, self._event_type.scheduling_type)

    async def _user_slots(
        self,
        user: str,
        day: date,
        now: datetime,
        date_from: datetime,
        date_to: datetime,
    ) -> UserSlots:
        event_type = self._event_type
        record = await self._fetcher.fetch_availability(
            user,
            date_from=date_from,
            date_to=date_to,
            event_type_id=event_type.id,
        )
        candidates = self._candidate_source(
            day=day,
            tz=self._tz,
            frequency=event_type.frequency,
            event_length=event_type.event_length,
            minimum_booking_notice=event_type.minimum_notice,
            working_hours=record.working_hours,
            now=now,
        )
        filtered = filter_candidates(
            candidates,
            record.busy,
            event_length=event_type.event_length,
            buffers=event_type.buffers,
        )
        return UserSlots(user_id=user, times=filtered)
