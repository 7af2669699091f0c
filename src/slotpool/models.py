"""Shared data shapes for availability reconciliation and pooling.

Wire-facing records (``TimeRange``, ``WorkingHours``, ``AvailabilityRecord``)
are pydantic models so the HTTP client can validate payloads directly.
Engine-internal values (``BufferSpec``, ``UserSlots``, ``Slot``) are frozen
dataclasses: they are built once per query and never mutated.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from slotpool.config import ConfigurationError

MINUTES_PER_DAY = 24 * 60

# Wire spellings accepted for each policy, normalised to lower-case with
# separators stripped.
_POLICY_ALIASES = {
    "single": "single",
    "collective": "collective",
    "roundrobin": "round_robin",
}


class SchedulingPolicy(StrEnum):
    """How several users' slot sets are combined into one offerable set."""

    single = "single"
    collective = "collective"
    round_robin = "round_robin"

    @classmethod
    def parse(cls, value: SchedulingPolicy | str | None) -> SchedulingPolicy:
        """Normalise a wire-level policy name.

        Accepts enum members and common spellings (``ROUND_ROBIN``,
        ``round-robin``, ``roundRobin``). Anything else raises
        ``ConfigurationError``.
        """
        if isinstance(value, SchedulingPolicy):
            return value
        if not isinstance(value, str):
            raise ConfigurationError(f"Unsupported scheduling policy: {value!r}")
        key = value.strip().lower().replace("_", "").replace("-", "")
        normalized = _POLICY_ALIASES.get(key)
        if normalized is None:
            supported = ", ".join(member.value for member in cls)
            raise ConfigurationError(
                f"Unsupported scheduling policy: {value!r} (expected one of: {supported})"
            )
        return cls(normalized)


def _ensure_aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class TimeRange(BaseModel):
    """A busy interval ``[start, end)`` reported by a user's calendar."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _normalize_timezone(cls, value: datetime) -> datetime:
        return _ensure_aware(value)


class WorkingHours(BaseModel):
    """Weekly recurring availability window.

    ``days`` follows the wire convention (0 = Sunday ... 6 = Saturday);
    ``start_time``/``end_time`` are minutes after local midnight.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    days: list[int] = Field(default_factory=list)
    start_time: int = Field(alias="startTime", ge=0, le=MINUTES_PER_DAY)
    end_time: int = Field(alias="endTime", ge=0, le=MINUTES_PER_DAY)

    @field_validator("days")
    @classmethod
    def _validate_days(cls, value: list[int]) -> list[int]:
        invalid = [day for day in value if day < 0 or day > 6]
        if invalid:
            raise ValueError(f"days must be between 0 (Sunday) and 6 (Saturday): {invalid}")
        return value

    @model_validator(mode="after")
    def _validate_window(self) -> WorkingHours:
        if self.end_time < self.start_time:
            raise ValueError("endTime must not be before startTime")
        return self


class AvailabilityRecord(BaseModel):
    """Per-user availability payload returned by the availability endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    busy: list[TimeRange] = Field(default_factory=list)
    time_zone: str = Field(default="UTC", alias="timeZone")
    working_hours: list[WorkingHours] = Field(default_factory=list, alias="workingHours")


@dataclass(frozen=True)
class BufferSpec:
    """Idle padding required before and after an event's occupied span."""

    before: timedelta
    after: timedelta


@dataclass(frozen=True)
class UserSlots:
    """One user's filtered candidate start times, kept paired with the user."""

    user_id: str
    times: Sequence[datetime]


@dataclass(frozen=True)
class Slot:
    """A pooled, offerable start time and the users able to attend it."""

    time: datetime
    attendees: tuple[str, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return {"time": self.time.isoformat(), "attendees": list(self.attendees)}


class EventTypeConfig(BaseModel):
    """Per-event-type booking constraints, durations expressed in minutes."""

    model_config = ConfigDict(extra="forbid")

    id: int = Field(ge=0)
    length: int = Field(gt=0)
    slot_interval: int | None = Field(default=None, gt=0)
    minimum_booking_notice: int = Field(default=0, ge=0)
    before_buffer: int = Field(default=0, ge=0)
    after_buffer: int = Field(default=0, ge=0)
    scheduling_type: SchedulingPolicy | None = None
    users: list[str] = Field(min_length=1)

    @field_validator("scheduling_type", mode="before")
    @classmethod
    def _normalize_scheduling_type(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str) and not value.strip():
            return None
        try:
            return SchedulingPolicy.parse(value)
        except ConfigurationError as exc:
            raise ValueError(str(exc)) from exc

    @field_validator("users")
    @classmethod
    def _normalize_users(cls, value: list[str]) -> list[str]:
        normalized = [user.strip() for user in value]
        if any(not user for user in normalized):
            raise ValueError("users must be non-empty strings")
        return normalized

    @property
    def frequency(self) -> timedelta:
        """Candidate granularity; falls back to the event length."""
        return timedelta(minutes=self.slot_interval or self.length)

    @property
    def event_length(self) -> timedelta:
        return timedelta(minutes=self.length)

    @property
    def minimum_notice(self) -> timedelta:
        return timedelta(minutes=self.minimum_booking_notice)

    @property
    def buffers(self) -> BufferSpec:
        return BufferSpec(
            before=timedelta(minutes=self.before_buffer),
            after=timedelta(minutes=self.after_buffer),
        )
