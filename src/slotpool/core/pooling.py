"""Combine several users' filtered slot sets under a scheduling policy."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from slotpool.config import ConfigurationError
from slotpool.models import SchedulingPolicy, Slot, UserSlots

logger = logging.getLogger(__name__)


def _sort_slots(slots: list[Slot]) -> list[Slot]:
    # sorted() is stable, so equal timestamps keep their encounter order.
    return sorted(slots, key=lambda slot: slot.time)


def _pool_collective(per_user: Sequence[UserSlots]) -> list[Slot]:
    attendees = tuple(user.user_id for user in per_user)
    running = list(per_user[0].times)
    for user in per_user[1:]:
        offered = set(user.times)
        running = [time for time in running if time in offered]
    return [Slot(time=time, attendees=attendees) for time in running]


def _pool_round_robin(per_user: Sequence[UserSlots]) -> list[Slot]:
    first = per_user[0]
    running: list[tuple[datetime, list[str]]] = [(time, [first.user_id]) for time in first.times]
    index: dict[datetime, int] = {}
    for position, (time, _) in enumerate(running):
        index.setdefault(time, position)

    for user in per_user[1:]:
        for time in user.times:
            match = index.get(time)
            if match is not None:
                running[match][1].append(user.user_id)
            else:
                index[time] = len(running)
                running.append((time, [user.user_id]))

    return [Slot(time=time, attendees=tuple(users)) for time, users in running]


def pool_slots(
    per_user: Sequence[UserSlots],
    policy: SchedulingPolicy | str | None,
) -> list[Slot]:
    """Merge per-user filtered start times into one chronologically sorted list.

    With a single participant the policy is not consulted: that user's times
    are sorted and each slot names the user as sole attendee.  With two or
    more participants, ``collective`` keeps times every user offers and
    ``round_robin`` keeps times any user offers, accumulating who offers each.

    Raises
    ------
    ConfigurationError
        When two or more participants are pooled under a policy that cannot
        combine them (``single``, missing, or an unrecognised wire value).
    """
    if not per_user:
        return []

    if len(per_user) == 1:
        only = per_user[0]
        return _sort_slots([Slot(time=time, attendees=(only.user_id,)) for time in only.times])

    if policy is None:
        raise ConfigurationError(
            f"No pooling method found for scheduling policy: None ({len(per_user)} participants)"
        )
    resolved = SchedulingPolicy.parse(policy)

    match resolved:
        case SchedulingPolicy.collective:
            pooled = _pool_collective(per_user)
        case SchedulingPolicy.round_robin:
            pooled = _pool_round_robin(per_user)
        case SchedulingPolicy.single:
            raise ConfigurationError(
                f"No pooling method found for scheduling policy: {resolved.value!r} "
                f"({len(per_user)} participants)"
            )

    logger.debug(
        "Pooled slots (policy=%s, participants=%d, slots=%d)",
        resolved.value,
        len(per_user),
        len(pooled),
    )
    return _sort_slots(pooled)
