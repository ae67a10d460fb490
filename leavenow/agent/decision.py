"""Departure decision: leave now, time left, or late.

Pure functions, no I/O and no clock reads -- the caller passes ``now``.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from leavenow.agent.models.enums import Verdict
from leavenow.agent.models.results import Decision


def decide(
    now: datetime,
    event_start: datetime | None,
    eta_seconds: int,
    epsilon: int = 0,
) -> Decision:
    """Classify the trip to an event starting at *event_start*.

    ``arrival = now + eta``.  Arriving within *epsilon* seconds of the start
    is "leave now"; earlier leaves time, later is late by the difference.
    """
    if event_start is None:
        return Decision(verdict=Verdict.NO_EVENTS)
    if eta_seconds < 0:
        msg = f"eta_seconds must be >= 0, got {eta_seconds}"
        raise ValueError(msg)

    arrival = now + timedelta(seconds=eta_seconds)
    delta = event_start - arrival
    if abs(delta) <= timedelta(seconds=epsilon):
        return Decision(verdict=Verdict.LEAVE_NOW)
    # Whole seconds, never rounded toward being on time.
    if delta > timedelta(0):
        return Decision(verdict=Verdict.TIME_LEFT, seconds=math.floor(delta.total_seconds()))
    return Decision(verdict=Verdict.LATE, seconds=math.ceil(-delta.total_seconds()))


def split_duration(seconds: int) -> tuple[int, int]:
    """Round *seconds* to whole minutes and split into ``(hours, minutes)``.

    Announcements only have recordings for whole hours and minutes.
    """
    minutes = (max(0, seconds) + 30) // 60
    return divmod(minutes, 60)
