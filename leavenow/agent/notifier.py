"""Audio/notification collaborator.

The agent only chooses *what* to announce; rendering it (an MP3 module, a
speaker, a push notification) belongs to the notifier.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from loguru import logger

from leavenow.agent.decision import split_duration
from leavenow.agent.models.enums import AudioMessage, Verdict
from leavenow.agent.models.results import Decision

# Announcements kept by LogNotifier; older ones are dropped.
HISTORY_LIMIT = 50

PHRASES: dict[AudioMessage, str] = {
    AudioMessage.UPDATING: "Hi, your device is being updated, please wait.",
    AudioMessage.READY: "Your device is ready. You might now ask for your next activity.",
    AudioMessage.OPEN_TERMINAL: (
        "Hi, your device has not been authenticated yet. Please open a terminal and follow the steps indicated."
    ),
    AudioMessage.REQUEST_RECEIVED: "Your request has been received, I am now locating your next event.",
    AudioMessage.ESTIMATING: "Location and time found, please wait while I estimate the ideal departure time.",
    AudioMessage.NO_EVENTS: "There are no events scheduled on your calendar for the next three hours.",
    AudioMessage.APP_FAILED: (
        "An error has occurred. Please open a terminal to see what caused the error "
        "and fix it before rebooting your device."
    ),
    AudioMessage.TIME_LEFT: "Based on your current location, you would be on time for your upcoming event by leaving in",
    AudioMessage.LEAVE_NOW: "The results showed that you have to leave now to be on time for your upcoming event.",
    AudioMessage.LATE: "Based on your current location, if you leave now, you would be late for your upcoming event by",
}

_VERDICT_MESSAGES: dict[Verdict, AudioMessage] = {
    Verdict.NO_EVENTS: AudioMessage.NO_EVENTS,
    Verdict.LEAVE_NOW: AudioMessage.LEAVE_NOW,
    Verdict.TIME_LEFT: AudioMessage.TIME_LEFT,
    Verdict.LATE: AudioMessage.LATE,
}


def announcement_for(decision: Decision) -> tuple[AudioMessage, int | None]:
    """Map a decision to its message and, where one is spoken, the duration."""
    message = _VERDICT_MESSAGES[decision.verdict]
    if decision.verdict in (Verdict.TIME_LEFT, Verdict.LATE):
        return message, decision.seconds
    return message, None


def render(message: AudioMessage, duration: int | None = None) -> str:
    text = PHRASES[message]
    if duration is None:
        return text
    hours, minutes = split_duration(duration)
    parts = []
    if hours:
        parts.append(f"{hours} hour{'s' if hours != 1 else ''}")
    if minutes or not hours:
        parts.append(f"{minutes} minute{'s' if minutes != 1 else ''}")
    return f"{text} {' and '.join(parts)}."


@runtime_checkable
class Notifier(Protocol):
    async def notify(self, message: AudioMessage, duration: int | None = None) -> None: ...


@dataclass
class LogNotifier:
    """Renders announcements to the log and remembers them."""

    history: deque[tuple[AudioMessage, int | None]] = field(default_factory=lambda: deque(maxlen=HISTORY_LIMIT))

    async def notify(self, message: AudioMessage, duration: int | None = None) -> None:
        self.history.append((message, duration))
        logger.info("Announce [{}]: {}", message, render(message, duration))

    @property
    def last(self) -> AudioMessage | None:
        return self.history[-1][0] if self.history else None
