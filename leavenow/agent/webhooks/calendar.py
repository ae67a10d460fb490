"""Google Calendar API client (read-only).

Looks up the next event starting within the lookahead window.  The relay
bridge calls ``events.list`` ordered by start time with a single result and
flattens it to ``start~location``; a bare ``~`` means no event in range.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from http import HTTPStatus
from typing import TYPE_CHECKING, Protocol

from leavenow.agent.models.results import CalendarEvent
from leavenow.agent.parser import DEFAULT_DELIMITER, DEFAULT_TERMINATOR, FieldReader
from leavenow.agent.timeutil import to_zulu, utcnow
from leavenow.agent.webhooks.base import DEFAULT_TIMEOUT, Clock, WebhookClient

if TYPE_CHECKING:
    from leavenow.agent.relay.base import Relay

NO_EVENT_SENTINEL = DEFAULT_DELIMITER


class AccessTokenSource(Protocol):
    """The one thing the calendar needs from the OAuth2 manager."""

    def current_access_token(self) -> str: ...


class CalendarClient(WebhookClient):
    name = "calendar"
    EVENT = "calendar_event"
    events = (EVENT,)
    error_guidance = {
        HTTPStatus.BAD_REQUEST: "The requested ordering is not available for the particular query.",
        HTTPStatus.UNAUTHORIZED: "Invalid credentials.",
        HTTPStatus.NOT_FOUND: "Invalid calendar id.",
    }

    def __init__(
        self,
        relay: Relay,
        calendar_id: str,
        *,
        lookahead_hours: int = 3,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(relay, timeout=timeout, clock=clock)
        self.calendar_id = calendar_id
        self.lookahead = timedelta(hours=lookahead_hours)
        self.event = CalendarEvent()

    async def publish(self, tokens: AccessTokenSource, now: datetime | None = None) -> None:
        """Ask for the next event starting in ``[now, now + lookahead]``."""
        now = now or utcnow()
        await self._publish(
            self.EVENT,
            {
                "calendar_id": self.calendar_id,
                "access_token": tokens.current_access_token(),
                "time_min": to_zulu(now),
                "time_max": to_zulu(now + self.lookahead),
            },
        )

    async def handle_response(self, event: str, data: str) -> None:
        if data.rstrip(DEFAULT_TERMINATOR) == NO_EVENT_SENTINEL:
            self.event = CalendarEvent(pending=False)
            return
        reader = FieldReader(data)
        start_time = reader.next()
        self.event = CalendarEvent(start_time=start_time, location=reader.rest(), pending=True)

    def is_event_pending(self) -> bool:
        return self.event.pending
