"""Google Distance Matrix API client.

Estimates travel time from the device's coordinates to the event address,
driving or by public transport.  Each travel mode has its own webhook because
the bridge builds different queries for them; both answer with the same
payload::

    distance~duration~element_status~top_status

The API answers HTTP 200 even when the lookup failed.  Failures are reported
through two embedded statuses instead:

1. Top-level status: about the request as a whole.
2. Element-level status: about the single origin/destination pair.

Either one not being ``OK`` is promoted to a 400, so callers only ever look at
``failed()``.
"""

from __future__ import annotations

from datetime import datetime
from http import HTTPStatus
from typing import TYPE_CHECKING

from leavenow.agent.models.enums import TransitMode, TravelMode
from leavenow.agent.models.results import DistanceMatrixRequest, DistanceResult
from leavenow.agent.parser import FieldReader
from leavenow.agent.timeutil import utcnow
from leavenow.agent.webhooks.base import DEFAULT_TIMEOUT, Clock, WebhookClient

if TYPE_CHECKING:
    from leavenow.agent.relay.base import Relay

STATUS_OK = "OK"


class DistanceMatrixClient(WebhookClient):
    name = "distance_matrix"
    EVENT_DRIVING = "dist_driving"
    EVENT_TRANSIT = "dist_transit"
    events = (EVENT_DRIVING, EVENT_TRANSIT)
    error_guidance = {
        HTTPStatus.BAD_REQUEST: "Invalid origin or destination.",
        HTTPStatus.FORBIDDEN: "API key is missing, invalid or restricted.",
    }

    def __init__(self, relay: Relay, *, timeout: float = DEFAULT_TIMEOUT, clock: Clock | None = None) -> None:
        super().__init__(relay, timeout=timeout, clock=clock)
        self.result = DistanceResult()

    @classmethod
    def event_for(cls, travel_mode: TravelMode) -> str:
        if travel_mode == TravelMode.TRANSIT:
            return cls.EVENT_TRANSIT
        return cls.EVENT_DRIVING

    async def publish(self, request: DistanceMatrixRequest, now: datetime | None = None) -> None:
        payload: dict[str, str] = {"origin": request.origin(), "destination": request.destination}
        if request.travel_mode == TravelMode.TRANSIT:
            payload["transit_mode"] = str(request.transit_mode or TransitMode.BUS)
        else:
            # Driving estimates account for traffic at departure time.
            payload["curr_time"] = str(int((now or utcnow()).timestamp()))
        await self._publish(self.event_for(request.travel_mode), payload)

    async def handle_response(self, event: str, data: str) -> None:
        reader = FieldReader(data)
        distance = reader.next_int()
        duration = reader.next_int()
        element_status = reader.next().strip()
        top_status = reader.next().strip()

        if top_status != STATUS_OK:
            self.fail(HTTPStatus.BAD_REQUEST, f"Error: Top-level error, {top_status or 'missing status'}")
            return
        if element_status != STATUS_OK:
            self.fail(HTTPStatus.BAD_REQUEST, f"Error: Element-level error, {element_status or 'missing status'}")
            return
        self.result = DistanceResult(duration_seconds=max(0, duration), distance=max(0, distance))

    @property
    def duration_seconds(self) -> int:
        return self.result.duration_seconds

    @property
    def distance(self) -> int:
        return self.result.distance
