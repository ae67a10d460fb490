"""Google Geolocation API client.

Locates the device from nearby WiFi access points.  The scan itself is done
by the caller; this client only ships the access points and validates the
fix that comes back.

Success payload: ``lat~lng~accuracy``.
"""

from __future__ import annotations

from collections.abc import Sequence
from http import HTTPStatus
from typing import TYPE_CHECKING

from leavenow.agent.models.results import AccessPoint, GeoFix
from leavenow.agent.parser import FieldReader
from leavenow.agent.webhooks.base import DEFAULT_TIMEOUT, Clock, WebhookClient

if TYPE_CHECKING:
    from leavenow.agent.relay.base import Relay

# Six access points are enough for an accurate fix and keep the publish small.
MAX_ACCESS_POINTS = 6


class GeolocationClient(WebhookClient):
    name = "geolocation"
    EVENT = "geolocation"
    events = (EVENT,)
    error_guidance = {
        HTTPStatus.BAD_REQUEST: "Invalid API key or request body.",
        HTTPStatus.FORBIDDEN: "User rate limit exceeded, or API key has restricted access.",
        HTTPStatus.NOT_FOUND: "The request was valid, but no results were returned.",
    }

    def __init__(
        self,
        relay: Relay,
        *,
        min_accuracy: int = 50,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(relay, timeout=timeout, clock=clock)
        self.min_accuracy = min_accuracy
        self.fix = GeoFix()

    async def publish(self, access_points: Sequence[AccessPoint]) -> None:
        wifi = [{"m": ap.bssid, "s": ap.rssi, "c": ap.channel} for ap in list(access_points)[:MAX_ACCESS_POINTS]]
        await self._publish(self.EVENT, {"a": wifi})

    async def handle_response(self, event: str, data: str) -> None:
        reader = FieldReader(data)
        fix = GeoFix(
            latitude=reader.next_float(),
            longitude=reader.next_float(),
            accuracy=max(0, reader.next_int()),
        )
        if fix.accuracy > self.min_accuracy:
            self.fail(
                HTTPStatus.PRECONDITION_FAILED,
                f"Error: Location accuracy of {fix.accuracy} m is worse than the {self.min_accuracy} m minimum.",
            )
            return
        self.fix = fix
