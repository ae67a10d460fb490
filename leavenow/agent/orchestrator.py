"""Application orchestrator -- one stage at a time, one tick at a time.

The pipeline::

    geolocation -> oauth2 -> calendar -> distance_matrix -> data_processing -> assistant
                                 |                                               ^
                                 +---------------(no pending event)--------------+

Stages with a request use the ``EventState`` micro-machine: ``publishing``
sends the request, ``wait_for_response`` lets ticks pass until the adapter's
callback marks the stage ``completed`` (or fails it), and ``completed``
collects the result and advances.  The ``oauth2`` stage instead drives the
OAuth2 manager's own loop until it is authorized.

Any adapter failure jumps to ``failed``: the error is kept for the operator,
``app_failed`` is announced once, and nothing is retried until ``reset()``.

After announcing, the orchestrator either starts over (``repeat``) or idles
until ``trigger()`` is called -- directly, through the operator API, or by a
message on the device's ``assistant`` channel.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from functools import partial
from typing import TYPE_CHECKING

from loguru import logger

from leavenow.agent.decision import decide
from leavenow.agent.models.api import StatusResponse
from leavenow.agent.models.enums import (
    AppStage,
    AudioMessage,
    EventState,
    OAuth2State,
    TransitMode,
    TravelMode,
    Verdict,
)
from leavenow.agent.models.results import (
    AccessPoint,
    CalendarEvent,
    Decision,
    DistanceMatrixRequest,
    DistanceResult,
    GeoFix,
)
from leavenow.agent.notifier import LogNotifier, Notifier, announcement_for
from leavenow.agent.oauth2 import OAuth2Manager
from leavenow.agent.timeutil import parse_rfc3339, utcnow
from leavenow.agent.webhooks.calendar import CalendarClient
from leavenow.agent.webhooks.distance_matrix import DistanceMatrixClient
from leavenow.agent.webhooks.geolocation import GeolocationClient

if TYPE_CHECKING:
    from datetime import datetime

    from leavenow.agent.relay.base import Relay
    from leavenow.agent.settings import LeaveNowSettings
    from leavenow.agent.store.base import TokenStore
    from leavenow.agent.webhooks.base import Clock, WebhookClient

AccessPointScanner = Callable[[], Sequence[AccessPoint]]
WallClock = Callable[[], "datetime"]


def _no_access_points() -> Sequence[AccessPoint]:
    return ()


class Orchestrator:
    """Top-level stage machine.

    ``loop()`` is the tick; ``run()`` alternates ticks with relay delivery.
    """

    def __init__(
        self,
        relay: Relay,
        *,
        geolocation: GeolocationClient,
        oauth2: OAuth2Manager,
        calendar: CalendarClient,
        distance_matrix: DistanceMatrixClient,
        notifier: Notifier | None = None,
        scanner: AccessPointScanner | None = None,
        fixed_location: GeoFix | None = None,
        travel_mode: TravelMode = TravelMode.DRIVING,
        transit_mode: TransitMode | None = None,
        epsilon: int = 0,
        repeat: bool = False,
        now: WallClock = utcnow,
    ) -> None:
        self._relay = relay
        self.geolocation = geolocation
        self.oauth2 = oauth2
        self.calendar = calendar
        self.distance_matrix = distance_matrix
        self.notifier: Notifier = notifier or LogNotifier()
        self._scanner = scanner or _no_access_points
        self._fixed_location = fixed_location
        self._travel_mode = travel_mode
        self._transit_mode = transit_mode
        self._epsilon = epsilon
        self._repeat = repeat
        self._now = now

        self.stage = AppStage.GEOLOCATION
        self.last_stage = AppStage.GEOLOCATION
        self.event_state = EventState.PUBLISHING
        self.idle = False
        self.cycles = 0
        self.error: str | None = None
        self._started = False
        self._user_prompted = False
        self._ready_announced = False
        self.announcement: AudioMessage | None = None

        self.location: GeoFix | None = None
        self.event: CalendarEvent | None = None
        self.distance: DistanceResult | None = None
        self.decision: Decision | None = None

    @classmethod
    def from_settings(
        cls,
        settings: LeaveNowSettings,
        relay: Relay,
        store: TokenStore,
        *,
        notifier: Notifier | None = None,
        scanner: AccessPointScanner | None = None,
        clock: Clock | None = None,
        now: WallClock = utcnow,
    ) -> Orchestrator:
        timeout = settings.response_timeout
        fixed = None
        if not settings.geolocation_enabled:
            fixed = GeoFix(latitude=settings.fixed_latitude or 0.0, longitude=settings.fixed_longitude or 0.0)
        return cls(
            relay,
            geolocation=GeolocationClient(relay, min_accuracy=settings.min_accuracy, timeout=timeout, clock=clock),
            oauth2=OAuth2Manager(
                relay,
                store,
                settings.client_id,
                settings.client_secret.get_secret_value(),
                timeout=timeout,
                clock=clock,
            ),
            calendar=CalendarClient(
                relay,
                settings.calendar_id,
                lookahead_hours=settings.lookahead_hours,
                timeout=timeout,
                clock=clock,
            ),
            distance_matrix=DistanceMatrixClient(relay, timeout=timeout, clock=clock),
            notifier=notifier,
            scanner=scanner,
            fixed_location=fixed,
            travel_mode=settings.travel_mode,
            transit_mode=settings.transit_mode,
            epsilon=settings.leave_now_epsilon,
            repeat=settings.repeat,
            now=now,
        )

    # -- Setup -----------------------------------------------------------------

    @property
    def assistant_channel(self) -> str:
        return f"{self._relay.device_id}/assistant"

    def start(self) -> None:
        """Subscribe every adapter and the assistant trigger channel."""
        if self._started:
            return
        self.geolocation.subscribe(partial(self._on_response, self.geolocation))
        self.calendar.subscribe(partial(self._on_response, self.calendar))
        self.distance_matrix.subscribe(partial(self._on_response, self.distance_matrix))
        self.oauth2.subscribe()
        self._relay.subscribe(self.assistant_channel, self._on_assistant)
        self._started = True
        logger.info("Orchestrator started (device={})", self._relay.device_id)

    async def run(self, interval: float) -> None:
        """Tick forever, delivering inbound messages between ticks."""
        self.start()
        while True:
            await self.loop()
            await self._relay.pump(interval)

    # -- Tick ------------------------------------------------------------------

    async def loop(self) -> None:
        if self.idle:
            return
        match self.stage:
            case AppStage.GEOLOCATION:
                await self._geolocation_stage()
            case AppStage.OAUTH2:
                await self._oauth2_stage()
            case AppStage.CALENDAR:
                await self._calendar_stage()
            case AppStage.DISTANCE_MATRIX:
                await self._distance_matrix_stage()
            case AppStage.DATA_PROCESSING:
                await self._data_processing_stage()
            case AppStage.ASSISTANT:
                await self._assistant_stage()
            case AppStage.FAILED:
                pass

    def change_stage_to(self, new_stage: AppStage) -> None:
        logger.info("Stage: {} -> {}", self.stage, new_stage)
        self.last_stage = self.stage
        self.stage = new_stage
        self.event_state = EventState.PUBLISHING

    # -- Stages ----------------------------------------------------------------

    async def _geolocation_stage(self) -> None:
        if self._fixed_location is not None:
            self.location = self._fixed_location
            self.change_stage_to(AppStage.OAUTH2)
            return

        match self.event_state:
            case EventState.PUBLISHING:
                self.event_state = EventState.WAIT_FOR_RESPONSE
                await self.geolocation.publish(self._scanner())
            case EventState.WAIT_FOR_RESPONSE:
                await self.geolocation.check_timeout()
            case EventState.COMPLETED:
                self.location = self.geolocation.fix
                logger.info(
                    "Located at {:.6f},{:.6f} (+/- {} m)",
                    self.location.latitude,
                    self.location.longitude,
                    self.location.accuracy,
                )
                self.change_stage_to(AppStage.OAUTH2)

    async def _oauth2_stage(self) -> None:
        if self.oauth2.state == OAuth2State.REQ_USER_CODE:
            # A new device authorization gets its own prompt and ready message.
            self._user_prompted = False
            self._ready_announced = False
        await self.oauth2.loop()

        if self.oauth2.awaiting_user() and not self._user_prompted:
            self._user_prompted = True
            await self._announce(AudioMessage.OPEN_TERMINAL)

        if self.oauth2.failed():
            await self._fail(self.oauth2.error or "OAuth2 authorization failed")
        elif self.oauth2.authorized():
            if not self._ready_announced:
                self._ready_announced = True
                await self._announce(AudioMessage.READY)
            self.change_stage_to(AppStage.CALENDAR)

    async def _calendar_stage(self) -> None:
        match self.event_state:
            case EventState.PUBLISHING:
                await self._announce(AudioMessage.REQUEST_RECEIVED)
                self.event_state = EventState.WAIT_FOR_RESPONSE
                await self.calendar.publish(self.oauth2, self._now())
            case EventState.WAIT_FOR_RESPONSE:
                await self.calendar.check_timeout()
            case EventState.COMPLETED:
                self.event = self.calendar.event
                if not self.event.pending:
                    logger.info("No upcoming events")
                    self.decision = Decision(verdict=Verdict.NO_EVENTS)
                    self.change_stage_to(AppStage.ASSISTANT)
                    return
                logger.info("Next event at {} ({})", self.event.start_time, self.event.location)
                await self._announce(AudioMessage.ESTIMATING)
                self.change_stage_to(AppStage.DISTANCE_MATRIX)

    async def _distance_matrix_stage(self) -> None:
        match self.event_state:
            case EventState.PUBLISHING:
                location = self.location or GeoFix()
                request = DistanceMatrixRequest(
                    origin_lat=location.latitude,
                    origin_lng=location.longitude,
                    destination=self.event.location if self.event else "",
                    travel_mode=self._travel_mode,
                    transit_mode=self._transit_mode if self._travel_mode == TravelMode.TRANSIT else None,
                )
                self.event_state = EventState.WAIT_FOR_RESPONSE
                await self.distance_matrix.publish(request, self._now())
            case EventState.WAIT_FOR_RESPONSE:
                await self.distance_matrix.check_timeout()
            case EventState.COMPLETED:
                self.distance = self.distance_matrix.result
                logger.info(
                    "Travel estimate: {}s over {} units",
                    self.distance.duration_seconds,
                    self.distance.distance,
                )
                self.change_stage_to(AppStage.DATA_PROCESSING)

    async def _data_processing_stage(self) -> None:
        event = self.event or CalendarEvent()
        try:
            start = parse_rfc3339(event.start_time)
        except ValueError:
            await self._fail(f"Error: Invalid event start time {event.start_time!r}")
            return
        eta = self.distance.duration_seconds if self.distance else 0
        self.decision = decide(self._now(), start, eta, self._epsilon)
        logger.info("Decision: {} ({}s)", self.decision.verdict, self.decision.seconds)
        self.change_stage_to(AppStage.ASSISTANT)

    async def _assistant_stage(self) -> None:
        decision = self.decision or Decision(verdict=Verdict.NO_EVENTS)
        message, duration = announcement_for(decision)
        await self._announce(message, duration)
        self.event_state = EventState.COMPLETED
        self.cycles += 1
        if self._repeat:
            self.change_stage_to(AppStage.GEOLOCATION)
        else:
            self.idle = True
            logger.info("Cycle {} complete, waiting for a trigger", self.cycles)

    # -- Callbacks -------------------------------------------------------------

    async def _on_response(self, client: WebhookClient) -> None:
        if self.stage == AppStage.FAILED:
            return
        if client.failed():
            await self._fail(client.error)
        else:
            self.event_state = EventState.COMPLETED

    async def _on_assistant(self, channel: str, data: str) -> None:
        logger.info("Trigger received on '{}'", channel)
        self.trigger()

    async def _announce(self, message: AudioMessage, duration: int | None = None) -> None:
        self.announcement = message
        await self.notifier.notify(message, duration)

    async def _fail(self, error: str) -> None:
        self.error = error
        logger.error("Stage '{}' failed: {}", self.stage, error)
        self.change_stage_to(AppStage.FAILED)
        await self._announce(AudioMessage.APP_FAILED)

    # -- Operator actions ------------------------------------------------------

    def trigger(self) -> bool:
        """Start a new cycle if the previous one finished.  Returns whether it did."""
        if self.stage == AppStage.FAILED or not self.idle:
            logger.debug("Trigger ignored (stage={}, idle={})", self.stage, self.idle)
            return False
        self.idle = False
        self.change_stage_to(AppStage.GEOLOCATION)
        return True

    async def reset(self) -> None:
        """Leave ``failed`` (or abandon the current cycle) and start over."""
        for client in (self.geolocation, self.calendar, self.distance_matrix):
            client.cancel()
        if self.oauth2.failed():
            await self.oauth2.reset()
        self.error = None
        self.idle = False
        self.change_stage_to(AppStage.GEOLOCATION)

    def snapshot(self) -> StatusResponse:
        return StatusResponse(
            stage=self.stage,
            event_state=self.event_state,
            oauth2_state=self.oauth2.state,
            idle=self.idle,
            cycles=self.cycles,
            location=self.location,
            event=self.event,
            distance=self.distance,
            decision=self.decision,
            error=self.error,
            announcement=self.announcement,
        )
