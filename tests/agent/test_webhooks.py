"""Unit tests for the webhook RPC clients (geolocation, calendar, distance matrix)."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from fakes import FakeRelay, ManualClock

from leavenow.agent.models.enums import TransitMode, TravelMode
from leavenow.agent.models.results import AccessPoint, DistanceMatrixRequest
from leavenow.agent.webhooks.base import CallPendingError, NotSubscribedError
from leavenow.agent.webhooks.calendar import CalendarClient
from leavenow.agent.webhooks.distance_matrix import DistanceMatrixClient
from leavenow.agent.webhooks.geolocation import MAX_ACCESS_POINTS, GeolocationClient

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


class _Calls:
    """Counts handler invocations."""

    def __init__(self) -> None:
        self.count = 0

    async def __call__(self) -> None:
        self.count += 1


class _Tokens:
    def current_access_token(self) -> str:
        return "ya29.access"


def _access_points(n: int) -> list[AccessPoint]:
    return [AccessPoint(bssid=f"00:11:22:33:44:{i:02x}", rssi=-40 - i, channel=1 + i) for i in range(n)]


@pytest.fixture
def calls() -> _Calls:
    return _Calls()


@pytest.fixture
def geolocation(relay: FakeRelay, clock: ManualClock, calls: _Calls) -> GeolocationClient:
    client = GeolocationClient(relay, min_accuracy=50, timeout=60, clock=clock)
    client.subscribe(calls)
    return client


@pytest.fixture
def calendar(relay: FakeRelay, clock: ManualClock, calls: _Calls) -> CalendarClient:
    client = CalendarClient(relay, "primary", lookahead_hours=3, timeout=60, clock=clock)
    client.subscribe(calls)
    return client


@pytest.fixture
def distance(relay: FakeRelay, clock: ManualClock, calls: _Calls) -> DistanceMatrixClient:
    client = DistanceMatrixClient(relay, timeout=60, clock=clock)
    client.subscribe(calls)
    return client


# ---------------------------------------------------------------------------
# Shared request/response pattern
# ---------------------------------------------------------------------------


async def test_publish_before_subscribe_raises(relay: FakeRelay) -> None:
    client = GeolocationClient(relay)
    with pytest.raises(NotSubscribedError):
        await client.publish([])
    assert relay.published == []


def test_subscribe_registers_response_and_error_channels(relay: FakeRelay, distance: DistanceMatrixClient) -> None:
    assert set(relay.handlers) == {
        "test-device/hook-response/dist_driving",
        "test-device/hook-error/dist_driving",
        "test-device/hook-response/dist_transit",
        "test-device/hook-error/dist_transit",
    }


def test_subscribe_twice_only_replaces_handler(geolocation: GeolocationClient, relay: FakeRelay) -> None:
    other = _Calls()
    geolocation.subscribe(other)
    assert len(relay.handlers) == 2


async def test_second_publish_while_pending_is_refused(geolocation: GeolocationClient, relay: FakeRelay) -> None:
    await geolocation.publish(_access_points(2))
    assert geolocation.is_pending("geolocation")

    with pytest.raises(CallPendingError):
        await geolocation.publish(_access_points(2))
    assert len(relay.published) == 1


async def test_response_without_pending_call_is_ignored(
    geolocation: GeolocationClient, relay: FakeRelay, calls: _Calls
) -> None:
    await relay.respond("geolocation", "52.5~13.4~10")

    assert calls.count == 0
    assert geolocation.status_code is None
    assert geolocation.fix.latitude == 0.0


async def test_stalled_call_times_out(
    geolocation: GeolocationClient, relay: FakeRelay, clock: ManualClock, calls: _Calls
) -> None:
    await geolocation.publish(_access_points(1))

    clock.advance(59)
    assert await geolocation.check_timeout() is False
    assert geolocation.pending

    clock.advance(1)
    assert await geolocation.check_timeout() is True
    assert geolocation.status_code == 408
    assert geolocation.error == "No response to 'geolocation' within 60s"
    assert geolocation.failed()
    assert not geolocation.pending
    assert calls.count == 1

    # A late answer no longer has a pending call.
    await relay.respond("geolocation", "52.5~13.4~10")
    assert calls.count == 1
    assert geolocation.status_code == 408


async def test_error_carries_status_and_guidance(
    geolocation: GeolocationClient, relay: FakeRelay, calls: _Calls
) -> None:
    await geolocation.publish(_access_points(1))
    await relay.error("geolocation", 404)

    assert geolocation.status_code == 404
    assert geolocation.error == "HTTP ERROR - 404\nError: The request was valid, but no results were returned."
    assert calls.count == 1


async def test_error_without_guidance(geolocation: GeolocationClient, relay: FakeRelay) -> None:
    await geolocation.publish(_access_points(1))
    await relay.error("geolocation", 500)

    assert geolocation.status_code == 500
    assert geolocation.error == "HTTP ERROR - 500"


async def test_cancel_forgets_pending_call(geolocation: GeolocationClient, relay: FakeRelay) -> None:
    await geolocation.publish(_access_points(1))
    geolocation.cancel()

    assert not geolocation.pending
    assert geolocation.status_code is None
    await geolocation.publish(_access_points(1))
    assert len(relay.published) == 2


# ---------------------------------------------------------------------------
# Geolocation
# ---------------------------------------------------------------------------


async def test_geolocation_publishes_at_most_six_access_points(
    geolocation: GeolocationClient, relay: FakeRelay
) -> None:
    await geolocation.publish(_access_points(9))

    event, payload = relay.last()
    assert event == "geolocation"
    assert len(payload["a"]) == MAX_ACCESS_POINTS
    assert payload["a"][0] == {"m": "00:11:22:33:44:00", "s": -40, "c": 1}


async def test_geolocation_fix(geolocation: GeolocationClient, relay: FakeRelay, calls: _Calls) -> None:
    await geolocation.publish(_access_points(3))
    await relay.respond("geolocation", "52.520008~13.404954~38")

    assert not geolocation.failed()
    assert geolocation.status_code == 200
    assert geolocation.fix.latitude == pytest.approx(52.520008)
    assert geolocation.fix.longitude == pytest.approx(13.404954)
    assert geolocation.fix.accuracy == 38
    assert calls.count == 1


async def test_geolocation_rejects_inaccurate_fix(
    geolocation: GeolocationClient, relay: FakeRelay, calls: _Calls
) -> None:
    await geolocation.publish(_access_points(3))
    await relay.respond("geolocation", "52.520008~13.404954~80")

    assert geolocation.failed()
    assert geolocation.status_code == 412
    assert "80 m" in geolocation.error
    assert geolocation.fix.accuracy == 0
    assert calls.count == 1


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


async def test_calendar_publish_window(calendar: CalendarClient, relay: FakeRelay) -> None:
    await calendar.publish(_Tokens(), NOW)

    event, payload = relay.last()
    assert event == "calendar_event"
    assert payload == {
        "calendar_id": "primary",
        "access_token": "ya29.access",
        "time_min": "2024-05-01T12:00:00Z",
        "time_max": "2024-05-01T15:00:00Z",
    }


async def test_calendar_next_event(calendar: CalendarClient, relay: FakeRelay) -> None:
    await calendar.publish(_Tokens(), NOW)
    await relay.respond("calendar_event", "2024-05-01T13:00:00Z~1600 Amphitheatre Pkwy, Mountain View\0")

    assert calendar.is_event_pending()
    assert calendar.event.start_time == "2024-05-01T13:00:00Z"
    assert calendar.event.location == "1600 Amphitheatre Pkwy, Mountain View"


@pytest.mark.parametrize("payload", ["~", "~\0"])
async def test_calendar_no_event(calendar: CalendarClient, relay: FakeRelay, payload: str) -> None:
    await calendar.publish(_Tokens(), NOW)
    await relay.respond("calendar_event", payload)

    assert not calendar.failed()
    assert not calendar.is_event_pending()


async def test_calendar_unauthorized(calendar: CalendarClient, relay: FakeRelay) -> None:
    await calendar.publish(_Tokens(), NOW)
    await relay.error("calendar_event", 401)

    assert calendar.status_code == 401
    assert calendar.error.endswith("Invalid credentials.")


# ---------------------------------------------------------------------------
# Distance Matrix
# ---------------------------------------------------------------------------


async def test_distance_driving_publish(distance: DistanceMatrixClient, relay: FakeRelay) -> None:
    request = DistanceMatrixRequest(origin_lat=52.520008, origin_lng=13.404954, destination="Alexanderplatz 1")
    await distance.publish(request, NOW)

    event, payload = relay.last()
    assert event == "dist_driving"
    assert payload == {
        "origin": "52.520008,13.404954",
        "destination": "Alexanderplatz 1",
        "curr_time": str(int(NOW.timestamp())),
    }


async def test_distance_transit_publish(distance: DistanceMatrixClient, relay: FakeRelay) -> None:
    request = DistanceMatrixRequest(
        destination="Alexanderplatz 1",
        travel_mode=TravelMode.TRANSIT,
        transit_mode=TransitMode.SUBWAY,
    )
    await distance.publish(request, NOW)

    event, payload = relay.last()
    assert event == "dist_transit"
    assert payload["transit_mode"] == "subway"
    assert "curr_time" not in payload


async def test_distance_transit_defaults_to_bus(distance: DistanceMatrixClient, relay: FakeRelay) -> None:
    await distance.publish(DistanceMatrixRequest(travel_mode=TravelMode.TRANSIT), NOW)
    assert relay.last()[1]["transit_mode"] == "bus"


async def test_distance_result(distance: DistanceMatrixClient, relay: FakeRelay) -> None:
    await distance.publish(DistanceMatrixRequest(), NOW)
    await relay.respond("dist_driving", "12000~900~OK~OK")

    assert not distance.failed()
    assert distance.duration_seconds == 900
    assert distance.distance == 12000


async def test_distance_element_error_is_promoted(distance: DistanceMatrixClient, relay: FakeRelay) -> None:
    await distance.publish(DistanceMatrixRequest(), NOW)
    await relay.respond("dist_driving", "0~0~NOT_FOUND~OK")

    assert distance.status_code == 400
    assert distance.error == "Error: Element-level error, NOT_FOUND"


async def test_distance_top_level_error_wins(distance: DistanceMatrixClient, relay: FakeRelay) -> None:
    await distance.publish(DistanceMatrixRequest(), NOW)
    await relay.respond("dist_driving", "0~0~NOT_FOUND~REQUEST_DENIED")

    assert distance.status_code == 400
    assert distance.error == "Error: Top-level error, REQUEST_DENIED"
