"""Route tests for the operator API.

The app lifespan does NOT run under ``ASGITransport``, so state fields are
pre-set by the fixtures.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from fakes import FakeRelay, ManualClock, MemoryTokenStore
from httpx import ASGITransport, AsyncClient

from leavenow.agent.app import app
from leavenow.agent.notifier import LogNotifier
from leavenow.agent.oauth2 import OAuth2Manager
from leavenow.agent.orchestrator import Orchestrator
from leavenow.agent.webhooks.calendar import CalendarClient
from leavenow.agent.webhooks.distance_matrix import DistanceMatrixClient
from leavenow.agent.webhooks.geolocation import GeolocationClient


@pytest.fixture
def orchestrator(relay: FakeRelay, authorized_store: MemoryTokenStore, clock: ManualClock) -> Orchestrator:
    orchestrator = Orchestrator(
        relay,
        geolocation=GeolocationClient(relay, clock=clock),
        oauth2=OAuth2Manager(relay, authorized_store, "client-id", "client-secret", clock=clock),
        calendar=CalendarClient(relay, "primary", clock=clock),
        distance_matrix=DistanceMatrixClient(relay, clock=clock),
        notifier=LogNotifier(),
    )
    orchestrator.start()
    return orchestrator


async def _client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def client(orchestrator: Orchestrator) -> AsyncIterator[AsyncClient]:
    app.state.orchestrator = orchestrator
    async for ac in _client():
        yield ac
    app.state.orchestrator = None


@pytest.fixture
async def unconfigured_client() -> AsyncIterator[AsyncClient]:
    app.state.orchestrator = None
    async for ac in _client():
        yield ac


async def test_health(unconfigured_client: AsyncClient) -> None:
    resp = await unconfigured_client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


async def test_agent_unavailable_without_relay(unconfigured_client: AsyncClient) -> None:
    resp = await unconfigured_client.get("/api/agent/status")
    assert resp.status_code == 503


async def test_status(client: AsyncClient) -> None:
    resp = await client.get("/api/agent/status")
    assert resp.status_code == 200
    body = resp.json()
    assert body["stage"] == "geolocation"
    assert body["event_state"] == "publishing"
    assert body["oauth2_state"] == "req_user_code"
    assert body["idle"] is False
    assert body["error"] is None


async def test_trigger_while_running_conflicts(client: AsyncClient) -> None:
    resp = await client.post("/api/agent/trigger")
    assert resp.status_code == 409


async def test_trigger_when_idle(client: AsyncClient, orchestrator: Orchestrator) -> None:
    orchestrator.idle = True

    resp = await client.post("/api/agent/trigger")
    assert resp.status_code == 200
    assert resp.json()["status"] == "started"
    assert not orchestrator.idle


async def test_trigger_after_failure_needs_reset(
    client: AsyncClient, orchestrator: Orchestrator, relay: FakeRelay
) -> None:
    await orchestrator.loop()
    await relay.error("geolocation", 400)

    resp = await client.post("/api/agent/trigger")
    assert resp.status_code == 409
    assert "reset" in resp.json()["detail"]

    resp = await client.post("/api/agent/reset")
    assert resp.status_code == 200
    assert resp.json()["detail"].startswith("HTTP ERROR - 400")

    resp = await client.get("/api/agent/status")
    assert resp.json()["stage"] == "geolocation"
    assert resp.json()["error"] is None


async def test_erase_token(
    client: AsyncClient, orchestrator: Orchestrator, authorized_store: MemoryTokenStore
) -> None:
    resp = await client.post("/api/agent/token/erase")
    assert resp.status_code == 200
    assert authorized_store.token is None
    assert orchestrator.oauth2.state == "req_user_code"
