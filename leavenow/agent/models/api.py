"""Request/response schemas for the operator API."""

from __future__ import annotations

from pydantic import BaseModel

from leavenow.agent.models.enums import AppStage, AudioMessage, EventState, OAuth2State
from leavenow.agent.models.results import CalendarEvent, Decision, DistanceResult, GeoFix


class StatusResponse(BaseModel):
    stage: AppStage
    event_state: EventState
    oauth2_state: OAuth2State
    idle: bool
    cycles: int
    location: GeoFix | None = None
    event: CalendarEvent | None = None
    distance: DistanceResult | None = None
    decision: Decision | None = None
    error: str | None = None
    announcement: AudioMessage | None = None


class ActionResponse(BaseModel):
    status: str
    detail: str | None = None
