"""Data models for the agent."""

from leavenow.agent.models.api import ActionResponse, StatusResponse
from leavenow.agent.models.enums import (
    AppStage,
    AudioMessage,
    EventState,
    OAuth2State,
    TransitMode,
    TravelMode,
    Verdict,
)
from leavenow.agent.models.events import RelayEnvelope
from leavenow.agent.models.oauth2 import DeviceCode, OAuth2Token, StoredToken
from leavenow.agent.models.results import (
    AccessPoint,
    CalendarEvent,
    Decision,
    DistanceMatrixRequest,
    DistanceResult,
    GeoFix,
)

__all__ = [
    "AccessPoint",
    "ActionResponse",
    "AppStage",
    "AudioMessage",
    "CalendarEvent",
    "Decision",
    "DeviceCode",
    "DistanceMatrixRequest",
    "DistanceResult",
    "EventState",
    "GeoFix",
    "OAuth2State",
    "OAuth2Token",
    "RelayEnvelope",
    "StatusResponse",
    "StoredToken",
    "TransitMode",
    "TravelMode",
    "Verdict",
]
