"""Shared enumerations used across the agent."""

from __future__ import annotations

from enum import StrEnum

# -- Orchestrator --------------------------------------------------------------


class AppStage(StrEnum):
    """Pipeline cursor.  Advances strictly forward except on failure."""

    GEOLOCATION = "geolocation"
    OAUTH2 = "oauth2"
    CALENDAR = "calendar"
    DISTANCE_MATRIX = "distance_matrix"
    DATA_PROCESSING = "data_processing"
    ASSISTANT = "assistant"
    FAILED = "failed"


class EventState(StrEnum):
    """Publish/wait micro-state scoped to the current stage."""

    PUBLISHING = "publishing"
    WAIT_FOR_RESPONSE = "wait_for_response"
    COMPLETED = "completed"


# -- OAuth2 --------------------------------------------------------------------


class OAuth2State(StrEnum):
    REQ_USER_CODE = "req_user_code"
    POLLING_AUTH = "polling_auth"
    REFRESH_TOKEN = "refresh_token"
    AUTHORIZED = "authorized"
    WAIT_FOR_RESPONSE = "wait_for_response"
    FAILED = "failed"


# -- Distance Matrix -----------------------------------------------------------


class TravelMode(StrEnum):
    DRIVING = "driving"
    TRANSIT = "transit"


class TransitMode(StrEnum):
    BUS = "bus"
    SUBWAY = "subway"
    TRAIN = "train"
    TRAM = "tram"
    RAIL = "rail"


# -- Decision ------------------------------------------------------------------


class Verdict(StrEnum):
    NO_EVENTS = "no_events"
    LEAVE_NOW = "leave_now"
    TIME_LEFT = "time_left"
    LATE = "late"


# -- Notifications -------------------------------------------------------------


class AudioMessage(StrEnum):
    """Announcements the device can play.

    Values double as the track identifiers handed to the audio collaborator.
    """

    UPDATING = "updating"
    READY = "ready"
    OPEN_TERMINAL = "open_terminal"
    REQUEST_RECEIVED = "request_received"
    ESTIMATING = "estimating"
    NO_EVENTS = "no_events"
    APP_FAILED = "app_failed"
    TIME_LEFT = "time_left"
    LEAVE_NOW = "leave_now"
    LATE = "late"
