"""Relay-backed clients for the Google APIs.

- **base**: publish / pending call / dual-channel response pattern
- **geolocation**: WiFi access points -> coordinates
- **calendar**: next event within the lookahead window
- **distance_matrix**: travel time to the event location
"""

from leavenow.agent.webhooks.base import (
    CallPendingError,
    NotSubscribedError,
    PendingCall,
    WebhookClient,
    WebhookError,
)
from leavenow.agent.webhooks.calendar import AccessTokenSource, CalendarClient
from leavenow.agent.webhooks.distance_matrix import DistanceMatrixClient
from leavenow.agent.webhooks.geolocation import GeolocationClient

__all__ = [
    "AccessTokenSource",
    "CalendarClient",
    "CallPendingError",
    "DistanceMatrixClient",
    "GeolocationClient",
    "NotSubscribedError",
    "PendingCall",
    "WebhookClient",
    "WebhookError",
]
