"""Result records rebuilt fresh on every lookup.

Nothing here keeps history: each adapter overwrites its record when a new
response is parsed.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from leavenow.agent.models.enums import TransitMode, TravelMode, Verdict

# -- Geolocation ---------------------------------------------------------------


class AccessPoint(BaseModel):
    """A scanned WiFi access point (input of a geolocation request)."""

    bssid: str
    rssi: int
    channel: int


class GeoFix(BaseModel):
    latitude: float = 0.0
    longitude: float = 0.0
    accuracy: int = Field(default=0, ge=0, description="Radius of the fix, in metres")


# -- Calendar ------------------------------------------------------------------


class CalendarEvent(BaseModel):
    start_time: str = ""
    """RFC3339 start of the next event, e.g. ``2011-06-03T10:00:00-07:00``."""

    location: str = ""
    pending: bool = False


# -- Distance Matrix -----------------------------------------------------------


class DistanceMatrixRequest(BaseModel):
    """Origin coordinates, destination address and preferred travel mode."""

    origin_lat: float = 0.0
    origin_lng: float = 0.0
    destination: str = "none"
    travel_mode: TravelMode = TravelMode.DRIVING
    transit_mode: TransitMode | None = None

    def origin(self) -> str:
        return f"{self.origin_lat:.6f},{self.origin_lng:.6f}"


class DistanceResult(BaseModel):
    duration_seconds: int = Field(default=0, ge=0)
    distance: int = Field(default=0, ge=0)


# -- Decision ------------------------------------------------------------------


class Decision(BaseModel):
    verdict: Verdict
    seconds: int = Field(default=0, ge=0, description="Time left or lateness; 0 for leave_now / no_events")
