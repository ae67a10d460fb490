"""Relay wire records."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RelayEnvelope(BaseModel):
    """Outbound publish as seen by the relay bridge.

    The bridge performs the provider HTTP call for ``event`` and answers on
    ``{device_id}/hook-response/{event}`` or ``{device_id}/hook-error/{event}``.
    """

    device_id: str
    event: str
    data: str
    published_at: datetime = Field(default_factory=_utcnow)
