"""OAuth2 token records.

Only the refresh token is durable; access tokens are re-derived after every
refresh and never leave memory.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class StoredToken(BaseModel):
    """The single persisted slot written by the token store."""

    refresh_token: str
    stored_at: datetime | None = None


class OAuth2Token(BaseModel):
    access_token: str = ""
    refresh_token: str = ""
    issued_at: float = 0.0
    """Clock reading (seconds) when the access token was issued."""

    lifetime: int = Field(default=0, ge=0, description="Access token lifetime, in seconds")

    def expired(self, now: float) -> bool:
        return not self.access_token or now - self.issued_at >= self.lifetime


class DeviceCode(BaseModel):
    """Authorization server answer to a user-code request."""

    device_code: str
    user_code: str
    verification_url: str
    expires_in: int = Field(default=1800, ge=0)
    interval: int = Field(default=5, ge=1)
