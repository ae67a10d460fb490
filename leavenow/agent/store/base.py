"""Token store interface.

The store holds a single slot: the OAuth2 refresh token that lets the device
skip the user-facing device flow after a restart.  It is read once when the
OAuth2 manager starts and written or erased only by that manager.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from leavenow.agent.models.oauth2 import StoredToken


@runtime_checkable
class TokenStore(Protocol):
    async def read(self) -> StoredToken | None:
        """Return the stored token, or ``None`` if the slot is empty."""
        ...

    async def write(self, token: StoredToken) -> None:
        """Overwrite the slot."""
        ...

    async def erase(self) -> None:
        """Mark the slot empty.  No-op if already empty."""
        ...
