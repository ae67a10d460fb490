"""Token store implementations for refresh-token persistence."""

from leavenow.agent.store.base import TokenStore
from leavenow.agent.store.local import LocalTokenStore

__all__ = ["LocalTokenStore", "TokenStore"]
