"""Relay interface consumed by the webhook clients.

The relay is the pub/sub bridge between the device and the provider APIs: an
outbound publish becomes an HTTP call made by the bridge, and the HTTP answer
comes back later as an inbound message on a device-scoped channel::

    {device_id}/hook-response/{event}    HTTP 200, delimited payload
    {device_id}/hook-error/{event}       any other status, relay error prose

Delivery is cooperative: inbound messages are only dispatched from ``pump``,
which the driver calls between ticks, so a handler never runs concurrently
with a tick.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

MessageHandler = Callable[[str, str], Awaitable[None]]
"""Coroutine function receiving ``(channel, data)``."""


class DuplicateSubscriptionError(ValueError):
    """A handler is already registered for the channel."""

    def __init__(self, channel: str) -> None:
        super().__init__(f"Channel '{channel}' already has a handler")


@runtime_checkable
class Relay(Protocol):
    @property
    def device_id(self) -> str:
        """Identity that scopes the response channels of this device."""
        ...

    async def publish(self, event: str, data: str) -> None:
        """Fire-and-forget publish.  Failures surface later as a stalled call."""
        ...

    def subscribe(self, channel: str, handler: MessageHandler) -> None:
        """Register the single handler for *channel* (and its numbered parts)."""
        ...

    async def pump(self, timeout: float) -> int:
        """Wait up to *timeout* seconds and dispatch queued inbound messages.

        Returns the number of messages delivered.
        """
        ...
