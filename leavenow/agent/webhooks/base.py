"""Webhook RPC client -- publish now, get the answer later.

Every provider integration follows the same shape:

1. ``subscribe`` registers the success and error channels of each event the
   client may publish on, scoped to this device.
2. ``publish`` hands a JSON payload to the relay and arms one ``PendingCall``
   for that event.  A second publish on the same event while the first is
   outstanding is refused.
3. The answer arrives on one of the two channels.  The pending call is
   dropped, the subclass parses the payload (or the error), and the injected
   handler is awaited so the caller can move on.

A call that is never answered is failed by ``check_timeout`` with status 408.
Answers that arrive with no pending call (late, duplicated or unsolicited)
are ignored.
"""

from __future__ import annotations

import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from http import HTTPStatus
from typing import TYPE_CHECKING, Any, ClassVar

from loguru import logger

from leavenow.agent.parser import parse_status_code, split_hook_name

if TYPE_CHECKING:
    from leavenow.agent.relay.base import Relay

ResponseHandler = Callable[[], Awaitable[None]]
Clock = Callable[[], float]

HOOK_RESPONSE = "hook-response"
HOOK_ERROR = "hook-error"

DEFAULT_TIMEOUT = 60.0


def hook_channel(device_id: str, hook: str, event: str) -> str:
    return f"{device_id}/{hook}/{event}"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class WebhookError(RuntimeError):
    """Base error for misuse of a webhook client."""


class NotSubscribedError(WebhookError):
    def __init__(self, name: str) -> None:
        super().__init__(f"{name}: subscribe() must be called before publish()")


class CallPendingError(WebhookError):
    def __init__(self, event: str) -> None:
        super().__init__(f"A call on '{event}' is already waiting for its response")


# ---------------------------------------------------------------------------
# Pending call
# ---------------------------------------------------------------------------


@dataclass
class PendingCall:
    """Bookkeeping for one outstanding request."""

    event: str
    issued_at: float
    deadline: float

    def expired(self, now: float) -> bool:
        return now >= self.deadline


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class WebhookClient:
    """Base class for relay-backed API clients.

    Subclasses declare ``events`` and ``error_guidance`` and implement
    ``handle_response``.  ``status_code`` is ``None`` until the first answer
    is recorded.
    """

    name: ClassVar[str] = "webhook"
    events: ClassVar[tuple[str, ...]] = ()
    error_guidance: ClassVar[dict[int, str]] = {}

    def __init__(
        self,
        relay: Relay,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Clock | None = None,
    ) -> None:
        self._relay = relay
        self._timeout = timeout
        self._clock = clock or time.time
        self._handler: ResponseHandler | None = None
        self._subscribed = False
        self._pending: dict[str, PendingCall] = {}
        self.status_code: int | None = None
        self.error = ""

    # -- Subscription ----------------------------------------------------------

    def subscribe(self, handler: ResponseHandler | None = None) -> None:
        """Register the response/error channels of every event of this client."""
        self._handler = handler
        if self._subscribed:
            return
        device_id = self._relay.device_id
        for event in self.events:
            self._relay.subscribe(hook_channel(device_id, HOOK_RESPONSE, event), self._on_response)
            self._relay.subscribe(hook_channel(device_id, HOOK_ERROR, event), self._on_error)
        self._subscribed = True

    # -- Publish ---------------------------------------------------------------

    async def _publish(self, event: str, payload: dict[str, Any]) -> None:
        if not self._subscribed:
            raise NotSubscribedError(self.name)
        if event in self._pending:
            raise CallPendingError(event)
        now = self._clock()
        self._pending[event] = PendingCall(event=event, issued_at=now, deadline=now + self._timeout)
        logger.info("{}: publishing '{}'", self.name, event)
        await self._relay.publish(event, json.dumps(payload, separators=(",", ":")))

    # -- Inbound ---------------------------------------------------------------

    def _claim(self, channel: str) -> str | None:
        """Match an inbound message to its pending call, or ``None`` if there is none."""
        _, _, event = split_hook_name(channel)
        if self._pending.pop(event, None) is None:
            logger.warning("{}: ignoring response on '{}' with no pending call", self.name, channel)
            return None
        return event

    async def _on_response(self, channel: str, data: str) -> None:
        event = self._claim(channel)
        if event is None:
            return
        self.status_code = HTTPStatus.OK
        self.error = ""
        await self.handle_response(event, data)
        if self.failed():
            logger.warning("{}: '{}' answered but failed: {}", self.name, event, self.error)
        else:
            logger.info("{}: '{}' answered", self.name, event)
        await self._notify()

    async def _on_error(self, channel: str, data: str) -> None:
        event = self._claim(channel)
        if event is None:
            return
        code = parse_status_code(data)
        self.fail(code, self.format_error(code))
        logger.warning("{}: '{}' returned HTTP {}", self.name, event, code)
        await self.handle_error(event, code, data)
        await self._notify()

    async def _notify(self) -> None:
        if self._handler is not None:
            await self._handler()

    # -- Subclass hooks --------------------------------------------------------

    async def handle_response(self, event: str, data: str) -> None:
        """Parse a success payload.  Call ``fail`` if it encodes a failure."""
        raise NotImplementedError

    async def handle_error(self, event: str, code: int, message: str) -> None:  # noqa: B027
        """React to an error answer.  ``status_code`` and ``error`` are already set."""

    def format_error(self, code: int) -> str:
        lines = [f"HTTP ERROR - {code}"]
        guidance = self.error_guidance.get(code)
        if guidance:
            lines.append(f"Error: {guidance}")
        return "\n".join(lines)

    def fail(self, code: int, message: str) -> None:
        self.status_code = code
        self.error = message

    # -- Timeouts --------------------------------------------------------------

    async def check_timeout(self) -> bool:
        """Fail every pending call whose deadline has passed.

        Returns ``True`` if a call timed out (the handler has been awaited).
        """
        now = self._clock()
        expired = [event for event, call in self._pending.items() if call.expired(now)]
        if not expired:
            return False
        for event in expired:
            del self._pending[event]
        names = ", ".join(expired)
        self.fail(HTTPStatus.REQUEST_TIMEOUT, f"No response to '{names}' within {self._timeout:g}s")
        logger.warning("{}: {}", self.name, self.error)
        await self._notify()
        return True

    def cancel(self) -> None:
        """Forget outstanding calls and the last recorded status."""
        self._pending.clear()
        self.status_code = None
        self.error = ""

    # -- Queries ---------------------------------------------------------------

    def failed(self) -> bool:
        return self.status_code is not None and self.status_code != HTTPStatus.OK

    @property
    def pending(self) -> bool:
        return bool(self._pending)

    def is_pending(self, event: str) -> bool:
        return event in self._pending
