"""Redis pub/sub relay.

Outbound requests are published as a JSON ``RelayEnvelope`` on
``{prefix}{event}`` (``hooks/calendar_event`` by default).  The bridge answers
on the device-scoped channels, optionally suffixed with a part number
(``{device_id}/hook-response/calendar_event/0``), so every subscription is a
pattern subscription on ``{channel}*``.

Inbound messages are buffered by the redis client and only dispatched from
``pump``, keeping delivery on the driver's tick boundary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import anyio
from loguru import logger
from redis.exceptions import RedisError

from leavenow.agent.models.events import RelayEnvelope
from leavenow.agent.relay.base import DuplicateSubscriptionError, MessageHandler

if TYPE_CHECKING:
    import redis.asyncio as aioredis


def _decode(value: bytes | str) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class RedisRelay:
    """Relay implementation backed by a shared async Redis client."""

    def __init__(self, client: aioredis.Redis, device_id: str, prefix: str = "hooks/") -> None:
        self._client = client
        self._device_id = device_id
        self._prefix = prefix
        self._pubsub = client.pubsub(ignore_subscribe_messages=True)
        self._handlers: dict[str, MessageHandler] = {}
        self._unsubscribed: list[str] = []
        self._listening = False

    @property
    def device_id(self) -> str:
        return self._device_id

    # -- Outbound --------------------------------------------------------------

    async def publish(self, event: str, data: str) -> None:
        envelope = RelayEnvelope(device_id=self._device_id, event=event, data=data)
        try:
            receivers = await self._client.publish(self._prefix + event, envelope.model_dump_json())
        except RedisError as exc:
            # Reported later as a timed-out call, never as an immediate error.
            logger.warning("Relay: publish of '{}' failed: {}", event, exc)
            return
        if receivers == 0:
            logger.warning("Relay: no bridge listening on '{}{}'", self._prefix, event)
        else:
            logger.debug("Relay: published '{}' ({} bytes)", event, len(data))

    # -- Inbound ---------------------------------------------------------------

    def subscribe(self, channel: str, handler: MessageHandler) -> None:
        if channel in self._handlers:
            raise DuplicateSubscriptionError(channel)
        self._handlers[channel] = handler
        self._unsubscribed.append(channel)
        logger.debug("Relay: subscribed to '{}'", channel)

    async def _flush_subscriptions(self) -> None:
        if not self._unsubscribed:
            return
        patterns = [f"{channel}*" for channel in self._unsubscribed]
        await self._pubsub.psubscribe(*patterns)
        self._unsubscribed.clear()
        self._listening = True

    async def pump(self, timeout: float) -> int:
        """Deliver queued answers.

        A Redis outage is logged and treated as an empty wait: the affected
        calls are then failed by their own timeouts, and pending subscriptions
        are retried on the next pump.
        """
        try:
            await self._flush_subscriptions()
            if not self._listening:
                await anyio.sleep(timeout)
                return 0
            return await self._drain(timeout)
        except RedisError as exc:
            logger.warning("Relay: receive failed: {}", exc)
            await anyio.sleep(timeout)
            return 0

    async def _drain(self, timeout: float) -> int:
        delivered = 0
        message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=timeout)
        while message is not None:
            if await self._dispatch(message):
                delivered += 1
            message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=0.0)
        return delivered

    async def _dispatch(self, message: dict) -> bool:
        if message.get("type") != "pmessage":
            return False
        pattern = _decode(message["pattern"])
        channel = _decode(message["channel"])
        handler = self._handlers.get(pattern.removesuffix("*"))
        if handler is None:
            logger.warning("Relay: no handler for '{}'", channel)
            return False
        await handler(channel, _decode(message["data"]))
        return True

    # -- Lifecycle -------------------------------------------------------------

    async def close(self) -> None:
        await self._pubsub.aclose()
        logger.debug("Relay: closed")
