"""Relay transports for webhook requests and responses."""

from leavenow.agent.relay.base import DuplicateSubscriptionError, MessageHandler, Relay
from leavenow.agent.relay.redis import RedisRelay

__all__ = ["DuplicateSubscriptionError", "MessageHandler", "RedisRelay", "Relay"]
