"""
Real-time event fan-out for conversations and agent lifecycle changes.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID, uuid4

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

BROADCAST_CHANNEL = "channel:broadcast"


class EventType(str, Enum):
    NEW_MESSAGE = "new-message"
    TYPING_INDICATOR = "typing-indicator"
    AGENT_STREAMING = "agent-streaming"

    AGENT_CREATED = "agent-created"
    AGENT_UPDATED = "agent-updated"
    AGENT_DELETED = "agent-deleted"


def room_channel(conversation_id: str) -> str:
    return f"channel:conversation:{conversation_id}"


@dataclass
class HuddleEvent:
    """A single published event, optionally addressed to a conversation room."""

    type: EventType
    payload: dict[str, Any] = field(default_factory=dict)
    conversation_id: str | None = None
    id: UUID = field(default_factory=uuid4)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "type": self.type.value,
            "conversation_id": self.conversation_id,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


class Publisher(Protocol):
    async def emit(self, event: EventType, payload: dict[str, Any]) -> None: ...

    async def emit_to_room(
        self, conversation_id: str, event: EventType, payload: dict[str, Any]
    ) -> None: ...


EventHandler = Callable[[HuddleEvent], Awaitable[None] | None]


class EventBus:
    """In-process publisher that forwards events to registered handlers."""

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []

    def on_event(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    async def publish(self, event: HuddleEvent) -> None:
        for handler in self._handlers:
            try:
                result = handler(event)
                if hasattr(result, "__await__"):
                    await result
            except Exception:
                logger.exception("Event handler failed for %s", event.type.value)

    async def emit(self, event: EventType, payload: dict[str, Any]) -> None:
        await self.publish(HuddleEvent(type=event, payload=payload))

    async def emit_to_room(
        self, conversation_id: str, event: EventType, payload: dict[str, Any]
    ) -> None:
        await self.publish(
            HuddleEvent(type=event, payload=payload, conversation_id=conversation_id)
        )


class RedisPublishHandler:
    """Event handler that publishes events to Redis Pub/Sub."""

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    async def __call__(self, event: HuddleEvent) -> None:
        channel = BROADCAST_CHANNEL
        if event.conversation_id:
            channel = room_channel(event.conversation_id)
        try:
            await self._redis.publish(channel, json.dumps(event.to_dict(), default=str))
        except RedisError as exc:
            logger.warning("Redis publish failed on %s: %s", channel, exc)
