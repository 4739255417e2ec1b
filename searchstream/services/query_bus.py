"""
Query Bus - per-session pub/sub channel for raw keystroke fragments.

Each session publishes to and listens on its own channel
(``search:user:<session_id>``), so sessions never share a channel and no
locking is needed between them.

Backends:
- RedisQueryBus: Redis pub/sub, fans keystrokes out across gateway instances
- InMemoryQueryBus: asyncio queues, single process (local runs and tests)

Usage:
    bus = RedisQueryBus(redis_client)
    subscription = await bus.subscribe("u1")   # live once this returns
    await bus.publish("u1", "sam")
    async for text in subscription:
        ...
    await subscription.close()
"""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import AsyncIterator, Dict, Optional, Set

import redis.asyncio as redis
from searchstream.core.logging import get_logger
from searchstream.core.metrics import query_bus_publish_failures_total
from searchstream.core.resilience import retry_redis_operation
from searchstream.core.search_errors import require_session_id

logger = get_logger(__name__)

CHANNEL_PREFIX = "search:user:"


def channel_for(session_id: str) -> str:
    """Channel key for one session."""
    return f"{CHANNEL_PREFIX}{require_session_id(session_id)}"


class QuerySubscription(ABC):
    """Ordered stream of raw fragments for one session channel."""

    def __init__(self, channel: str):
        self.channel = channel
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[str]: ...

    @abstractmethod
    async def close(self) -> None: ...


class QueryBus(ABC):
    """Abstract per-session publish/subscribe primitive."""

    backend = "abstract"

    @abstractmethod
    async def publish(self, session_id: str, text: Optional[str]) -> bool:
        """Publish a fragment. Returns False when the fragment could not be sent."""

    @abstractmethod
    async def subscribe(self, session_id: str) -> QuerySubscription:
        """Subscribe to a session channel; the subscription is live on return."""

    async def close(self) -> None:
        """Release backend resources."""


# ==============================================================================
# Redis backend
# ==============================================================================


class RedisQuerySubscription(QuerySubscription):
    def __init__(self, pubsub, channel: str):
        super().__init__(channel)
        self._pubsub = pubsub

    async def __aiter__(self) -> AsyncIterator[str]:
        async for message in self._pubsub.listen():
            if self._closed:
                break
            if message.get("type") != "message":
                continue
            data = message.get("data")
            if isinstance(data, bytes):
                data = data.decode("utf-8", errors="replace")
            yield "" if data is None else data

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
        except Exception as e:
            logger.warning("query_bus_unsubscribe_failed", channel=self.channel, error=str(e))


class RedisQueryBus(QueryBus):
    """Redis pub/sub keystroke bus."""

    backend = "redis"

    def __init__(self, client: redis.Redis):
        self._client = client

    @retry_redis_operation()
    async def _publish(self, channel: str, payload: str) -> int:
        return await self._client.publish(channel, payload)

    async def publish(self, session_id: str, text: Optional[str]) -> bool:
        channel = channel_for(session_id)
        payload = "" if text is None else text
        try:
            receivers = await self._publish(channel, payload)
            logger.debug("query_bus_published", channel=channel, receivers=receivers)
            return True
        except Exception as e:
            # Fire-and-forget: a lost keystroke must never break the client
            query_bus_publish_failures_total.labels(backend=self.backend).inc()
            logger.warning("query_bus_publish_failed", channel=channel, error=str(e))
            return False

    async def subscribe(self, session_id: str) -> QuerySubscription:
        channel = channel_for(session_id)
        pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        await pubsub.subscribe(channel)
        logger.debug("query_bus_subscribed", channel=channel)
        return RedisQuerySubscription(pubsub, channel)


# ==============================================================================
# In-memory backend
# ==============================================================================

_CLOSED = object()


class InMemoryQuerySubscription(QuerySubscription):
    def __init__(self, bus: "InMemoryQueryBus", channel: str):
        super().__init__(channel)
        self._bus = bus
        self.queue: asyncio.Queue = asyncio.Queue()

    async def __aiter__(self) -> AsyncIterator[str]:
        while not self._closed:
            item = await self.queue.get()
            if item is _CLOSED:
                break
            yield item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._bus._detach(self)
        self.queue.put_nowait(_CLOSED)


class InMemoryQueryBus(QueryBus):
    """Single-process keystroke bus; fragments without a subscriber are dropped."""

    backend = "memory"

    def __init__(self):
        self._subscribers: Dict[str, Set[InMemoryQuerySubscription]] = defaultdict(set)

    async def publish(self, session_id: str, text: Optional[str]) -> bool:
        channel = channel_for(session_id)
        payload = "" if text is None else text
        for subscription in list(self._subscribers.get(channel, ())):
            subscription.queue.put_nowait(payload)
        return True

    async def subscribe(self, session_id: str) -> QuerySubscription:
        channel = channel_for(session_id)
        subscription = InMemoryQuerySubscription(self, channel)
        self._subscribers[channel].add(subscription)
        return subscription

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscribers.get(channel_for(session_id), ()))

    def _detach(self, subscription: InMemoryQuerySubscription) -> None:
        subscribers = self._subscribers.get(subscription.channel)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.channel]

    async def close(self) -> None:
        for subscribers in list(self._subscribers.values()):
            for subscription in list(subscribers):
                await subscription.close()
