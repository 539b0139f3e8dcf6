from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from arbdesk.schemas.cache import CacheEntry, RefreshEnvelope

logger = logging.getLogger(__name__)


class PushChannel(Protocol):
    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


@dataclass(eq=False)
class Subscriber:
    channel: PushChannel
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    alive: bool = True
    missed_probes: int = 0

    def mark_alive(self) -> None:
        self.alive = True
        self.missed_probes = 0


class SubscriberRegistry:
    def __init__(self) -> None:
        self._subscribers: dict[str, Subscriber] = {}
        self._lock = asyncio.Lock()

    async def add(self, channel: PushChannel) -> Subscriber:
        subscriber = Subscriber(channel)
        async with self._lock:
            self._subscribers[subscriber.id] = subscriber
        return subscriber

    async def remove(self, subscriber: Subscriber) -> bool:
        async with self._lock:
            return self._subscribers.pop(subscriber.id, None) is not None

    async def snapshot(self) -> list[Subscriber]:
        async with self._lock:
            return list(self._subscribers.values())

    def __len__(self) -> int:
        return len(self._subscribers)


class Broadcaster:
    """Push refreshed datasets to every live subscriber."""

    def __init__(
        self,
        registry: SubscriberRegistry | None = None,
        *,
        max_missed_probes: int = 2,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = SubscriberRegistry() if registry is None else registry
        self.max_missed_probes = max_missed_probes
        self.clock = clock

    async def connect(self, channel: PushChannel) -> Subscriber:
        subscriber = await self.registry.add(channel)
        logger.info("Subscriber %s connected (%d live)", subscriber.id, len(self.registry))
        return subscriber

    async def disconnect(self, subscriber: Subscriber) -> None:
        if await self.registry.remove(subscriber):
            logger.info("Subscriber %s disconnected (%d live)", subscriber.id, len(self.registry))

    async def publish(self, entry: CacheEntry) -> int:
        message = RefreshEnvelope.from_entry(entry, self.clock()).model_dump(mode="json", by_alias=True)
        delivered = 0
        for subscriber in await self.registry.snapshot():
            try:
                await subscriber.channel.send_json(message)
            except Exception as exc:
                subscriber.alive = False
                logger.warning("Push of %s to %s failed: %s", entry.key, subscriber.id, exc)
                continue
            delivered += 1
        return delivered

    async def probe(self) -> list[Subscriber]:
        """Ping every subscriber; drop those that missed too many probes."""
        removed: list[Subscriber] = []
        ping = {"type": "ping", "serverTime": int(self.clock() * 1000)}
        for subscriber in await self.registry.snapshot():
            if subscriber.alive:
                subscriber.missed_probes = 0
            else:
                subscriber.missed_probes += 1

            if subscriber.missed_probes >= self.max_missed_probes:
                logger.warning("Subscriber %s unresponsive, removing", subscriber.id)
                await self.registry.remove(subscriber)
                await self._close(subscriber)
                removed.append(subscriber)
                continue

            subscriber.alive = False
            try:
                await subscriber.channel.send_json(ping)
            except Exception as exc:
                logger.debug("Ping to %s failed: %s", subscriber.id, exc)
        return removed

    async def _close(self, subscriber: Subscriber) -> None:
        try:
            await subscriber.channel.close(code=1001)
        except Exception:
            logger.debug("Closing %s failed", subscriber.id, exc_info=True)
