from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_incrementing

from arbdesk.errors import CacheBackendError, ComputeFailure
from arbdesk.schemas.cache import CacheEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")
ComputeFn = Callable[[], Awaitable[Any]]

_BACKEND_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


def create_client(redis_url: str) -> Redis:
    return Redis.from_url(redis_url)


class LocalEntryMap:
    """Bounded in-process map used while Redis is unreachable.

    Entries outlive their TTL so stale data can still be served; they are
    only dropped once ``retention_seconds`` past their refresh time.
    """

    def __init__(
        self,
        max_entries: int = 256,
        retention_seconds: float = 86_400,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_entries = max(1, max_entries)
        self._retention = retention_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> CacheEntry | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.next_refresh_at + self._retention:
                del self._entries[key]
                return None
            return entry

    async def set(self, entry: CacheEntry) -> None:
        async with self._lock:
            if entry.key not in self._entries and len(self._entries) >= self._max_entries:
                stalest = min(self._entries, key=lambda item: self._entries[item].next_refresh_at)
                self._entries.pop(stalest, None)
            self._entries[entry.key] = entry

    def __len__(self) -> int:
        return len(self._entries)


class CacheStore:
    """TTL store of computed payloads backed by Redis with a local fallback.

    Backend failures never reach the caller: after the bounded retries the
    local map answers instead. Computation for a key is single-flight, so
    concurrent cold readers and a refresh cycle never compute the same key
    twice at once.

    An entry past its TTL is stale, not gone. It is served while a refresh
    of its key is running and when a recompute fails, until a later cycle
    replaces it.
    """

    def __init__(
        self,
        client: Redis | None,
        *,
        ttl_seconds: int = 300,
        retry_attempts: int = 3,
        retry_delay_seconds: float = 0.2,
        fallback_max_entries: int = 256,
        stale_retention_seconds: int = 86_400,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.stale_retention_seconds = stale_retention_seconds
        self.clock = clock
        self.fallback = LocalEntryMap(
            fallback_max_entries, retention_seconds=stale_retention_seconds, clock=clock
        )
        self._retry_attempts = max(1, retry_attempts)
        self._retry_delay = retry_delay_seconds
        self._locks: dict[str, asyncio.Lock] = {}

    async def get(self, key: str) -> CacheEntry | None:
        """Return the latest entry for ``key``, fresh or stale."""
        if self.client is None:
            return await self.fallback.get(key)
        try:
            raw = await self._with_retry("get", key, lambda: self.client.get(key))
        except CacheBackendError as exc:
            logger.warning("%s, reading local fallback", exc)
            return await self.fallback.get(key)

        if not raw:
            return None
        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable cache entry for %s", key)
            return None

    async def put(self, key: str, payload: Any, ttl_seconds: int | None = None) -> CacheEntry:
        ttl = ttl_seconds or self.ttl_seconds
        now = self.clock()
        entry = CacheEntry(
            key=key,
            payload=payload,
            created_at=now,
            ttl_seconds=ttl,
            next_refresh_at=now + ttl,
        )
        await self.fallback.set(entry)
        if self.client is not None:
            body = entry.model_dump_json()
            expiry = ttl + self.stale_retention_seconds
            try:
                await self._with_retry("set", key, lambda: self.client.set(key, body, ex=expiry))
            except CacheBackendError as exc:
                logger.warning("%s, entry held locally", exc)
        return entry

    async def get_or_compute(
        self, key: str, compute_fn: ComputeFn, ttl_seconds: int | None = None
    ) -> CacheEntry:
        lock = self._lock_for(key)
        entry = await self.get(key)
        if entry is not None and (entry.is_fresh(self.clock()) or lock.locked()):
            return entry
        async with lock:
            entry = await self.get(key)
            if entry is not None and entry.is_fresh(self.clock()):
                return entry
            try:
                return await self._compute_and_store(key, compute_fn, ttl_seconds)
            except ComputeFailure as exc:
                if entry is None:
                    raise
                logger.warning("Serving stale %s: %s", key, exc.reason)
                return entry

    async def refresh(
        self, key: str, compute_fn: ComputeFn, ttl_seconds: int | None = None
    ) -> CacheEntry:
        """Recompute unconditionally; the previous entry stays if this fails."""
        async with self._lock_for(key):
            return await self._compute_and_store(key, compute_fn, ttl_seconds)

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()

    def _lock_for(self, key: str) -> asyncio.Lock:
        return self._locks.setdefault(key, asyncio.Lock())

    async def _compute_and_store(
        self, key: str, compute_fn: ComputeFn, ttl_seconds: int | None
    ) -> CacheEntry:
        try:
            payload = await compute_fn()
        except ComputeFailure:
            raise
        except Exception as exc:
            raise ComputeFailure(key, str(exc) or type(exc).__name__) from exc
        return await self.put(key, payload, ttl_seconds)

    async def _with_retry(self, operation: str, key: str, call: Callable[[], Awaitable[T]]) -> T:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_attempts),
                wait=wait_incrementing(start=self._retry_delay, increment=self._retry_delay),
                retry=retry_if_exception_type(_BACKEND_ERRORS),
                reraise=True,
            ):
                with attempt:
                    return await call()
        except _BACKEND_ERRORS as exc:
            raise CacheBackendError(operation, key, str(exc)) from exc
        raise CacheBackendError(operation, key, "no attempts made")
