from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from arbdesk.cache import CacheStore, ComputeFn
from arbdesk.errors import ComputeFailure
from arbdesk.push.broadcaster import Broadcaster
from arbdesk.schemas.cache import CacheEntry

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run ``fn`` immediately and then every ``interval`` seconds until stopped.

    ``stop()`` lets an in-flight cycle finish; only the wait between cycles
    is interrupted.
    """

    def __init__(self, name: str, fn: Callable[[], Awaitable[Any]], interval: float) -> None:
        self.name = name
        self.fn = fn
        self.interval = interval
        self._stopping = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.fn()
            except Exception:
                logger.exception("%s cycle failed", self.name)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self.run(), name=self.name)
        return self._task

    async def stop(self) -> None:
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None


class RefreshScheduler:
    def __init__(self, store: CacheStore, broadcaster: Broadcaster | None = None) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self._jobs: dict[str, tuple[ComputeFn, int]] = {}
        self._tasks: dict[str, PeriodicTask] = {}

    def register(self, key: str, compute_fn: ComputeFn, ttl_seconds: int) -> None:
        self._jobs[key] = (compute_fn, ttl_seconds)

    async def run_cycle(self, key: str) -> CacheEntry | None:
        compute_fn, ttl = self._jobs[key]
        try:
            entry = await self.store.refresh(key, compute_fn, ttl)
        except ComputeFailure as exc:
            logger.error("Refresh of %s failed, keeping previous entry: %s", key, exc.reason)
            return None

        logger.info("Refreshed %s, next refresh in %ss", key, ttl)
        if self.broadcaster is not None:
            await self.broadcaster.publish(entry)
        return entry

    async def run(self, key: str, compute_fn: ComputeFn, ttl_seconds: int) -> None:
        self.register(key, compute_fn, ttl_seconds)
        task = self._tasks.setdefault(
            key, PeriodicTask(f"refresh:{key}", self._cycle_for(key), ttl_seconds)
        )
        await task.run()

    def start(self) -> list[asyncio.Task]:
        tasks = []
        for key, (_, ttl) in self._jobs.items():
            task = self._tasks.setdefault(
                key, PeriodicTask(f"refresh:{key}", self._cycle_for(key), ttl)
            )
            tasks.append(task.start())
        return tasks

    async def stop(self) -> None:
        await asyncio.gather(*(task.stop() for task in self._tasks.values()))

    def _cycle_for(self, key: str) -> Callable[[], Awaitable[CacheEntry | None]]:
        return lambda: self.run_cycle(key)
