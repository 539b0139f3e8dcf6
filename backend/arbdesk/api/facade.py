from __future__ import annotations

import time
from typing import Any, Callable

from arbdesk.cache import CacheStore
from arbdesk.schemas.cache import RefreshEnvelope
from arbdesk.services.opportunities import Dataset


class UnknownDataset(KeyError):
    pass


class APIFacade:
    """Answer dataset queries from the cache, computing only on a cold key."""

    def __init__(
        self,
        store: CacheStore,
        datasets: dict[str, Dataset],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.datasets = datasets
        self.clock = clock

    async def query(self, key: str, params: dict[str, Any] | None = None) -> RefreshEnvelope:
        dataset = self.datasets.get(key)
        if dataset is None:
            raise UnknownDataset(key)

        entry = await self.store.get_or_compute(key, dataset.compute_fn, dataset.ttl_seconds)
        data = entry.payload
        if dataset.view is not None and params:
            data = dataset.view(entry.payload, params)
        return RefreshEnvelope.from_entry(entry, self.clock(), data=data)
