from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CacheEntry(BaseModel):
    key: str
    payload: Any = None
    created_at: float
    ttl_seconds: int
    next_refresh_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.next_refresh_at


class RefreshEnvelope(BaseModel):
    """Wire shape shared by the query API and push messages."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    key: str
    data: Any = None
    last_refresh_time: int
    ttl: int
    next_refresh_time: int
    time_until_next_refresh: int
    server_time: int

    @classmethod
    def from_entry(cls, entry: CacheEntry, now: float, data: Any = None) -> "RefreshEnvelope":
        next_refresh_ms = int(entry.next_refresh_at * 1000)
        server_ms = int(now * 1000)
        return cls(
            key=entry.key,
            data=entry.payload if data is None else data,
            last_refresh_time=int(entry.created_at * 1000),
            ttl=entry.ttl_seconds,
            next_refresh_time=next_refresh_ms,
            time_until_next_refresh=max(0, next_refresh_ms - server_ms),
            server_time=server_ms,
        )
