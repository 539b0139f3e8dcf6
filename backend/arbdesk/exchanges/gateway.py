from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Iterable

import ccxt.async_support as ccxt
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from arbdesk.errors import FetchFailure, PairUnsupported, VenueUnavailable
from arbdesk.exchanges.registry import VENUE_REGISTRY, VenueClient, VenueFactory
from arbdesk.schemas.market import Ticker, VenueStatus

logger = logging.getLogger(__name__)

_RETRYABLE = (ccxt.NetworkError, ccxt.ExchangeError, OSError, asyncio.TimeoutError)


def _as_float(value: Any) -> float | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


def quote_volume_of(raw: dict[str, Any], price: float) -> float:
    quote_volume = _as_float(raw.get("quoteVolume"))
    if quote_volume:
        return quote_volume
    base_volume = _as_float(raw.get("baseVolume"))
    if base_volume:
        return base_volume * price
    return 0.0


class ExchangeGateway:
    """One ccxt client per venue, with bounded-retry ticker fetches.

    A venue whose metadata fails to load is excluded for the lifetime of the
    gateway; later calls for it raise :class:`VenueUnavailable` immediately.
    """

    def __init__(
        self,
        *,
        registry: dict[str, VenueFactory] | None = None,
        timeout_ms: int = 20_000,
        retry_attempts: int = 3,
        retry_delay_seconds: float = 0.5,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = VENUE_REGISTRY if registry is None else registry
        self._timeout_ms = timeout_ms
        self._retry_attempts = max(1, retry_attempts)
        self._retry_delay = retry_delay_seconds
        self._clock = clock
        self._clients: dict[str, VenueClient] = {}
        self._excluded: dict[str, str] = {}
        self._init_locks: dict[str, asyncio.Lock] = {}

    async def initialize(self, venue: str) -> VenueClient:
        client = self._clients.get(venue)
        if client is not None:
            return client
        lock = self._init_locks.setdefault(venue, asyncio.Lock())
        async with lock:
            client = self._clients.get(venue)
            if client is not None:
                return client
            if venue in self._excluded:
                raise VenueUnavailable(venue, self._excluded[venue])

            factory = self._registry.get(venue)
            if factory is None:
                raise self._exclude(venue, "no client registered")

            try:
                client = factory({"timeout": self._timeout_ms, "enableRateLimit": True})
            except Exception as exc:
                raise self._exclude(venue, str(exc) or type(exc).__name__) from exc

            try:
                await client.load_markets()
            except Exception as exc:
                await self._close_client(venue, client)
                raise self._exclude(venue, str(exc) or type(exc).__name__) from exc

            if not (client.has or {}).get("fetchTicker"):
                await self._close_client(venue, client)
                raise self._exclude(venue, "fetchTicker not supported")

            self._clients[venue] = client
            logger.info("%s ready with %d markets", venue, len(client.markets or {}))
            return client

    async def initialize_all(self, venues: Iterable[str]) -> list[str]:
        venues = list(dict.fromkeys(venues))
        results = await asyncio.gather(
            *(self.initialize(venue) for venue in venues), return_exceptions=True
        )
        active: list[str] = []
        for venue, result in zip(venues, results):
            if isinstance(result, VenueUnavailable):
                continue
            if isinstance(result, BaseException):
                raise result
            active.append(venue)
        return active

    def has_market(self, venue: str, symbol: str) -> bool:
        client = self._clients.get(venue)
        if client is None:
            return False
        market = (client.markets or {}).get(symbol)
        if not market:
            return False
        return market.get("active") is not False

    async def fetch_ticker(self, venue: str, symbol: str) -> Ticker:
        client = self._clients.get(venue)
        if client is None:
            raise VenueUnavailable(venue, self._excluded.get(venue, "not initialized"))
        if symbol not in (client.markets or {}):
            raise PairUnsupported(venue, symbol)

        raw: dict[str, Any] | None = None
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_attempts),
                wait=wait_incrementing(start=self._retry_delay, increment=self._retry_delay),
                retry=retry_if_exception_type(_RETRYABLE)
                & retry_if_not_exception_type(ccxt.BadSymbol),
                before_sleep=before_sleep_log(logger, logging.DEBUG),
                reraise=True,
            ):
                with attempt:
                    raw = await client.fetch_ticker(symbol)
        except ccxt.BadSymbol as exc:
            raise PairUnsupported(venue, symbol) from exc
        except _RETRYABLE as exc:
            raise FetchFailure(venue, symbol, self._retry_attempts, str(exc)) from exc

        price = _as_float((raw or {}).get("last"))
        if not price or price <= 0:
            raise FetchFailure(venue, symbol, self._retry_attempts, "ticker has no last price")

        return Ticker(
            venue=venue,
            symbol=symbol,
            price=price,
            bid=_as_float(raw.get("bid")),
            ask=_as_float(raw.get("ask")),
            quote_volume=quote_volume_of(raw, price),
            observed_at=self._clock(),
        )

    def active_venues(self) -> list[str]:
        return list(self._clients)

    def statuses(self) -> list[VenueStatus]:
        statuses = [
            VenueStatus(venue=venue, active=True, market_count=len(client.markets or {}))
            for venue, client in self._clients.items()
        ]
        statuses.extend(
            VenueStatus(venue=venue, active=False, reason=reason)
            for venue, reason in self._excluded.items()
        )
        return sorted(statuses, key=lambda status: status.venue)

    async def close(self) -> None:
        clients, self._clients = self._clients, {}
        for venue, client in clients.items():
            await self._close_client(venue, client)

    def _exclude(self, venue: str, reason: str) -> VenueUnavailable:
        self._excluded[venue] = reason
        logger.warning("Skipping %s for this process: %s", venue, reason)
        return VenueUnavailable(venue, reason)

    async def _close_client(self, venue: str, client: VenueClient) -> None:
        try:
            await client.close()
        except Exception:
            logger.debug("Closing %s client failed", venue, exc_info=True)
