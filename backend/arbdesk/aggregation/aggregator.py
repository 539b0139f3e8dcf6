from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from arbdesk.errors import ArbdeskError, PairUnsupported, VenueUnavailable
from arbdesk.exchanges.gateway import ExchangeGateway
from arbdesk.schemas.market import MarketSnapshot, Ticker

logger = logging.getLogger(__name__)


class PriceAggregator:
    def __init__(
        self,
        gateway: ExchangeGateway,
        *,
        quote_currency: str = "USDT",
        min_quote_volume: float = 100_000.0,
    ) -> None:
        self.gateway = gateway
        self.quote_currency = quote_currency
        self.min_quote_volume = min_quote_volume

    def symbol_for(self, coin: str) -> str:
        return f"{coin}/{self.quote_currency}"

    async def snapshot(self, venues: Iterable[str], coins: Iterable[str]) -> MarketSnapshot:
        """Fetch every (venue, coin) ticker concurrently and keep the liquid ones.

        Venues that cannot be initialised and tickers that fail or fall below
        the volume floor are left out; nothing here fails the whole snapshot.
        """
        coins = list(dict.fromkeys(coins))
        active = await self.gateway.initialize_all(venues)

        requests: list[tuple[str, str]] = [(venue, coin) for venue in active for coin in coins]
        results = await asyncio.gather(
            *(self._fetch(venue, coin) for venue, coin in requests),
        )

        snapshot = MarketSnapshot()
        for (venue, coin), ticker in zip(requests, results):
            if ticker is None:
                continue
            snapshot.venues.setdefault(venue, {})[coin] = ticker

        logger.info(
            "Snapshot built: %d tickers across %d venues",
            snapshot.ticker_count,
            len(snapshot.venues),
        )
        return snapshot

    async def _fetch(self, venue: str, coin: str) -> Ticker | None:
        symbol = self.symbol_for(coin)
        try:
            ticker = await self.gateway.fetch_ticker(venue, symbol)
        except (PairUnsupported, VenueUnavailable) as exc:
            logger.debug("%s", exc)
            return None
        except ArbdeskError as exc:
            logger.warning("%s", exc)
            return None

        if ticker.quote_volume < self.min_quote_volume:
            logger.debug(
                "%s on %s has insufficient volume (%.2f %s)",
                symbol,
                venue,
                ticker.quote_volume,
                self.quote_currency,
            )
            return None
        return ticker
