from __future__ import annotations

from typing import Iterable

from arbdesk.schemas.market import MarketSnapshot, Ticker
from arbdesk.schemas.opportunity import TrackerEntry


def summarize_spreads(snapshot: MarketSnapshot, coins: Iterable[str]) -> list[TrackerEntry]:
    """Per-coin cheapest and dearest venue, most divergent coins first."""
    entries: list[TrackerEntry] = []
    for coin in coins:
        tickers: list[Ticker] = [
            ticker
            for ticker in (snapshot.get(venue, coin) for venue in snapshot.venues)
            if ticker is not None
        ]
        if len(tickers) < 2:
            continue

        highest = tickers[0]
        lowest = tickers[0]
        for ticker in tickers[1:]:
            if ticker.price > highest.price:
                highest = ticker
            if ticker.price < lowest.price:
                lowest = ticker

        spread = (highest.price - lowest.price) / lowest.price * 100
        entries.append(
            TrackerEntry(
                coin=coin,
                highest_venue=highest.venue,
                lowest_venue=lowest.venue,
                highest_price=highest.price,
                lowest_price=lowest.price,
                spread_percent=round(spread, 2),
                highest_volume=round(highest.quote_volume, 2),
                lowest_volume=round(lowest.quote_volume, 2),
            )
        )

    entries.sort(key=lambda entry: entry.spread_percent, reverse=True)
    return entries
