from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Ticker(BaseModel):
    model_config = ConfigDict(frozen=True)

    venue: str
    symbol: str
    price: float
    quote_volume: float
    observed_at: float
    bid: Optional[float] = None
    ask: Optional[float] = None

    @property
    def coin(self) -> str:
        return self.symbol.split("/", 1)[0]

    def buy_price(self) -> float:
        return self.ask or self.price

    def sell_price(self) -> float:
        return self.bid or self.price


class MarketSnapshot(BaseModel):
    """Tickers from one aggregation cycle, keyed venue -> coin."""

    venues: dict[str, dict[str, Ticker]] = Field(default_factory=dict)

    def get(self, venue: str, coin: str) -> Ticker | None:
        return self.venues.get(venue, {}).get(coin)

    def venues_with(self, *coins: str) -> list[str]:
        return [
            venue
            for venue, tickers in self.venues.items()
            if all(coin in tickers and tickers[coin].price > 0 for coin in coins)
        ]

    @property
    def ticker_count(self) -> int:
        return sum(len(tickers) for tickers in self.venues.values())


class VenueStatus(BaseModel):
    venue: str
    active: bool
    market_count: int = 0
    reason: Optional[str] = None
