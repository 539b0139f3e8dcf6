import asyncio

import ccxt.async_support as ccxt

from arbdesk.aggregation.aggregator import PriceAggregator
from arbdesk.exchanges.gateway import ExchangeGateway


class StaticVenue:
    def __init__(self, tickers: dict, broken: set | None = None, load_error=None):
        self.markets = {symbol: {"active": True} for symbol in tickers}
        self.has = {"fetchTicker": True}
        self.tickers = tickers
        self.broken = broken or set()
        self.load_error = load_error

    async def load_markets(self):
        if self.load_error:
            raise self.load_error
        return self.markets

    async def fetch_ticker(self, symbol):
        if symbol in self.broken:
            raise ccxt.NetworkError("timeout")
        return self.tickers[symbol]

    async def close(self):
        return None


def build_aggregator(venues: dict, min_quote_volume: float = 100_000.0) -> PriceAggregator:
    gateway = ExchangeGateway(
        registry={name: (lambda config, venue=venue: venue) for name, venue in venues.items()},
        retry_attempts=2,
        retry_delay_seconds=0,
    )
    return PriceAggregator(gateway, min_quote_volume=min_quote_volume)


def test_snapshot_drops_tickers_below_volume_floor() -> None:
    aggregator = build_aggregator(
        {
            "binance": StaticVenue(
                {
                    "BTC/USDT": {"last": 100.0, "quoteVolume": 5_000_000.0},
                    "DOGE/USDT": {"last": 0.1, "quoteVolume": 99_999.0},
                }
            )
        }
    )

    snapshot = asyncio.run(aggregator.snapshot(["binance"], ["BTC", "DOGE"]))

    assert snapshot.get("binance", "BTC").price == 100.0
    assert snapshot.get("binance", "DOGE") is None
    assert snapshot.ticker_count == 1


def test_snapshot_normalizes_base_volume() -> None:
    aggregator = build_aggregator(
        {"kraken": StaticVenue({"ETH/USDT": {"last": 2000.0, "quoteVolume": None, "baseVolume": 60.0}})}
    )

    snapshot = asyncio.run(aggregator.snapshot(["kraken"], ["ETH"]))

    assert snapshot.get("kraken", "ETH").quote_volume == 120_000.0


def test_failed_venues_and_symbols_are_simply_absent() -> None:
    aggregator = build_aggregator(
        {
            "binance": StaticVenue(
                {
                    "BTC/USDT": {"last": 100.0, "quoteVolume": 1e6},
                    "ETH/USDT": {"last": 10.0, "quoteVolume": 1e6},
                },
                broken={"ETH/USDT"},
            ),
            "kraken": StaticVenue({}, load_error=ccxt.NetworkError("dns")),
        }
    )

    snapshot = asyncio.run(aggregator.snapshot(["binance", "kraken", "unknown"], ["BTC", "ETH", "SOL"]))

    assert list(snapshot.venues) == ["binance"]
    assert list(snapshot.venues["binance"]) == ["BTC"]
