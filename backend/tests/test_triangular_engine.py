import asyncio

import ccxt.async_support as ccxt
import pytest

from arbdesk.engines.triangular import (
    TriangularArbitrageEngine,
    TriangularSet,
    check_pairs,
    evaluate_set,
    generate_sets,
)
from arbdesk.exchanges.gateway import ExchangeGateway
from arbdesk.schemas.market import Ticker


def ticker(symbol: str, bid: float | None, ask: float | None, last: float = 0.0) -> Ticker:
    return Ticker(
        venue="binance",
        symbol=symbol,
        price=last or ask or bid,
        bid=bid,
        ask=ask,
        quote_volume=1_000_000.0,
        observed_at=10.0,
    )


class BookVenue:
    def __init__(self, tickers: dict, broken: set | None = None):
        self.markets = {symbol: {"active": True} for symbol in tickers}
        self.has = {"fetchTicker": True}
        self.tickers = tickers
        self.broken = broken or set()

    async def load_markets(self):
        return self.markets

    async def fetch_ticker(self, symbol):
        if symbol in self.broken:
            raise ccxt.NetworkError("rate limited")
        return self.tickers[symbol]

    async def close(self):
        return None


def build_engine(venue: BookVenue, sleeps: list) -> TriangularArbitrageEngine:
    gateway = ExchangeGateway(
        registry={"binance": lambda config: venue},
        retry_attempts=1,
        retry_delay_seconds=0,
    )

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    return TriangularArbitrageEngine(
        gateway,
        base_currencies=["USDT"],
        coins=["BTC", "ETH", "ADA"],
        starting_amount=1000.0,
        set_delay_seconds=0.1,
        sleep=fake_sleep,
    )


def test_generate_sets_excludes_base_and_pairs_coins_once() -> None:
    sets = generate_sets("USDT", ["BTC", "ETH", "USDT", "ADA"])
    assert [(item.coin_a, item.coin_b) for item in sets] == [("BTC", "ETH"), ("BTC", "ADA"), ("ETH", "ADA")]


def test_check_pairs_detects_reverse_cross_pair() -> None:
    markets = {"BTC/USDT", "ETH/USDT", "ETH/BTC"}
    check = check_pairs(markets.__contains__, TriangularSet("USDT", "BTC", "ETH"))

    assert check.all_exist
    assert check.third_pair == "ETH/BTC"
    assert check.reversed is True


def test_check_pairs_reports_missing_pairs() -> None:
    markets = {"BTC/USDT"}
    check = check_pairs(markets.__contains__, TriangularSet("USDT", "BTC", "ADA"))

    assert not check.all_exist
    assert check.missing == ["ADA/USDT", "BTC/ADA or ADA/BTC"]


def test_profitable_cycle_through_reverse_pair() -> None:
    tri_set = TriangularSet("USDT", "BTC", "ETH")
    check = check_pairs({"BTC/USDT", "ETH/USDT", "ETH/BTC"}.__contains__, tri_set)

    result = evaluate_set(
        "binance",
        tri_set,
        check,
        ticker("BTC/USDT", bid=99.0, ask=100.0),
        ticker("ETH/USDT", bid=10.2, ask=10.3),
        ticker("ETH/BTC", bid=0.1, ask=0.101),
        1000.0,
    )

    assert result.direction == "base_a_b"
    assert [(leg.action, leg.pair) for leg in result.legs] == [
        ("BUY", "BTC/USDT"),
        ("BUY", "ETH/BTC"),
        ("SELL", "ETH/USDT"),
    ]
    assert result.legs[0].amount == pytest.approx(10.0)
    assert result.legs[1].amount == pytest.approx(10 / 0.101)
    assert result.final_amount == 1009.9
    assert result.profit_percent == pytest.approx(0.9901, abs=1e-4)
    assert result.final_amount == pytest.approx(
        result.starting_amount * (1 + result.profit_percent / 100), abs=0.01
    )


def test_lossy_cycle_is_still_reported() -> None:
    tri_set = TriangularSet("USDT", "ADA", "BTC")
    check = check_pairs({"ADA/USDT", "BTC/USDT", "ADA/BTC"}.__contains__, tri_set)

    result = evaluate_set(
        "binance",
        tri_set,
        check,
        ticker("ADA/USDT", bid=1.99, ask=2.0),
        ticker("BTC/USDT", bid=3.99, ask=4.0),
        ticker("ADA/BTC", bid=0.5, ask=0.52),
        1000.0,
    )

    assert check.reversed is False
    assert result.direction == "base_a_b"
    assert [leg.action for leg in result.legs] == ["BUY", "SELL", "SELL"]
    assert result.legs[1].amount == pytest.approx(500.0)
    assert result.final_amount == 997.5
    assert result.profit_amount == -2.5
    assert result.profit_percent == -0.25


def test_missing_bid_ask_falls_back_to_last_price() -> None:
    tri_set = TriangularSet("USDT", "BTC", "ETH")
    check = check_pairs({"BTC/USDT", "ETH/USDT", "ETH/BTC"}.__contains__, tri_set)

    result = evaluate_set(
        "binance",
        tri_set,
        check,
        ticker("BTC/USDT", bid=None, ask=None, last=100.0),
        ticker("ETH/USDT", bid=None, ask=None, last=10.0),
        ticker("ETH/BTC", bid=None, ask=None, last=0.1),
        1000.0,
    )

    last_prices = {"BTC/USDT": 100.0, "ETH/USDT": 10.0, "ETH/BTC": 0.1}
    assert result.profit_percent == pytest.approx(0.0)
    assert all(leg.price == last_prices[leg.pair] for leg in result.legs)


def test_scan_skips_incomplete_sets_and_throttles() -> None:
    venue = BookVenue(
        {
            "BTC/USDT": {"last": 100.0, "bid": 99.0, "ask": 100.0, "quoteVolume": 1e6},
            "ETH/USDT": {"last": 10.0, "bid": 10.2, "ask": 10.3, "quoteVolume": 1e6},
            "ETH/BTC": {"last": 0.1, "bid": 0.1, "ask": 0.101, "quoteVolume": 1e6},
            "ADA/USDT": {"last": 0.5, "bid": 0.5, "ask": 0.5, "quoteVolume": 1e6},
        }
    )
    sleeps: list = []
    engine = build_engine(venue, sleeps)

    results = asyncio.run(engine.scan(["binance"]))

    assert len(results) == 1
    assert (results[0].coin_a, results[0].coin_b) == ("BTC", "ETH")
    assert set(results[0].prices) == {"BTC/USDT", "ETH/USDT", "ETH/BTC"}
    assert sleeps == [0.1]


def test_scan_continues_past_fetch_failures() -> None:
    venue = BookVenue(
        {
            "BTC/USDT": {"last": 100.0, "quoteVolume": 1e6},
            "ETH/USDT": {"last": 10.0, "quoteVolume": 1e6},
            "ETH/BTC": {"last": 0.1, "quoteVolume": 1e6},
            "ADA/USDT": {"last": 0.5, "quoteVolume": 1e6},
            "ADA/BTC": {"last": 0.005, "quoteVolume": 1e6},
        },
        broken={"ETH/BTC"},
    )
    engine = build_engine(venue, [])

    results = asyncio.run(engine.scan(["binance"]))

    assert [(result.coin_a, result.coin_b) for result in results] == [("BTC", "ADA")]


class SlowBookVenue(BookVenue):
    def __init__(self, tickers: dict, broken: set | None = None):
        super().__init__(tickers, broken)
        self.completed: list = []

    async def fetch_ticker(self, symbol):
        if symbol not in self.broken:
            await asyncio.sleep(0.01)
        result = await super().fetch_ticker(symbol)
        self.completed.append(symbol)
        return result


def test_failed_set_is_throttled_and_waits_for_sibling_fetches() -> None:
    venue = SlowBookVenue(
        {
            "BTC/USDT": {"last": 100.0, "quoteVolume": 1e6},
            "ETH/USDT": {"last": 10.0, "quoteVolume": 1e6},
            "ETH/BTC": {"last": 0.1, "quoteVolume": 1e6},
            "ADA/USDT": {"last": 0.5, "quoteVolume": 1e6},
            "ADA/BTC": {"last": 0.005, "quoteVolume": 1e6},
        },
        broken={"ETH/BTC"},
    )
    sleeps: list = []
    engine = build_engine(venue, sleeps)

    results = asyncio.run(engine.scan(["binance"]))

    assert [(result.coin_a, result.coin_b) for result in results] == [("BTC", "ADA")]
    assert sleeps == [0.1, 0.1]
    assert sorted(venue.completed[:2]) == ["BTC/USDT", "ETH/USDT"]


def test_scan_of_unavailable_venue_is_empty() -> None:
    engine = build_engine(BookVenue({}), [])
    assert asyncio.run(engine.scan(["kraken"])) == []
