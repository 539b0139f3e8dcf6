import pytest

from arbdesk.engines.pairwise import PairwiseArbitrageEngine, rescale, round_trip
from arbdesk.schemas.market import MarketSnapshot, Ticker


def build_snapshot(prices: dict[str, dict[str, float]], volume: float = 1_000_000.0) -> MarketSnapshot:
    snapshot = MarketSnapshot()
    for venue, coins in prices.items():
        for coin, price in coins.items():
            snapshot.venues.setdefault(venue, {})[coin] = Ticker(
                venue=venue,
                symbol=f"{coin}/USDT",
                price=price,
                quote_volume=volume,
                observed_at=0.0,
            )
    return snapshot


def test_round_trip_formula() -> None:
    trip = round_trip(100_000, buy_price_a=100, buy_price_b=50, sell_price_a=102, sell_price_b=49)

    assert trip.coin_a_bought == pytest.approx(1000)
    assert trip.proceeds_after_sell_a == pytest.approx(102_000)
    assert round(trip.coin_b_bought, 4) == 2081.6327
    assert round(trip.final_amount, 2) == 104_081.63
    assert round(trip.profit, 2) == 4081.63
    assert round(trip.profit_percent, 2) == 4.08


def test_two_venue_scenario_yields_single_opportunity() -> None:
    snapshot = build_snapshot({"X": {"A": 100, "B": 50}, "Y": {"A": 102, "B": 49}})
    engine = PairwiseArbitrageEngine(["A", "B"])

    results = engine.find(snapshot, 100_000)

    assert len(results) == 1
    opportunity = results[0]
    assert (opportunity.coin_a, opportunity.coin_b) == ("A", "B")
    assert opportunity.buy_venue == "X"
    assert opportunity.sell_venue == "Y"
    assert opportunity.profit == 4081.63
    assert opportunity.profit_percent == 4.08
    assert opportunity.final_amount == 104_081.63
    assert opportunity.investment == 100_000
    assert opportunity.buy_volume_a == 1_000_000.0


def test_unprofitable_round_trip_is_discarded() -> None:
    snapshot = build_snapshot({"X": {"A": 100, "B": 50}, "Y": {"A": 102, "B": 51}})
    engine = PairwiseArbitrageEngine(["A", "B"])

    assert engine.find(snapshot, 100_000) == []


def test_pair_needs_two_venues_quoting_both_coins() -> None:
    snapshot = build_snapshot({"X": {"A": 100, "B": 50}, "Y": {"A": 102}})
    engine = PairwiseArbitrageEngine(["A", "B"])

    assert engine.find(snapshot, 100_000) == []


def test_equal_prices_select_same_venue_and_skip() -> None:
    snapshot = build_snapshot({"X": {"A": 100, "B": 50}, "Y": {"A": 100, "B": 40}})
    engine = PairwiseArbitrageEngine(["A", "B"])

    assert engine.find(snapshot, 100_000) == []


def test_ties_keep_first_venue_encountered() -> None:
    snapshot = build_snapshot(
        {
            "X": {"A": 100, "B": 50},
            "Z": {"A": 100, "B": 60},
            "Y": {"A": 102, "B": 49},
        }
    )
    engine = PairwiseArbitrageEngine(["A", "B"])

    results = engine.find(snapshot, 100_000)

    assert results[0].buy_venue == "X"
    assert results[0].buy_price_b == 50


def test_results_sorted_by_profit_and_capped() -> None:
    coins = [f"C{index}" for index in range(8)]
    low = {coin: 100.0 + index for index, coin in enumerate(coins)}
    high = {coin: (100.0 + index) * (1 + 0.01 * (len(coins) - index)) for index, coin in enumerate(coins)}
    snapshot = build_snapshot({"cheap": low, "dear": high})
    engine = PairwiseArbitrageEngine(coins, top_n=5)

    results = engine.find(snapshot, 100_000)

    assert len(results) == 5
    profits = [opportunity.profit for opportunity in results]
    assert profits == sorted(profits, reverse=True)
    for opportunity in results:
        assert opportunity.buy_venue != opportunity.sell_venue
        assert opportunity.profit > 0


def test_rescale_restates_profit_for_other_investment() -> None:
    snapshot = build_snapshot({"X": {"A": 100, "B": 50}, "Y": {"A": 102, "B": 49}})
    results = PairwiseArbitrageEngine(["A", "B"]).find(snapshot, 100_000)

    rescaled = rescale(results, 1_000)

    assert rescaled[0].investment == 1_000
    assert rescaled[0].profit == 40.82
    assert rescaled[0].profit_percent == results[0].profit_percent
    assert results[0].investment == 100_000


def test_sub_cent_profit_is_not_emitted() -> None:
    snapshot = build_snapshot({"X": {"A": 100, "B": 50}, "Y": {"A": 100.000004, "B": 50}})
    engine = PairwiseArbitrageEngine(["A", "B"])

    assert engine.find(snapshot, 100_000) == []


def test_rescale_keeps_low_priced_coin_profitable() -> None:
    snapshot = build_snapshot(
        {
            "X": {"SHIB": 0.000012341, "BTC": 60_000},
            "Y": {"SHIB": 0.000012344, "BTC": 60_001},
        }
    )
    results = PairwiseArbitrageEngine(["SHIB", "BTC"]).find(snapshot, 100_000)
    assert results[0].profit == 22.64

    rescaled = rescale(results, 1_000_000)

    assert len(rescaled) == 1
    assert rescaled[0].profit == 226.42
    assert rescaled[0].final_amount == 1_000_226.42
    assert rescaled[0].profit_percent == results[0].profit_percent


def test_rescale_drops_rows_whose_profit_rounds_away() -> None:
    snapshot = build_snapshot({"X": {"A": 100, "B": 50}, "Y": {"A": 102, "B": 49}})
    results = PairwiseArbitrageEngine(["A", "B"]).find(snapshot, 100_000)

    assert rescale(results, 0.1) == []
