from __future__ import annotations

from dataclasses import dataclass
from itertools import combinations
from typing import Iterable

from arbdesk.schemas.market import MarketSnapshot
from arbdesk.schemas.opportunity import PairwiseOpportunity


@dataclass(frozen=True)
class RoundTrip:
    coin_a_bought: float
    proceeds_after_sell_a: float
    coin_b_bought: float
    final_amount: float
    profit: float
    profit_percent: float


def round_trip(
    investment: float,
    buy_price_a: float,
    buy_price_b: float,
    sell_price_a: float,
    sell_price_b: float,
) -> RoundTrip:
    """Buy A cheap, sell A dear, buy B there, sell B back on the cheap venue."""
    coin_a_bought = investment / buy_price_a
    proceeds = coin_a_bought * sell_price_a
    coin_b_bought = proceeds / sell_price_b
    final_amount = coin_b_bought * buy_price_b
    profit = final_amount - investment
    return RoundTrip(
        coin_a_bought=coin_a_bought,
        proceeds_after_sell_a=proceeds,
        coin_b_bought=coin_b_bought,
        final_amount=final_amount,
        profit=profit,
        profit_percent=profit / investment * 100,
    )


class PairwiseArbitrageEngine:
    def __init__(self, coins: Iterable[str], *, top_n: int = 20) -> None:
        self.coins = list(dict.fromkeys(coins))
        self.top_n = top_n

    def find(self, snapshot: MarketSnapshot, investment: float) -> list[PairwiseOpportunity]:
        results: list[PairwiseOpportunity] = []
        for coin_a, coin_b in combinations(self.coins, 2):
            opportunity = self._evaluate(snapshot, coin_a, coin_b, investment)
            if opportunity is not None:
                results.append(opportunity)

        results.sort(key=lambda opportunity: opportunity.profit, reverse=True)
        return results[: self.top_n]

    def _evaluate(
        self, snapshot: MarketSnapshot, coin_a: str, coin_b: str, investment: float
    ) -> PairwiseOpportunity | None:
        venues = snapshot.venues_with(coin_a, coin_b)
        if len(venues) < 2:
            return None

        # Keyed on coin A only; first venue wins ties.
        min_venue = venues[0]
        max_venue = venues[0]
        for venue in venues[1:]:
            price = snapshot.get(venue, coin_a).price
            if price < snapshot.get(min_venue, coin_a).price:
                min_venue = venue
            if price > snapshot.get(max_venue, coin_a).price:
                max_venue = venue
        if min_venue == max_venue:
            return None

        buy_a = snapshot.get(min_venue, coin_a)
        buy_b = snapshot.get(min_venue, coin_b)
        sell_a = snapshot.get(max_venue, coin_a)
        sell_b = snapshot.get(max_venue, coin_b)
        trip = round_trip(investment, buy_a.price, buy_b.price, sell_a.price, sell_b.price)
        # Emitted figures are rounded to the cent, so the filter is too.
        if round(trip.profit, 2) <= 0:
            return None

        return PairwiseOpportunity(
            pair=f"{coin_a} / {coin_b}",
            coin_a=coin_a,
            coin_b=coin_b,
            buy_venue=min_venue,
            sell_venue=max_venue,
            buy_price_a=round(buy_a.price, 8),
            buy_price_b=round(buy_b.price, 8),
            sell_price_a=round(sell_a.price, 8),
            sell_price_b=round(sell_b.price, 8),
            buy_volume_a=round(buy_a.quote_volume, 2),
            buy_volume_b=round(buy_b.quote_volume, 2),
            sell_volume_a=round(sell_a.quote_volume, 2),
            sell_volume_b=round(sell_b.quote_volume, 2),
            final_amount=round(trip.final_amount, 2),
            profit=round(trip.profit, 2),
            profit_percent=round(trip.profit_percent, 2),
            investment=investment,
            return_ratio=trip.final_amount / investment,
        )


def rescale(opportunities: list[PairwiseOpportunity], investment: float) -> list[PairwiseOpportunity]:
    """Restate opportunities computed at one notional for another.

    Every leg is linear in the notional, so the stored return ratio carries
    over and profitPercent and ordering hold. Rows whose restated profit
    rounds to nothing are dropped.
    """
    rescaled: list[PairwiseOpportunity] = []
    for opportunity in opportunities:
        if opportunity.investment == investment:
            rescaled.append(opportunity)
            continue
        final_amount = investment * opportunity.return_ratio
        profit = round(final_amount - investment, 2)
        if profit <= 0:
            continue
        rescaled.append(
            opportunity.model_copy(
                update={
                    "investment": investment,
                    "final_amount": round(final_amount, 2),
                    "profit": profit,
                }
            )
        )
    return rescaled
