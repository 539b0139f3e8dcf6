from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from itertools import combinations
from typing import Awaitable, Callable, Iterable, Literal

from arbdesk.errors import ArbdeskError, VenueUnavailable
from arbdesk.exchanges.gateway import ExchangeGateway
from arbdesk.schemas.market import Ticker
from arbdesk.schemas.opportunity import TradeLeg, TriangularOpportunity

logger = logging.getLogger(__name__)

Direction = Literal["base_a_b", "base_b_a"]


@dataclass(frozen=True)
class TriangularSet:
    base: str
    coin_a: str
    coin_b: str

    @property
    def pair_a(self) -> str:
        return f"{self.coin_a}/{self.base}"

    @property
    def pair_b(self) -> str:
        return f"{self.coin_b}/{self.base}"

    @property
    def cross_pair(self) -> str:
        return f"{self.coin_a}/{self.coin_b}"

    @property
    def reverse_cross_pair(self) -> str:
        return f"{self.coin_b}/{self.coin_a}"


@dataclass(frozen=True)
class PairCheck:
    existing: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    third_pair: str | None = None
    reversed: bool = False

    @property
    def all_exist(self) -> bool:
        return not self.missing


@dataclass(frozen=True)
class PathResult:
    direction: Direction
    description: str
    legs: list[TradeLeg]
    final_amount: float
    profit_amount: float
    profit_percent: float


def generate_sets(base: str, coins: Iterable[str]) -> list[TriangularSet]:
    candidates = [coin for coin in dict.fromkeys(coins) if coin != base]
    return [TriangularSet(base, coin_a, coin_b) for coin_a, coin_b in combinations(candidates, 2)]


def check_pairs(has_market: Callable[[str], bool], tri_set: TriangularSet) -> PairCheck:
    existing: list[str] = []
    missing: list[str] = []
    for pair in (tri_set.pair_a, tri_set.pair_b):
        (existing if has_market(pair) else missing).append(pair)

    third_pair = None
    if has_market(tri_set.cross_pair):
        third_pair = tri_set.cross_pair
    elif has_market(tri_set.reverse_cross_pair):
        third_pair = tri_set.reverse_cross_pair
    if third_pair is None:
        missing.append(f"{tri_set.cross_pair} or {tri_set.reverse_cross_pair}")
    else:
        existing.append(third_pair)

    return PairCheck(
        existing=existing,
        missing=missing,
        third_pair=third_pair,
        reversed=third_pair == tri_set.reverse_cross_pair,
    )


def _result(
    direction: Direction,
    description: str,
    legs: list[TradeLeg],
    final_amount: float,
    starting_amount: float,
) -> PathResult:
    profit = final_amount - starting_amount
    return PathResult(
        direction=direction,
        description=description,
        legs=legs,
        final_amount=final_amount,
        profit_amount=profit,
        profit_percent=profit / starting_amount * 100,
    )


def base_a_b_path(
    tri_set: TriangularSet,
    ticker_a: Ticker,
    ticker_b: Ticker,
    ticker_cross: Ticker,
    reversed_cross: bool,
    starting_amount: float,
) -> PathResult:
    """base -> A -> B -> base."""
    base, coin_a, coin_b = tri_set.base, tri_set.coin_a, tri_set.coin_b
    legs: list[TradeLeg] = []

    price = ticker_a.buy_price()
    amount_a = starting_amount / price
    legs.append(TradeLeg(
        step=1, action="BUY", pair=tri_set.pair_a, price=price, amount=amount_a,
        description=f"Buy {amount_a:.6f} {coin_a} with {starting_amount} {base}",
    ))

    if reversed_cross:
        price = ticker_cross.buy_price()
        amount_b = amount_a / price
        legs.append(TradeLeg(
            step=2, action="BUY", pair=tri_set.reverse_cross_pair, price=price, amount=amount_b,
            description=f"Buy {amount_b:.6f} {coin_b} with {amount_a:.6f} {coin_a}",
        ))
    else:
        price = ticker_cross.sell_price()
        amount_b = amount_a * price
        legs.append(TradeLeg(
            step=2, action="SELL", pair=tri_set.cross_pair, price=price, amount=amount_a,
            description=f"Sell {amount_a:.6f} {coin_a} for {amount_b:.6f} {coin_b}",
        ))

    price = ticker_b.sell_price()
    final_amount = amount_b * price
    legs.append(TradeLeg(
        step=3, action="SELL", pair=tri_set.pair_b, price=price, amount=amount_b,
        description=f"Sell {amount_b:.6f} {coin_b} for {final_amount:.2f} {base}",
    ))

    description = f"{base} → {coin_a} → {coin_b} → {base}"
    return _result("base_a_b", description, legs, final_amount, starting_amount)


def base_b_a_path(
    tri_set: TriangularSet,
    ticker_a: Ticker,
    ticker_b: Ticker,
    ticker_cross: Ticker,
    reversed_cross: bool,
    starting_amount: float,
) -> PathResult:
    """base -> B -> A -> base."""
    base, coin_a, coin_b = tri_set.base, tri_set.coin_a, tri_set.coin_b
    legs: list[TradeLeg] = []

    price = ticker_b.buy_price()
    amount_b = starting_amount / price
    legs.append(TradeLeg(
        step=1, action="BUY", pair=tri_set.pair_b, price=price, amount=amount_b,
        description=f"Buy {amount_b:.6f} {coin_b} with {starting_amount} {base}",
    ))

    if reversed_cross:
        price = ticker_cross.sell_price()
        amount_a = amount_b * price
        legs.append(TradeLeg(
            step=2, action="SELL", pair=tri_set.reverse_cross_pair, price=price, amount=amount_b,
            description=f"Sell {amount_b:.6f} {coin_b} for {amount_a:.6f} {coin_a}",
        ))
    else:
        price = ticker_cross.buy_price()
        amount_a = amount_b / price
        legs.append(TradeLeg(
            step=2, action="BUY", pair=tri_set.cross_pair, price=price, amount=amount_a,
            description=f"Buy {amount_a:.6f} {coin_a} with {amount_b:.6f} {coin_b}",
        ))

    price = ticker_a.sell_price()
    final_amount = amount_a * price
    legs.append(TradeLeg(
        step=3, action="SELL", pair=tri_set.pair_a, price=price, amount=amount_a,
        description=f"Sell {amount_a:.6f} {coin_a} for {final_amount:.2f} {base}",
    ))

    description = f"{base} → {coin_b} → {coin_a} → {base}"
    return _result("base_b_a", description, legs, final_amount, starting_amount)


def evaluate_set(
    venue: str,
    tri_set: TriangularSet,
    check: PairCheck,
    ticker_a: Ticker,
    ticker_b: Ticker,
    ticker_cross: Ticker,
    starting_amount: float,
) -> TriangularOpportunity:
    """Pick the better of the two directions, profitable or not."""
    first = base_a_b_path(tri_set, ticker_a, ticker_b, ticker_cross, check.reversed, starting_amount)
    second = base_b_a_path(tri_set, ticker_a, ticker_b, ticker_cross, check.reversed, starting_amount)
    best = first if first.profit_percent > second.profit_percent else second

    tickers = {tri_set.pair_a: ticker_a, tri_set.pair_b: ticker_b, check.third_pair: ticker_cross}
    return TriangularOpportunity(
        venue=venue,
        base_currency=tri_set.base,
        coin_a=tri_set.coin_a,
        coin_b=tri_set.coin_b,
        direction=best.direction,
        path=best.description,
        legs=best.legs,
        profit_percent=round(best.profit_percent, 4),
        profit_amount=round(best.profit_amount, 2),
        starting_amount=starting_amount,
        final_amount=round(best.final_amount, 2),
        prices={pair: ticker.price for pair, ticker in tickers.items()},
        volumes={pair: round(ticker.quote_volume) for pair, ticker in tickers.items()},
        observed_at=max(ticker.observed_at for ticker in tickers.values()),
    )


class TriangularArbitrageEngine:
    def __init__(
        self,
        gateway: ExchangeGateway,
        *,
        base_currencies: Iterable[str] = ("USDT",),
        coins: Iterable[str] = (),
        starting_amount: float = 1000.0,
        set_delay_seconds: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.gateway = gateway
        self.base_currencies = list(dict.fromkeys(base_currencies))
        self.coins = list(dict.fromkeys(coins))
        self.starting_amount = starting_amount
        self.set_delay_seconds = set_delay_seconds
        self._sleep = sleep

    async def scan(self, venues: Iterable[str]) -> list[TriangularOpportunity]:
        opportunities: list[TriangularOpportunity] = []
        for venue in dict.fromkeys(venues):
            opportunities.extend(await self.scan_venue(venue))
        opportunities.sort(key=lambda opportunity: opportunity.profit_percent, reverse=True)
        return opportunities

    async def scan_venue(self, venue: str) -> list[TriangularOpportunity]:
        try:
            await self.gateway.initialize(venue)
        except VenueUnavailable as exc:
            logger.warning("Triangular scan skipped: %s", exc)
            return []

        opportunities: list[TriangularOpportunity] = []
        analyzed = 0
        for base in self.base_currencies:
            for tri_set in generate_sets(base, self.coins):
                analyzed += 1
                check = check_pairs(lambda pair: self.gateway.has_market(venue, pair), tri_set)
                if not check.all_exist:
                    logger.debug("%s: skipping %s, missing %s", venue, tri_set, ", ".join(check.missing))
                    continue

                results = await asyncio.gather(
                    self.gateway.fetch_ticker(venue, tri_set.pair_a),
                    self.gateway.fetch_ticker(venue, tri_set.pair_b),
                    self.gateway.fetch_ticker(venue, check.third_pair),
                    return_exceptions=True,
                )
                # Throttle every set that hit the venue, failed or not.
                await self._sleep(self.set_delay_seconds)

                failures = [result for result in results if isinstance(result, BaseException)]
                if failures:
                    for failure in failures:
                        if not isinstance(failure, ArbdeskError):
                            raise failure
                    logger.warning(
                        "%s: set %s/%s/%s skipped: %s", venue, base, tri_set.coin_a, tri_set.coin_b, failures[0]
                    )
                    continue

                ticker_a, ticker_b, ticker_cross = results
                opportunities.append(
                    evaluate_set(venue, tri_set, check, ticker_a, ticker_b, ticker_cross, self.starting_amount)
                )

        logger.info("%s: %d triangular results from %d sets", venue, len(opportunities), analyzed)
        return opportunities
