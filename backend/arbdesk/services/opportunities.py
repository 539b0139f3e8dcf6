from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable

from arbdesk.aggregation.aggregator import PriceAggregator
from arbdesk.cache import ComputeFn
from arbdesk.engines.pairwise import PairwiseArbitrageEngine, rescale
from arbdesk.engines.tracker import summarize_spreads
from arbdesk.engines.triangular import TriangularArbitrageEngine
from arbdesk.errors import ComputeFailure
from arbdesk.schemas.market import MarketSnapshot
from arbdesk.schemas.opportunity import PairwiseOpportunity

TRACKER = "tracker"
PAIRWISE = "pairwise"
TRIANGULAR = "triangular"
METADATA = "metadata"

View = Callable[[Any, dict[str, Any]], Any]


@dataclass(frozen=True)
class Dataset:
    key: str
    compute_fn: ComputeFn
    ttl_seconds: int
    view: View | None = None


def _dump(models: Iterable[Any]) -> list[dict[str, Any]]:
    return [model.model_dump(mode="json", by_alias=True) for model in models]


def pairwise_view(payload: Any, params: dict[str, Any]) -> Any:
    investment = params.get("investment")
    if not investment:
        return payload
    opportunities = [PairwiseOpportunity.model_validate(item) for item in payload or []]
    return _dump(rescale(opportunities, float(investment)))


class OpportunityService:
    def __init__(
        self,
        aggregator: PriceAggregator,
        pairwise: PairwiseArbitrageEngine,
        triangular: TriangularArbitrageEngine,
        *,
        venues: Iterable[str],
        coins: Iterable[str],
        triangular_venues: Iterable[str],
        default_investment: float,
    ) -> None:
        self.aggregator = aggregator
        self.gateway = aggregator.gateway
        self.pairwise = pairwise
        self.triangular = triangular
        self.venues = list(dict.fromkeys(venues))
        self.coins = list(dict.fromkeys(coins))
        self.triangular_venues = list(dict.fromkeys(triangular_venues))
        self.default_investment = default_investment

    async def compute_tracker(self) -> list[dict[str, Any]]:
        snapshot = await self._snapshot(TRACKER)
        return _dump(summarize_spreads(snapshot, self.coins))

    async def compute_pairwise(self) -> list[dict[str, Any]]:
        snapshot = await self._snapshot(PAIRWISE)
        return _dump(self.pairwise.find(snapshot, self.default_investment))

    async def compute_triangular(self) -> list[dict[str, Any]]:
        active = await self.gateway.initialize_all(self.triangular_venues)
        if not active:
            raise ComputeFailure(TRIANGULAR, "no triangular venue could be initialised")
        return _dump(await self.triangular.scan(active))

    async def compute_metadata(self) -> dict[str, Any]:
        await self.gateway.initialize_all([*self.venues, *self.triangular_venues])
        return {
            "venues": _dump(self.gateway.statuses()),
            "coins": self.coins,
            "quoteCurrency": self.aggregator.quote_currency,
            "minQuoteVolume": self.aggregator.min_quote_volume,
            "defaultInvestment": self.default_investment,
        }

    def datasets(self, ttl_for: Callable[[str], int]) -> dict[str, Dataset]:
        return {
            TRACKER: Dataset(TRACKER, self.compute_tracker, ttl_for(TRACKER)),
            PAIRWISE: Dataset(PAIRWISE, self.compute_pairwise, ttl_for(PAIRWISE), pairwise_view),
            TRIANGULAR: Dataset(TRIANGULAR, self.compute_triangular, ttl_for(TRIANGULAR)),
            METADATA: Dataset(METADATA, self.compute_metadata, ttl_for(METADATA)),
        }

    async def _snapshot(self, key: str) -> MarketSnapshot:
        snapshot = await self.aggregator.snapshot(self.venues, self.coins)
        if snapshot.ticker_count == 0:
            raise ComputeFailure(key, "no venue returned market data")
        return snapshot
