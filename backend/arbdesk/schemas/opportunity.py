from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TrackerEntry(_CamelModel):
    coin: str
    highest_venue: str
    lowest_venue: str
    highest_price: float
    lowest_price: float
    spread_percent: float
    highest_volume: float
    lowest_volume: float


class PairwiseOpportunity(_CamelModel):
    pair: str
    coin_a: str
    coin_b: str
    buy_venue: str
    sell_venue: str
    buy_price_a: float
    buy_price_b: float
    sell_price_a: float
    sell_price_b: float
    buy_volume_a: float
    buy_volume_b: float
    sell_volume_a: float
    sell_volume_b: float
    final_amount: float
    profit: float
    profit_percent: float
    investment: float
    # Unrounded final_amount / investment; restating for another notional uses it.
    return_ratio: float


class TradeLeg(_CamelModel):
    step: int
    action: Literal["BUY", "SELL"]
    pair: str
    price: float
    amount: float
    description: str = ""


class TriangularOpportunity(_CamelModel):
    venue: str
    base_currency: str
    coin_a: str
    coin_b: str
    direction: Literal["base_a_b", "base_b_a"]
    path: str
    legs: list[TradeLeg] = Field(default_factory=list)
    profit_percent: float
    profit_amount: float
    starting_amount: float
    final_amount: float
    prices: dict[str, float] = Field(default_factory=dict)
    volumes: dict[str, float] = Field(default_factory=dict)
    observed_at: float
