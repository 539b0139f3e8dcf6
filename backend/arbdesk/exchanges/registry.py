from __future__ import annotations

from typing import Any, Callable, Protocol

import ccxt.async_support as ccxt


class VenueClient(Protocol):
    markets: dict[str, Any]
    has: dict[str, Any]

    async def load_markets(self) -> dict[str, Any]: ...

    async def fetch_ticker(self, symbol: str) -> dict[str, Any]: ...

    async def close(self) -> None: ...


VenueFactory = Callable[[dict], VenueClient]

# Attribute lookups happen on instantiation so a venue dropped from ccxt only
# disables that venue.
VENUE_REGISTRY: dict[str, VenueFactory] = {
    "ascendex": lambda config: ccxt.ascendex(config),
    "binance": lambda config: ccxt.binance(config),
    "bitfinex": lambda config: ccxt.bitfinex(config),
    "bitget": lambda config: ccxt.bitget(config),
    "bitmart": lambda config: ccxt.bitmart(config),
    "bitmex": lambda config: ccxt.bitmex(config),
    "bybit": lambda config: ccxt.bybit(config),
    "crypto.com": lambda config: ccxt.cryptocom(config),
    "gate.io": lambda config: ccxt.gate(config),
    "htx": lambda config: ccxt.htx(config),
    "kraken": lambda config: ccxt.kraken(config),
    "kucoin": lambda config: ccxt.kucoin(config),
    "mexc": lambda config: ccxt.mexc(config),
    "okx": lambda config: ccxt.okx(config),
    "p2b": lambda config: ccxt.p2b(config),
    "phemex": lambda config: ccxt.phemex(config),
    "poloniex": lambda config: ccxt.poloniex(config),
    "probit": lambda config: ccxt.probit(config),
    "whitebit": lambda config: ccxt.whitebit(config),
    "woo": lambda config: ccxt.woo(config),
    "xt": lambda config: ccxt.xt(config),
}


def register_venue(venue: str, factory: VenueFactory) -> None:
    VENUE_REGISTRY[venue] = factory
