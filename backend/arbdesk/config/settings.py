from __future__ import annotations

from typing import Dict, List

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MarketSettings(BaseModel):
    venues: List[str] = Field(
        default_factory=lambda: [
            "binance",
            "bybit",
            "p2b",
            "xt",
            "woo",
            "okx",
            "crypto.com",
            "gate.io",
            "bitget",
            "mexc",
            "htx",
            "kraken",
            "kucoin",
            "bitfinex",
            "bitmart",
            "bitmex",
            "poloniex",
            "probit",
            "phemex",
            "whitebit",
            "ascendex",
        ]
    )
    coins: List[str] = Field(
        default_factory=lambda: [
            "BTC", "ETH", "XRP", "ADA", "DOT", "SOL", "DOGE", "SHIB", "LTC", "LINK",
            "MATIC", "AVAX", "XLM", "UNI", "BCH", "FIL", "VET", "ALGO", "ATOM", "ICP",
        ]
    )
    quote_currency: str = "USDT"
    min_quote_volume: float = 100_000.0
    default_investment: float = 100_000.0
    top_n: int = 20

    @field_validator("venues", "coins")
    @classmethod
    def _dedupe(cls, values: List[str]) -> List[str]:
        return list(dict.fromkeys(value.strip() for value in values if value.strip()))


class ExchangeSettings(BaseModel):
    timeout_ms: int = 20_000
    retry_attempts: int = 3
    retry_delay_seconds: float = 0.5


class TriangularSettings(BaseModel):
    venues: List[str] = Field(
        default_factory=lambda: ["bybit", "okx", "kucoin", "gate.io", "binance"]
    )
    base_currencies: List[str] = Field(default_factory=lambda: ["USDT"])
    coins: List[str] = Field(default_factory=lambda: ["BTC", "ETH", "ADA", "DOT", "MATIC"])
    starting_amount: float = 1000.0
    set_delay_seconds: float = 0.1


class CacheSettings(BaseModel):
    ttl_seconds: int = 300
    dataset_ttl_seconds: Dict[str, int] = Field(default_factory=dict)
    retry_attempts: int = 3
    retry_delay_seconds: float = 0.2
    fallback_max_entries: int = 256
    # How long an entry past its TTL is kept for stale serving.
    stale_retention_seconds: int = 86_400

    def ttl_for(self, key: str) -> int:
        return self.dataset_ttl_seconds.get(key, self.ttl_seconds)


class PushSettings(BaseModel):
    heartbeat_seconds: float = 30.0
    max_missed_probes: int = 2


class AuthSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ARBDESK_",
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )
    jwt_secrets: List[str] = Field(default_factory=list)
    jwt_algorithm: str = "HS256"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ARBDESK_",
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("REDIS_URL", "ARBDESK_REDIS_URL"),
    )
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 5000

    market: MarketSettings = Field(default_factory=MarketSettings)
    exchange: ExchangeSettings = Field(default_factory=ExchangeSettings)
    triangular: TriangularSettings = Field(default_factory=TriangularSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    push: PushSettings = Field(default_factory=PushSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)


settings = Settings()
