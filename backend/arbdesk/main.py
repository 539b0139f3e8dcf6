from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

import uvicorn
from fastapi import FastAPI

from arbdesk.aggregation.aggregator import PriceAggregator
from arbdesk.api.facade import APIFacade
from arbdesk.api.routes import router
from arbdesk.cache import CacheStore, create_client
from arbdesk.config.settings import Settings, settings
from arbdesk.engines.pairwise import PairwiseArbitrageEngine
from arbdesk.engines.triangular import TriangularArbitrageEngine
from arbdesk.exchanges.gateway import ExchangeGateway
from arbdesk.jobs.scheduler import PeriodicTask, RefreshScheduler
from arbdesk.log import configure_logging
from arbdesk.push.broadcaster import Broadcaster
from arbdesk.services.opportunities import OpportunityService

logger = logging.getLogger(__name__)


@dataclass
class Components:
    gateway: ExchangeGateway
    store: CacheStore
    broadcaster: Broadcaster
    scheduler: RefreshScheduler
    facade: APIFacade
    heartbeat: PeriodicTask


def build_components(config: Settings) -> Components:
    gateway = ExchangeGateway(
        timeout_ms=config.exchange.timeout_ms,
        retry_attempts=config.exchange.retry_attempts,
        retry_delay_seconds=config.exchange.retry_delay_seconds,
    )
    aggregator = PriceAggregator(
        gateway,
        quote_currency=config.market.quote_currency,
        min_quote_volume=config.market.min_quote_volume,
    )
    service = OpportunityService(
        aggregator,
        PairwiseArbitrageEngine(config.market.coins, top_n=config.market.top_n),
        TriangularArbitrageEngine(
            gateway,
            base_currencies=config.triangular.base_currencies,
            coins=config.triangular.coins,
            starting_amount=config.triangular.starting_amount,
            set_delay_seconds=config.triangular.set_delay_seconds,
        ),
        venues=config.market.venues,
        coins=config.market.coins,
        triangular_venues=config.triangular.venues,
        default_investment=config.market.default_investment,
    )
    store = CacheStore(
        create_client(config.redis_url),
        ttl_seconds=config.cache.ttl_seconds,
        retry_attempts=config.cache.retry_attempts,
        retry_delay_seconds=config.cache.retry_delay_seconds,
        fallback_max_entries=config.cache.fallback_max_entries,
        stale_retention_seconds=config.cache.stale_retention_seconds,
    )
    broadcaster = Broadcaster(max_missed_probes=config.push.max_missed_probes)
    datasets = service.datasets(config.cache.ttl_for)

    scheduler = RefreshScheduler(store, broadcaster)
    for dataset in datasets.values():
        scheduler.register(dataset.key, dataset.compute_fn, dataset.ttl_seconds)

    return Components(
        gateway=gateway,
        store=store,
        broadcaster=broadcaster,
        scheduler=scheduler,
        facade=APIFacade(store, datasets),
        heartbeat=PeriodicTask("push:heartbeat", broadcaster.probe, config.push.heartbeat_seconds),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    components = build_components(settings)
    app.state.facade = components.facade
    app.state.broadcaster = components.broadcaster

    components.scheduler.start()
    components.heartbeat.start()
    logger.info("arbdesk started")
    try:
        yield
    finally:
        await components.heartbeat.stop()
        await components.scheduler.stop()
        await components.gateway.close()
        await components.store.close()
        logger.info("arbdesk stopped")


def create_app(app_lifespan=lifespan) -> FastAPI:
    app = FastAPI(title="arbdesk", lifespan=app_lifespan)
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    uvicorn.run("arbdesk.main:app", host=settings.api_host, port=settings.api_port)
