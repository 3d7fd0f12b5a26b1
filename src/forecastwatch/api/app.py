"""FastAPI application factory and lifespan management."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from forecastwatch import __version__
from forecastwatch.api.deps import app_state
from forecastwatch.config import load_config
from forecastwatch.data.price_source import build_price_fetcher
from forecastwatch.monitor import PriceMonitor
from forecastwatch.registry.db import Database
from forecastwatch.registry.queries import ForecastRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the database pool and wire the monitor for the app's lifetime."""
    config = load_config()

    db = Database(config.db_dsn)
    db.connect()
    fetcher = build_price_fetcher(config)

    app_state.config = config
    app_state.db = db
    app_state.fetcher = fetcher
    app_state.monitor = PriceMonitor(
        ForecastRegistry(db), fetcher, market_timezone=config.market_timezone,
    )
    logger.info("API started, database and price sources ready")
    yield

    db.close()
    logger.info("API shutdown complete")


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        use_lifespan: If False, skip the production lifespan (useful for testing
            where deps are injected via app_state directly).
    """
    app = FastAPI(
        title="forecastwatch",
        version=__version__,
        lifespan=lifespan if use_lifespan else None,
    )

    from forecastwatch.api.routes import stocks, system, workers

    prefix = "/api"
    app.include_router(workers.router, prefix=prefix, tags=["workers"])
    app.include_router(stocks.router, prefix=prefix, tags=["stocks"])
    app.include_router(system.router, prefix=prefix, tags=["system"])

    return app
