"""Dependency injection for the FastAPI application."""

from __future__ import annotations

from forecastwatch.config import AppConfig
from forecastwatch.data.price_source import PriceFetcher
from forecastwatch.monitor import PriceMonitor
from forecastwatch.registry.db import Database


class AppState:
    """Holds shared application state initialised during lifespan."""

    def __init__(self) -> None:
        self.config: AppConfig | None = None
        self.db: Database | None = None
        self.fetcher: PriceFetcher | None = None
        self.monitor: PriceMonitor | None = None


# Singleton shared across the app
app_state = AppState()


def get_config() -> AppConfig:
    if app_state.config is None:
        raise RuntimeError("Config not initialised")
    return app_state.config


def get_database() -> Database:
    if app_state.db is None:
        raise RuntimeError("Database not initialised")
    return app_state.db


def get_fetcher() -> PriceFetcher:
    if app_state.fetcher is None:
        raise RuntimeError("PriceFetcher not initialised")
    return app_state.fetcher


def get_monitor() -> PriceMonitor:
    if app_state.monitor is None:
        raise RuntimeError("PriceMonitor not initialised")
    return app_state.monitor
