"""System health endpoints."""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends

from forecastwatch.api.deps import get_config, get_database
from forecastwatch.config import AppConfig
from forecastwatch.registry.db import Database
from forecastwatch.timing.trading_window import is_trading_window_open

router = APIRouter()

_start_time = time.time()


@router.get("/system/health")
def health(
    db: Database = Depends(get_database),
    config: AppConfig = Depends(get_config),
) -> dict:
    db_ok = db.health_check()
    return {
        "status": "healthy" if db_ok else "degraded",
        "database": db_ok,
        "tradingWindowOpen": is_trading_window_open(timezone=config.market_timezone),
        "uptimeSeconds": int(time.time() - _start_time),
    }
