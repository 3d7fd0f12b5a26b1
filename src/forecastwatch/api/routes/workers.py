"""Scheduler-facing worker endpoints."""

from __future__ import annotations

import logging
import secrets
import time

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from forecastwatch.api.deps import get_config, get_monitor
from forecastwatch.config import AppConfig
from forecastwatch.monitor import PriceMonitor

logger = logging.getLogger(__name__)

router = APIRouter()


def _authorized(config: AppConfig, authorization: str | None) -> bool:
    """Bearer check against CRON_SECRET; open when no secret is configured."""
    if not config.cron_secret:
        return True
    expected = f"Bearer {config.cron_secret}"
    return authorization is not None and secrets.compare_digest(
        authorization.encode(), expected.encode(),
    )


@router.get("/workers/price-monitor")
def run_price_monitor(
    authorization: str | None = Header(default=None),
    config: AppConfig = Depends(get_config),
    monitor: PriceMonitor = Depends(get_monitor),
):
    """Run one price-monitor pass and return its summary."""
    start = time.monotonic()
    if not _authorized(config, authorization):
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    try:
        summary = monitor.run()
    except Exception as exc:
        logger.exception("Price monitor run failed")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(exc) or type(exc).__name__,
                "durationMs": int((time.monotonic() - start) * 1000),
            },
        )

    return {"success": True, **summary.to_dict()}
