"""Live quote lookup."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from forecastwatch.api.deps import get_fetcher
from forecastwatch.data.price_source import PriceFetcher, PriceUnavailableError

router = APIRouter()


@router.get("/stocks/price")
def get_price(
    ticker: str | None = Query(default=None),
    fetcher: PriceFetcher = Depends(get_fetcher),
):
    """Current price and daily range through the primary/secondary chain."""
    if not ticker or not ticker.strip():
        return JSONResponse(status_code=400, content={"error": "Ticker is required"})

    try:
        quote = fetcher.fetch(ticker.strip())
    except PriceUnavailableError as exc:
        return JSONResponse(
            status_code=502,
            content={
                "error": "Failed to fetch price",
                "ticker": exc.ticker,
                "primary": str(exc.primary_error),
                "secondary": str(exc.secondary_error),
            },
        )

    return {
        "ticker": quote.ticker,
        "price": float(quote.price),
        "dailyHigh": float(quote.daily_high),
        "dailyLow": float(quote.daily_low),
        "source": quote.source,
        "timestamp": quote.fetched_at.isoformat(),
    }
