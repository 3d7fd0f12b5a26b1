from __future__ import annotations

from forecastwatch.models.forecast import (
    Direction,
    Evaluation,
    Forecast,
    ForecastStatus,
    MalformedForecastError,
    Outcome,
    PriceQuote,
    Resolution,
    forecast_from_row,
    parse_price,
)

__all__ = [
    # forecast
    "Direction",
    "Forecast",
    "ForecastStatus",
    "Outcome",
    "MalformedForecastError",
    "forecast_from_row",
    # prices
    "PriceQuote",
    "parse_price",
    # resolution
    "Evaluation",
    "Resolution",
]
