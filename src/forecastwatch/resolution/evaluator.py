"""Bound-breach evaluation for a single open forecast.

A forecast leaves the pending state the first time a reading touches one
of its bounds. The ceiling is always checked before the floor, so a
reading that touches both settles at the ceiling.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal

from forecastwatch.models.forecast import (
    Direction,
    Evaluation,
    Forecast,
    Outcome,
    PriceQuote,
    Resolution,
)

logger = logging.getLogger(__name__)

_HUNDRED = Decimal("100")
_MAX_CONFIDENCE = Decimal("5")


def compute_profit_rates(
    start_price: Decimal,
    end_price: Decimal,
    direction: Direction,
    confidence: int,
) -> tuple[Decimal, Decimal]:
    """Return (profit_rate, profit_rate_adjusted) in percent.

    Up forecasts earn when the price rises, down forecasts when it falls.
    The adjusted rate scales by confidence / 5.
    """
    if direction is Direction.UP:
        profit_rate = (end_price - start_price) / start_price * _HUNDRED
    else:
        profit_rate = (start_price - end_price) / start_price * _HUNDRED
    profit_rate_adjusted = profit_rate * Decimal(confidence) / _MAX_CONFIDENCE
    return profit_rate, profit_rate_adjusted


def build_resolution(
    forecast: Forecast,
    end_price: Decimal,
    outcome: Outcome,
    resolved_at: datetime,
) -> Resolution:
    """Settle a forecast at end_price using its own start, direction, confidence."""
    profit_rate, profit_rate_adjusted = compute_profit_rates(
        forecast.start_price, end_price, forecast.direction, forecast.confidence,
    )
    return Resolution(
        status=outcome.status,
        end_price=end_price,
        profit_rate=profit_rate,
        profit_rate_adjusted=profit_rate_adjusted,
        resolved_at=resolved_at,
    )


def check_breach(forecast: Forecast, quote: PriceQuote) -> tuple[Outcome, Decimal] | None:
    """Return (outcome, settlement_price) if a bound was touched, else None."""
    if quote.daily_high >= forecast.ceiling or quote.price >= forecast.ceiling:
        outcome = Outcome.SUCCESS if forecast.direction is Direction.UP else Outcome.FAIL
        return outcome, forecast.ceiling

    if quote.daily_low <= forecast.floor or quote.price <= forecast.floor:
        outcome = Outcome.SUCCESS if forecast.direction is Direction.DOWN else Outcome.FAIL
        return outcome, forecast.floor

    return None


def evaluate(
    forecast: Forecast,
    quote: PriceQuote,
    now: datetime | None = None,
) -> Evaluation:
    """Evaluate a forecast against a fresh quote.

    The current price is always refreshed. A resolution is attached only
    when the forecast is still open and a bound was breached; resolved
    forecasts are terminal and never produce another resolution.
    """
    if not forecast.is_open:
        return Evaluation(current_price=quote.price)

    breach = check_breach(forecast, quote)
    if breach is None:
        return Evaluation(current_price=quote.price)

    outcome, settlement_price = breach
    resolution = build_resolution(
        forecast, settlement_price, outcome, now or datetime.now(UTC),
    )
    logger.debug(
        "Forecast %s (%s) breached at %s: %s",
        forecast.id, forecast.ticker, settlement_price, resolution.status.value,
    )
    return Evaluation(current_price=quote.price, resolution=resolution)
