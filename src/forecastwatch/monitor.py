from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from forecastwatch.data.price_source import PriceFetcher
from forecastwatch.models.forecast import Forecast, PriceQuote
from forecastwatch.registry.store import ForecastStore
from forecastwatch.resolution.chain import ChainResolver
from forecastwatch.resolution.evaluator import evaluate
from forecastwatch.timing.trading_window import is_trading_window_open

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    trading_window_open: bool = False
    total_open: int = 0
    unique_instruments: int = 0
    price_updates: int = 0
    resolutions: int = 0
    chain_resolutions: int = 0
    errors: int = 0
    rejected: int = 0
    failed_tickers: list[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "tradingWindowOpen": self.trading_window_open,
            "totalOpen": self.total_open,
            "uniqueInstruments": self.unique_instruments,
            "priceUpdates": self.price_updates,
            "resolutions": self.resolutions,
            "chainResolutions": self.chain_resolutions,
            "errors": self.errors,
            "rejected": self.rejected,
            "failedTickers": list(self.failed_tickers),
            "durationMs": self.duration_ms,
        }


class PriceMonitor:
    """One pass of the price-monitor job over every open forecast.

    Invoked by an external scheduler. The trading window is reported but
    never gates processing, so the job can also run for catch-up.
    """

    def __init__(
        self,
        store: ForecastStore,
        fetcher: PriceFetcher,
        market_timezone: str = "Asia/Taipei",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._market_timezone = market_timezone
        self._clock = clock or (lambda: datetime.now(UTC))
        self._chain = ChainResolver(store, clock=self._clock)

    def run(self) -> RunSummary:
        """Execute the monitoring cycle:

        1. Load open forecasts (malformed records are counted and skipped)
        2. Group them by ticker
        3. Fetch one quote per ticker, primary source then fallback
        4. Refresh current price and evaluate each forecast in the group
        5. Persist resolutions and cascade them to followed forecasts
        6. Return the run summary
        """
        start = time.monotonic()
        summary = RunSummary(
            trading_window_open=is_trading_window_open(self._clock(), self._market_timezone),
        )
        logger.info("Market hours check: %s", "OPEN" if summary.trading_window_open else "CLOSED")

        loaded = self._store.list_open_forecasts()
        summary.rejected = len(loaded.rejected)
        summary.errors += summary.rejected
        summary.total_open = len(loaded.forecasts) + summary.rejected
        logger.info("Found %d pending forecasts", summary.total_open)

        groups = group_by_ticker(loaded.forecasts)
        summary.unique_instruments = len(groups)
        if groups:
            logger.info("Fetching prices for %d unique tickers", len(groups))
            quotes = self._fetcher.fetch_many(list(groups))

            settled_in_run: set[int] = set()
            for ticker, forecasts in groups.items():
                quote = quotes.get(ticker)
                if not isinstance(quote, PriceQuote):
                    logger.error("Skipping %d forecasts for %s: %s", len(forecasts), ticker, quote)
                    summary.errors += 1
                    summary.failed_tickers.append(ticker)
                    continue

                logger.info(
                    "%s: %s (H: %s, L: %s) via %s",
                    ticker, quote.price, quote.daily_high, quote.daily_low, quote.source,
                )
                for forecast in forecasts:
                    self._process_forecast(forecast, quote, summary, settled_in_run)

        summary.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info("Worker summary: %s", summary.to_dict())
        return summary

    def _process_forecast(
        self,
        forecast: Forecast,
        quote: PriceQuote,
        summary: RunSummary,
        settled_in_run: set[int],
    ) -> None:
        try:
            now = self._clock()
            self._store.update_current_price(forecast.id, quote.price, now)
            summary.price_updates += 1

            # Already settled by a cascade earlier in this run.
            if forecast.id in settled_in_run:
                return

            evaluation = evaluate(forecast, quote, now)
            resolution = evaluation.resolution
            if resolution is None:
                return

            if not self._store.resolve_if_open(forecast.id, resolution):
                logger.info("Forecast %s already resolved by another run", forecast.id)
                return

            summary.resolutions += 1
            settled_in_run.add(forecast.id)
            logger.info(
                "Resolved forecast %s (%s): %s, profit: %.2f%%",
                forecast.id, forecast.ticker, resolution.status.value, resolution.profit_rate,
            )

            cascade = self._chain.cascade(forecast.id, resolution.end_price, resolution.outcome)
            summary.chain_resolutions += cascade.resolved
            summary.errors += cascade.errors + cascade.cycles
            settled_in_run.update(cascade.resolved_ids)
            if cascade.resolved:
                logger.info(
                    "Chain resolution from %s settled %d followed forecasts",
                    forecast.id, cascade.resolved,
                )
        except Exception:
            logger.exception("Error processing forecast %s", forecast.id)
            summary.errors += 1


def group_by_ticker(forecasts: list[Forecast]) -> dict[str, list[Forecast]]:
    """Group forecasts by ticker, keeping first-seen order."""
    groups: dict[str, list[Forecast]] = {}
    for forecast in forecasts:
        groups.setdefault(forecast.ticker, []).append(forecast)
    return groups
