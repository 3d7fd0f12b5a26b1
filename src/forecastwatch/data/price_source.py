"""Live price lookup with a fixed primary/secondary fallback.

Yahoo Finance (via yfinance) is the primary source and Finnhub the
secondary. Both are normalised into a PriceQuote with Decimal prices, so
nothing downstream ever sees raw provider payloads.
"""

from __future__ import annotations

import abc
import logging
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import yfinance as yf

from forecastwatch.config import AppConfig
from forecastwatch.models.forecast import PriceQuote, parse_price

logger = logging.getLogger(__name__)


class PriceSourceError(Exception):
    """A single price source could not produce a usable quote."""

    def __init__(self, source: str, ticker: str, reason: str) -> None:
        super().__init__(f"{source} failed for {ticker}: {reason}")
        self.source = source
        self.ticker = ticker
        self.reason = reason


class PriceUnavailableError(Exception):
    """Every configured source failed for a ticker."""

    def __init__(
        self,
        ticker: str,
        primary_error: BaseException,
        secondary_error: BaseException,
    ) -> None:
        super().__init__(
            f"Failed to fetch price for {ticker} from all sources "
            f"(primary: {primary_error}; secondary: {secondary_error})"
        )
        self.ticker = ticker
        self.primary_error = primary_error
        self.secondary_error = secondary_error


@dataclass
class SourceHealth:
    """Recent call outcomes of one price source, per ticker.

    The fetch threads of a run share one instance, so every access holds
    the lock. The source counts as degraded once at least `min_calls`
    calls landed inside the window and `failure_threshold` of them failed.
    """

    failure_threshold: float = 0.5
    window_seconds: float = 300.0
    min_calls: int = 10
    _calls: deque[tuple[float, str, bool]] = field(default_factory=deque, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, ticker: str, ok: bool) -> None:
        now = time.monotonic()
        with self._lock:
            self._calls.append((now, ticker, ok))
            self._expire(now)

    def _expire(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._calls and self._calls[0][0] < cutoff:
            self._calls.popleft()

    def _window(self) -> list[tuple[float, str, bool]]:
        with self._lock:
            self._expire(time.monotonic())
            return list(self._calls)

    @property
    def failure_rate(self) -> float:
        calls = self._window()
        if not calls:
            return 0.0
        return sum(1 for _, _, ok in calls if not ok) / len(calls)

    @property
    def is_degraded(self) -> bool:
        calls = self._window()
        if len(calls) < self.min_calls:
            return False
        failures = sum(1 for _, _, ok in calls if not ok)
        return failures / len(calls) >= self.failure_threshold

    def failing_tickers(self) -> list[str]:
        """Tickers that failed inside the window, most recent first."""
        seen: dict[str, None] = {}
        for _, ticker, ok in reversed(self._window()):
            if not ok:
                seen.setdefault(ticker)
        return list(seen)

    def reset(self) -> None:
        with self._lock:
            self._calls.clear()


class PriceSource(abc.ABC):
    """One upstream provider of current price and daily range."""

    name: str = "unknown"

    def __init__(self, symbol_suffix: str = ".TW", timeout: float = 10.0) -> None:
        self._symbol_suffix = symbol_suffix
        self._timeout = timeout

    def symbol_for(self, ticker: str) -> str:
        """Exchange-qualified symbol, e.g. 2330 -> 2330.TW."""
        if self._symbol_suffix and not ticker.endswith(self._symbol_suffix):
            return f"{ticker}{self._symbol_suffix}"
        return ticker

    @abc.abstractmethod
    def fetch_quote(self, ticker: str) -> PriceQuote:
        """Return a normalised quote or raise PriceSourceError."""

    def _build_quote(self, ticker: str, price: Any, high: Any, low: Any) -> PriceQuote:
        values = {
            "price": parse_price(price),
            "daily_high": parse_price(high),
            "daily_low": parse_price(low),
        }
        missing = [k for k, v in values.items() if v is None]
        if missing:
            raise PriceSourceError(
                self.name, ticker, f"unparsable or missing {', '.join(missing)}"
            )
        return PriceQuote(
            ticker=ticker,
            price=values["price"],  # type: ignore[arg-type]
            daily_high=values["daily_high"],  # type: ignore[arg-type]
            daily_low=values["daily_low"],  # type: ignore[arg-type]
            source=self.name,
            fetched_at=datetime.now(UTC),
        )


class YahooPriceSource(PriceSource):
    """Today's bar from Yahoo Finance. Close is the latest traded price.

    While the source is degraded, calls fail fast so the fetcher goes
    straight to its fallback.
    """

    name = "yahoo"

    def __init__(
        self,
        symbol_suffix: str = ".TW",
        timeout: float = 10.0,
        health: SourceHealth | None = None,
    ) -> None:
        super().__init__(symbol_suffix, timeout)
        self.health = health or SourceHealth()

    def fetch_quote(self, ticker: str) -> PriceQuote:
        if self.health.is_degraded:
            recent = ", ".join(self.health.failing_tickers()[:5])
            raise PriceSourceError(
                self.name,
                ticker,
                f"source degraded (failure_rate={self.health.failure_rate:.2f}, recent: {recent})",
            )

        try:
            quote = self._read_daily_bar(ticker)
        except PriceSourceError:
            self.health.record(ticker, ok=False)
            raise
        self.health.record(ticker, ok=True)
        return quote

    def _read_daily_bar(self, ticker: str) -> PriceQuote:
        symbol = self.symbol_for(ticker)
        try:
            df = yf.Ticker(symbol).history(period="1d", timeout=self._timeout)
        except Exception as exc:
            raise PriceSourceError(self.name, ticker, str(exc)) from exc

        if df is None or df.empty:
            raise PriceSourceError(self.name, ticker, f"no price data for {symbol}")

        row = df.iloc[-1]
        return self._build_quote(ticker, row.get("Close"), row.get("High"), row.get("Low"))

    @property
    def is_healthy(self) -> bool:
        return not self.health.is_degraded


class FinnhubPriceSource(PriceSource):
    """Finnhub /quote endpoint: c (current), h (high), l (low)."""

    name = "finnhub"

    def __init__(self, api_key: str, symbol_suffix: str = ".TW", timeout: float = 10.0) -> None:
        super().__init__(symbol_suffix, timeout)
        self._api_key = api_key
        self._client = None

    def _get_client(self):
        if self._client is None:
            import finnhub
            self._client = finnhub.Client(api_key=self._api_key)
            self._client.DEFAULT_TIMEOUT = self._timeout
        return self._client

    def fetch_quote(self, ticker: str) -> PriceQuote:
        if not self._api_key:
            raise PriceSourceError(self.name, ticker, "FINNHUB_API_KEY not configured")

        try:
            data = self._get_client().quote(self.symbol_for(ticker))
        except Exception as exc:
            raise PriceSourceError(self.name, ticker, str(exc)) from exc

        if not data or not data.get("c"):
            raise PriceSourceError(self.name, ticker, "no data available")
        return self._build_quote(ticker, data.get("c"), data.get("h"), data.get("l"))


class PriceFetcher:
    """Primary-then-secondary lookup, one fallback hop per call."""

    def __init__(
        self,
        primary: PriceSource,
        secondary: PriceSource,
        max_workers: int = 4,
    ) -> None:
        self._primary = primary
        self._secondary = secondary
        self._max_workers = max(1, max_workers)

    def fetch(self, ticker: str) -> PriceQuote:
        """Fetch a quote, falling back to the secondary source on any failure.

        The first source that returns a parseable quote wins; the two are
        never reconciled. Raises PriceUnavailableError when both fail.
        """
        try:
            quote = self._primary.fetch_quote(ticker)
            logger.debug("%s: %s = %s via %s", ticker, quote.price, quote.source, self._primary.name)
            return quote
        except Exception as primary_error:
            logger.warning(
                "%s failed for %s, trying %s: %s",
                self._primary.name, ticker, self._secondary.name, primary_error,
            )
            try:
                return self._secondary.fetch_quote(ticker)
            except Exception as secondary_error:
                logger.error("All price sources failed for %s", ticker)
                raise PriceUnavailableError(ticker, primary_error, secondary_error) from secondary_error

    def fetch_many(self, tickers: list[str]) -> dict[str, PriceQuote | PriceUnavailableError]:
        """Fetch quotes for several tickers concurrently.

        Each ticker maps to its quote or to the PriceUnavailableError that
        explains why none could be had.
        """
        results: dict[str, PriceQuote | PriceUnavailableError] = {}
        if not tickers:
            return results

        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(tickers))) as executor:
            futures = {executor.submit(self.fetch, t): t for t in tickers}
            for future in as_completed(futures):
                ticker = futures[future]
                try:
                    results[ticker] = future.result()
                except PriceUnavailableError as exc:
                    results[ticker] = exc
        return results


def build_price_fetcher(config: AppConfig) -> PriceFetcher:
    """Wire the Yahoo/Finnhub fallback chain from application config."""
    return PriceFetcher(
        primary=YahooPriceSource(config.symbol_suffix, config.price_timeout_seconds),
        secondary=FinnhubPriceSource(
            config.finnhub_api_key, config.symbol_suffix, config.price_timeout_seconds,
        ),
        max_workers=config.price_fetch_workers,
    )
