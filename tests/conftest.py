from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import pytest

from forecastwatch.data.price_source import PriceFetcher, PriceSource, PriceSourceError
from forecastwatch.models.forecast import Forecast, PriceQuote, Resolution, forecast_from_row
from forecastwatch.registry.store import ForecastStore, LoadResult

FIXED_NOW = datetime(2025, 3, 4, 3, 0, tzinfo=UTC)  # Tuesday 11:00 in Taipei


class InMemoryForecastStore(ForecastStore):
    """ForecastStore over a dict of raw rows, so malformed records can be stored."""

    def __init__(self) -> None:
        self.rows: dict[Any, dict[str, Any]] = {}
        self.fail_updates_for: set[Any] = set()
        self.fail_resolves_for: set[Any] = set()
        self.price_updates: list[tuple[Any, Decimal]] = []

    def add(self, row: dict[str, Any]) -> None:
        self.rows[row["id"]] = row

    def forecast(self, forecast_id: Any) -> Forecast:
        return forecast_from_row(self.rows[forecast_id])

    def list_open_forecasts(self) -> LoadResult:
        return LoadResult.from_rows(
            dict(r) for r in self.rows.values() if r.get("status", "pending") == "pending"
        )

    def list_open_children(self, parent_id: int) -> LoadResult:
        return LoadResult.from_rows(
            dict(r) for r in self.rows.values()
            if r.get("parent_id") == parent_id and r.get("status", "pending") == "pending"
        )

    def update_current_price(self, forecast_id: int, price: Decimal, observed_at: datetime) -> None:
        if forecast_id in self.fail_updates_for:
            raise RuntimeError(f"write failed for {forecast_id}")
        self.rows[forecast_id]["current_price"] = price
        self.rows[forecast_id]["current_price_updated_at"] = observed_at
        self.price_updates.append((forecast_id, price))

    def resolve_if_open(self, forecast_id: int, resolution: Resolution) -> bool:
        if forecast_id in self.fail_resolves_for:
            raise RuntimeError(f"resolve failed for {forecast_id}")
        row = self.rows[forecast_id]
        if row.get("status", "pending") != "pending":
            return False
        row.update(
            status=resolution.status.value,
            end_price=resolution.end_price,
            profit_rate=resolution.profit_rate,
            profit_rate_adjusted=resolution.profit_rate_adjusted,
            resolved_at=resolution.resolved_at,
        )
        return True


class StubPriceSource(PriceSource):
    """Serves canned quotes; unknown tickers fail like a real source would."""

    def __init__(self, name: str, quotes: dict[str, tuple[str, str, str]] | None = None) -> None:
        super().__init__(symbol_suffix=".TW")
        self.name = name
        self.quotes = quotes or {}
        self.calls: list[str] = []

    def fetch_quote(self, ticker: str) -> PriceQuote:
        self.calls.append(ticker)
        if ticker not in self.quotes:
            raise PriceSourceError(self.name, ticker, "no data")
        price, high, low = self.quotes[ticker]
        return self._build_quote(ticker, price, high, low)


def make_row(
    id: Any,
    ticker: str = "2330",
    direction: Any = 1,
    start_price: Any = "100",
    floor: Any = "90",
    ceiling: Any = "120",
    confidence: Any = 5,
    parent_id: Any = None,
    status: str = "pending",
    **extra: Any,
) -> dict[str, Any]:
    row = {
        "id": id,
        "ticker": ticker,
        "direction": direction,
        "start_price": Decimal(str(start_price)) if start_price is not None else None,
        "floor": Decimal(str(floor)) if floor is not None else None,
        "ceiling": Decimal(str(ceiling)) if ceiling is not None else None,
        "confidence": confidence,
        "parent_id": parent_id,
        "status": status,
        "current_price": None,
        "end_price": None,
        "profit_rate": None,
        "profit_rate_adjusted": None,
        "resolved_at": None,
    }
    row.update(extra)
    return row


def make_quote(
    price: str, high: str, low: str, ticker: str = "2330", source: str = "yahoo",
) -> PriceQuote:
    return PriceQuote(
        ticker=ticker,
        price=Decimal(price),
        daily_high=Decimal(high),
        daily_low=Decimal(low),
        source=source,
        fetched_at=FIXED_NOW,
    )


@pytest.fixture
def store() -> InMemoryForecastStore:
    return InMemoryForecastStore()


@pytest.fixture
def row_factory() -> Callable[..., dict[str, Any]]:
    return make_row


@pytest.fixture
def quote_factory() -> Callable[..., PriceQuote]:
    return make_quote


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def primary() -> StubPriceSource:
    return StubPriceSource("yahoo")


@pytest.fixture
def secondary() -> StubPriceSource:
    return StubPriceSource("finnhub")


@pytest.fixture
def fetcher(primary: StubPriceSource, secondary: StubPriceSource) -> PriceFetcher:
    return PriceFetcher(primary, secondary, max_workers=2)
