from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from forecastwatch.models.forecast import (
    ForecastStatus,
    MalformedForecastError,
    Resolution,
)
from forecastwatch.registry.db import Database
from forecastwatch.registry.queries import ForecastRegistry

NOW = datetime(2025, 3, 4, 3, 0, tzinfo=UTC)


@pytest.fixture
def mock_db() -> MagicMock:
    return MagicMock(spec=Database)


@pytest.fixture
def registry(mock_db: MagicMock) -> ForecastRegistry:
    return ForecastRegistry(mock_db)


def _resolution() -> Resolution:
    return Resolution(
        status=ForecastStatus.AUTO_SUCCESS,
        end_price=Decimal("120"),
        profit_rate=Decimal("20"),
        profit_rate_adjusted=Decimal("20"),
        resolved_at=NOW,
    )


# ------------------------------------------------------------------
# Reads
# ------------------------------------------------------------------


class TestListOpenForecasts:
    def test_returns_forecast_objects(
        self, registry: ForecastRegistry, mock_db: MagicMock, row_factory,
    ) -> None:
        mock_db.execute.return_value = [row_factory(1), row_factory(2, ticker="2317")]

        result = registry.list_open_forecasts()

        assert [f.id for f in result.forecasts] == [1, 2]
        assert result.rejected == []
        query, params = mock_db.execute.call_args[0]
        assert "FROM watch.forecasts" in query
        assert "status = %s" in query
        assert params == ("pending",)

    def test_malformed_rows_rejected_not_raised(
        self, registry: ForecastRegistry, mock_db: MagicMock, row_factory,
    ) -> None:
        mock_db.execute.return_value = [
            row_factory(1),
            row_factory(2, ceiling="80"),
            row_factory(3, direction=0),
        ]

        result = registry.list_open_forecasts()

        assert [f.id for f in result.forecasts] == [1]
        assert [r.forecast_id for r in result.rejected] == [2, 3]
        assert "bounds inverted" in result.rejected[0].reason

    def test_empty(self, registry: ForecastRegistry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = []
        result = registry.list_open_forecasts()
        assert result.forecasts == []
        assert result.rejected == []


class TestListOpenChildren:
    def test_filters_by_parent_and_status(
        self, registry: ForecastRegistry, mock_db: MagicMock, row_factory,
    ) -> None:
        mock_db.execute.return_value = [row_factory(5, parent_id=1)]

        result = registry.list_open_children(1)

        assert result.forecasts[0].parent_id == 1
        query, params = mock_db.execute.call_args[0]
        assert "parent_id = %s" in query
        assert params == (1, "pending")


class TestGetForecast:
    def test_found(self, registry: ForecastRegistry, mock_db: MagicMock, row_factory) -> None:
        mock_db.execute.return_value = [
            row_factory(9, status="manual-success", end_price=Decimal("118")),
        ]
        forecast = registry.get_forecast(9)
        assert forecast is not None
        assert forecast.status is ForecastStatus.MANUAL_SUCCESS
        assert mock_db.execute.call_args[0][1] == (9,)

    def test_not_found(self, registry: ForecastRegistry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = []
        assert registry.get_forecast(404) is None

    def test_malformed_raises(self, registry: ForecastRegistry, mock_db: MagicMock, row_factory) -> None:
        mock_db.execute.return_value = [row_factory(9, confidence=7)]
        with pytest.raises(MalformedForecastError):
            registry.get_forecast(9)


# ------------------------------------------------------------------
# Writes
# ------------------------------------------------------------------


class TestUpdateCurrentPrice:
    def test_update(self, registry: ForecastRegistry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = []

        registry.update_current_price(3, Decimal("105.5"), NOW)

        query, params = mock_db.execute.call_args[0]
        assert query.startswith("UPDATE watch.forecasts")
        assert "current_price_updated_at" in query
        assert "status" not in query
        assert params == (Decimal("105.5"), NOW, 3)


class TestResolveIfOpen:
    def test_applied(self, registry: ForecastRegistry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [{"id": 3}]

        assert registry.resolve_if_open(3, _resolution()) is True

        query, params = mock_db.execute.call_args[0]
        assert "WHERE id = %s AND status = %s" in query
        assert "RETURNING id" in query
        assert params == (
            "auto-success", Decimal("120"), Decimal("20"), Decimal("20"), NOW, 3, "pending",
        )

    def test_already_resolved(self, registry: ForecastRegistry, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = []
        assert registry.resolve_if_open(3, _resolution()) is False

    def test_database_error_propagates(self, registry: ForecastRegistry, mock_db: MagicMock) -> None:
        mock_db.execute.side_effect = RuntimeError("connection lost")
        with pytest.raises(RuntimeError, match="connection lost"):
            registry.resolve_if_open(3, _resolution())
