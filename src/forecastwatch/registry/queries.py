from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from forecastwatch.models.forecast import Forecast, ForecastStatus, Resolution, forecast_from_row
from forecastwatch.registry.db import Database
from forecastwatch.registry.store import ForecastStore, LoadResult

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, user_id, ticker, ticker_name, direction, ceiling, floor, start_price, "
    "confidence, status, parent_id, current_price, current_price_updated_at, "
    "end_price, profit_rate, profit_rate_adjusted, resolved_at, created_at, updated_at"
)


class ForecastRegistry(ForecastStore):
    """ForecastStore backed by the watch.forecasts table."""

    def __init__(self, db: Database) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_open_forecasts(self) -> LoadResult:
        rows = self._db.execute(
            f"SELECT {_COLUMNS} FROM watch.forecasts WHERE status = %s ORDER BY id",
            (ForecastStatus.PENDING.value,),
        )
        return LoadResult.from_rows(rows)

    def list_open_children(self, parent_id: int) -> LoadResult:
        rows = self._db.execute(
            f"SELECT {_COLUMNS} FROM watch.forecasts "
            "WHERE parent_id = %s AND status = %s ORDER BY id",
            (parent_id, ForecastStatus.PENDING.value),
        )
        return LoadResult.from_rows(rows)

    def get_forecast(self, forecast_id: int) -> Forecast | None:
        """Load one forecast regardless of status. Raises on malformed data."""
        rows = self._db.execute(
            f"SELECT {_COLUMNS} FROM watch.forecasts WHERE id = %s", (forecast_id,),
        )
        if not rows:
            return None
        return forecast_from_row(rows[0])

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update_current_price(
        self, forecast_id: int, price: Decimal, observed_at: datetime,
    ) -> None:
        self._db.execute(
            "UPDATE watch.forecasts "
            "SET current_price = %s, current_price_updated_at = %s, updated_at = NOW() "
            "WHERE id = %s",
            (price, observed_at, forecast_id),
        )

    def resolve_if_open(self, forecast_id: int, resolution: Resolution) -> bool:
        # Conditioned on status so overlapping runs resolve each forecast once.
        rows = self._db.execute(
            "UPDATE watch.forecasts "
            "SET status = %s, end_price = %s, profit_rate = %s, "
            "profit_rate_adjusted = %s, resolved_at = %s, updated_at = NOW() "
            "WHERE id = %s AND status = %s "
            "RETURNING id",
            (
                resolution.status.value,
                resolution.end_price,
                resolution.profit_rate,
                resolution.profit_rate_adjusted,
                resolution.resolved_at,
                forecast_id,
                ForecastStatus.PENDING.value,
            ),
        )
        if not rows:
            logger.debug("Forecast %s no longer pending, resolution not applied", forecast_id)
            return False
        return True
