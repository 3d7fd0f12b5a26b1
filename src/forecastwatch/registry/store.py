from __future__ import annotations

import abc
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from forecastwatch.models.forecast import (
    Forecast,
    MalformedForecastError,
    Resolution,
    forecast_from_row,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RejectedRecord:
    forecast_id: Any
    reason: str


@dataclass
class LoadResult:
    """Forecasts that parsed cleanly plus the records that did not."""

    forecasts: list[Forecast] = field(default_factory=list)
    rejected: list[RejectedRecord] = field(default_factory=list)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> LoadResult:
        result = cls()
        for row in rows:
            try:
                result.forecasts.append(forecast_from_row(row))
            except MalformedForecastError as exc:
                logger.warning("Rejected malformed forecast record: %s", exc)
                result.rejected.append(RejectedRecord(exc.forecast_id, exc.reason))
        return result


class ForecastStore(abc.ABC):
    """The four persistence operations the resolution engine relies on."""

    @abc.abstractmethod
    def list_open_forecasts(self) -> LoadResult:
        """All forecasts still pending."""

    @abc.abstractmethod
    def update_current_price(
        self, forecast_id: int, price: Decimal, observed_at: datetime,
    ) -> None:
        """Record the latest observed price."""

    @abc.abstractmethod
    def resolve_if_open(self, forecast_id: int, resolution: Resolution) -> bool:
        """Atomically apply a resolution if the forecast is still pending.

        Returns False (and changes nothing) when it was already resolved.
        """

    @abc.abstractmethod
    def list_open_children(self, parent_id: int) -> LoadResult:
        """Pending forecasts derived directly from parent_id."""
