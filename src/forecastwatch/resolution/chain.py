"""Propagate a resolution down the tree of forecasts derived from it."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

from forecastwatch.models.forecast import Forecast, ForecastStatus, Outcome
from forecastwatch.registry.store import ForecastStore
from forecastwatch.resolution.evaluator import build_resolution

logger = logging.getLogger(__name__)


@dataclass
class CascadeResult:
    resolved_ids: list[int] = field(default_factory=list)
    errors: int = 0
    cycles: int = 0

    @property
    def resolved(self) -> int:
        return len(self.resolved_ids)


class ChainResolver:
    """Resolves every open descendant of a settled forecast.

    Descendants inherit the parent's settlement price and outcome polarity
    but compute their return from their own start price, direction and
    confidence. Their own bounds are not re-checked.
    """

    def __init__(
        self,
        store: ForecastStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))

    def cascade(
        self,
        parent_id: int,
        settlement_price: Decimal,
        parent_outcome: Outcome | ForecastStatus | str,
    ) -> CascadeResult:
        """Resolve all open descendants of parent_id, depth-first.

        Manual parent statuses are mapped to their polarity; children always
        receive the automatic status. A forecast id seen twice within one
        cascade means the parent graph has a cycle: it is logged, counted
        and not visited again.
        """
        outcome = Outcome.of(parent_outcome)
        result = CascadeResult()
        visited: set[int] = {parent_id}

        stack: list[Forecast] = []
        if not self._push_children(parent_id, stack, result):
            return result

        while stack:
            child = stack.pop()
            if child.id in visited:
                result.cycles += 1
                logger.warning(
                    "Cycle in forecast chain: %s reached again while cascading from %s",
                    child.id, parent_id,
                )
                continue
            visited.add(child.id)

            resolution = build_resolution(child, settlement_price, outcome, self._clock())
            try:
                applied = self._store.resolve_if_open(child.id, resolution)
            except Exception:
                logger.exception("Failed to resolve followed forecast %s", child.id)
                result.errors += 1
                continue

            if not applied:
                logger.info("Followed forecast %s was already resolved, skipping", child.id)
                continue

            result.resolved_ids.append(child.id)
            logger.info(
                "Resolved followed forecast %s (parent chain %s): %s, profit: %.2f%%",
                child.id, parent_id, resolution.status.value, resolution.profit_rate,
            )
            self._push_children(child.id, stack, result)

        return result

    def _push_children(
        self, forecast_id: int, stack: list[Forecast], result: CascadeResult,
    ) -> bool:
        try:
            loaded = self._store.list_open_children(forecast_id)
        except Exception:
            logger.exception("Failed to load followed forecasts of %s", forecast_id)
            result.errors += 1
            return False

        result.errors += len(loaded.rejected)
        # Reversed so the first child is popped first (preorder).
        stack.extend(reversed(loaded.forecasts))
        return True
