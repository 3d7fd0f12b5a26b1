from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import IntEnum, StrEnum
from typing import Any

# Plain decimal numbers, optionally with thousands separators ("1,234.5").
_PRICE_RE = re.compile(r"^\+?(\d{1,3}(,\d{3})+|\d+)(\.\d+)?$")


class MalformedForecastError(ValueError):
    """A stored forecast record is missing fields or violates its invariants."""

    def __init__(self, forecast_id: Any, reason: str) -> None:
        super().__init__(f"Forecast {forecast_id}: {reason}")
        self.forecast_id = forecast_id
        self.reason = reason


class Direction(IntEnum):
    UP = 1
    DOWN = -1

    @classmethod
    def parse(cls, value: Any) -> Direction:
        """Accept the stored 1/-1 encoding or a textual label."""
        if isinstance(value, Direction):
            return value
        if isinstance(value, str):
            label = value.strip().lower()
            if label in ("up", "bull", "1"):
                return cls.UP
            if label in ("down", "bear", "-1"):
                return cls.DOWN
            raise ValueError(f"Unknown direction: {value!r}")
        if isinstance(value, bool):
            raise ValueError(f"Unknown direction: {value!r}")
        return cls(int(value))


class Outcome(StrEnum):
    SUCCESS = "success"
    FAIL = "fail"

    @property
    def status(self) -> ForecastStatus:
        """Status written by automatic resolution for this polarity."""
        if self is Outcome.SUCCESS:
            return ForecastStatus.AUTO_SUCCESS
        return ForecastStatus.AUTO_FAIL

    @classmethod
    def of(cls, value: Outcome | ForecastStatus | str) -> Outcome:
        """Normalise an outcome or a resolved status (manual or automatic)."""
        if isinstance(value, Outcome):
            return value
        if value in cls._value2member_map_:
            return cls(value)
        status = ForecastStatus(value)
        outcome = status.outcome
        if outcome is None:
            raise ValueError(f"Status {status.value!r} has no outcome")
        return outcome


class ForecastStatus(StrEnum):
    PENDING = "pending"
    AUTO_SUCCESS = "auto-success"
    AUTO_FAIL = "auto-fail"
    MANUAL_SUCCESS = "manual-success"
    MANUAL_FAIL = "manual-fail"

    @property
    def is_open(self) -> bool:
        return self is ForecastStatus.PENDING

    @property
    def outcome(self) -> Outcome | None:
        if self in (ForecastStatus.AUTO_SUCCESS, ForecastStatus.MANUAL_SUCCESS):
            return Outcome.SUCCESS
        if self in (ForecastStatus.AUTO_FAIL, ForecastStatus.MANUAL_FAIL):
            return Outcome.FAIL
        return None


def parse_price(value: Any) -> Decimal | None:
    """Normalise a price from a source payload or a stored record.

    Accepts numbers and numeric strings (with or without thousands
    separators). Returns None for anything that is not a single positive
    finite price, including range strings such as "580 - 585".
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        if not _PRICE_RE.match(text):
            return None
        value = text.replace(",", "")
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


@dataclass(frozen=True)
class PriceQuote:
    ticker: str
    price: Decimal
    daily_high: Decimal
    daily_low: Decimal
    source: str
    fetched_at: datetime


@dataclass(frozen=True)
class Resolution:
    status: ForecastStatus
    end_price: Decimal
    profit_rate: Decimal
    profit_rate_adjusted: Decimal
    resolved_at: datetime

    def __post_init__(self) -> None:
        if self.status.is_open:
            raise ValueError("A resolution needs a resolved status, got 'pending'")

    @property
    def outcome(self) -> Outcome:
        return Outcome.of(self.status)


@dataclass(frozen=True)
class Evaluation:
    current_price: Decimal
    resolution: Resolution | None = None


@dataclass
class Forecast:
    id: int
    ticker: str
    direction: Direction
    ceiling: Decimal
    floor: Decimal
    start_price: Decimal
    confidence: int
    status: ForecastStatus = ForecastStatus.PENDING
    parent_id: int | None = None
    current_price: Decimal | None = None
    end_price: Decimal | None = None
    profit_rate: Decimal | None = None
    profit_rate_adjusted: Decimal | None = None
    resolved_at: datetime | None = None
    user_id: int | None = None
    ticker_name: str = ""
    current_price_updated_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status.is_open


def _optional_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None


def forecast_from_row(row: Mapping[str, Any]) -> Forecast:
    """Build a Forecast from a stored record, rejecting malformed data.

    Raises MalformedForecastError when a required field is missing or
    unparsable, when the bounds are inverted, when start_price is not strictly
    inside them, or when confidence is outside 1..5.
    """
    forecast_id = row.get("id")
    if forecast_id is None:
        raise MalformedForecastError(None, "missing id")

    ticker = row.get("ticker")
    if not isinstance(ticker, str) or not ticker.strip():
        raise MalformedForecastError(forecast_id, "missing ticker")

    try:
        direction = Direction.parse(row.get("direction"))
    except (ValueError, TypeError):
        raise MalformedForecastError(
            forecast_id, f"invalid direction {row.get('direction')!r}"
        ) from None

    prices: dict[str, Decimal] = {}
    for name in ("ceiling", "floor", "start_price"):
        price = parse_price(row.get(name))
        if price is None:
            raise MalformedForecastError(forecast_id, f"invalid {name} {row.get(name)!r}")
        prices[name] = price

    if prices["floor"] >= prices["ceiling"]:
        raise MalformedForecastError(
            forecast_id,
            f"bounds inverted (floor={prices['floor']}, ceiling={prices['ceiling']})",
        )
    if not prices["floor"] < prices["start_price"] < prices["ceiling"]:
        raise MalformedForecastError(
            forecast_id,
            f"start_price outside bounds ({prices['start_price']} not in "
            f"{prices['floor']}..{prices['ceiling']})",
        )

    confidence = row.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, Decimal, str)):
        raise MalformedForecastError(forecast_id, f"invalid confidence {confidence!r}")
    try:
        confidence = int(confidence)
    except (ValueError, TypeError):
        raise MalformedForecastError(forecast_id, f"invalid confidence {confidence!r}") from None
    if not 1 <= confidence <= 5:
        raise MalformedForecastError(forecast_id, f"confidence {confidence} outside 1..5")

    try:
        status = ForecastStatus(row.get("status") or ForecastStatus.PENDING)
    except ValueError:
        raise MalformedForecastError(forecast_id, f"unknown status {row.get('status')!r}") from None

    return Forecast(
        id=forecast_id,
        ticker=ticker.strip(),
        direction=direction,
        ceiling=prices["ceiling"],
        floor=prices["floor"],
        start_price=prices["start_price"],
        confidence=confidence,
        status=status,
        parent_id=row.get("parent_id"),
        current_price=_optional_decimal(row.get("current_price")),
        end_price=_optional_decimal(row.get("end_price")),
        profit_rate=_optional_decimal(row.get("profit_rate")),
        profit_rate_adjusted=_optional_decimal(row.get("profit_rate_adjusted")),
        resolved_at=row.get("resolved_at"),
        user_id=row.get("user_id"),
        ticker_name=row.get("ticker_name") or "",
        current_price_updated_at=row.get("current_price_updated_at"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )
