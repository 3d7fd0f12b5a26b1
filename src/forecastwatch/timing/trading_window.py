"""Exchange session check used to annotate monitor runs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, time
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class TradingSession:
    open: time
    close: time
    weekdays: frozenset[int] = frozenset({0, 1, 2, 3, 4})  # Mon-Fri


# Taiwan Stock Exchange: single continuous session, no lunch break.
TWSE_SESSION = TradingSession(open=time(9, 0), close=time(13, 30))


def is_trading_window_open(
    now: datetime | None = None,
    timezone: str = "Asia/Taipei",
    session: TradingSession = TWSE_SESSION,
) -> bool:
    """True if `now` falls inside the exchange session in its local time.

    The close minute is inclusive (13:30:59 is still open). Exchange
    holidays are not modelled. Naive datetimes are taken as UTC.
    """
    current = now or datetime.now(UTC)
    if current.tzinfo is None:
        current = current.replace(tzinfo=UTC)
    local = current.astimezone(ZoneInfo(timezone))

    if local.weekday() not in session.weekdays:
        return False
    minute = local.time().replace(second=0, microsecond=0)
    return session.open <= minute <= session.close
