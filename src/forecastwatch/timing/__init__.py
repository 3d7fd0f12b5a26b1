from forecastwatch.timing.trading_window import (
    TWSE_SESSION,
    TradingSession,
    is_trading_window_open,
)

__all__ = ["TWSE_SESSION", "TradingSession", "is_trading_window_open"]
