from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True)
class AppConfig:
    db_dsn: str
    finnhub_api_key: str = ""
    cron_secret: str = ""
    market_timezone: str = "Asia/Taipei"
    symbol_suffix: str = ".TW"
    price_timeout_seconds: float = 10.0
    price_fetch_workers: int = 4


def load_config() -> AppConfig:
    """Load application config from environment variables.

    Loads .env file if present in the current directory.
    """
    env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    return AppConfig(
        db_dsn=os.environ.get("DATABASE_URL", ""),
        finnhub_api_key=os.environ.get("FINNHUB_API_KEY", ""),
        cron_secret=os.environ.get("CRON_SECRET", ""),
        market_timezone=os.environ.get("MARKET_TIMEZONE", "Asia/Taipei"),
        symbol_suffix=os.environ.get("PRICE_SYMBOL_SUFFIX", ".TW"),
        price_timeout_seconds=float(os.environ.get("PRICE_TIMEOUT_SECONDS", "10")),
        price_fetch_workers=int(os.environ.get("PRICE_FETCH_WORKERS", "4")),
    )
