"""CLI entry point for forecastwatch.

Provides commands for the resolution engine:
  - run: Run one price-monitor pass and print the summary
  - quote: Fetch a live quote through the fallback chain
  - window: Show whether the exchange session is open
  - cascade: Re-propagate a resolved forecast to its followers
  - migrate: Run database migrations
  - serve: Start the HTTP worker API
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

from forecastwatch.config import load_config
from forecastwatch.registry.db import Database
from forecastwatch.registry.queries import ForecastRegistry


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def cmd_run(args: argparse.Namespace) -> None:
    """Run one price-monitor pass."""
    from forecastwatch.data.price_source import build_price_fetcher
    from forecastwatch.monitor import PriceMonitor

    config = load_config()
    with Database(config.db_dsn) as db:
        monitor = PriceMonitor(
            ForecastRegistry(db),
            build_price_fetcher(config),
            market_timezone=config.market_timezone,
        )
        summary = monitor.run()
    print(json.dumps(summary.to_dict(), indent=2))


def cmd_quote(args: argparse.Namespace) -> None:
    """Fetch a live quote for one ticker."""
    from forecastwatch.data.price_source import PriceUnavailableError, build_price_fetcher

    fetcher = build_price_fetcher(load_config())
    try:
        quote = fetcher.fetch(args.ticker)
    except PriceUnavailableError as exc:
        print(f"{exc.ticker}: unavailable")
        print(f"  primary:   {exc.primary_error}")
        print(f"  secondary: {exc.secondary_error}")
        sys.exit(1)

    print(
        f"{quote.ticker}: {quote.price} "
        f"(H: {quote.daily_high}, L: {quote.daily_low}) via {quote.source}"
    )


def cmd_window(args: argparse.Namespace) -> None:
    """Show the trading window state."""
    from forecastwatch.timing.trading_window import is_trading_window_open

    config = load_config()
    now = datetime.now(UTC)
    state = "OPEN" if is_trading_window_open(now, config.market_timezone) else "CLOSED"
    print(f"{config.market_timezone} at {now:%Y-%m-%d %H:%M} UTC: {state}")


def cmd_cascade(args: argparse.Namespace) -> None:
    """Propagate an already-resolved forecast (e.g. settled manually)."""
    from forecastwatch.resolution.chain import ChainResolver

    config = load_config()
    with Database(config.db_dsn) as db:
        registry = ForecastRegistry(db)
        forecast = registry.get_forecast(args.forecast_id)
        if forecast is None:
            print(f"Forecast {args.forecast_id} not found.")
            sys.exit(1)
        if forecast.is_open or forecast.end_price is None:
            print(f"Forecast {args.forecast_id} is not resolved; nothing to cascade.")
            sys.exit(1)

        result = ChainResolver(registry).cascade(
            forecast.id, forecast.end_price, forecast.status,
        )
    print(f"Resolved {result.resolved} followed forecasts ({result.errors} errors, {result.cycles} cycles)")


def cmd_migrate(args: argparse.Namespace) -> None:
    """Run database migrations."""
    config = load_config()
    with Database(config.db_dsn) as db:
        migrations_dir = str(Path(__file__).parent / "registry" / "migrations")
        applied = db.run_migrations(migrations_dir)
    print(f"Migrations complete ({len(applied)} applied).")


def cmd_serve(args: argparse.Namespace) -> None:
    """Serve the worker API."""
    import uvicorn

    from forecastwatch.api.app import create_app

    uvicorn.run(create_app(use_lifespan=True), host=args.host, port=args.port)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="forecastwatch",
        description="Price monitoring and chain resolution for stock forecasts",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subs = parser.add_subparsers(dest="command", required=True)

    subs.add_parser("run", help="Run one price-monitor pass")

    p_quote = subs.add_parser("quote", help="Fetch a live quote")
    p_quote.add_argument("ticker", help="Ticker symbol without exchange suffix, e.g. 2330")

    subs.add_parser("window", help="Show whether the trading window is open")

    p_cascade = subs.add_parser("cascade", help="Cascade a resolved forecast to its followers")
    p_cascade.add_argument("forecast_id", type=int, help="Resolved parent forecast id")

    subs.add_parser("migrate", help="Run database migrations")

    p_serve = subs.add_parser("serve", help="Start the HTTP worker API")
    p_serve.add_argument("--host", default="0.0.0.0")
    p_serve.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    commands = {
        "run": cmd_run,
        "quote": cmd_quote,
        "window": cmd_window,
        "cascade": cmd_cascade,
        "migrate": cmd_migrate,
        "serve": cmd_serve,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
