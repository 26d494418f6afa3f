"""
Application entry point.

This module defines a simple command‑line interface for running the
breakout monitor in its different modes (live, historical, reset).  It
leverages the modules under `breakout_monitor/` to load configuration,
fetch signals and candles, run the engines and generate reports.
"""

from __future__ import annotations

import argparse
import logging
import os
import time
from typing import Any, Dict, List, Optional

from .config.schema import Config, load_config
from .data.api_client import ShardedCandleClient, SignalClient
from .data.csv_data import CSVDataLoader
from .execution.errors import BreakoutMonitorError, NoDataForDate
from .execution.historical import HistoricalBatchAnalyzer
from .execution.session import SessionCoordinator
from .reporting.metrics import compute_summary
from .reporting.report import generate_historical_report, write_live_rows
from .utils.persistence import FileCache, clear_all_historical, clear_historical, list_historical_dates


logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def _load(path: str) -> Config:
    if os.path.exists(path):
        return load_config(path)
    logger.info("Config file %s not found, using defaults", path)
    return Config()


def _live_publisher(config: Config):
    def publish(rows: List[Dict[str, Any]]) -> None:
        summary = compute_summary(rows)
        logger.info(
            "Tick: %d symbols, %s, avg P/L %.2f%%",
            summary['num_symbols'],
            ", ".join(f"{k}={v}" for k, v in summary['status_counts'].items()),
            summary['avg_pnl_pct'],
        )
        write_live_rows(rows, out_dir=config.results_dir)
    return publish


def _coordinator(config: Config) -> SessionCoordinator:
    return SessionCoordinator(
        config,
        signal_source=SignalClient(config.data),
        candle_source=ShardedCandleClient(config.data),
        cache=FileCache(config.cache.dir),
        publish=_live_publisher(config),
    )


def run_live(config: Config, reset: bool = False) -> int:
    coordinator = _coordinator(config)
    try:
        handle = coordinator.reset() if reset else coordinator.start()
    except BreakoutMonitorError as exc:
        logger.error("Live mode not started: %s", exc)
        return 1
    try:
        while handle is not None and handle.running:
            time.sleep(1.0)
    except KeyboardInterrupt:
        logger.info("Shutting down live session...")
    finally:
        coordinator.stop()
    return 0


def run_historical(config: Config, date: str, source: str, refresh: bool) -> int:
    if source == 'csv':
        bar_source = CSVDataLoader(config.data.csv_dir, config.data.timezone)
    else:
        bar_source = ShardedCandleClient(config.data)
    analyzer = HistoricalBatchAnalyzer(config, bar_source, FileCache(config.cache.dir))
    try:
        snapshot = analyzer.run(date, use_cache=not refresh)
    except NoDataForDate as exc:
        logger.warning("%s", exc)
        return 1
    except BreakoutMonitorError as exc:
        logger.error("Historical analysis failed: %s", exc)
        return 1
    paths = generate_historical_report(snapshot.to_dict(), out_dir=config.results_dir)
    logger.info("Historical breakout results for %s saved to %s", date, os.path.dirname(paths['results']))
    return 0


def run_cache_admin(config: Config, date: Optional[str], list_dates: bool, clear: bool) -> int:
    """List or drop cached historical snapshots."""
    cache = FileCache(config.cache.dir)
    if clear:
        if date:
            clear_historical(cache, date)
            logger.info("Cleared cached historical snapshot for %s", date)
        else:
            clear_all_historical(cache)
            logger.info("Cleared all cached historical snapshots")
    if list_dates:
        dates = list_historical_dates(cache)
        logger.info("Cached historical dates: %s", ", ".join(dates) if dates else "none")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Parse command‑line arguments and dispatch to the appropriate mode."""
    parser = argparse.ArgumentParser(description="Intraday Breakout Monitor")
    parser.add_argument('mode', choices=['live', 'historical', 'reset'], help="Operating mode")
    parser.add_argument('--config', default='config.yaml', help="Path to configuration YAML file")
    parser.add_argument('--date', help="Trade date (YYYY-MM-DD) for historical mode")
    parser.add_argument('--source', choices=['api', 'csv'], default='api', help="Bar source for historical mode")
    parser.add_argument('--refresh', action='store_true', help="Ignore the cached historical snapshot")
    parser.add_argument('--list-cached', action='store_true', help="List dates with a cached historical snapshot")
    parser.add_argument('--clear-cached', action='store_true', help="Drop the cached snapshot for --date, or all of them")
    parser.add_argument('-v', '--verbose', action='store_true', help="Enable debug logging")
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    config = _load(args.config)

    if args.mode == 'historical':
        if args.list_cached or args.clear_cached:
            return run_cache_admin(config, args.date, args.list_cached, args.clear_cached)
        if not args.date:
            parser.error("--date is required in historical mode")
        return run_historical(config, args.date, args.source, args.refresh)
    # Reset clears every cached session and snapshot before going live
    return run_live(config, reset=args.mode == 'reset')


if __name__ == '__main__':
    raise SystemExit(main())
