"""
StratScan command line

Usage:
    stratscan session [--at 2026-03-02T14:30:00+00:00]
    stratscan replay candles.csv --symbol AAPL [--interval 5Min] [--equity 100000]

The replay CSV needs timestamp, open, high, low, close and optionally volume
columns (plus symbol, when one file holds several symbols). Emitted signals
are printed as JSON lines on stdout; logs go to stderr.
"""
import argparse
import asyncio
import csv
import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config.scanner_config import load_scanner_config
from .exceptions import ConfigurationError, DataError
from .models.market import AccountContext
from .services.indicators import LocalIndicatorProvider
from .services.logging_config import setup_logging
from .services.session_scheduler import SessionScheduler
from .services.signal_engine import SignalEngine

logger = logging.getLogger("stratscan.cli")


REQUIRED_COLUMNS = ("timestamp", "open", "high", "low", "close")


def iso_datetime(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO 8601 timestamp: {value!r}")


def read_candles(path: str, symbol: str, interval: str) -> List[Dict[str, Any]]:
    """
    Rows of a CSV file as raw candle records for one symbol.

    Raises:
        DataError: If a required column is missing or a timestamp is not ISO 8601
    """
    records = []
    with open(path, newline="") as fh:
        reader = csv.DictReader(fh)
        missing = [c for c in REQUIRED_COLUMNS if c not in (reader.fieldnames or [])]
        if missing:
            raise DataError(f"{path} is missing columns: {', '.join(missing)}", symbol=symbol)

        for line, row in enumerate(reader, start=2):
            row_symbol = row.get("symbol") or symbol
            if row_symbol != symbol:
                continue
            try:
                timestamp = datetime.fromisoformat(row["timestamp"])
            except ValueError as e:
                raise DataError(f"{path}:{line}: bad timestamp {row['timestamp']!r}", symbol=symbol) from e
            records.append({
                "symbol": symbol,
                "interval": interval,
                "timestamp": timestamp,
                "open": row["open"],
                "high": row["high"],
                "low": row["low"],
                "close": row["close"],
                "volume": row.get("volume") or None,
            })
    return records


def cmd_session(args: argparse.Namespace) -> int:
    config = load_scanner_config(args.env_file)
    info = SessionScheduler(config.session).classify(args.at)
    print(json.dumps({
        "session": info.session.value,
        "local_time": info.local_time.isoformat() if info.local_time else None,
        "scan_interval": info.scan_interval,
        "risk_multiplier": info.risk_multiplier,
        "api_budget_per_minute": info.api_budget_per_minute,
        "confidence": info.confidence,
        "pattern_families": sorted(f.value for f in info.enabled_pattern_families),
    }))
    return 0


async def replay(
    path: str,
    symbol: str,
    interval: str,
    equity: float,
    env_file: Optional[str] = None,
) -> int:
    """
    Feed a CSV through the engine bar by bar, classifying the session at
    each candle's own timestamp.

    Returns:
        Number of signals emitted
    """
    config = load_scanner_config(env_file)
    engine = SignalEngine(config)
    provider = LocalIndicatorProvider(ema_periods=config.confluence.ema_periods)
    scheduler = SessionScheduler(config.session)
    account = AccountContext(
        equity=equity,
        max_risk_per_trade=config.risk.default_max_risk_per_trade,
        max_position_size=config.risk.default_max_position_size,
    )

    state = engine.new_state(symbol, interval)
    emitted = 0
    for raw in read_candles(path, symbol, interval):
        result = engine.ingest(state, raw)
        if not result.accepted:
            continue
        candles = state.history.snapshot()
        if len(candles) < 3:
            continue
        snapshot = await provider.get_snapshot(symbol, interval, config.indicator_lookback, candles)
        session = scheduler.classify(result.candle.timestamp)
        signal = engine.evaluate(state, snapshot, session, account)
        if signal is not None:
            emitted += 1
            print(signal.model_dump_json(), flush=True)

    logger.info(f"Replay of {symbol} finished: {emitted} signals, {state.rejected_candles} candles rejected")
    return emitted


def cmd_replay(args: argparse.Namespace) -> int:
    asyncio.run(replay(args.csv, args.symbol, args.interval, args.equity, args.env_file))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stratscan", description="Strat/ABCD pattern signal scanner")
    parser.add_argument("--env-file", help="Load settings from this .env file")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON structured logs")
    sub = parser.add_subparsers(dest="command", required=True)

    p_session = sub.add_parser("session", help="Print the session classification")
    p_session.add_argument("--at", type=iso_datetime, help="ISO timestamp (default: now)")
    p_session.set_defaults(handler=cmd_session)

    p_replay = sub.add_parser("replay", help="Replay a CSV of candles through the engine")
    p_replay.add_argument("csv", help="CSV file with timestamp,open,high,low,close[,volume]")
    p_replay.add_argument("--symbol", required=True)
    p_replay.add_argument("--interval", default="5Min")
    p_replay.add_argument("--equity", type=float, default=100000.0)
    p_replay.set_defaults(handler=cmd_replay)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(use_json=args.json_logs, level=getattr(logging, args.log_level.upper(), logging.INFO))

    try:
        return args.handler(args)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2
    except DataError as e:
        logger.error(f"Cannot read candles: {e}")
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
