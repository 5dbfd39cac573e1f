#!/usr/bin/env python3
"""
Trade Engine CLI: backtest | stream
Usage:
  python main.py backtest --data bars.csv [--config config.yaml] [--verbose]
  python main.py stream --data bars.csv [--config config.yaml]
"""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path

import pandas as pd

# Project root
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from trade_engine.backtesting.engine import BacktestEngine
from trade_engine.core.config import ConfigError, load_config
from trade_engine.core.history import bars_from_frame
from trade_engine.core.logger import setup_logging
from trade_engine.core.types import EngineEvent
from trade_engine.trading.builder import build_engine


def load_bars(path: Path) -> pd.DataFrame:
    """CSV with columns time, open, high, low, close, volume and optional signal."""
    df = pd.read_csv(path)
    df.columns = [c.strip().lower() for c in df.columns]
    missing = {"open", "high", "low", "close"} - set(df.columns)
    if missing:
        raise ValueError(f"{path}: missing columns {', '.join(sorted(missing))}")
    if "time" in df.columns:
        df["time"] = pd.to_datetime(df["time"])
    return df


def print_bucket(title: str, bucket) -> None:
    print(f"{title}: entries {bucket.entries} (wins {bucket.wins}, losses {bucket.losses})"
          f" | avg PLX {bucket.avg_plx:.2f} | win rate {bucket.win_rate * 100:.1f}%"
          f" | PF {bucket.profit_factor:.2f} | P&L {bucket.total_pnl:.2f}"
          f" | fees {bucket.total_fees:.2f} | avg length {bucket.avg_trade_length:.1f}"
          f" | avg adverse {bucket.avg_adverse_x:.2f}X")


def run_backtest(config_path: Path | None, data_path: Path, verbose: bool = False) -> int:
    """Run a backtest over a CSV of bars."""
    try:
        config = load_config(config_path, ROOT)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    # trade-by-trade lines go to the log file unless --verbose
    setup_logging(config.log_level, config.log_dir, config.log_file, None if verbose else "WARNING")
    df = load_bars(data_path)
    engine = build_engine(config)
    result = BacktestEngine(engine, tick_size=config.tick_size, close_at_end=config.close_at_end).run(df)

    print("\n--- Backtest Results ---")
    print_bucket("First entries", result.first)
    print_bucket("Pyramided entries", result.pyramided)
    print_bucket("All entries", result.combined)
    print(f"Equity: {result.equity:.4f} ({result.equity * config.initial_capital:.2f}){' RUIN' if result.ruin else ''}")
    print(f"Max drawdown close-to-close: {result.close_to_close.max_drawdown_pct:.2f}%")
    print(f"Max drawdown continuous: {result.continuous.max_drawdown_pct:.2f}%")
    if result.rejected_entries:
        print(f"Rejected entries (invalid X): {result.rejected_entries}")
    pea = result.post_exit
    if pea.analyses:
        print(f"Post-exit ({config.post_exit_bars} bars, {pea.analyses} exits): "
              f"avg max opportunity {pea.avg_max_opportunity:.2f}X at bar {pea.avg_max_opportunity_bar:.1f}, "
              f"avg drawdown {pea.avg_max_drawdown:.2f}X, "
              f"avg drawdown to max opportunity {pea.avg_drawdown_to_max_opportunity:.2f}X")
    m = result.metrics
    if m:
        print(f"Total return: {m.total_return_pct:.2f}%")
        print(f"Sharpe ratio: {m.sharpe_ratio:.2f}")
        print(f"Sortino ratio: {m.sortino_ratio:.2f}")
        print(f"Expectancy: {m.expectancy:.2f} per trade")
    return 0


def run_stream(config_path: Path | None, data_path: Path) -> int:
    """Feed bars one at a time, as a live feed would, printing events as they happen."""
    try:
        config = load_config(config_path, ROOT)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    setup_logging(config.log_level, config.log_dir, config.log_file)
    logger = logging.getLogger("trade_engine")

    def on_event(event: EngineEvent) -> None:
        print(f"{event.time} bar {event.bar_index}: {event.kind.value} @ {event.price:.5f} {event.details}")

    engine = build_engine(config, on_event=on_event)
    bars = bars_from_frame(load_bars(data_path), config.tick_size)
    try:
        for bar in bars:
            engine.on_bar(bar)
    except KeyboardInterrupt:
        logger.info("Shutdown by user")
    print(f"Equity: {engine.state.equity:.4f} | trades: {len(engine.state.closed_trades)}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Trade Engine CLI")
    parser.add_argument("mode", choices=["backtest", "stream"], help="Replay a backtest or stream bars")
    parser.add_argument("--data", type=Path, required=True, help="CSV of OHLCV bars")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument("--verbose", action="store_true", help="Backtest: log every fill to the console")
    args = parser.parse_args()
    if args.mode == "backtest":
        return run_backtest(args.config, args.data, args.verbose)
    return run_stream(args.config, args.data)


if __name__ == "__main__":
    exit(main())
