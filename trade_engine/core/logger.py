"""
Logging for the trade_engine logger hierarchy.

A backtest logs a line per fill and settlement; `console_level` lets a run keep
those in the log file while the console only shows warnings (ruin, rejected entries).
"""

from __future__ import annotations
import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _level(name: Optional[str], default: int = logging.INFO) -> int:
    if not name:
        return default
    return getattr(logging, str(name).upper(), default)


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    log_file: Optional[str] = None,
    console_level: Optional[str] = None,
) -> logging.Logger:
    """Configure the `trade_engine` logger (console, plus a file when log_dir and log_file are set)."""
    log_level = _level(level)
    engine_logger = logging.getLogger("trade_engine")
    engine_logger.setLevel(log_level)
    for handler in list(engine_logger.handlers):
        engine_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(_level(console_level, log_level))
    console.setFormatter(formatter)
    engine_logger.addHandler(console)

    if log_dir and log_file:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_dir / log_file, encoding="utf-8")
        fh.setLevel(log_level)
        fh.setFormatter(formatter)
        engine_logger.addHandler(fh)

    return engine_logger
