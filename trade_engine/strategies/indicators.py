"""
Indicators over the tail of a BarHistory. Each returns None while there is not
enough history, so callers can tell "not ready" apart from a real value.
"""

from __future__ import annotations
from typing import Optional

import numpy as np

from trade_engine.core.history import BarHistory


def sma(history: BarHistory, length: int, offset: int = 0) -> Optional[float]:
    if len(history) < length + offset:
        return None
    closes = history.window("close", length + offset)
    return float(closes[:length].mean())


def highest(history: BarHistory, length: int, field: str = "high") -> Optional[float]:
    values = history.window(field, length)
    return None if values is None else float(values.max())


def lowest(history: BarHistory, length: int, field: str = "low") -> Optional[float]:
    values = history.window(field, length)
    return None if values is None else float(values.min())


def atr(history: BarHistory, length: int) -> Optional[float]:
    """Simple-average true range over `length` bars (needs length + 1 bars)."""
    n = length + 1
    high = history.window("high", n)
    if high is None:
        return None
    low = history.window("low", n)
    close = history.window("close", n)
    prev_close = close[:-1]
    tr = np.maximum.reduce([
        high[1:] - low[1:],
        np.abs(high[1:] - prev_close),
        np.abs(low[1:] - prev_close),
    ])
    return float(tr.mean())


def rsi(history: BarHistory, length: int, offset: int = 0) -> Optional[float]:
    """Rolling-mean RSI of closes, `offset` bars back."""
    n = length + 1 + offset
    close = history.window("close", n)
    if close is None:
        return None
    if offset:
        close = close[:-offset]
    delta = np.diff(close)
    up = np.clip(delta, 0, None).mean()
    down = np.clip(-delta, 0, None).mean()
    if down == 0:
        return 100.0 if up > 0 else 50.0
    rs = up / down
    return float(100 - 100 / (1 + rs))
