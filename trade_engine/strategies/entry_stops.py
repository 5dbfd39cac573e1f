"""
Entry-stop providers. They never see trade state: levels are computed for both
sides on every bar so an entry filled on the next bar can use them.
"""

from __future__ import annotations
from typing import Optional

from trade_engine.core.history import BarHistory
from trade_engine.core.types import StopLevels
from trade_engine.strategies import indicators
from trade_engine.strategies.base import EntryStopProvider


class AtrEntryStop(EntryStopProvider):
    name = "atr_stop"

    def __init__(self, length: int = 14, mult: float = 1.5):
        self.length = length
        self.mult = mult
        self.warmup = length + 1

    def evaluate(self, history: BarHistory) -> Optional[StopLevels]:
        value = indicators.atr(history, self.length)
        if value is None:
            return None
        close = history.current.close
        return StopLevels(long=close - self.mult * value, short=close + self.mult * value)


class DonchianEntryStop(EntryStopProvider):
    """Lowest low / highest high of the last `length` bars."""

    name = "donchian_stop"

    def __init__(self, length: int = 20):
        self.length = length
        self.warmup = length

    def evaluate(self, history: BarHistory) -> Optional[StopLevels]:
        lo = indicators.lowest(history, self.length)
        hi = indicators.highest(history, self.length)
        if lo is None or hi is None:
            return None
        return StopLevels(long=lo, short=hi)


class LastBarExtremeEntryStop(EntryStopProvider):
    name = "last_bar_stop"
    warmup = 1

    def evaluate(self, history: BarHistory) -> Optional[StopLevels]:
        bar = history.get(0)
        if bar is None:
            return None
        return StopLevels(long=bar.low, short=bar.high)


class PercentEntryStop(EntryStopProvider):
    """Stop a fixed percentage away from the current close."""

    name = "percent_stop"
    warmup = 1

    def __init__(self, pct: float = 2.0):
        self.pct = pct

    def evaluate(self, history: BarHistory) -> Optional[StopLevels]:
        bar = history.get(0)
        if bar is None:
            return None
        delta = bar.close * self.pct / 100.0
        return StopLevels(long=bar.close - delta, short=bar.close + delta)
