"""
Entry providers. Each answers for the current bar only, from closed-bar history.
"""

from __future__ import annotations
from typing import Optional

from trade_engine.core.history import BarHistory
from trade_engine.core.types import EntrySignal, Side
from trade_engine.strategies import indicators
from trade_engine.strategies.base import EntryProvider


class RsiCrossEntry(EntryProvider):
    """
    Long when RSI crosses back up through `oversold`, short when it crosses back
    down through `overbought`.
    """

    name = "rsi_cross"

    def __init__(self, length: int = 14, oversold: float = 30.0, overbought: float = 70.0):
        self.length = length
        self.oversold = oversold
        self.overbought = overbought
        self.warmup = length + 2

    def evaluate(self, history: BarHistory) -> Optional[EntrySignal]:
        now = indicators.rsi(history, self.length)
        prev = indicators.rsi(history, self.length, offset=1)
        if now is None or prev is None:
            return None
        if prev <= self.oversold < now:
            return EntrySignal(side=Side.LONG, source=self.name)
        if prev >= self.overbought > now:
            return EntrySignal(side=Side.SHORT, source=self.name)
        return None


class MovingAverageCrossEntry(EntryProvider):
    """Fast SMA crossing the slow SMA."""

    name = "ma_cross"

    def __init__(self, fast: int = 9, slow: int = 21):
        if fast >= slow:
            raise ValueError("fast length must be below slow length")
        self.fast = fast
        self.slow = slow
        self.warmup = slow + 1

    def evaluate(self, history: BarHistory) -> Optional[EntrySignal]:
        fast_now = indicators.sma(history, self.fast)
        slow_now = indicators.sma(history, self.slow)
        fast_prev = indicators.sma(history, self.fast, offset=1)
        slow_prev = indicators.sma(history, self.slow, offset=1)
        if None in (fast_now, slow_now, fast_prev, slow_prev):
            return None
        if fast_prev <= slow_prev and fast_now > slow_now:
            return EntrySignal(side=Side.LONG, source=self.name)
        if fast_prev >= slow_prev and fast_now < slow_now:
            return EntrySignal(side=Side.SHORT, source=self.name)
        return None
