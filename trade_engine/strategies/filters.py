"""Filter providers."""

from __future__ import annotations
from typing import Optional

from trade_engine.core.history import BarHistory
from trade_engine.core.types import FilterState
from trade_engine.strategies import indicators
from trade_engine.strategies.base import FilterProvider


class MovingAverageFilter(FilterProvider):
    """Longs only above the SMA, shorts only below it."""

    name = "ma_filter"

    def __init__(self, length: int = 50):
        self.length = length
        self.warmup = length

    def evaluate(self, history: BarHistory) -> Optional[FilterState]:
        ma = indicators.sma(history, self.length)
        if ma is None:
            return None
        close = history.current.close
        return FilterState(allow_long=close > ma, allow_short=close < ma)
