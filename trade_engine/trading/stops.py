"""
In-trade stop engine.

Entry stops are computed blind to trade context; once a position is open this
engine computes a trailing candidate every bar. The candidate only takes over
from the entry stop after it "kicks in" (crosses a configured threshold), and a
published stop never loosens and never sits on the wrong side of price.
"""

from __future__ import annotations
import logging
from enum import Enum
from typing import Optional

from trade_engine.core.history import BarHistory
from trade_engine.core.types import Side
from trade_engine.strategies import indicators
from trade_engine.trading.state import Trade

logger = logging.getLogger("trade_engine.trading.stops")


class StopKind(str, Enum):
    X_MULTIPLE = "x_multiple"
    PERCENT = "percent"
    FIXED = "fixed"
    DONCHIAN_CENTER = "donchian_center"
    ATR_MULTIPLE = "atr_multiple"
    CHANDELIER = "chandelier"
    VOLATILITY = "volatility"
    LAST_BAR_EXTREME = "last_bar_extreme"


class KickIn(str, Enum):
    ENTRY_STOP = "entry_stop"
    X_MULTIPLE = "x_multiple"
    PERCENT = "percent"
    FIXED = "fixed"


_ATR_KINDS = (StopKind.ATR_MULTIPLE, StopKind.CHANDELIER, StopKind.VOLATILITY)


class InTradeStopEngine:
    def __init__(
        self,
        kind: StopKind = StopKind.X_MULTIPLE,
        value: float = 1.0,
        length: int = 14,
        kick_in: KickIn = KickIn.ENTRY_STOP,
        kick_in_value: float = 0.0,
    ):
        self.kind = kind
        self.value = value
        self.length = length
        self.kick_in = kick_in
        self.kick_in_value = kick_in_value

    @property
    def warmup(self) -> int:
        if self.kind in _ATR_KINDS:
            return self.length + 1
        if self.kind is StopKind.DONCHIAN_CENTER:
            return self.length
        return 0

    def candidate(self, trade: Trade, history: BarHistory) -> Optional[float]:
        """Raw stop for the trade's side on the current bar; None while not ready."""
        sign = trade.side.sign
        bar = history.current
        kind = self.kind
        if kind is StopKind.X_MULTIPLE:
            return trade.best_price - sign * self.value * trade.risk_unit
        if kind is StopKind.PERCENT:
            return trade.best_price * (1 - sign * self.value / 100.0)
        if kind is StopKind.FIXED:
            return trade.best_price - sign * self.value
        if kind is StopKind.LAST_BAR_EXTREME:
            return bar.low if trade.side is Side.LONG else bar.high
        if kind is StopKind.DONCHIAN_CENTER:
            hi = indicators.highest(history, self.length)
            lo = indicators.lowest(history, self.length)
            if hi is None or lo is None:
                return None
            return (hi + lo) / 2.0
        atr = indicators.atr(history, self.length)
        if atr is None:
            return None
        if kind is StopKind.ATR_MULTIPLE:
            return bar.close - sign * self.value * atr
        if kind is StopKind.CHANDELIER:
            if trade.side is Side.LONG:
                return indicators.highest(history, self.length) - self.value * atr
            return indicators.lowest(history, self.length) + self.value * atr
        # VOLATILITY: anchored on the best close since entry
        return trade.best_close - sign * self.value * atr

    def kicks_in(self, trade: Trade, candidate: float) -> bool:
        sign = trade.side.sign
        v = self.kick_in_value
        if self.kick_in is KickIn.ENTRY_STOP:
            threshold = trade.entry_stop
            return (candidate - threshold) * sign > 0
        if self.kick_in is KickIn.X_MULTIPLE:
            threshold = trade.entry_fill + sign * v * trade.risk_unit
        elif self.kick_in is KickIn.PERCENT:
            threshold = trade.entry_fill * (1 + sign * v / 100.0)
        else:
            threshold = trade.entry_fill + sign * v
        return (candidate - threshold) * sign >= 0

    def update(self, trade: Trade, history: BarHistory) -> float:
        """Publish this bar's stop on the trade and return it."""
        previous = trade.in_trade_stop
        candidate = self.candidate(trade, history)
        if candidate is None:
            return previous
        sign = trade.side.sign
        if not trade.kicked_in:
            if not self.kicks_in(trade, candidate):
                return previous
            trade.kicked_in = True
            logger.debug("In-trade stop kicked in at bar %d (%.5f)", history.current.index, candidate)
        # never loosen
        if (candidate - previous) * sign <= 0:
            return previous
        # a stop price has already crossed cannot become the new reference
        if (history.current.close - candidate) * sign <= 0:
            return previous
        trade.in_trade_stop = candidate
        return candidate
