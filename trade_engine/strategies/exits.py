"""Exit providers. Evaluated only while a trade is open."""

from __future__ import annotations
from typing import Optional

from trade_engine.core.history import BarHistory
from trade_engine.core.types import Side
from trade_engine.strategies import indicators
from trade_engine.strategies.base import ExitProvider, TradeView


class TakeProfitExit(ExitProvider):
    """Exit once the close reaches entry fill +/- `multiple` X."""

    name = "take_profit"
    warmup = 1

    def __init__(self, multiple: float = 2.0):
        self.multiple = multiple

    def target(self, trade: TradeView) -> float:
        return trade.entry_fill + trade.side.sign * self.multiple * trade.risk_unit

    def evaluate(self, history: BarHistory, trade: TradeView) -> Optional[Side]:
        close = history.current.close
        if (close - self.target(trade)) * trade.side.sign >= 0:
            return trade.side
        return None


class RsiExit(ExitProvider):
    """Exit longs when RSI is overbought, shorts when oversold."""

    name = "rsi_exit"

    def __init__(self, length: int = 14, oversold: float = 30.0, overbought: float = 70.0):
        self.length = length
        self.oversold = oversold
        self.overbought = overbought
        self.warmup = length + 1

    def evaluate(self, history: BarHistory, trade: TradeView) -> Optional[Side]:
        value = indicators.rsi(history, self.length)
        if value is None:
            return None
        if trade.side is Side.LONG and value >= self.overbought:
            return Side.LONG
        if trade.side is Side.SHORT and value <= self.oversold:
            return Side.SHORT
        return None
