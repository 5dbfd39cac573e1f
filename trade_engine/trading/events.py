"""
In-trade alert conditions, evaluated on the detection bar. A multiplier of 0
disables the corresponding event.
"""

from __future__ import annotations
from typing import List, Optional

from trade_engine.core.history import BarHistory
from trade_engine.core.types import EngineEvent, EventKind, Side
from trade_engine.strategies import indicators
from trade_engine.trading.state import Trade


class InTradeEventDetector:
    def __init__(
        self,
        atr_length: int = 14,
        near_stop_atr_mult: float = 0.0,
        rsi_length: int = 14,
        rsi_overbought: float = 70.0,
        rsi_oversold: float = 30.0,
        reversal_enabled: bool = False,
        stop_jump_x_mult: float = 0.0,
        swing_atr_mult: float = 0.0,
    ):
        self.atr_length = atr_length
        self.near_stop_atr_mult = near_stop_atr_mult
        self.rsi_length = rsi_length
        self.rsi_overbought = rsi_overbought
        self.rsi_oversold = rsi_oversold
        self.reversal_enabled = reversal_enabled
        self.stop_jump_x_mult = stop_jump_x_mult
        self.swing_atr_mult = swing_atr_mult

    def detect(self, trade: Trade, history: BarHistory, stop_before: float) -> List[EngineEvent]:
        bar = history.current
        sign = trade.side.sign
        events: List[EngineEvent] = []

        def emit(kind: EventKind, **details) -> None:
            details["side"] = trade.side.value
            events.append(EngineEvent(kind=kind, bar_index=bar.index, time=bar.time, price=bar.close, details=details))

        atr: Optional[float] = None
        if self.near_stop_atr_mult > 0 or self.swing_atr_mult > 0:
            atr = indicators.atr(history, self.atr_length)

        stop = trade.in_trade_stop
        if atr and self.near_stop_atr_mult > 0:
            distance = (bar.close - stop) * sign
            if 0 < distance <= self.near_stop_atr_mult * atr:
                emit(EventKind.NEAR_STOP, stop=stop, distance=distance)

        if self.reversal_enabled and self._momentum_pivot(history, trade.side):
            emit(EventKind.POSSIBLE_REVERSAL)

        if self.stop_jump_x_mult > 0:
            moved = (stop - stop_before) * sign
            if moved > self.stop_jump_x_mult * trade.risk_unit:
                emit(EventKind.LARGE_STOP_MOVE, stop=stop, previous_stop=stop_before, moved=moved)

        if atr and self.swing_atr_mult > 0:
            if bar.range > self.swing_atr_mult * atr and (bar.close - bar.open) * sign > 0:
                emit(EventKind.LARGE_FAVORABLE_SWING, range=bar.range, atr=atr)
        return events

    def _momentum_pivot(self, history: BarHistory, side: Side) -> bool:
        """RSI turned down from overbought (longs) or up from oversold (shorts) on the last bar."""
        now = indicators.rsi(history, self.rsi_length)
        mid = indicators.rsi(history, self.rsi_length, offset=1)
        old = indicators.rsi(history, self.rsi_length, offset=2)
        if None in (now, mid, old):
            return False
        if side is Side.LONG:
            return mid >= self.rsi_overbought and mid > old and now < mid
        return mid <= self.rsi_oversold and mid < old and now > mid
