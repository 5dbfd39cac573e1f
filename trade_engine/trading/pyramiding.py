"""Pyramiding admission: when a same-direction entry may be added to the open trade."""

from __future__ import annotations
from enum import Enum
from typing import Optional

from trade_engine.core.types import EntrySignal
from trade_engine.trading.state import Trade


class PyramidRule(str, Enum):
    X_MULTIPLE = "x_multiple"
    PERCENT = "percent"
    FIXED = "fixed"
    SAME_SIGNAL = "same_signal"
    OTHER_SIGNAL = "other_signal"
    EVERY_SIGNAL = "every_signal"


class PyramidPolicy:
    """
    Price rules measure the advance from the most recent fill (first entry or the
    last pyramid), so each new entry raises the bar for the next one.
    """

    def __init__(
        self,
        enabled: bool = False,
        rule: PyramidRule = PyramidRule.X_MULTIPLE,
        value: float = 1.0,
        max_entries: int = 1,
        position_multiple: float = 1.0,
        require_filter: bool = False,
    ):
        self.enabled = enabled
        self.rule = rule
        self.value = value
        self.max_entries = max_entries
        self.position_multiple = position_multiple
        self.require_filter = require_filter

    def admits(
        self,
        trade: Trade,
        close: float,
        signal: Optional[EntrySignal],
        filter_ok: bool,
    ) -> bool:
        if not self.enabled or len(trade.pyramids) >= self.max_entries:
            return False
        if self.require_filter and not filter_ok:
            return False
        if signal is not None and signal.side is not trade.side:
            signal = None
        advance = (close - trade.last_entry_fill) * trade.side.sign
        rule = self.rule
        if rule is PyramidRule.X_MULTIPLE:
            return advance >= self.value * trade.risk_unit
        if rule is PyramidRule.PERCENT:
            return advance >= trade.last_entry_fill * self.value / 100.0
        if rule is PyramidRule.FIXED:
            return advance >= self.value
        if signal is None:
            return False
        if rule is PyramidRule.SAME_SIGNAL:
            return signal.source == trade.first.source
        if rule is PyramidRule.OTHER_SIGNAL:
            return signal.source != trade.first.source
        return True
