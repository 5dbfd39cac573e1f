"""
Trigger detection. Uses only bars up to and including the current one and only
produces pending orders; fills happen on the next bar.

Exit beats entry on the same bar. When long and short would both trigger, long
wins.
"""

from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from trade_engine.core.history import BarHistory
from trade_engine.core.types import DirectionMode, EntrySignal, FilterState, Side, StopLevels
from trade_engine.strategies.base import EntryProvider, EntryStopProvider, ExitProvider, FilterProvider
from trade_engine.trading.pyramiding import PyramidPolicy
from trade_engine.trading.state import EngineState, OrderKind, PendingOrder, Trade

logger = logging.getLogger("trade_engine.trading.triggers")

_SIDE_ORDER = (Side.LONG, Side.SHORT)


def stop_breached(trade: Trade, close: float, bar_index: int) -> bool:
    """
    Close at or through the stop published on the previous bar. On the entry bar
    there is no previous stop, so the current one is used.
    """
    if bar_index == trade.entry_bar or trade.prev_stop is None:
        stop = trade.in_trade_stop
    else:
        stop = trade.prev_stop
    return (close - stop) * trade.side.sign <= 0


class TriggerDetector:
    def __init__(
        self,
        entries: Sequence[EntryProvider],
        entry_stop: EntryStopProvider,
        filters: Sequence[FilterProvider] = (),
        exits: Sequence[ExitProvider] = (),
        pyramiding: Optional[PyramidPolicy] = None,
        direction: DirectionMode = DirectionMode.BOTH,
        warmup: int = 0,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ):
        self.entries = list(entries)
        self.entry_stop = entry_stop
        self.filters = list(filters)
        self.exits = list(exits)
        self.pyramiding = pyramiding or PyramidPolicy()
        self.direction = direction
        self.warmup = max(warmup, entry_stop.warmup)
        self.date_from = date_from
        self.date_to = date_to

    def in_date_range(self, time: Optional[datetime]) -> bool:
        """Range bounds are naive UTC; aware bar times are converted before comparing."""
        if time is None:
            return True
        if time.tzinfo is not None:
            time = time.astimezone(timezone.utc).replace(tzinfo=None)
        if self.date_from is not None and time < self.date_from:
            return False
        if self.date_to is not None and time > self.date_to:
            return False
        return True

    def filter_state(self, history: BarHistory) -> Optional[FilterState]:
        """All filters must agree; any filter not ready means no signal."""
        allow_long = allow_short = True
        for f in self.filters:
            if not f.ready(history):
                return None
            state = f.evaluate(history)
            if state is None:
                return None
            allow_long = allow_long and state.allow_long
            allow_short = allow_short and state.allow_short
        return FilterState(allow_long=allow_long, allow_short=allow_short)

    def entry_signals(self, history: BarHistory) -> List[EntrySignal]:
        signals = []
        for provider in self.entries:
            if not provider.ready(history):
                continue
            sig = provider.evaluate(history)
            if sig is not None:
                signals.append(sig)
        return signals

    def entry_stops(self, history: BarHistory) -> Optional[StopLevels]:
        if not self.entry_stop.ready(history):
            return None
        return self.entry_stop.evaluate(history)

    def exit_reason(self, trade: Trade, history: BarHistory) -> Optional[str]:
        bar = history.current
        if stop_breached(trade, bar.close, bar.index):
            return "stop"
        for provider in self.exits:
            if provider.ready(history) and provider.evaluate(history, trade) is trade.side:
                return provider.name or type(provider).__name__
        return None

    def detect(self, state: EngineState, history: BarHistory) -> Optional[PendingOrder]:
        """Trigger for the current bar, or None."""
        bar = history.current
        trade = state.trade
        if trade is not None:
            reason = self.exit_reason(trade, history)
            if reason is not None:
                return PendingOrder(kind=OrderKind.EXIT, side=trade.side, trigger_bar=bar.index, reason=reason)

        if state.ruin or bar.index <= self.warmup or not self.in_date_range(bar.time):
            return None

        signals = self.entry_signals(history)
        filters = self.filter_state(history)
        stops = self.entry_stops(history) if trade is None else None

        for side in _SIDE_ORDER:
            if not self.direction.allows(side):
                continue
            signal = next((s for s in signals if s.side is side), None)
            filter_ok = filters is not None and filters.allows(side)
            if trade is None:
                if signal is None or not filter_ok:
                    continue
                stop = signal.stop
                if stop is None and stops is not None:
                    stop = stops.for_side(side)
                if stop is None:
                    logger.debug("Entry signal at bar %d ignored: entry stop not ready", bar.index)
                    continue
                return PendingOrder(
                    kind=OrderKind.ENTRY, side=side, trigger_bar=bar.index, stop=stop, source=signal.source,
                )
            if trade.side is side and self.pyramiding.admits(trade, bar.close, signal, filter_ok):
                return PendingOrder(
                    kind=OrderKind.PYRAMID,
                    side=side,
                    trigger_bar=bar.index,
                    stop=trade.in_trade_stop,
                    source=signal.source if signal is not None else "",
                )
        return None
