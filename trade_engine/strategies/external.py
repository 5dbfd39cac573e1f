"""
External single-channel signal protocol. One number per bar (Bar.signal):

    +1 / -1   filter bull / bear
    +2 / -2   entry long / short
    +3 / -3   exit from long / exit from short
    other     entry with explicit stop: magnitude = stop price, sign = side

A producer sending a stop level of exactly 1, 2 or 3 must nudge it by one tick
(see utils.ticks.nudge_off_protocol_codes).
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from trade_engine.core.history import BarHistory
from trade_engine.core.types import Bar, EntrySignal, FilterState, Side, StopLevels
from trade_engine.strategies.base import (
    EntryProvider,
    EntryStopProvider,
    ExitProvider,
    FilterProvider,
    TradeView,
)


class ExternalKind(str, Enum):
    FILTER = "filter"
    ENTRY = "entry"
    EXIT = "exit"
    ENTRY_WITH_STOP = "entry_with_stop"


@dataclass(frozen=True)
class ExternalSignal:
    kind: ExternalKind
    side: Side
    stop: Optional[float] = None


_CODES = {1.0: ExternalKind.FILTER, 2.0: ExternalKind.ENTRY, 3.0: ExternalKind.EXIT}


def decode_external(value: Optional[float]) -> Optional[ExternalSignal]:
    """Decode one channel value; 0, NaN and None carry nothing."""
    if value is None or math.isnan(value) or value == 0:
        return None
    side = Side.LONG if value > 0 else Side.SHORT
    kind = _CODES.get(abs(value))
    if kind is not None:
        return ExternalSignal(kind=kind, side=side)
    return ExternalSignal(kind=ExternalKind.ENTRY_WITH_STOP, side=side, stop=abs(value))


def _current(history: BarHistory) -> Optional[ExternalSignal]:
    bar = history.get(0)
    return None if bar is None else decode_external(bar.signal)


class ExternalFilter(FilterProvider):
    """
    Latches the most recent +1/-1; not ready until one has been seen.

    The latch as of the previous bar is cached against that bar (and its position),
    so each call only reads the bars added since. The current bar is never cached:
    it may still be forming.
    """

    name = "external_filter"
    warmup = 1

    def __init__(self):
        self._seen: Optional[Bar] = None
        self._seen_count = 0
        self._latched: Optional[Side] = None

    def _latch_before_current(self, history: BarHistory) -> Optional[Side]:
        for offset in range(1, len(history)):
            bar = history.bar(offset)
            if bar is self._seen and len(history) - offset == self._seen_count:
                return self._latched
            sig = decode_external(bar.signal)
            if sig is not None and sig.kind is ExternalKind.FILTER:
                return sig.side
        return None

    def evaluate(self, history: BarHistory) -> Optional[FilterState]:
        before = self._latch_before_current(history)
        previous = history.get(1)
        if previous is not None:
            self._seen = previous
            self._seen_count = len(history) - 1
            self._latched = before
        sig = _current(history)
        latched = sig.side if sig is not None and sig.kind is ExternalKind.FILTER else before
        if latched is None:
            return None
        bull = latched is Side.LONG
        return FilterState(allow_long=bull, allow_short=not bull)


class ExternalEntry(EntryProvider):
    name = "external_entry"
    warmup = 1

    def evaluate(self, history: BarHistory) -> Optional[EntrySignal]:
        sig = _current(history)
        if sig is None or sig.kind not in (ExternalKind.ENTRY, ExternalKind.ENTRY_WITH_STOP):
            return None
        return EntrySignal(side=sig.side, source=self.name, stop=sig.stop)


class ExternalEntryStop(EntryStopProvider):
    """Publishes the stop carried by an entry-with-stop value for its side."""

    name = "external_stop"
    warmup = 1

    def evaluate(self, history: BarHistory) -> Optional[StopLevels]:
        sig = _current(history)
        if sig is None or sig.kind is not ExternalKind.ENTRY_WITH_STOP:
            return None
        if sig.side is Side.LONG:
            return StopLevels(long=sig.stop)
        return StopLevels(short=sig.stop)


class ExternalExit(ExitProvider):
    name = "external_exit"
    warmup = 1

    def evaluate(self, history: BarHistory, trade: TradeView) -> Optional[Side]:
        sig = _current(history)
        if sig is None or sig.kind is not ExternalKind.EXIT:
            return None
        return sig.side if sig.side is trade.side else None
