"""Abstract providers: entry, filter, entry-stop and exit signals computed from bar history."""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional, Protocol

from trade_engine.core.history import BarHistory
from trade_engine.core.types import EntrySignal, FilterState, Side, StopLevels


class TradeView(Protocol):
    """Read-only view of the open trade handed to exit providers."""
    side: Side
    entry_fill: float
    entry_stop: float
    risk_unit: float
    in_trade_stop: float
    trade_length: int


class BaseProvider(ABC):
    """
    Providers answer as pure functions of the history up to the current bar
    (a provider may memoize, as long as its answers stay the same).
    `warmup` is the number of bars they need before they can answer.
    """

    name: str = ""
    warmup: int = 0

    def ready(self, history: BarHistory) -> bool:
        return len(history) >= self.warmup

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class EntryProvider(BaseProvider):
    @abstractmethod
    def evaluate(self, history: BarHistory) -> Optional[EntrySignal]:
        """Entry request for the current bar, or None."""
        pass


class FilterProvider(BaseProvider):
    @abstractmethod
    def evaluate(self, history: BarHistory) -> Optional[FilterState]:
        """Which sides may be entered, or None when not ready."""
        pass


class EntryStopProvider(BaseProvider):
    @abstractmethod
    def evaluate(self, history: BarHistory) -> Optional[StopLevels]:
        """Entry stop level per side for an entry filled on the next bar."""
        pass


class ExitProvider(BaseProvider):
    @abstractmethod
    def evaluate(self, history: BarHistory, trade: TradeView) -> Optional[Side]:
        """Side of the position to exit, or None."""
        pass
