"""
Engine state: the open trade, pending orders, equity and the running statistics
carried from one bar to the next. Everything the engine remembers lives here.
"""

from __future__ import annotations
import copy
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import List, Optional

from trade_engine.analytics.metrics import DrawdownTracker, StatBucket
from trade_engine.analytics.post_exit import PostExitAnalyzer
from trade_engine.core.types import Bar, EngineEvent, Side


@dataclass(frozen=True)
class Entry:
    """One fill (first or pyramided). Immutable once created."""
    bar_index: int
    time: Optional[datetime]
    side: Side
    fill: float
    stop: float
    risk_unit: float
    size: float
    fee_in: float
    slippage_in: float
    source: str = ""
    pyramid: bool = False

    @property
    def stop_pct(self) -> float:
        return self.risk_unit / self.fill * 100.0

    @property
    def stop_equity(self) -> float:
        """Equity lost if the stop is hit, before fees."""
        return self.size * self.risk_unit / self.fill

    def gross_pnl(self, price: float) -> float:
        return self.size * (price - self.fill) / self.fill * self.side.sign


@dataclass
class Trade:
    """
    The open position. best_price / worst_price are the most favorable and most
    adverse prices reached since the first fill; pyramid_worst holds the most
    adverse price since each pyramid fill.
    """
    side: Side
    first: Entry
    in_trade_stop: float
    best_price: float
    worst_price: float
    best_close: float
    pyramids: List[Entry] = field(default_factory=list)
    pyramid_worst: List[float] = field(default_factory=list)
    kicked_in: bool = False
    trade_length: int = 0
    prev_stop: Optional[float] = None

    @property
    def entry_bar(self) -> int:
        return self.first.bar_index

    @property
    def entry_fill(self) -> float:
        return self.first.fill

    @property
    def entry_stop(self) -> float:
        return self.first.stop

    @property
    def risk_unit(self) -> float:
        return self.first.risk_unit

    @property
    def entry_stop_pct(self) -> float:
        return self.first.stop_pct

    @property
    def entry_stop_equity(self) -> float:
        return self.first.stop_equity

    @property
    def entries(self) -> List[Entry]:
        return [self.first] + self.pyramids

    @property
    def last_entry_fill(self) -> float:
        return self.pyramids[-1].fill if self.pyramids else self.first.fill

    @property
    def position_size(self) -> float:
        return sum(e.size for e in self.entries)

    def unrealized_pnl(self, price: float) -> float:
        return sum(e.gross_pnl(price) for e in self.entries)

    def unrealized_plx(self, price: float) -> float:
        return (price - self.entry_fill) * self.side.sign / self.risk_unit

    def add_pyramid(self, entry: Entry) -> None:
        self.pyramids.append(entry)
        self.pyramid_worst.append(entry.fill)

    def track(self, bar: Bar) -> None:
        """Move the price extremes and the best close with one bar."""
        sign = self.side.sign
        favorable, adverse = (bar.high, bar.low) if sign > 0 else (bar.low, bar.high)
        if (favorable - self.best_price) * sign > 0:
            self.best_price = favorable
        if (adverse - self.worst_price) * sign < 0:
            self.worst_price = adverse
        for i, worst in enumerate(self.pyramid_worst):
            if (adverse - worst) * sign < 0:
                self.pyramid_worst[i] = adverse
        if (bar.close - self.best_close) * sign > 0:
            self.best_close = bar.close

    def adverse_x(self, index: int = 0) -> float:
        """Intra-trade drawdown of entry `index` (0 is the first fill): worst move against its fill, in its X."""
        entry = self.entries[index]
        worst = self.worst_price if index == 0 else self.pyramid_worst[index - 1]
        return max(0.0, (entry.fill - worst) * self.side.sign / entry.risk_unit)


class OrderKind(str, Enum):
    ENTRY = "entry"
    PYRAMID = "pyramid"
    EXIT = "exit"


@dataclass(frozen=True)
class PendingOrder:
    """A trigger from bar `trigger_bar`, filled at the next bar's open."""
    kind: OrderKind
    side: Side
    trigger_bar: int
    stop: Optional[float] = None
    source: str = ""
    reason: str = ""


@dataclass
class ClosedTrade:
    """Settled trade. pnl figures are net of fees, in currency."""
    side: Side
    entry_bar: int
    exit_bar: int
    entry_time: Optional[datetime]
    exit_time: Optional[datetime]
    entry_fill: float
    exit_fill: float
    entry_stop: float
    risk_unit: float
    size: float
    plx_gross: float
    plx: float
    pnl: float
    pnl_pct: float
    fees: float
    slippage: float
    length: int
    exit_reason: str
    max_adverse_x: float = 0.0
    pyramid_count: int = 0
    pyramid_avg_entry: float = 0.0
    pyramid_size: float = 0.0
    pyramid_pnl: float = 0.0
    pyramid_plx: float = 0.0

    @property
    def total_pnl(self) -> float:
        return self.pnl + self.pyramid_pnl


def _initial_drawdown() -> DrawdownTracker:
    dd = DrawdownTracker()
    dd.update(1.0)
    return dd


@dataclass
class EngineState:
    """All state carried between bars. A fresh instance is a reset engine."""
    equity: float = 1.0
    ruin: bool = False
    trade: Optional[Trade] = None
    pending: Optional[PendingOrder] = None
    last_index: Optional[int] = None
    first: StatBucket = field(default_factory=StatBucket)
    pyramided: StatBucket = field(default_factory=StatBucket)
    combined: StatBucket = field(default_factory=StatBucket)
    close_to_close: DrawdownTracker = field(default_factory=_initial_drawdown)
    continuous: DrawdownTracker = field(default_factory=_initial_drawdown)
    post_exit: PostExitAnalyzer = field(default_factory=lambda: PostExitAnalyzer(window=0))
    closed_trades: List[ClosedTrade] = field(default_factory=list)
    events: List[EngineEvent] = field(default_factory=list)
    equity_curve: List[float] = field(default_factory=list)
    rejected_entries: int = 0

    @property
    def in_trade(self) -> bool:
        return self.trade is not None

    def scratch_copy(self) -> "EngineState":
        """
        Copy for a preview step. The open trade, buckets, drawdown trackers and the
        post-exit window are copied; the trade, event and equity logs start empty,
        so the cost does not grow with the length of the run.
        """
        trade = self.trade
        if trade is not None:
            trade = replace(trade, pyramids=list(trade.pyramids), pyramid_worst=list(trade.pyramid_worst))
        return replace(
            self,
            trade=trade,
            first=copy.copy(self.first),
            pyramided=copy.copy(self.pyramided),
            combined=copy.copy(self.combined),
            close_to_close=copy.copy(self.close_to_close),
            continuous=copy.copy(self.continuous),
            post_exit=self.post_exit.scratch_copy(),
            closed_trades=[],
            events=[],
            equity_curve=[],
        )

    def apply_pnl(self, delta: float) -> None:
        """Equity and the ruin flag always move together."""
        self.equity += delta
        if self.equity <= 0:
            self.ruin = True
