"""
Backtest replay: feeds historical bars through a TradeEngine one at a time,
exactly as a live feed would, and collects the results.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import pandas as pd

from trade_engine.analytics.metrics import DrawdownTracker, PerformanceMetrics, StatBucket, compute_metrics
from trade_engine.analytics.post_exit import PostExitBucket
from trade_engine.core.history import bars_from_frame
from trade_engine.core.types import Bar, EngineEvent
from trade_engine.trading.machine import BarReport, TradeEngine
from trade_engine.trading.settlement import exit_event, settle_exit
from trade_engine.trading.state import ClosedTrade, OrderKind, PendingOrder

logger = logging.getLogger("trade_engine.backtest")


@dataclass
class BacktestResult:
    """Backtest output: trades, events, statistics and the per-bar trace."""
    trades: List[ClosedTrade] = field(default_factory=list)
    events: List[EngineEvent] = field(default_factory=list)
    reports: List[BarReport] = field(default_factory=list)
    equity_curve: List[float] = field(default_factory=list)
    equity: float = 1.0
    ruin: bool = False
    first: StatBucket = field(default_factory=StatBucket)
    pyramided: StatBucket = field(default_factory=StatBucket)
    combined: StatBucket = field(default_factory=StatBucket)
    close_to_close: Optional[DrawdownTracker] = None
    continuous: Optional[DrawdownTracker] = None
    post_exit: PostExitBucket = field(default_factory=PostExitBucket)
    rejected_entries: int = 0
    metrics: Optional[PerformanceMetrics] = None

    def trace_frame(self) -> pd.DataFrame:
        """One row per bar: equity, shadow equity, the open position, pending order, events."""
        return pd.DataFrame(
            {
                "bar": [r.bar_index for r in self.reports],
                "equity": [r.equity for r in self.reports],
                "shadow_equity": [r.shadow_equity for r in self.reports],
                "side": [r.side.value if r.side is not None else None for r in self.reports],
                "stop": [r.stop for r in self.reports],
                "size": [r.size for r in self.reports],
                "plx": [r.plx for r in self.reports],
                "adverse_x": [r.adverse_x for r in self.reports],
                "pending": [r.pending for r in self.reports],
                "events": [",".join(e.kind.value for e in r.events) for r in self.reports],
            }
        )

    def trades_frame(self) -> pd.DataFrame:
        return pd.DataFrame([vars(t) for t in self.trades])

    def stats_frame(self) -> pd.DataFrame:
        """The three statistics buckets side by side, totals and derived averages."""
        return pd.DataFrame(
            {"first": self.first.as_dict(), "pyramided": self.pyramided.as_dict(), "combined": self.combined.as_dict()}
        )


class BacktestEngine:
    """
    Runs a TradeEngine over an OHLCV DataFrame (columns: time, open, high, low,
    close, volume, optional signal). Every run starts from a reset engine, so
    replaying the same frame gives the same result.
    """

    def __init__(self, engine: TradeEngine, tick_size: float = 0.0, close_at_end: bool = True):
        self.engine = engine
        self.tick_size = tick_size
        self.close_at_end = close_at_end

    def run(self, df: pd.DataFrame) -> BacktestResult:
        engine = self.engine
        engine.reset()
        bars = bars_from_frame(df, self.tick_size)
        reports = [engine.on_bar(bar) for bar in bars]

        state = engine.state
        if self.close_at_end and state.in_trade and bars:
            # mark out the open trade at the last close, reported on the last bar
            last = bars[-1]
            final_bar = Bar(
                index=last.index, time=last.time, open=last.close, high=last.close,
                low=last.close, close=last.close, volume=0.0,
            )
            order = PendingOrder(kind=OrderKind.EXIT, side=state.trade.side, trigger_bar=last.index, reason="end_of_data")
            closed = settle_exit(state, order, final_bar, engine.costs)
            event = exit_event(closed, final_bar)
            state.events.append(event)
            state.equity_curve[-1] = state.equity
            state.continuous.update(state.equity)
            final = reports[-1]
            final.events.append(event)
            final.equity = final.shadow_equity = state.equity
            final.side = final.stop = final.size = final.plx = final.adverse_x = None
            if engine.on_event is not None:
                engine.on_event(event)
            logger.info("Open trade closed at end of data (bar %d)", last.index)

        pnls = [t.total_pnl for t in state.closed_trades]
        result = BacktestResult(
            trades=list(state.closed_trades),
            events=list(state.events),
            reports=reports,
            equity_curve=list(state.equity_curve),
            equity=state.equity,
            ruin=state.ruin,
            first=state.first,
            pyramided=state.pyramided,
            combined=state.combined,
            close_to_close=state.close_to_close,
            continuous=state.continuous,
            post_exit=state.post_exit.bucket,
            rejected_entries=state.rejected_entries,
            metrics=compute_metrics(pnls, state.equity_curve),
        )
        logger.info(
            "Backtest done: %d bars, %d trades, equity %.4f%s",
            len(bars), len(result.trades), result.equity, " (ruin)" if result.ruin else "",
        )
        return result
