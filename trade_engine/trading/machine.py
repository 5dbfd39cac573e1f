"""
Trade engine: a synchronous fold over bars. Each final bar runs, in order,

    1. settlement of the order triggered on the previous bar (at this bar's open)
    2. in-trade update (length, extremes, stop engine, in-trade events)
    3. trigger detection on this bar's close (pending order for the next bar)
    4. post-exit analysis and the continuous (shadow equity) drawdown sample

Non-final (intrabar) updates run the same step on a scratch copy of the per-bar
state over a read-only view of the history, so conditions can be previewed any
number of times while settlement happens once.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from trade_engine.core.history import BarHistory
from trade_engine.core.types import Bar, EngineEvent, Side
from trade_engine.risk.costs import CostModel
from trade_engine.risk.manager import PositionSizer
from trade_engine.trading.events import InTradeEventDetector
from trade_engine.trading.settlement import exit_event, open_entry, settle_exit
from trade_engine.trading.state import EngineState, OrderKind
from trade_engine.trading.stops import InTradeStopEngine
from trade_engine.trading.triggers import TriggerDetector

logger = logging.getLogger("trade_engine.trading")


@dataclass
class BarReport:
    """What happened on one bar."""
    bar_index: int
    events: List[EngineEvent] = field(default_factory=list)
    equity: float = 1.0
    shadow_equity: float = 1.0
    side: Optional[Side] = None
    stop: Optional[float] = None
    size: Optional[float] = None
    plx: Optional[float] = None
    adverse_x: Optional[float] = None
    pending: Optional[str] = None
    preview: bool = False
    skipped: bool = False


class TradeEngine:
    def __init__(
        self,
        triggers: TriggerDetector,
        sizer: PositionSizer,
        costs: CostModel,
        stops: Optional[InTradeStopEngine] = None,
        event_detector: Optional[InTradeEventDetector] = None,
        post_exit_bars: int = 0,
        on_event: Optional[Callable[[EngineEvent], None]] = None,
    ):
        self.triggers = triggers
        self.sizer = sizer
        self.costs = costs
        self.stops = stops or InTradeStopEngine()
        self.event_detector = event_detector or InTradeEventDetector()
        self.post_exit_bars = post_exit_bars
        self.on_event = on_event
        self.triggers.warmup = max(self.triggers.warmup, self.stops.warmup)
        self.history = BarHistory()
        self.state = self._fresh_state()

    def _fresh_state(self) -> EngineState:
        state = EngineState()
        state.post_exit.window = self.post_exit_bars
        return state

    def reset(self) -> None:
        """Back to the initial state, as for a new run."""
        self.history = BarHistory()
        self.state = self._fresh_state()

    @property
    def events(self) -> List[EngineEvent]:
        return self.state.events

    def on_bar(self, bar: Bar, final: bool = True) -> BarReport:
        """Feed one bar. final=False previews a still-forming bar without committing."""
        last = self.state.last_index
        if last is not None and bar.index <= last:
            logger.warning("Bar %d already settled (last %d), ignored", bar.index, last)
            return BarReport(bar_index=bar.index, equity=self.state.equity, skipped=True)

        if not final:
            state = self.state.scratch_copy()
            history = self.history.extended(bar)
            report = self._step(state, history)
            report.preview = True
            return report

        self.history.append(bar)
        report = self._step(self.state, self.history)
        if self.on_event is not None:
            for event in report.events:
                self.on_event(event)
        return report

    def _step(self, state: EngineState, history: BarHistory) -> BarReport:
        bar = history.current
        events: List[EngineEvent] = []

        # 1. settlement at the open
        order = state.pending
        state.pending = None
        if order is not None:
            if order.kind is OrderKind.EXIT:
                closed = settle_exit(state, order, bar, self.costs)
                if closed is not None:
                    events.append(exit_event(closed, bar))
                    state.post_exit.arm(closed.side, bar, closed.risk_unit)
            else:
                multiple = self.triggers.pyramiding.position_multiple
                event = open_entry(state, order, bar, self.sizer, self.costs, multiple)
                if event is not None:
                    events.append(event)

        # 2. in-trade update
        trade = state.trade
        if trade is not None:
            trade.trade_length += 1
            trade.track(bar)
            stop_before = trade.in_trade_stop
            trade.prev_stop = stop_before if bar.index != trade.entry_bar else None
            self.stops.update(trade, history)
            events.extend(self.event_detector.detect(trade, history, stop_before))

        # 3. triggers on the close
        state.pending = self.triggers.detect(state, history)

        # 4. post-exit analysis and shadow equity
        state.post_exit.step(bar)
        shadow = state.equity
        if state.in_trade:
            shadow += state.trade.unrealized_pnl(bar.close)
        state.continuous.update(shadow)
        state.equity_curve.append(shadow)
        state.last_index = bar.index
        state.events.extend(events)

        report = BarReport(
            bar_index=bar.index,
            events=events,
            equity=state.equity,
            shadow_equity=shadow,
            pending=state.pending.kind.value if state.pending is not None else None,
        )
        trade = state.trade
        if trade is not None:
            report.side = trade.side
            report.stop = trade.in_trade_stop
            report.size = trade.position_size
            report.plx = trade.unrealized_plx(bar.close)
            report.adverse_x = trade.adverse_x()
        return report
