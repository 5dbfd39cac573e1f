"""Scenario tests for trading.machine: timing, ordering, sizing and statistics."""

from dataclasses import replace
from datetime import datetime, timezone

import pytest
from trade_engine.core.types import DirectionMode, EntrySignal, EventKind, Side
from trade_engine.risk.costs import CostModel, CostPolicy
from trade_engine.risk.manager import PositionSizer, SizingPolicy
from trade_engine.strategies.base import EntryProvider
from trade_engine.strategies.external import ExternalExit, ExternalFilter
from trade_engine.trading.pyramiding import PyramidPolicy, PyramidRule
from trade_engine.trading.state import OrderKind
from trade_engine.trading.stops import InTradeStopEngine


def feed(engine, bars):
    return [engine.on_bar(b) for b in bars]


def kinds(events):
    return [e.kind for e in events]


def utc(bars):
    return [replace(b, time=b.time.replace(tzinfo=timezone.utc)) for b in bars]


@pytest.fixture
def long_win(bar, flat):
    # long signal at 100 (stop 98, X = 2), take profit at 104 triggers on bar 4
    return [
        flat(0),
        flat(1),
        flat(2, signal=2),
        bar(3, 100.0, 101.0, 99.5, 101.0),
        bar(4, 101.0, 105.0, 100.5, 104.5),
        bar(5, 105.0, 106.0, 104.0, 105.5),
    ]


@pytest.fixture
def short_loss(bar, flat):
    # short at 100 (stop 102), closes through the stop on bar 4, exits at 103
    return [
        flat(0),
        flat(1),
        flat(2, signal=-2),
        bar(3, 100.0, 101.2, 99.5, 101.0),
        bar(4, 101.0, 102.8, 100.8, 102.5),
        bar(5, 103.0, 103.5, 102.0, 103.2),
    ]


class ScriptedEntry(EntryProvider):
    warmup = 1

    def __init__(self, name, side, at):
        self.name = name
        self.side = side
        self.at = set(at)

    def evaluate(self, history):
        if history.current.index in self.at:
            return EntrySignal(self.side, source=self.name)
        return None


def test_long_win(engine_factory, long_win):
    engine = engine_factory()
    feed(engine, long_win)
    state = engine.state
    assert state.trade is None
    assert len(state.closed_trades) == 1
    t = state.closed_trades[0]
    assert t.side is Side.LONG
    assert (t.entry_bar, t.exit_bar) == (3, 5)
    assert t.entry_fill == 100.0
    assert t.exit_fill == 105.0
    assert t.risk_unit == pytest.approx(2.0)
    assert t.plx == pytest.approx(2.5)
    assert t.plx_gross == pytest.approx(2.5)
    assert t.pnl == pytest.approx(500.0)
    assert t.pnl_pct == pytest.approx(5.0)
    assert t.length == 2
    assert t.exit_reason == "take_profit"
    assert state.equity == pytest.approx(1.05)
    assert state.first.entries == 1
    assert state.first.wins == 1
    assert state.combined.entries == 1
    assert t.max_adverse_x == pytest.approx(0.25)
    assert state.first.avg_adverse_x == pytest.approx(0.25)
    assert state.pyramided.entries == 0
    assert kinds(state.events) == [EventKind.LONG_ENTRY, EventKind.LONG_EXIT]


def test_short_stop_loss(engine_factory, short_loss):
    engine = engine_factory()
    feed(engine, short_loss)
    state = engine.state
    t = state.closed_trades[0]
    assert t.side is Side.SHORT
    assert t.exit_reason == "stop"
    assert t.exit_fill == 103.0
    assert t.plx == pytest.approx(-1.5)
    assert state.equity == pytest.approx(0.97)
    assert state.first.losses == 1
    assert state.close_to_close.max_drawdown_pct == pytest.approx(3.0)
    assert state.continuous.max_drawdown_pct == pytest.approx(3.0)
    # worst high 102.8 against a 100 short, X = 2
    assert t.max_adverse_x == pytest.approx(1.4)
    assert kinds(state.events) == [EventKind.SHORT_ENTRY, EventKind.SHORT_EXIT]


def test_fees_reduce_plx(engine_factory, long_win):
    engine = engine_factory(costs=CostModel(fee_policy=CostPolicy.PERCENT, fee=0.1))
    feed(engine, long_win)
    t = engine.state.closed_trades[0]
    assert t.plx_gross == pytest.approx(2.5)
    assert t.plx == pytest.approx(2.4)
    assert t.fees == pytest.approx(20.0)
    assert t.pnl == pytest.approx(480.0)
    assert engine.state.equity == pytest.approx(1.048)


def test_entry_fills_on_next_open(engine_factory, bar, flat):
    engine = engine_factory()
    reports = feed(engine, [flat(0), flat(1), flat(2, signal=2)])
    assert engine.state.trade is None
    assert reports[-1].pending == "entry"
    assert engine.state.pending.stop == 98.0
    engine.on_bar(bar(3, 100.4, 101.0, 100.0, 100.8))
    trade = engine.state.trade
    assert trade.entry_bar == 3
    assert trade.entry_fill == 100.4
    assert trade.risk_unit == pytest.approx(2.4)


def test_signals_during_warmup_are_ignored(engine_factory, flat):
    engine = engine_factory()
    reports = feed(engine, [flat(0), flat(1, signal=2), flat(2)])
    assert all(r.pending is None for r in reports)


def test_long_wins_tie(engine_factory, flat):
    entries = [ScriptedEntry("bear", Side.SHORT, {2}), ScriptedEntry("bull", Side.LONG, {2})]
    engine = engine_factory(entries=entries)
    feed(engine, [flat(0), flat(1), flat(2)])
    order = engine.state.pending
    assert order.side is Side.LONG
    assert order.source == "bull"


def test_direction_mode_blocks_side(engine_factory, flat):
    engine = engine_factory(direction=DirectionMode.LONGS_ONLY)
    feed(engine, [flat(0), flat(1), flat(2, signal=-2)])
    assert engine.state.pending is None


def test_one_trade_at_a_time(engine_factory, bar, flat):
    engine = engine_factory()
    feed(engine, [flat(0), flat(1), flat(2, signal=2), bar(3, 100.0, 101.0, 99.5, 100.5, signal=-2)])
    assert engine.state.trade.side is Side.LONG
    assert engine.state.pending is None
    engine.on_bar(bar(4, 100.5, 101.0, 100.0, 100.6, signal=2))
    assert engine.state.pending is None
    assert len(engine.state.trade.entries) == 1


def test_exit_beats_entry(engine_factory, bar, flat):
    engine = engine_factory()
    feed(engine, [flat(0), flat(1), flat(2, signal=2), bar(3, 100.0, 100.5, 97.0, 97.5, signal=-2)])
    assert engine.state.pending.kind is OrderKind.EXIT
    engine.on_bar(bar(4, 97.5, 98.0, 97.0, 97.8))
    assert engine.state.trade is None
    assert engine.state.pending is None
    assert EventKind.SHORT_ENTRY not in kinds(engine.events)


def test_trailing_stop_never_loosens(engine_factory, bar, flat):
    engine = engine_factory(exits=[], stops=InTradeStopEngine())
    reports = feed(engine, [
        flat(0),
        flat(1),
        flat(2, signal=2),
        bar(3, 100.0, 101.0, 99.8, 101.0),
        bar(4, 101.0, 103.0, 100.8, 102.5),
        bar(5, 102.5, 102.8, 101.4, 101.5),
        bar(6, 101.5, 104.5, 101.4, 104.0),
    ])
    stops = [r.stop for r in reports[3:]]
    assert stops == pytest.approx([99.0, 101.0, 101.0, 102.5])
    assert all(b >= a for a, b in zip(stops, stops[1:]))
    assert engine.state.trade is not None


def test_pyramid_entry(engine_factory, bar, flat):
    policy = PyramidPolicy(enabled=True, rule=PyramidRule.X_MULTIPLE, value=1.0, max_entries=1)
    engine = engine_factory(pyramiding=policy)
    feed(engine, [
        flat(0),
        flat(1),
        flat(2, signal=2),
        bar(3, 100.0, 102.5, 99.5, 102.0),
        bar(4, 103.0, 103.5, 102.5, 103.0),
        bar(5, 103.0, 104.5, 102.8, 104.2),
        bar(6, 106.0, 106.5, 105.5, 106.0),
    ])
    state = engine.state
    assert kinds(state.events) == [EventKind.LONG_ENTRY, EventKind.LONG_PYRAMID_ENTRY, EventKind.LONG_EXIT]
    t = state.closed_trades[0]
    assert t.plx == pytest.approx(3.0)
    assert t.pyramid_count == 1
    assert t.pyramid_avg_entry == pytest.approx(103.0)
    assert t.pyramid_plx == pytest.approx(0.6)
    assert t.pyramid_pnl == pytest.approx(3 / 103 * 10000)
    assert state.first.entries == 1
    assert state.pyramided.entries == 1
    assert state.combined.entries == 2
    assert state.pyramided.total_length == 2
    assert state.equity == pytest.approx(1.06 + 3 / 103)


def test_ruin_disables_entries(engine_factory, bar, flat):
    sizer = PositionSizer(SizingPolicy.PERCENT_OF_CAPITAL, position_pct=1000.0)
    engine = engine_factory(sizer=sizer)
    feed(engine, [
        flat(0),
        flat(1),
        flat(2, signal=2),
        bar(3, 100.0, 100.5, 99.0, 99.5),
        bar(4, 99.5, 99.6, 89.0, 90.0),
        bar(5, 85.0, 86.0, 84.0, 85.5, signal=2),
        flat(6, signal=2),
    ])
    state = engine.state
    assert state.equity == pytest.approx(-0.5)
    assert state.ruin is True
    assert state.trade is None
    assert state.pending is None
    assert len(state.closed_trades) == 1


@pytest.mark.parametrize("stop", [100.0, 101.0])
def test_entry_with_invalid_risk_unit_is_skipped(engine_factory, bar, flat, stop):
    engine = engine_factory()
    feed(engine, [flat(0), flat(1), flat(2, signal=stop), bar(3, 100.0, 100.5, 99.5, 100.0)])
    state = engine.state
    assert state.trade is None
    assert state.rejected_entries == 1
    assert state.events == []
    assert state.equity == 1.0


def test_preview_does_not_commit(engine_factory, bar, flat):
    engine = engine_factory()
    feed(engine, [flat(0), flat(1), flat(2, signal=2)])
    forming = bar(3, 100.0, 100.6, 99.8, 100.3)
    for _ in range(2):
        report = engine.on_bar(forming, final=False)
        assert report.preview is True
        assert kinds(report.events) == [EventKind.LONG_ENTRY]
    assert engine.state.trade is None
    assert engine.state.pending.kind is OrderKind.ENTRY
    assert len(engine.history) == 3
    engine.on_bar(bar(3, 100.0, 101.0, 99.5, 100.8))
    assert kinds(engine.events) == [EventKind.LONG_ENTRY]
    assert engine.state.trade.entry_bar == 3


def test_duplicate_bar_is_ignored(engine_factory, long_win):
    engine = engine_factory()
    feed(engine, long_win[:4])
    before = (engine.state.equity, len(engine.events), len(engine.state.equity_curve))
    report = engine.on_bar(long_win[3])
    assert report.skipped is True
    assert (engine.state.equity, len(engine.events), len(engine.state.equity_curve)) == before
    assert engine.state.trade.trade_length == 1


def test_on_event_callback(engine_factory, long_win):
    seen = []
    engine = engine_factory(on_event=seen.append)
    feed(engine, long_win)
    assert kinds(seen) == [EventKind.LONG_ENTRY, EventKind.LONG_EXIT]
    assert seen[0].bar_index == 3
    assert seen[1].details["reason"] == "take_profit"


def test_post_exit_window_after_settlement(engine_factory, long_win, flat):
    engine = engine_factory(post_exit_bars=3)
    feed(engine, long_win + [flat(6, 106.0), flat(7, 107.0), flat(8, 104.0)])
    pea = engine.state.post_exit
    assert pea.bucket.analyses == 1
    result = pea.results[0]
    assert result.exit_bar == 5
    assert result.reference_close == 105.5
    # best high 107.5 on bar 7 => (107.5 - 105.5) / 2
    assert result.max_opportunity == pytest.approx(1.0)
    assert result.max_opportunity_bar == 2


def test_reset(engine_factory, long_win):
    engine = engine_factory()
    feed(engine, long_win)
    engine.reset()
    assert engine.state.equity == 1.0
    assert engine.events == []
    assert len(engine.history) == 0


def test_two_pyramids_in_a_trend(engine_factory, bar, flat):
    policy = PyramidPolicy(enabled=True, rule=PyramidRule.X_MULTIPLE, value=1.0, max_entries=2)
    engine = engine_factory(exits=[ExternalExit()], pyramiding=policy)
    feed(engine, [
        flat(0),
        flat(1),
        flat(2, signal=2),
        bar(3, 100.0, 102.5, 99.5, 102.0),
        bar(4, 103.0, 104.0, 102.5, 103.5),
        bar(5, 103.5, 105.5, 103.2, 105.0),
        bar(6, 105.2, 106.0, 105.0, 105.8),
        bar(7, 106.0, 107.0, 105.5, 106.5, signal=3),
        bar(8, 106.5, 107.0, 106.0, 106.8),
    ])
    state = engine.state
    t = state.closed_trades[0]
    assert t.exit_reason == "external_exit"
    assert t.pyramid_count == 2
    assert state.combined.entries == 3
    assert state.pyramided.entries == 2
    assert kinds(state.events) == [
        EventKind.LONG_ENTRY,
        EventKind.LONG_PYRAMID_ENTRY,
        EventKind.LONG_PYRAMID_ENTRY,
        EventKind.LONG_EXIT,
    ]


def test_report_marks_open_trade(engine_factory, long_win):
    engine = engine_factory()
    reports = feed(engine, long_win)
    assert reports[3].size == pytest.approx(1.0)
    assert reports[3].plx == pytest.approx(0.5)
    assert reports[3].adverse_x == pytest.approx(0.25)
    assert reports[4].plx == pytest.approx(2.25)
    assert reports[4].adverse_x == pytest.approx(0.25)
    assert reports[5].size is None


def test_date_range_gates_entries_on_utc_bars(engine_factory, flat):
    # bar i is 2024-01-01 + i days
    engine = engine_factory(date_from=datetime(2024, 1, 4), date_to=datetime(2024, 1, 6, 23, 59))
    reports = feed(engine, utc([flat(0), flat(1), flat(2, signal=2), flat(3)]))
    assert all(r.pending is None for r in reports)
    engine.on_bar(utc([flat(4, signal=-2)])[0])
    assert engine.state.pending.side is Side.SHORT

    late = engine_factory(date_from=datetime(2024, 1, 4), date_to=datetime(2024, 1, 6, 23, 59))
    reports = feed(late, utc([flat(0), flat(1), flat(2), flat(3), flat(4), flat(5), flat(6), flat(7, signal=2)]))
    assert reports[-1].pending is None


def test_filter_gates_entry_side(engine_factory, flat):
    engine = engine_factory(filters=[ExternalFilter()])
    feed(engine, [flat(0), flat(1), flat(2, signal=-2)])
    # no +1/-1 seen yet
    assert engine.state.pending is None
    feed(engine, [flat(3, signal=1), flat(4, signal=-2)])
    assert engine.state.pending is None
    engine.on_bar(flat(5, signal=2))
    assert engine.state.pending.side is Side.LONG


def test_post_exit_window_after_a_loss(engine_factory, bar, flat):
    engine = engine_factory(post_exit_bars=10)
    feed(engine, [
        flat(0),
        flat(1),
        flat(2, signal=2),
        bar(3, 100.0, 100.5, 97.0, 97.5),
        bar(4, 97.5, 98.0, 97.0, 97.8),
    ])
    loss = engine.state.closed_trades[0]
    assert loss.plx < 0
    assert loss.max_adverse_x == pytest.approx(1.5)
    # reference close 97.8, X = 2: six bars up, then four down
    feed(engine, [
        bar(5, 97.8, 98.2, 97.2, 98.0),
        bar(6, 98.0, 99.2, 97.9, 99.0),
        bar(7, 99.0, 100.2, 98.9, 100.0),
        bar(8, 100.0, 101.2, 99.9, 101.0),
        bar(9, 101.0, 102.2, 100.9, 102.0),
        bar(10, 102.0, 103.2, 101.9, 103.0),
        bar(11, 103.0, 103.0, 101.0, 101.5),
        bar(12, 101.5, 101.8, 100.0, 100.5),
        bar(13, 100.5, 100.8, 99.0, 99.5),
    ])
    pea = engine.state.post_exit
    assert pea.results == []
    assert pea.active.bars == 9
    engine.on_bar(bar(14, 99.5, 99.8, 98.0, 98.5))
    assert not pea.analyzing
    assert pea.bucket.analyses == 1
    result = pea.results[0]
    assert result.exit_bar == 4
    assert result.bars == 10
    assert result.max_opportunity_bar == 6
    assert result.max_opportunity == pytest.approx(2.7)
    assert result.drawdown_to_max_opportunity == pytest.approx(0.3)


def test_preview_of_a_settling_exit_commits_nothing(engine_factory, long_win):
    engine = engine_factory(post_exit_bars=3)
    feed(engine, long_win[:5])
    assert engine.state.pending.kind is OrderKind.EXIT
    report = engine.on_bar(long_win[5], final=False)
    assert kinds(report.events) == [EventKind.LONG_EXIT]
    assert report.equity == pytest.approx(1.05)
    state = engine.state
    assert state.equity == 1.0
    assert state.trade.trade_length == 2
    assert state.closed_trades == []
    assert state.first.entries == 0
    assert state.close_to_close.samples == 1
    assert not state.post_exit.analyzing
    assert kinds(state.events) == [EventKind.LONG_ENTRY]
    assert len(state.equity_curve) == 5
    engine.on_bar(long_win[5])
    assert engine.state.equity == pytest.approx(1.05)
    assert engine.state.post_exit.analyzing
