"""Tests for backtesting.engine: replay of a DataFrame through the trade engine."""

import pandas as pd
import pytest
from trade_engine.backtesting.engine import BacktestEngine
from trade_engine.risk.costs import CostModel, CostPolicy


def _frame(rows):
    df = pd.DataFrame(rows, columns=["open", "high", "low", "close", "signal"])
    df.insert(0, "time", pd.date_range("2024-01-01", periods=len(df), freq="h"))
    df["volume"] = 1.0
    return df


OPEN_AT_END = [
    (100.0, 100.5, 99.5, 100.0, None),
    (100.0, 100.5, 99.5, 100.0, None),
    (100.0, 100.5, 99.5, 100.0, 2.0),
    (100.0, 101.0, 99.5, 101.0, None),
    (101.0, 102.0, 100.5, 101.5, None),
]

ROUND_TRIPS = OPEN_AT_END[:3] + [
    (100.0, 101.0, 99.5, 101.0, None),
    (101.0, 105.0, 100.5, 104.5, None),
    (105.0, 106.0, 104.0, 105.5, -2.0),
    (105.5, 106.0, 104.8, 105.0, None),
    (105.0, 109.0, 104.9, 108.0, None),
    (108.0, 108.5, 107.0, 107.5, None),
]


def test_replay_is_deterministic(engine_factory):
    df = _frame(ROUND_TRIPS)
    bt = BacktestEngine(engine_factory())
    first = bt.run(df)
    second = bt.run(df)
    assert first.equity == second.equity
    assert len(first.trades) == len(second.trades) == 2
    pd.testing.assert_frame_equal(first.trades_frame(), second.trades_frame())
    pd.testing.assert_frame_equal(first.trace_frame(), second.trace_frame())


def test_round_trips(engine_factory):
    result = BacktestEngine(engine_factory(), close_at_end=False).run(_frame(ROUND_TRIPS))
    long_trade, short_trade = result.trades
    assert long_trade.exit_reason == "take_profit"
    assert short_trade.side.value == "SHORT"
    assert short_trade.entry_fill == 105.5
    assert short_trade.exit_reason == "stop"
    assert short_trade.exit_fill == 108.0
    assert result.combined.entries == 2
    assert result.combined.wins == 1
    assert result.metrics.total_trades == 2
    assert len(result.equity_curve) == len(ROUND_TRIPS)


def test_open_trade_closed_at_end(engine_factory):
    result = BacktestEngine(engine_factory()).run(_frame(OPEN_AT_END))
    assert len(result.trades) == 1
    t = result.trades[0]
    assert t.exit_reason == "end_of_data"
    assert t.exit_fill == 101.5
    assert result.equity == pytest.approx(1.015)
    assert result.equity_curve[-1] == pytest.approx(1.015)


def test_open_trade_left_open(engine_factory):
    engine = engine_factory()
    result = BacktestEngine(engine, close_at_end=False).run(_frame(OPEN_AT_END))
    assert result.trades == []
    assert engine.state.trade is not None
    assert result.equity == 1.0
    # shadow equity still marks the open trade
    assert result.equity_curve[-1] == pytest.approx(1.015)


def test_trace_frame(engine_factory):
    result = BacktestEngine(engine_factory(), close_at_end=False).run(_frame(OPEN_AT_END))
    trace = result.trace_frame()
    assert list(trace["bar"]) == [0, 1, 2, 3, 4]
    assert trace["pending"][2] == "entry"
    assert trace["side"][3] == "LONG"
    assert trace["events"][3] == "LongEntry"


def test_end_of_data_close_emits_exit(engine_factory):
    seen = []
    result = BacktestEngine(engine_factory(on_event=seen.append)).run(_frame(OPEN_AT_END))
    assert [e.kind.value for e in result.events] == ["LongEntry", "LongExit"]
    assert result.events[-1].details["reason"] == "end_of_data"
    assert [e.kind.value for e in seen] == ["LongEntry", "LongExit"]
    trace = result.trace_frame()
    assert trace["events"][4] == "LongExit"
    assert trace["side"][4] is None


def test_end_of_data_fees_reach_continuous_drawdown(engine_factory):
    costs = CostModel(fee_policy=CostPolicy.PERCENT, fee=0.1)
    result = BacktestEngine(engine_factory(costs=costs)).run(_frame(OPEN_AT_END))
    # shadow equity peaked at 1.015 before the exit fees were paid
    assert result.equity == pytest.approx(1.013)
    assert result.continuous.trough == pytest.approx(1.013)
    assert result.continuous.max_drawdown_pct == pytest.approx(0.2 / 1.015)


def test_stats_frame(engine_factory):
    result = BacktestEngine(engine_factory(), close_at_end=False).run(_frame(ROUND_TRIPS))
    stats = result.stats_frame()
    assert list(stats.columns) == ["first", "pyramided", "combined"]
    assert stats.loc["entries", "combined"] == 2
    assert stats.loc["win_rate", "first"] == pytest.approx(0.5)
    assert "avg_adverse_x" in stats.index
