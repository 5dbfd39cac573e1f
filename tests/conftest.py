"""Shared builders for bars and a small, fully deterministic engine."""

from datetime import datetime, timedelta

import pytest
from trade_engine.core.types import Bar, DirectionMode
from trade_engine.risk.costs import CostModel
from trade_engine.risk.manager import PositionSizer, SizingPolicy
from trade_engine.strategies.entry_stops import PercentEntryStop
from trade_engine.strategies.exits import TakeProfitExit
from trade_engine.strategies.external import ExternalEntry
from trade_engine.trading.machine import TradeEngine
from trade_engine.trading.stops import InTradeStopEngine, KickIn
from trade_engine.trading.triggers import TriggerDetector

START = datetime(2024, 1, 1)


def make_bar(index, o, h, l, c, signal=None):
    return Bar(index=index, time=START + timedelta(days=index), open=o, high=h, low=l, close=c, signal=signal)


def flat_bar(index, price=100.0, signal=None):
    return make_bar(index, price, price + 0.5, price - 0.5, price, signal)


@pytest.fixture
def bar():
    return make_bar


@pytest.fixture
def flat():
    return flat_bar


@pytest.fixture
def engine_factory():
    """
    External entries, 2% entry stop, 2X take profit, whole-equity sizing, no costs,
    and an in-trade stop that never kicks in unless one is passed.
    """

    def build(
        entries=None,
        exits=None,
        sizer=None,
        costs=None,
        stops=None,
        pyramiding=None,
        direction=DirectionMode.BOTH,
        post_exit_bars=0,
        on_event=None,
        filters=(),
        date_from=None,
        date_to=None,
        event_detector=None,
    ):
        triggers = TriggerDetector(
            entries=entries if entries is not None else [ExternalEntry()],
            entry_stop=PercentEntryStop(2.0),
            filters=filters,
            exits=exits if exits is not None else [TakeProfitExit(2.0)],
            pyramiding=pyramiding,
            direction=direction,
            date_from=date_from,
            date_to=date_to,
        )
        return TradeEngine(
            triggers=triggers,
            sizer=sizer or PositionSizer(SizingPolicy.PERCENT_OF_EQUITY, position_pct=100.0),
            costs=costs or CostModel(),
            stops=stops or InTradeStopEngine(kick_in=KickIn.X_MULTIPLE, kick_in_value=100.0),
            event_detector=event_detector,
            post_exit_bars=post_exit_bars,
            on_event=on_event,
        )

    return build
