"""Wire a TradeEngine from a validated Config."""

from __future__ import annotations
from typing import Callable, List, Optional

from trade_engine.core.config import Config
from trade_engine.core.types import DirectionMode, EngineEvent
from trade_engine.risk.costs import CostModel, CostPolicy
from trade_engine.risk.manager import PositionSizer, SizingPolicy
from trade_engine.strategies.base import EntryProvider, EntryStopProvider, ExitProvider, FilterProvider
from trade_engine.strategies.entries import MovingAverageCrossEntry, RsiCrossEntry
from trade_engine.strategies.entry_stops import (
    AtrEntryStop,
    DonchianEntryStop,
    LastBarExtremeEntryStop,
    PercentEntryStop,
)
from trade_engine.strategies.exits import RsiExit, TakeProfitExit
from trade_engine.strategies.external import ExternalEntry, ExternalEntryStop, ExternalExit, ExternalFilter
from trade_engine.strategies.filters import MovingAverageFilter
from trade_engine.trading.events import InTradeEventDetector
from trade_engine.trading.machine import TradeEngine
from trade_engine.trading.pyramiding import PyramidPolicy, PyramidRule
from trade_engine.trading.stops import InTradeStopEngine, KickIn, StopKind
from trade_engine.trading.triggers import TriggerDetector


def _entries(config: Config) -> List[EntryProvider]:
    providers = {
        "rsi_cross": lambda: RsiCrossEntry(config.rsi_length, config.rsi_oversold, config.rsi_overbought),
        "ma_cross": lambda: MovingAverageCrossEntry(config.ma_fast, config.ma_slow),
        "external": ExternalEntry,
    }
    return [providers[name]() for name in config.entry_strategies]


def _filters(config: Config) -> List[FilterProvider]:
    providers = {
        "ma_filter": lambda: MovingAverageFilter(config.filter_ma_length),
        "external": ExternalFilter,
    }
    return [providers[name]() for name in config.filter_strategies]


def _entry_stop(config: Config) -> EntryStopProvider:
    providers = {
        "atr": lambda: AtrEntryStop(config.entry_stop_length, config.entry_stop_mult),
        "donchian": lambda: DonchianEntryStop(config.entry_stop_length),
        "last_bar": LastBarExtremeEntryStop,
        "percent": lambda: PercentEntryStop(config.entry_stop_pct),
        "external": ExternalEntryStop,
    }
    return providers[config.entry_stop]()


def _exits(config: Config) -> List[ExitProvider]:
    providers = {
        "take_profit": lambda: TakeProfitExit(config.take_profit_x),
        "rsi_exit": lambda: RsiExit(config.rsi_length, config.rsi_oversold, config.rsi_overbought),
        "external": ExternalExit,
    }
    return [providers[name]() for name in config.exit_strategies]


def build_engine(config: Config, on_event: Optional[Callable[[EngineEvent], None]] = None) -> TradeEngine:
    """Validate again (Config is mutable) and assemble all collaborators."""
    config.validate()
    pyramiding = PyramidPolicy(
        enabled=config.pyramid_enabled,
        rule=PyramidRule(config.pyramid_rule),
        value=config.pyramid_value,
        max_entries=config.pyramid_max_entries,
        position_multiple=config.pyramid_position_multiple,
        require_filter=config.pyramid_require_filter,
    )
    triggers = TriggerDetector(
        entries=_entries(config),
        entry_stop=_entry_stop(config),
        filters=_filters(config),
        exits=_exits(config),
        pyramiding=pyramiding,
        direction=DirectionMode(config.direction),
        date_from=config.date_from,
        date_to=config.date_to,
    )
    sizer = PositionSizer(
        policy=SizingPolicy(config.sizing_policy),
        risk_pct=config.risk_pct,
        max_position_pct=config.max_position_pct,
        position_pct=config.position_pct,
        max_position_value=config.max_position_value,
        initial_capital=config.initial_capital,
    )
    costs = CostModel(
        slippage_policy=CostPolicy(config.slippage_policy),
        slippage=config.slippage,
        fee_policy=CostPolicy(config.fee_policy),
        fee=config.fee,
        tick_size=config.tick_size,
        initial_capital=config.initial_capital,
    )
    stops = InTradeStopEngine(
        kind=StopKind(config.stop_kind),
        value=config.stop_value,
        length=config.stop_length,
        kick_in=KickIn(config.kick_in),
        kick_in_value=config.kick_in_value,
    )
    detector = InTradeEventDetector(
        atr_length=config.event_atr_length,
        near_stop_atr_mult=config.near_stop_atr_mult,
        rsi_length=config.rsi_length,
        rsi_overbought=config.rsi_overbought,
        rsi_oversold=config.rsi_oversold,
        reversal_enabled=config.reversal_events,
        stop_jump_x_mult=config.stop_jump_x_mult,
        swing_atr_mult=config.swing_atr_mult,
    )
    return TradeEngine(
        triggers=triggers,
        sizer=sizer,
        costs=costs,
        stops=stops,
        event_detector=detector,
        post_exit_bars=config.post_exit_bars,
        on_event=on_event,
    )
