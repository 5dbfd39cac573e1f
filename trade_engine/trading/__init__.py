"""Trade state machine: triggers, fills, in-trade stops, pyramiding and settlement."""

from trade_engine.trading.events import InTradeEventDetector
from trade_engine.trading.machine import BarReport, TradeEngine
from trade_engine.trading.pyramiding import PyramidPolicy, PyramidRule
from trade_engine.trading.state import ClosedTrade, EngineState, Entry, OrderKind, PendingOrder, Trade
from trade_engine.trading.stops import InTradeStopEngine, KickIn, StopKind
from trade_engine.trading.triggers import TriggerDetector, stop_breached

__all__ = [
    "InTradeEventDetector",
    "BarReport",
    "TradeEngine",
    "PyramidPolicy",
    "PyramidRule",
    "ClosedTrade",
    "EngineState",
    "Entry",
    "OrderKind",
    "PendingOrder",
    "Trade",
    "InTradeStopEngine",
    "KickIn",
    "StopKind",
    "TriggerDetector",
    "stop_breached",
]
