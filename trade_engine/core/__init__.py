"""Core: config, types, bar history, logging."""

from trade_engine.core.config import Config, ConfigError, config_from_dict, load_config
from trade_engine.core.history import BarHistory, bars_from_frame
from trade_engine.core.logger import setup_logging
from trade_engine.core.types import (
    Bar,
    DirectionMode,
    EngineEvent,
    EntrySignal,
    EventKind,
    FilterState,
    Side,
    StopLevels,
)

__all__ = [
    "Config",
    "ConfigError",
    "config_from_dict",
    "load_config",
    "BarHistory",
    "bars_from_frame",
    "setup_logging",
    "Bar",
    "DirectionMode",
    "EngineEvent",
    "EntrySignal",
    "EventKind",
    "FilterState",
    "Side",
    "StopLevels",
]
