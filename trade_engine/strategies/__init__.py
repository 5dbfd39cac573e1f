"""Strategies: provider interfaces and a small catalogue of implementations."""

from trade_engine.strategies.base import (
    EntryProvider,
    EntryStopProvider,
    ExitProvider,
    FilterProvider,
    TradeView,
)
from trade_engine.strategies.entries import MovingAverageCrossEntry, RsiCrossEntry
from trade_engine.strategies.entry_stops import (
    AtrEntryStop,
    DonchianEntryStop,
    LastBarExtremeEntryStop,
    PercentEntryStop,
)
from trade_engine.strategies.exits import RsiExit, TakeProfitExit
from trade_engine.strategies.external import (
    ExternalEntry,
    ExternalEntryStop,
    ExternalExit,
    ExternalFilter,
    decode_external,
)
from trade_engine.strategies.filters import MovingAverageFilter

__all__ = [
    "EntryProvider",
    "EntryStopProvider",
    "ExitProvider",
    "FilterProvider",
    "TradeView",
    "MovingAverageCrossEntry",
    "RsiCrossEntry",
    "AtrEntryStop",
    "DonchianEntryStop",
    "LastBarExtremeEntryStop",
    "PercentEntryStop",
    "RsiExit",
    "TakeProfitExit",
    "ExternalEntry",
    "ExternalEntryStop",
    "ExternalExit",
    "ExternalFilter",
    "decode_external",
    "MovingAverageFilter",
]
