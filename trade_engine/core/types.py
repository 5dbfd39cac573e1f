"""
Core data types for bars, provider signals, trade direction and emitted events.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class Side(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def sign(self) -> int:
        return 1 if self is Side.LONG else -1


class DirectionMode(str, Enum):
    """Which sides the engine is allowed to open."""
    BOTH = "both"
    LONGS_ONLY = "longs_only"
    SHORTS_ONLY = "shorts_only"

    def allows(self, side: Side) -> bool:
        if self is DirectionMode.BOTH:
            return True
        if self is DirectionMode.LONGS_ONLY:
            return side is Side.LONG
        return side is Side.SHORT


@dataclass(frozen=True)
class Bar:
    """OHLCV candle. `signal` is the optional external indicator channel."""
    index: int
    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    signal: Optional[float] = None

    @property
    def range(self) -> float:
        return self.high - self.low


@dataclass(frozen=True)
class EntrySignal:
    """Entry request from an entry provider. `stop` overrides the entry-stop provider."""
    side: Side
    source: str = ""
    stop: Optional[float] = None


@dataclass(frozen=True)
class FilterState:
    allow_long: bool
    allow_short: bool

    def allows(self, side: Side) -> bool:
        return self.allow_long if side is Side.LONG else self.allow_short


@dataclass(frozen=True)
class StopLevels:
    """Entry stop per side; either may be None when that side is not ready."""
    long: Optional[float] = None
    short: Optional[float] = None

    def for_side(self, side: Side) -> Optional[float]:
        return self.long if side is Side.LONG else self.short


class EventKind(str, Enum):
    LONG_ENTRY = "LongEntry"
    LONG_PYRAMID_ENTRY = "LongPyramidEntry"
    SHORT_ENTRY = "ShortEntry"
    SHORT_PYRAMID_ENTRY = "ShortPyramidEntry"
    LONG_EXIT = "LongExit"
    SHORT_EXIT = "ShortExit"
    NEAR_STOP = "NearStop"
    POSSIBLE_REVERSAL = "PossibleReversal"
    LARGE_STOP_MOVE = "LargeStopMove"
    LARGE_FAVORABLE_SWING = "LargeFavorableSwing"

    @classmethod
    def entry(cls, side: Side, pyramid: bool = False) -> "EventKind":
        if side is Side.LONG:
            return cls.LONG_PYRAMID_ENTRY if pyramid else cls.LONG_ENTRY
        return cls.SHORT_PYRAMID_ENTRY if pyramid else cls.SHORT_ENTRY

    @classmethod
    def exit(cls, side: Side) -> "EventKind":
        return cls.LONG_EXIT if side is Side.LONG else cls.SHORT_EXIT


@dataclass(frozen=True)
class EngineEvent:
    """Event for presentation/alerting, attributed to the bar it belongs to."""
    kind: EventKind
    bar_index: int
    time: datetime
    price: float
    details: dict = field(default_factory=dict)
