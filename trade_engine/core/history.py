"""
Engine-owned bar history with explicit, bounds-checked look-back.
Offset 0 is the current bar, 1 the previous one, and so on.
"""

from __future__ import annotations
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd

from trade_engine.core.types import Bar
from trade_engine.utils.ticks import round_price

_FIELDS = ("open", "high", "low", "close", "volume")


class BarHistory:
    """Growable sequence of closed bars (plus, in streaming mode, one forming bar)."""

    def __init__(self, bars: Optional[Iterable[Bar]] = None):
        self._bars: List[Bar] = []
        self._forming: Optional[Bar] = None
        for bar in bars or ():
            self.append(bar)

    def __len__(self) -> int:
        return len(self._bars) + (1 if self._forming is not None else 0)

    def append(self, bar: Bar) -> None:
        if self._forming is not None:
            raise ValueError("cannot append to a history holding a forming bar")
        if self._bars and bar.index <= self._bars[-1].index:
            raise ValueError(
                f"bar index {bar.index} is not after last index {self._bars[-1].index}"
            )
        self._bars.append(bar)

    def extended(self, bar: Bar) -> "BarHistory":
        """
        View of this history with a still-forming bar on top. The closed bars are
        shared, not copied, so the view is read-only.
        """
        if self._forming is not None:
            raise ValueError("history already holds a forming bar")
        if self._bars and bar.index <= self._bars[-1].index:
            raise ValueError(
                f"bar index {bar.index} is not after last index {self._bars[-1].index}"
            )
        other = BarHistory()
        other._bars = self._bars
        other._forming = bar
        return other

    @property
    def current(self) -> Bar:
        return self.bar(0)

    def bar(self, offset: int = 0) -> Bar:
        found = self.get(offset)
        if found is None:
            raise IndexError(f"offset {offset} out of range for history of {len(self)} bars")
        return found

    def get(self, offset: int = 0) -> Optional[Bar]:
        """Like bar() but returns None when the history is too short."""
        if offset < 0 or offset >= len(self):
            return None
        if self._forming is not None:
            if offset == 0:
                return self._forming
            offset -= 1
        return self._bars[-1 - offset]

    def _tail(self, n: int) -> List[Bar]:
        if self._forming is None:
            return self._bars[-n:]
        closed = self._bars[len(self._bars) - (n - 1):] if n > 1 else []
        return closed + [self._forming]

    def window(self, field: str, n: int) -> Optional[np.ndarray]:
        """Last n values of an OHLCV field, oldest first; None if fewer than n bars."""
        if field not in _FIELDS:
            raise KeyError(field)
        if n <= 0 or n > len(self):
            return None
        return np.array([getattr(b, field) for b in self._tail(n)], dtype=float)

    def to_frame(self) -> pd.DataFrame:
        bars = self._tail(len(self)) if len(self) else []
        return pd.DataFrame(
            {
                "index": [b.index for b in bars],
                "time": [b.time for b in bars],
                "open": [b.open for b in bars],
                "high": [b.high for b in bars],
                "low": [b.low for b in bars],
                "close": [b.close for b in bars],
                "volume": [b.volume for b in bars],
                "signal": [b.signal for b in bars],
            }
        )


def bars_from_frame(df: pd.DataFrame, tick_size: float = 0.0) -> List[Bar]:
    """
    Build tick-rounded Bars from an OHLCV DataFrame (columns: time, open, high, low,
    close, volume, optional signal). Bar index is the row position. Timezone-aware
    times are converted to UTC and made naive, so every bar compares on one clock.
    """
    has_signal = "signal" in df.columns
    bars: List[Bar] = []
    for i, row in enumerate(df.itertuples(index=False)):
        t = row.time if "time" in df.columns else None
        if t is not None and not isinstance(t, pd.Timestamp):
            t = pd.Timestamp(t)
        if t is not None and t.tzinfo is not None:
            t = t.tz_convert("UTC").tz_localize(None)
        signal = None
        if has_signal:
            value = getattr(row, "signal")
            signal = None if pd.isna(value) else float(value)
        bars.append(Bar(
            index=i,
            time=t.to_pydatetime() if t is not None else None,
            open=round_price(float(row.open), tick_size),
            high=round_price(float(row.high), tick_size),
            low=round_price(float(row.low), tick_size),
            close=round_price(float(row.close), tick_size),
            volume=float(getattr(row, "volume", 0.0) or 0.0),
            signal=signal,
        ))
    return bars
