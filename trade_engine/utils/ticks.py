"""Tick rounding for prices entering the engine."""

from __future__ import annotations
import math


def round_price(price: float, tick_size: float) -> float:
    """Round price to the instrument tick. tick_size <= 0 leaves the price untouched."""
    if tick_size <= 0 or math.isnan(price):
        return price
    return round(round(price / tick_size) * tick_size, 8)


def nudge_off_protocol_codes(level: float, tick_size: float) -> float:
    """
    Move a stop level one tick away from the external protocol codes (1, 2, 3 and
    their negatives) so a producer can send it as a stop without it being read as a code.
    """
    if abs(level) in (1.0, 2.0, 3.0):
        step = tick_size if tick_size > 0 else 1e-8
        return level + step if level > 0 else level - step
    return level
