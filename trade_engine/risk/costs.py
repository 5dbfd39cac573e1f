"""
Fill simulation: adverse slippage clamped to the bar's range, and fees.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum

from trade_engine.core.types import Bar, Side
from trade_engine.utils.ticks import round_price


class CostPolicy(str, Enum):
    NONE = "none"
    PERCENT = "percent"
    FIXED = "fixed"


@dataclass(frozen=True)
class Fill:
    price: float
    slippage: float  # price distance actually paid, >= 0


def fill_price(
    order_price: float,
    side: Side,
    is_entry: bool,
    bar: Bar,
    policy: CostPolicy = CostPolicy.NONE,
    amount: float = 0.0,
    tick_size: float = 0.0,
) -> Fill:
    """
    Shift the order price against us (buying higher, selling lower), then clamp it
    into [low, high]; the slippage reported is the clamped distance.
    """
    if policy is CostPolicy.PERCENT:
        slip = order_price * amount / 100.0
    elif policy is CostPolicy.FIXED:
        slip = amount
    else:
        slip = 0.0
    buying = (side is Side.LONG) == is_entry
    price = order_price + slip if buying else order_price - slip
    price = min(max(price, bar.low), bar.high)
    price = round_price(price, tick_size)
    return Fill(price=price, slippage=abs(price - order_price))


def fee_for(position_value: float, policy: CostPolicy = CostPolicy.NONE, amount: float = 0.0) -> float:
    """Fee for one side of a trade, in the same unit as position_value (fixed fees too)."""
    if policy is CostPolicy.PERCENT:
        return abs(position_value) * amount / 100.0
    if policy is CostPolicy.FIXED:
        return amount
    return 0.0


class CostModel:
    """
    Slippage and fee settings for one instrument. Fees are returned in normalized
    equity units: PERCENT applies to the position size, FIXED is a currency amount
    divided by initial_capital.
    """

    def __init__(
        self,
        slippage_policy: CostPolicy = CostPolicy.NONE,
        slippage: float = 0.0,
        fee_policy: CostPolicy = CostPolicy.NONE,
        fee: float = 0.0,
        tick_size: float = 0.0,
        initial_capital: float = 10000.0,
    ):
        self.slippage_policy = slippage_policy
        self.slippage = slippage
        self.fee_policy = fee_policy
        self.fee = fee
        self.tick_size = tick_size
        self.initial_capital = initial_capital

    def entry_fill(self, bar: Bar, side: Side) -> Fill:
        return fill_price(bar.open, side, True, bar, self.slippage_policy, self.slippage, self.tick_size)

    def exit_fill(self, bar: Bar, side: Side) -> Fill:
        return fill_price(bar.open, side, False, bar, self.slippage_policy, self.slippage, self.tick_size)

    def fee_for_size(self, size: float) -> float:
        if self.fee_policy is CostPolicy.FIXED:
            return fee_for(size, self.fee_policy, self.fee) / self.initial_capital
        return fee_for(size, self.fee_policy, self.fee)
