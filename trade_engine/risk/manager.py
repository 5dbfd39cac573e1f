"""
Position sizer: turns a stop distance and equity into a position size.
Sizes are fractions of the normalized account (initial capital = 1.0).
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger("trade_engine.risk")


class SizingPolicy(str, Enum):
    PROPORTIONAL_TO_STOP = "proportional_to_stop"
    PERCENT_OF_EQUITY = "percent_of_equity"
    PERCENT_OF_CAPITAL = "percent_of_capital"


@dataclass
class RiskResult:
    """Result of sizing: allowed or rejected + reason."""
    allowed: bool
    size: float = 0.0
    risk_unit: float = 0.0
    reason: str = ""


class PositionSizer:
    """
    PROPORTIONAL_TO_STOP: min(max_position_pct, risk_pct / X%) x equity, so a stop-out
    loses about risk_pct of equity. PERCENT_OF_EQUITY: position_pct of current equity
    (compounds). PERCENT_OF_CAPITAL: position_pct of the starting capital (does not).
    Every policy is capped by max_position_value (currency, 0 = no cap).
    """

    def __init__(
        self,
        policy: SizingPolicy = SizingPolicy.PROPORTIONAL_TO_STOP,
        risk_pct: float = 1.0,
        max_position_pct: float = 100.0,
        position_pct: float = 100.0,
        max_position_value: float = 0.0,
        initial_capital: float = 10000.0,
    ):
        self.policy = policy
        self.risk_pct = risk_pct
        self.max_position_pct = max_position_pct
        self.position_pct = position_pct
        self.max_position_value = max_position_value
        self.initial_capital = initial_capital

    def risk_unit(self, fill: float, stop: float, side_sign: int) -> float:
        """X: distance from fill to stop on the protective side; <= 0 if the stop is crossed."""
        return (fill - stop) * side_sign

    def size(self, fill: float, stop: float, side_sign: int, equity: float) -> RiskResult:
        x = self.risk_unit(fill, stop, side_sign)
        if x <= 0:
            return RiskResult(allowed=False, risk_unit=x, reason="zero stop distance")
        if equity <= 0:
            return RiskResult(allowed=False, risk_unit=x, reason="no equity")

        if self.policy is SizingPolicy.PROPORTIONAL_TO_STOP:
            x_pct = x / fill * 100.0
            fraction = min(self.max_position_pct / 100.0, self.risk_pct / x_pct)
            size = fraction * equity
        elif self.policy is SizingPolicy.PERCENT_OF_EQUITY:
            size = self.position_pct / 100.0 * equity
        else:
            size = self.position_pct / 100.0

        if self.max_position_value > 0 and self.initial_capital > 0:
            cap = self.max_position_value / self.initial_capital
            if size > cap:
                logger.debug("Position size %.6f capped at %.6f", size, cap)
                size = cap
        if size <= 0:
            return RiskResult(allowed=False, risk_unit=x, reason="size rounded to 0")
        return RiskResult(allowed=True, size=size, risk_unit=x)
