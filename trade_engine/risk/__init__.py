"""Risk: position sizing, slippage and fees."""

from trade_engine.risk.costs import CostModel, CostPolicy, Fill, fee_for, fill_price
from trade_engine.risk.manager import PositionSizer, RiskResult, SizingPolicy

__all__ = ["CostModel", "CostPolicy", "Fill", "fee_for", "fill_price", "PositionSizer", "RiskResult", "SizingPolicy"]
