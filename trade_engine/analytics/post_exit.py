"""
Post-exit analysis: after a trade closes, watch a fixed number of bars and measure
how far price kept going our way (missed opportunity) versus against us, in X.
Only one window runs at a time; exits settling while one is running are skipped.
"""

from __future__ import annotations
import copy
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from trade_engine.core.types import Bar, Side

logger = logging.getLogger("trade_engine.analytics.post_exit")


@dataclass
class PostExitResult:
    side: Side
    exit_bar: int
    reference_close: float
    risk_unit: float
    max_opportunity: float = 0.0
    max_opportunity_bar: int = 0
    max_drawdown: float = 0.0
    max_drawdown_bar: int = 0
    drawdown_to_max_opportunity: float = 0.0
    bars: int = 0


@dataclass
class PostExitBucket:
    analyses: int = 0
    total_max_opportunity: float = 0.0
    total_max_drawdown: float = 0.0
    total_drawdown_to_max_opportunity: float = 0.0
    total_max_opportunity_bar: int = 0

    def add(self, result: PostExitResult) -> None:
        self.analyses += 1
        self.total_max_opportunity += result.max_opportunity
        self.total_max_drawdown += result.max_drawdown
        self.total_drawdown_to_max_opportunity += result.drawdown_to_max_opportunity
        self.total_max_opportunity_bar += result.max_opportunity_bar

    @property
    def avg_max_opportunity(self) -> float:
        return self.total_max_opportunity / self.analyses if self.analyses else 0.0

    @property
    def avg_max_drawdown(self) -> float:
        return self.total_max_drawdown / self.analyses if self.analyses else 0.0

    @property
    def avg_drawdown_to_max_opportunity(self) -> float:
        return self.total_drawdown_to_max_opportunity / self.analyses if self.analyses else 0.0

    @property
    def avg_max_opportunity_bar(self) -> float:
        return self.total_max_opportunity_bar / self.analyses if self.analyses else 0.0


class PostExitAnalyzer:
    """
    Idle until arm() is called at an exit's settlement bar; the bars after it are
    offsets 1..window. The window settles into `bucket` on its last bar.
    """

    def __init__(self, window: int = 20):
        self.window = window
        self.bucket = PostExitBucket()
        self.results: List[PostExitResult] = []
        self.skipped = 0
        self._active: Optional[PostExitResult] = None

    @property
    def analyzing(self) -> bool:
        return self._active is not None

    @property
    def active(self) -> Optional[PostExitResult]:
        return self._active

    def arm(self, side: Side, exit_bar: Bar, risk_unit: float) -> bool:
        """Start a window referenced on exit_bar's close. False if disabled or busy."""
        if self.window <= 0 or risk_unit <= 0:
            return False
        if self._active is not None:
            self.skipped += 1
            logger.debug("Post-exit analysis busy, exit at bar %d not analyzed", exit_bar.index)
            return False
        self._active = PostExitResult(
            side=side,
            exit_bar=exit_bar.index,
            reference_close=exit_bar.close,
            risk_unit=risk_unit,
        )
        return True

    def step(self, bar: Bar) -> Optional[PostExitResult]:
        """Advance one bar; returns the result when the window completes."""
        res = self._active
        if res is None or bar.index <= res.exit_bar:
            return None
        res.bars = bar.index - res.exit_bar
        if res.side is Side.LONG:
            favorable = (bar.high - res.reference_close) / res.risk_unit
            adverse = (res.reference_close - bar.low) / res.risk_unit
        else:
            favorable = (res.reference_close - bar.low) / res.risk_unit
            adverse = (bar.high - res.reference_close) / res.risk_unit
        if adverse > res.max_drawdown:
            res.max_drawdown = adverse
            res.max_drawdown_bar = res.bars
        if favorable > res.max_opportunity:
            res.max_opportunity = favorable
            res.max_opportunity_bar = res.bars
            res.drawdown_to_max_opportunity = res.max_drawdown
        if res.bars >= self.window:
            self.bucket.add(res)
            self.results.append(res)
            self._active = None
            logger.debug(
                "Post-exit analysis for bar %d done: opportunity %.2fX at +%d, drawdown %.2fX",
                res.exit_bar, res.max_opportunity, res.max_opportunity_bar, res.max_drawdown,
            )
            return res
        return None

    def scratch_copy(self) -> "PostExitAnalyzer":
        """Copy for a preview step: the running window and totals, with an empty results log."""
        other = PostExitAnalyzer(self.window)
        other.bucket = copy.copy(self.bucket)
        other.skipped = self.skipped
        other._active = copy.copy(self._active)
        return other
