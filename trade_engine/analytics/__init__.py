"""Analytics: running trade statistics, drawdowns, post-exit analysis and run metrics."""

from trade_engine.analytics.metrics import (
    DrawdownTracker,
    PerformanceMetrics,
    StatBucket,
    compute_metrics,
    expectancy,
    max_drawdown,
    profit_factor,
    sharpe_ratio,
    sortino_ratio,
    win_rate,
)
from trade_engine.analytics.post_exit import PostExitAnalyzer, PostExitBucket, PostExitResult

__all__ = [
    "DrawdownTracker",
    "PerformanceMetrics",
    "StatBucket",
    "compute_metrics",
    "expectancy",
    "max_drawdown",
    "profit_factor",
    "sharpe_ratio",
    "sortino_ratio",
    "win_rate",
    "PostExitAnalyzer",
    "PostExitBucket",
    "PostExitResult",
]
