"""
Running trade statistics and drawdown tracking, plus summary metrics (Sharpe,
Sortino, max drawdown, win rate, profit factor, expectancy) for a finished run.

Buckets only store totals and counts; every average is derived on read so it can
never drift from the sums it comes from.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional

import numpy as np


def _ratio(total: float, count: int) -> float:
    return total / count if count else 0.0


@dataclass
class StatBucket:
    """Running totals for one family of entries (first, pyramided or combined)."""
    entries: int = 0
    wins: int = 0
    losses: int = 0
    total_plx: float = 0.0
    total_pnl_pct: float = 0.0
    total_pnl: float = 0.0
    gross_win: float = 0.0
    gross_loss: float = 0.0
    gross_win_plx: float = 0.0
    gross_loss_plx: float = 0.0
    total_fees: float = 0.0
    total_slippage: float = 0.0
    total_volume: float = 0.0
    total_length: int = 0
    total_adverse_x: float = 0.0

    def add(
        self,
        plx: float,
        pnl_pct: float,
        pnl: float,
        fees: float = 0.0,
        slippage: float = 0.0,
        volume: float = 0.0,
        length: int = 0,
        adverse_x: float = 0.0,
    ) -> None:
        """Fold one settled entry in. pnl is net of fees, in currency; adverse_x is its intra-trade drawdown in X."""
        self.entries += 1
        self.total_plx += plx
        self.total_pnl_pct += pnl_pct
        self.total_pnl += pnl
        self.total_fees += fees
        self.total_slippage += slippage
        self.total_volume += volume
        self.total_length += length
        self.total_adverse_x += adverse_x
        if pnl > 0:
            self.wins += 1
            self.gross_win += pnl
            self.gross_win_plx += plx
        elif pnl < 0:
            self.losses += 1
            self.gross_loss += -pnl
            self.gross_loss_plx += -plx

    @property
    def avg_plx(self) -> float:
        return _ratio(self.total_plx, self.entries)

    @property
    def avg_pnl_pct(self) -> float:
        return _ratio(self.total_pnl_pct, self.entries)

    @property
    def avg_pnl(self) -> float:
        return _ratio(self.total_pnl, self.entries)

    @property
    def avg_win(self) -> float:
        return _ratio(self.gross_win, self.wins)

    @property
    def avg_loss(self) -> float:
        return -_ratio(self.gross_loss, self.losses)

    @property
    def avg_trade_length(self) -> float:
        return _ratio(self.total_length, self.entries)

    @property
    def avg_adverse_x(self) -> float:
        return _ratio(self.total_adverse_x, self.entries)

    @property
    def avg_fees(self) -> float:
        return _ratio(self.total_fees, self.entries)

    @property
    def avg_slippage(self) -> float:
        return _ratio(self.total_slippage, self.entries)

    @property
    def win_rate(self) -> float:
        return _ratio(self.wins, self.entries)

    @property
    def profit_factor(self) -> float:
        return _profit_factor(self.gross_win, self.gross_loss)

    @property
    def profit_factor_x(self) -> float:
        return _profit_factor(self.gross_win_plx, self.gross_loss_plx)

    def as_dict(self) -> dict:
        data = {name: getattr(self, name) for name in self.__dataclass_fields__}
        data.update(
            avg_plx=self.avg_plx,
            avg_pnl_pct=self.avg_pnl_pct,
            win_rate=self.win_rate,
            profit_factor=self.profit_factor,
            avg_trade_length=self.avg_trade_length,
            avg_adverse_x=self.avg_adverse_x,
        )
        return data


@dataclass
class DrawdownTracker:
    """
    Peak-to-trough drawdown of an equity series fed one value at a time.
    A new peak resets the trough.
    """
    peak: Optional[float] = None
    trough: Optional[float] = None
    max_drawdown_pct: float = 0.0
    samples: int = 0

    def update(self, value: float) -> None:
        self.samples += 1
        if self.peak is None or value > self.peak:
            self.peak = value
            self.trough = value
            return
        if value < self.trough:
            self.trough = value
            if self.peak > 0:
                dd = (self.peak - self.trough) / self.peak * 100.0
                self.max_drawdown_pct = max(self.max_drawdown_pct, dd)

    @property
    def drawdown_pct(self) -> float:
        """Current drawdown from the running peak to the running trough."""
        if self.peak is None or self.peak <= 0:
            return 0.0
        return (self.peak - self.trough) / self.peak * 100.0


def _profit_factor(gross_win: float, gross_loss: float) -> float:
    if gross_loss <= 0:
        return float("inf") if gross_win > 0 else 0.0
    return gross_win / gross_loss


@dataclass
class PerformanceMetrics:
    """Aggregate performance metrics of a finished run."""
    total_return_pct: float
    sharpe_ratio: float
    sortino_ratio: float
    max_drawdown_pct: float
    win_rate: float
    profit_factor: float
    expectancy: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    avg_win: float
    avg_loss: float


def sharpe_ratio(returns: List[float], periods_per_year: float = 252.0) -> float:
    """Annualized Sharpe of period returns."""
    if not returns:
        return 0.0
    arr = np.array(returns)
    if arr.std() <= 1e-12:
        return 0.0
    return float(np.sqrt(periods_per_year) * arr.mean() / arr.std())


def sortino_ratio(returns: List[float], periods_per_year: float = 252.0) -> float:
    """Annualized Sortino (downside deviation)."""
    if not returns:
        return 0.0
    arr = np.array(returns)
    downside = arr[arr < 0]
    if len(downside) == 0 or downside.std() <= 1e-12:
        return sharpe_ratio(returns, periods_per_year)
    return float(np.sqrt(periods_per_year) * arr.mean() / downside.std())


def max_drawdown(equity: List[float]) -> float:
    """Max drawdown of an equity series in percent (negative, e.g. -15.0)."""
    if not equity:
        return 0.0
    arr = np.array(equity, dtype=float)
    peak = np.maximum.accumulate(arr)
    dd = (arr - peak) / np.where(peak != 0, peak, 1)
    return float(np.min(dd)) * 100.0


def win_rate(pnls: List[float]) -> float:
    if not pnls:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls)


def profit_factor(pnls: List[float]) -> float:
    """Gross profit / gross loss."""
    return _profit_factor(sum(p for p in pnls if p > 0), sum(-p for p in pnls if p < 0))


def expectancy(pnls: List[float]) -> float:
    if not pnls:
        return 0.0
    return sum(pnls) / len(pnls)


def compute_metrics(
    pnls: List[float],
    equity_curve: List[float],
    periods_per_year: float = 252.0,
) -> PerformanceMetrics:
    """
    Summary metrics from closed-trade P&Ls and a per-bar normalized equity curve
    (starting at 1.0). Sharpe/Sortino use the bar-to-bar equity returns.
    """
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    if len(equity_curve) > 1:
        arr = np.array(equity_curve, dtype=float)
        prev = np.where(arr[:-1] != 0, arr[:-1], 1)
        rets = (np.diff(arr) / prev).tolist()
    else:
        rets = []
    total_return_pct = (equity_curve[-1] - 1.0) * 100.0 if equity_curve else 0.0
    return PerformanceMetrics(
        total_return_pct=total_return_pct,
        sharpe_ratio=sharpe_ratio(rets, periods_per_year),
        sortino_ratio=sortino_ratio(rets, periods_per_year),
        max_drawdown_pct=max_drawdown(equity_curve),
        win_rate=win_rate(pnls),
        profit_factor=profit_factor(pnls),
        expectancy=expectancy(pnls),
        total_trades=len(pnls),
        winning_trades=len(wins),
        losing_trades=len(losses),
        avg_win=sum(wins) / len(wins) if wins else 0.0,
        avg_loss=sum(losses) / len(losses) if losses else 0.0,
    )
