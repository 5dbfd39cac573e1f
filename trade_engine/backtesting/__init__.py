"""Backtesting: deterministic bar-by-bar replay of historical data."""

from trade_engine.backtesting.engine import BacktestEngine, BacktestResult

__all__ = ["BacktestEngine", "BacktestResult"]
