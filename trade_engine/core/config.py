"""
Load configuration from config.yaml and .env. Environment variables override the
file; validate() rejects out-of-range or conflicting options before any bar runs.
"""

from __future__ import annotations
import os
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, List, Optional

import pandas as pd
import yaml
from dotenv import load_dotenv

ENTRY_STRATEGIES = ("rsi_cross", "ma_cross", "external")
FILTER_STRATEGIES = ("ma_filter", "external")
ENTRY_STOPS = ("atr", "donchian", "last_bar", "percent", "external")
EXIT_STRATEGIES = ("take_profit", "rsi_exit", "external")
DIRECTIONS = ("both", "longs_only", "shorts_only")
STOP_KINDS = (
    "x_multiple", "percent", "fixed", "donchian_center",
    "atr_multiple", "chandelier", "volatility", "last_bar_extreme",
)
KICK_INS = ("entry_stop", "x_multiple", "percent", "fixed")
COST_POLICIES = ("none", "percent", "fixed")
PYRAMID_RULES = ("x_multiple", "percent", "fixed", "same_signal", "other_signal", "every_signal")
SIZING_POLICIES = ("proportional_to_stop", "percent_of_equity", "percent_of_capital")


class ConfigError(ValueError):
    """Invalid or conflicting configuration; raised before any bar is processed."""


def _env_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path(__file__).resolve().parents[2]
    return root / ".env"


def load_dotenv_if_exists(project_root: Optional[Path] = None) -> None:
    """Load .env from project root if present."""
    path = _env_path(project_root)
    if path.exists():
        load_dotenv(path)


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v) for v in value]


def _as_bool(key: str, value: Any, default: bool = False) -> bool:
    """YAML booleans, or true/false, yes/no, on/off, 1/0 as strings (quoted YAML, .env)."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes", "on"):
        return True
    if text in ("false", "0", "no", "off", ""):
        return False
    raise ConfigError(f"{key} must be a boolean, got {value!r}")


def parse_time(value: Any, end_of_day: bool = False) -> Optional[datetime]:
    """
    ISO string, date or datetime -> naive UTC datetime (bar times are naive UTC too).
    A bare date can mean the end of that day.
    """
    if value is None or value == "":
        return None
    bare_date = isinstance(value, date) and not isinstance(value, datetime)
    if isinstance(value, str) and len(value.strip()) == 10:
        bare_date = True
    try:
        ts = pd.Timestamp(value)
    except (ValueError, TypeError) as e:
        raise ConfigError(f"invalid date {value!r}: {e}") from e
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    result = ts.to_pydatetime()
    if bare_date and end_of_day:
        result += timedelta(days=1) - timedelta(microseconds=1)
    return result


def load_config(config_path: Optional[Path] = None, project_root: Optional[Path] = None) -> "Config":
    """Load config.yaml and overlay with env. Returns a validated Config."""
    load_dotenv_if_exists(project_root)
    root = project_root or Path(__file__).resolve().parents[2]
    path = config_path or root / "config.yaml"
    data: dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    elif config_path is not None:
        raise ConfigError(f"config file not found: {path}")
    return config_from_dict(data)


def config_from_dict(data: dict) -> "Config":
    def env(key: str, default: Any = "") -> str:
        return os.getenv(key, str(default) if default is not None else "").strip()

    def env_bool(key: str, default: Any = False) -> bool:
        return _as_bool(key, os.getenv(key, default))

    def env_int(key: str, default: int = 0) -> int:
        try:
            return int(os.getenv(key, str(default)))
        except ValueError as e:
            raise ConfigError(f"{key} must be an integer") from e

    def env_float(key: str, default: float = 0.0) -> float:
        try:
            return float(os.getenv(key, str(default)))
        except ValueError as e:
            raise ConfigError(f"{key} must be a number") from e

    run = data.get("run", {})
    entry = data.get("entry", {})
    filt = data.get("filter", {})
    stops = data.get("stops", {})
    exits = data.get("exit", {})
    costs = data.get("costs", {})
    pyramiding = data.get("pyramiding", {})
    sizing = data.get("sizing", {})
    backtest = data.get("backtest", {})
    events = data.get("events", {})
    logging_cfg = data.get("logging", {})

    config = Config(
        # Run
        direction=env("TRADE_DIRECTION", run.get("direction", "both")).lower(),
        tick_size=env_float("TICK_SIZE", run.get("tick_size", 0.0)),
        initial_capital=env_float("INITIAL_CAPITAL", backtest.get("initial_capital", 10000.0)),
        date_from=parse_time(env("DATE_FROM", backtest.get("date_from")) or None),
        date_to=parse_time(env("DATE_TO", backtest.get("date_to")) or None, end_of_day=True),
        post_exit_bars=env_int("POST_EXIT_BARS", backtest.get("post_exit_bars", 20)),
        close_at_end=_as_bool("backtest.close_at_end", backtest.get("close_at_end"), True),
        # Entry
        entry_strategies=_as_list(os.getenv("ENTRY_STRATEGIES") or entry.get("strategies", ["rsi_cross"])),
        rsi_length=int(entry.get("rsi_length", 14)),
        rsi_oversold=float(entry.get("rsi_oversold", 30.0)),
        rsi_overbought=float(entry.get("rsi_overbought", 70.0)),
        ma_fast=int(entry.get("ma_fast", 9)),
        ma_slow=int(entry.get("ma_slow", 21)),
        # Filter
        filter_strategies=_as_list(filt.get("strategies", [])),
        filter_ma_length=int(filt.get("ma_length", 50)),
        # Stops
        entry_stop=str(stops.get("entry_stop", "atr")),
        entry_stop_length=int(stops.get("entry_stop_length", 14)),
        entry_stop_mult=float(stops.get("entry_stop_mult", 1.5)),
        entry_stop_pct=float(stops.get("entry_stop_pct", 2.0)),
        stop_kind=str(stops.get("in_trade", "x_multiple")),
        stop_value=float(stops.get("in_trade_value", 1.0)),
        stop_length=int(stops.get("in_trade_length", 14)),
        kick_in=str(stops.get("kick_in", "entry_stop")),
        kick_in_value=float(stops.get("kick_in_value", 0.0)),
        # Exit
        exit_strategies=_as_list(exits.get("strategies", [])),
        take_profit_x=float(exits.get("take_profit_x", 2.0)),
        # Costs
        slippage_policy=env("SLIPPAGE_POLICY", costs.get("slippage_policy", "none")).lower(),
        slippage=env_float("SLIPPAGE", costs.get("slippage", 0.0)),
        fee_policy=env("FEE_POLICY", costs.get("fee_policy", "none")).lower(),
        fee=env_float("FEE", costs.get("fee", 0.0)),
        # Pyramiding
        pyramid_enabled=env_bool("PYRAMIDING", pyramiding.get("enabled", False)),
        pyramid_rule=str(pyramiding.get("rule", "x_multiple")),
        pyramid_value=float(pyramiding.get("value", 1.0)),
        pyramid_max_entries=int(pyramiding.get("max_entries", 1)),
        pyramid_position_multiple=float(pyramiding.get("position_multiple", 1.0)),
        pyramid_require_filter=_as_bool("pyramiding.require_filter", pyramiding.get("require_filter")),
        # Sizing
        sizing_policy=env("SIZING_POLICY", sizing.get("policy", "proportional_to_stop")).lower(),
        risk_pct=env_float("RISK_PCT", sizing.get("risk_pct", 1.0)),
        max_position_pct=float(sizing.get("max_position_pct", 100.0)),
        position_pct=float(sizing.get("position_pct", 100.0)),
        max_position_value=float(sizing.get("max_position_value", 0.0)),
        # Events
        event_atr_length=int(events.get("atr_length", 14)),
        near_stop_atr_mult=float(events.get("near_stop_atr_mult", 0.0)),
        reversal_events=_as_bool("events.reversal", events.get("reversal")),
        stop_jump_x_mult=float(events.get("stop_jump_x_mult", 0.0)),
        swing_atr_mult=float(events.get("swing_atr_mult", 0.0)),
        # Logging
        log_level=env("LOG_LEVEL", logging_cfg.get("level", "INFO")),
        log_dir=Path(logging_cfg.get("log_dir", "logs")),
        log_file=logging_cfg.get("log_file", "trade_engine.log"),
    )
    config.validate()
    return config


class Config:
    """Unified configuration. Immutable after load."""

    __slots__ = (
        "direction", "tick_size", "initial_capital", "date_from", "date_to", "post_exit_bars", "close_at_end",
        "entry_strategies", "rsi_length", "rsi_oversold", "rsi_overbought", "ma_fast", "ma_slow",
        "filter_strategies", "filter_ma_length",
        "entry_stop", "entry_stop_length", "entry_stop_mult", "entry_stop_pct",
        "stop_kind", "stop_value", "stop_length", "kick_in", "kick_in_value",
        "exit_strategies", "take_profit_x",
        "slippage_policy", "slippage", "fee_policy", "fee",
        "pyramid_enabled", "pyramid_rule", "pyramid_value", "pyramid_max_entries",
        "pyramid_position_multiple", "pyramid_require_filter",
        "sizing_policy", "risk_pct", "max_position_pct", "position_pct", "max_position_value",
        "event_atr_length", "near_stop_atr_mult", "reversal_events", "stop_jump_x_mult", "swing_atr_mult",
        "log_level", "log_dir", "log_file",
    )

    def __init__(
        self,
        direction: str = "both",
        tick_size: float = 0.0,
        initial_capital: float = 10000.0,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        post_exit_bars: int = 20,
        close_at_end: bool = True,
        entry_strategies: Optional[List[str]] = None,
        rsi_length: int = 14,
        rsi_oversold: float = 30.0,
        rsi_overbought: float = 70.0,
        ma_fast: int = 9,
        ma_slow: int = 21,
        filter_strategies: Optional[List[str]] = None,
        filter_ma_length: int = 50,
        entry_stop: str = "atr",
        entry_stop_length: int = 14,
        entry_stop_mult: float = 1.5,
        entry_stop_pct: float = 2.0,
        stop_kind: str = "x_multiple",
        stop_value: float = 1.0,
        stop_length: int = 14,
        kick_in: str = "entry_stop",
        kick_in_value: float = 0.0,
        exit_strategies: Optional[List[str]] = None,
        take_profit_x: float = 2.0,
        slippage_policy: str = "none",
        slippage: float = 0.0,
        fee_policy: str = "none",
        fee: float = 0.0,
        pyramid_enabled: bool = False,
        pyramid_rule: str = "x_multiple",
        pyramid_value: float = 1.0,
        pyramid_max_entries: int = 1,
        pyramid_position_multiple: float = 1.0,
        pyramid_require_filter: bool = False,
        sizing_policy: str = "proportional_to_stop",
        risk_pct: float = 1.0,
        max_position_pct: float = 100.0,
        position_pct: float = 100.0,
        max_position_value: float = 0.0,
        event_atr_length: int = 14,
        near_stop_atr_mult: float = 0.0,
        reversal_events: bool = False,
        stop_jump_x_mult: float = 0.0,
        swing_atr_mult: float = 0.0,
        log_level: str = "INFO",
        log_dir: Path = None,
        log_file: str = "trade_engine.log",
    ):
        self.direction = direction
        self.tick_size = tick_size
        self.initial_capital = initial_capital
        self.date_from = date_from
        self.date_to = date_to
        self.post_exit_bars = post_exit_bars
        self.close_at_end = close_at_end
        self.entry_strategies = list(entry_strategies) if entry_strategies is not None else ["rsi_cross"]
        self.rsi_length = rsi_length
        self.rsi_oversold = rsi_oversold
        self.rsi_overbought = rsi_overbought
        self.ma_fast = ma_fast
        self.ma_slow = ma_slow
        self.filter_strategies = list(filter_strategies or [])
        self.filter_ma_length = filter_ma_length
        self.entry_stop = entry_stop
        self.entry_stop_length = entry_stop_length
        self.entry_stop_mult = entry_stop_mult
        self.entry_stop_pct = entry_stop_pct
        self.stop_kind = stop_kind
        self.stop_value = stop_value
        self.stop_length = stop_length
        self.kick_in = kick_in
        self.kick_in_value = kick_in_value
        self.exit_strategies = list(exit_strategies or [])
        self.take_profit_x = take_profit_x
        self.slippage_policy = slippage_policy
        self.slippage = slippage
        self.fee_policy = fee_policy
        self.fee = fee
        self.pyramid_enabled = pyramid_enabled
        self.pyramid_rule = pyramid_rule
        self.pyramid_value = pyramid_value
        self.pyramid_max_entries = pyramid_max_entries
        self.pyramid_position_multiple = pyramid_position_multiple
        self.pyramid_require_filter = pyramid_require_filter
        self.sizing_policy = sizing_policy
        self.risk_pct = risk_pct
        self.max_position_pct = max_position_pct
        self.position_pct = position_pct
        self.max_position_value = max_position_value
        self.event_atr_length = event_atr_length
        self.near_stop_atr_mult = near_stop_atr_mult
        self.reversal_events = reversal_events
        self.stop_jump_x_mult = stop_jump_x_mult
        self.swing_atr_mult = swing_atr_mult
        self.log_level = log_level
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.log_file = log_file

    def validate(self) -> None:
        """Raise ConfigError on the first invalid or conflicting option."""

        def choice(name: str, value: str, allowed: tuple) -> None:
            if value not in allowed:
                raise ConfigError(f"{name} must be one of {', '.join(allowed)} (got {value!r})")

        choice("direction", self.direction, DIRECTIONS)
        choice("stops.entry_stop", self.entry_stop, ENTRY_STOPS)
        choice("stops.in_trade", self.stop_kind, STOP_KINDS)
        choice("stops.kick_in", self.kick_in, KICK_INS)
        choice("costs.slippage_policy", self.slippage_policy, COST_POLICIES)
        choice("costs.fee_policy", self.fee_policy, COST_POLICIES)
        choice("pyramiding.rule", self.pyramid_rule, PYRAMID_RULES)
        choice("sizing.policy", self.sizing_policy, SIZING_POLICIES)
        if not self.entry_strategies:
            raise ConfigError("at least one entry strategy is required")
        for name in self.entry_strategies:
            choice("entry.strategies", name, ENTRY_STRATEGIES)
        for name in self.filter_strategies:
            choice("filter.strategies", name, FILTER_STRATEGIES)
        for name in self.exit_strategies:
            choice("exit.strategies", name, EXIT_STRATEGIES)
        if len(set(self.entry_strategies)) != len(self.entry_strategies):
            raise ConfigError("entry strategies listed twice")

        if self.initial_capital <= 0:
            raise ConfigError("initial_capital must be positive")
        if self.tick_size < 0:
            raise ConfigError("tick_size must be >= 0")
        if self.post_exit_bars < 0:
            raise ConfigError("post_exit_bars must be >= 0")
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ConfigError("date_from is after date_to")
        if "ma_cross" in self.entry_strategies and self.ma_fast >= self.ma_slow:
            raise ConfigError("entry.ma_fast must be below entry.ma_slow")
        if not 0 <= self.rsi_oversold < self.rsi_overbought <= 100:
            raise ConfigError("RSI levels must satisfy 0 <= oversold < overbought <= 100")
        for name in ("rsi_length", "filter_ma_length", "entry_stop_length", "stop_length", "event_atr_length"):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be >= 1")
        if self.entry_stop == "external" and "external" not in self.entry_strategies:
            raise ConfigError("the external entry stop needs the external entry strategy")
        if self.entry_stop_mult <= 0 or self.entry_stop_pct <= 0:
            raise ConfigError("entry stop multiplier and percent must be positive")
        if self.take_profit_x <= 0:
            raise ConfigError("exit.take_profit_x must be positive")

        for policy, amount, label in (
            (self.slippage_policy, self.slippage, "slippage"),
            (self.fee_policy, self.fee, "fee"),
        ):
            if amount < 0:
                raise ConfigError(f"{label} must be >= 0")
            if policy == "none" and amount > 0:
                raise ConfigError(f"{label} amount set but {label}_policy is 'none'")

        if self.pyramid_enabled:
            if self.pyramid_max_entries < 1:
                raise ConfigError("pyramiding.max_entries must be >= 1 when pyramiding is enabled")
            if self.pyramid_position_multiple <= 0:
                raise ConfigError("pyramiding.position_multiple must be positive")
            if self.pyramid_rule == "other_signal" and len(self.entry_strategies) < 2:
                raise ConfigError("pyramiding rule 'other_signal' needs at least two entry strategies")
            if self.pyramid_rule in ("x_multiple", "percent", "fixed") and self.pyramid_value <= 0:
                raise ConfigError("pyramiding.value must be positive for price-advance rules")

        if self.sizing_policy == "proportional_to_stop":
            if self.risk_pct <= 0:
                raise ConfigError("sizing.risk_pct must be positive")
            if self.max_position_pct <= 0:
                raise ConfigError("sizing.max_position_pct must be positive")
        elif self.position_pct <= 0:
            raise ConfigError("sizing.position_pct must be positive")
        if self.max_position_value < 0:
            raise ConfigError("sizing.max_position_value must be >= 0")
