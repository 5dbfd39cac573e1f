"""Utils: tick rounding."""

from trade_engine.utils.ticks import round_price, nudge_off_protocol_codes

__all__ = ["round_price", "nudge_off_protocol_codes"]
