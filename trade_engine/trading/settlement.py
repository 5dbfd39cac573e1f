"""
Order settlement at the fill bar's open: entry fills with sizing, and exit
settlement rolling the trade into the statistics buckets, equity and drawdowns.
"""

from __future__ import annotations
import logging
from typing import Optional, Tuple

from trade_engine.core.types import Bar, EngineEvent, EventKind
from trade_engine.risk.costs import CostModel
from trade_engine.risk.manager import PositionSizer
from trade_engine.trading.state import ClosedTrade, EngineState, Entry, OrderKind, PendingOrder, Trade

logger = logging.getLogger("trade_engine.trading.settlement")


def open_entry(
    state: EngineState,
    order: PendingOrder,
    bar: Bar,
    sizer: PositionSizer,
    costs: CostModel,
    position_multiple: float = 1.0,
) -> Optional[EngineEvent]:
    """
    Fill a pending entry or pyramid at bar.open. An entry whose stop is at or
    through the fill (X <= 0) is skipped and leaves the state untouched.
    """
    pyramid = order.kind is OrderKind.PYRAMID
    trade = state.trade
    if state.ruin:
        logger.info("Entry at bar %d dropped: account in ruin", bar.index)
        return None
    if pyramid and (trade is None or trade.side is not order.side):
        return None
    if not pyramid and trade is not None:
        return None

    side = order.side
    fill = costs.entry_fill(bar, side)
    result = sizer.size(fill.price, order.stop, side.sign, state.equity)
    if not result.allowed:
        state.rejected_entries += 1
        logger.warning(
            "Entry %s at bar %d skipped: %s (fill %.5f, stop %.5f)",
            side.value, bar.index, result.reason, fill.price, order.stop,
        )
        return None

    size = result.size * position_multiple if pyramid else result.size
    entry = Entry(
        bar_index=bar.index,
        time=bar.time,
        side=side,
        fill=fill.price,
        stop=order.stop,
        risk_unit=result.risk_unit,
        size=size,
        fee_in=costs.fee_for_size(size),
        slippage_in=fill.slippage,
        source=order.source,
        pyramid=pyramid,
    )
    if pyramid:
        trade.add_pyramid(entry)
    else:
        state.trade = Trade(
            side=side,
            first=entry,
            in_trade_stop=order.stop,
            best_price=fill.price,
            worst_price=fill.price,
            best_close=fill.price,
        )
    logger.info(
        "%s %s at bar %d: fill %.5f stop %.5f X %.5f size %.4f",
        "Pyramid" if pyramid else "Entry", side.value, bar.index, fill.price, order.stop, result.risk_unit, size,
    )
    return EngineEvent(
        kind=EventKind.entry(side, pyramid),
        bar_index=bar.index,
        time=bar.time,
        price=fill.price,
        details={"stop": order.stop, "risk_unit": result.risk_unit, "size": size, "source": order.source},
    )


def _settle_entry(
    entry: Entry, exit_price: float, slippage_out: float, costs: CostModel
) -> Tuple[float, float, float, float, float, float]:
    """(net pnl, plx gross, plx net, pnl %, fees, slippage) for one entry; money in equity units."""
    gross = entry.gross_pnl(exit_price)
    fees = entry.fee_in + costs.fee_for_size(entry.size)
    net = gross - fees
    plx_gross = (exit_price - entry.fill) * entry.side.sign / entry.risk_unit
    # fees change the X-denominated return, not just the currency one
    plx = net / entry.stop_equity
    pnl_pct = net / entry.size * 100.0
    slippage = entry.size * (entry.slippage_in + slippage_out) / entry.fill
    return net, plx_gross, plx, pnl_pct, fees, slippage


def settle_exit(state: EngineState, order: PendingOrder, bar: Bar, costs: CostModel) -> Optional[ClosedTrade]:
    """Close the open trade at bar.open and fold it into buckets, equity and drawdowns."""
    trade = state.trade
    if trade is None or trade.side is not order.side:
        return None
    capital = costs.initial_capital
    fill = costs.exit_fill(bar, trade.side)

    first_net = 0.0
    pyr_net = pyr_risk = pyr_size = pyr_weight = 0.0
    closed: Optional[ClosedTrade] = None
    for i, entry in enumerate(trade.entries):
        adverse_x = trade.adverse_x(i)
        net, plx_gross, plx, pnl_pct, fees, slippage = _settle_entry(entry, fill.price, fill.slippage, costs)
        length = bar.index - entry.bar_index
        figures = dict(
            plx=plx,
            pnl_pct=pnl_pct,
            pnl=net * capital,
            fees=fees * capital,
            slippage=slippage * capital,
            volume=entry.size * capital,
            length=length,
            adverse_x=adverse_x,
        )
        state.combined.add(**figures)
        if entry.pyramid:
            state.pyramided.add(**figures)
            pyr_net += net
            pyr_risk += entry.stop_equity
            pyr_size += entry.size
            pyr_weight += entry.size / entry.fill
            continue
        state.first.add(**figures)
        first_net = net
        closed = ClosedTrade(
            side=trade.side,
            entry_bar=entry.bar_index,
            exit_bar=bar.index,
            entry_time=entry.time,
            exit_time=bar.time,
            entry_fill=entry.fill,
            exit_fill=fill.price,
            entry_stop=entry.stop,
            risk_unit=entry.risk_unit,
            size=entry.size,
            plx_gross=plx_gross,
            plx=plx,
            pnl=net * capital,
            pnl_pct=pnl_pct,
            fees=fees * capital,
            slippage=slippage * capital,
            length=length,
            exit_reason=order.reason,
            max_adverse_x=adverse_x,
        )
    if trade.pyramids:
        closed.pyramid_count = len(trade.pyramids)
        closed.pyramid_size = pyr_size
        closed.pyramid_avg_entry = pyr_size / pyr_weight
        closed.pyramid_pnl = pyr_net * capital
        closed.pyramid_plx = pyr_net / pyr_risk if pyr_risk > 0 else 0.0

    state.apply_pnl(first_net + pyr_net)
    state.close_to_close.update(state.equity)
    state.trade = None
    state.closed_trades.append(closed)
    logger.info(
        "Exit %s at bar %d (%s): fill %.5f PLX %.2f pnl %.2f equity %.4f",
        trade.side.value, bar.index, order.reason, fill.price, closed.plx, closed.total_pnl, state.equity,
    )
    if state.ruin:
        logger.warning("Equity %.4f <= 0 at bar %d: account in ruin, entries disabled", state.equity, bar.index)
    return closed


def exit_event(closed: ClosedTrade, bar: Bar) -> EngineEvent:
    return EngineEvent(
        kind=EventKind.exit(closed.side),
        bar_index=bar.index,
        time=bar.time,
        price=closed.exit_fill,
        details={"reason": closed.exit_reason, "plx": closed.plx, "pnl": closed.total_pnl},
    )
