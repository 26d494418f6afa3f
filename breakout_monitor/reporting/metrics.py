"""
Row derivation and summary statistics.

This module turns trade states into the flat rows shown to the
operator, for both the live view and the historical report, and
computes summary statistics over a set of rows.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence

from ..execution.models import Signal, TradeState, TradeStatus
from ..strategy.levels import round2
from ..strategy.replay import BreakoutResult


def pnl_per_share(effective: float, entry: float) -> float:
    return round2(effective - entry)


def pnl_pct(effective: float, entry: float) -> float:
    if not entry:
        return 0.0
    return round2(pnl_per_share(effective, entry) / entry * 100)


def live_row(
    signal: Signal,
    state: TradeState,
    ltp: float,
    margin: float,
    updated_at: str,
) -> Dict[str, Any]:
    """Build the published row of one symbol for a live tick.

    The effective price is the exit price once exited, otherwise the
    last traded price.
    """
    effective = state.exit_price if state.exit_price is not None else ltp
    per_share = pnl_per_share(effective, signal.entry)
    capital_used = round2(signal.entry * signal.qty)
    return {
        'symbol': signal.symbol,
        'entry': signal.entry,
        'target': signal.target,
        'stoploss': signal.stoploss,
        'ltp': ltp,
        'status': state.status,
        'entry_time': state.entry_time,
        'exit_price': state.exit_price,
        'exit_time': state.exit_time,
        'qty': signal.qty,
        'capital_used': capital_used,
        'margin_required': round2(capital_used / margin) if margin else capital_used,
        'pnl_pct': pnl_pct(effective, signal.entry),
        'pnl_per_share': per_share,
        'pnl_amount': round2(per_share * signal.qty),
        'updated_at': updated_at,
    }


def historical_row(symbol: str, result: BreakoutResult, date: str) -> Dict[str, Any]:
    """Build the report row of one symbol replayed from the open."""
    levels = result.levels
    state = result.state
    effective = result.effective_price
    return {
        'symbol': symbol,
        'open': levels.open,
        'entry': levels.entry,
        'stoploss': levels.stoploss,
        'target': levels.target,
        'ltp': effective,
        'status': state.status,
        'entry_time': state.entry_time,
        'exit_price': state.exit_price,
        'exit_time': state.exit_time,
        'pnl_per_share': pnl_per_share(effective, levels.entry),
        'pnl_pct': pnl_pct(effective, levels.entry),
        'updated_at': date,
    }


def sort_rows(rows: Sequence[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    """Order rows by lifecycle stage (exited first), then by symbol."""
    return sorted(rows, key=lambda r: (-TradeStatus.rank(r['status']), r['status'], r['symbol']))


def compute_summary(rows: Sequence[Mapping[str, Any]]) -> dict:
    """Compute summary statistics over report rows.

    Parameters
    ----------
    rows : sequence of dict
        Rows produced by `historical_row` or `live_row`.

    Returns
    -------
    dict
        Counts per status, win rate over exited trades and the average
        P/L percentage of trades that were entered.
    """
    counts = {status: 0 for status in TradeStatus.ALL}
    for row in rows:
        counts[row['status']] = counts.get(row['status'], 0) + 1

    wins = counts[TradeStatus.EXITED_TARGET]
    losses = counts[TradeStatus.EXITED_SL]
    exited = wins + losses
    traded = [row for row in rows if row['status'] != TradeStatus.PENDING]
    avg_pnl_pct = (
        round2(sum(row['pnl_pct'] for row in traded) / len(traded)) if traded else 0.0
    )

    return {
        'num_symbols': len(rows),
        'num_traded': len(traded),
        'status_counts': counts,
        'win_rate': wins / exited if exited else 0.0,
        'avg_pnl_pct': avg_pnl_pct,
        'best_symbol': max(traded, key=lambda r: r['pnl_pct'])['symbol'] if traded else None,
        'worst_symbol': min(traded, key=lambda r: r['pnl_pct'])['symbol'] if traded else None,
    }
