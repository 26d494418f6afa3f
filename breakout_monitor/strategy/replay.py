"""
Bar replay state machine.

Replays an ordered series of OHLC bars against a set of price levels
and returns the resulting trade state.  The same engine seeds live
sessions (levels taken from the issued signal) and runs historical
analysis (levels derived from the day's opening bar).

Within one bar at most one transition happens: a bar that triggers
entry is not also checked for an exit.  When a bar's range spans both
target and stoploss, the target is assumed to fill first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Union

from ..config.schema import Config
from ..execution.models import Bar, NO_DATA, Signal, TradeState, TradeStatus
from ..utils.timeutils import (
    is_at_or_after,
    local_timestamp,
    matches_minute,
    parse_time_str,
)
from .levels import PriceLevels, compute_levels


@dataclass(frozen=True)
class BreakoutResult:
    """Levels and final state of one symbol's replay from the open."""
    levels: PriceLevels
    state: TradeState

    @property
    def effective_price(self) -> float:
        """Price used for reporting P/L.

        The exit price once exited, the entry while still in the trade
        and the open if entry never triggered.
        """
        if self.state.exit_price is not None:
            return self.state.exit_price
        if self.state.status == TradeStatus.ENTERED:
            return self.levels.entry
        return self.levels.open


class ReplayEngine:
    """Evaluate the entry/target/stoploss rules over a bar series."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self.timezone = config.data.timezone
        self.open_times = [parse_time_str(t) for t in config.session.open_times]
        self.entry_cutoff = parse_time_str(config.session.entry_cutoff)

    def find_opening_bar(self, bars: Sequence[Bar]) -> Optional[int]:
        """Index of the bar whose open is the day's open.

        The first bar at one of the configured opening minutes wins; if
        there is none, the first bar carrying an open anywhere in the
        series is used.
        """
        for idx, bar in enumerate(bars):
            if not bar.has_open() or not bar.has_time():
                continue
            ts = local_timestamp(bar.ts, self.timezone)
            if any(matches_minute(ts, t, self.timezone) for t in self.open_times):
                return idx
        for idx, bar in enumerate(bars):
            if bar.has_open() and bar.has_time():
                return idx
        return None

    def replay(
        self,
        levels: Union[PriceLevels, Signal],
        bars: Sequence[Bar],
        start: int = 0,
    ) -> TradeState:
        """Walk `bars[start:]` in order and return the final trade state.

        Parameters
        ----------
        levels : PriceLevels or Signal
            Anything exposing `entry`, `target` and `stoploss`.
        bars : sequence of Bar
            Bars in ascending timestamp order.  The series is not sorted.
        start : int
            Index of the first bar to evaluate.

        Returns
        -------
        TradeState
            A terminal state as soon as target or stoploss is hit,
            otherwise the PENDING or ENTERED state reached at the end of
            the series.
        """
        state = TradeState()
        for bar in bars[start:]:
            if not bar.has_range() or not bar.has_time():
                continue
            ts = local_timestamp(bar.ts, self.timezone)

            if state.status == TradeStatus.PENDING:
                if is_at_or_after(ts, self.entry_cutoff, self.timezone) and bar.high >= levels.entry:
                    state = state.enter(ts.isoformat())
                continue

            if bar.high >= levels.target:
                return state.exit(TradeStatus.EXITED_TARGET, ts.isoformat(), levels.target)
            if bar.low <= levels.stoploss:
                return state.exit(TradeStatus.EXITED_SL, ts.isoformat(), levels.stoploss)
        return state

    def replay_from_open(
        self,
        bars: Sequence[Bar],
        entry_pct: Optional[float] = None,
        stoploss_pct: Optional[float] = None,
        rr: Optional[float] = None,
    ):
        """Derive levels from the opening bar and replay the bars after it.

        Parameters default to the `breakout` configuration section.

        Returns
        -------
        BreakoutResult or NO_DATA
            `NO_DATA` when the series is empty or carries no open at all.
        """
        if not bars:
            return NO_DATA
        open_idx = self.find_opening_bar(bars)
        if open_idx is None:
            return NO_DATA

        params = self.config.breakout
        levels = compute_levels(
            bars[open_idx].open,
            params.entry_pct if entry_pct is None else entry_pct,
            params.stoploss_pct if stoploss_pct is None else stoploss_pct,
            params.rr if rr is None else rr,
        )
        state = self.replay(levels, bars, start=open_idx + 1)
        return BreakoutResult(levels=levels, state=state)
