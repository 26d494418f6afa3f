"""
Live tick state machine.

Advances a trade state from a single last-traded price.  Unlike bar
replay there is no high/low range: each poll is one instant, so by
default a price that clears both entry and target moves a pending trade
straight to an exit within a single tick.  Setting
`live.cascade_same_tick` to false applies the replay discipline instead
and allows one transition per tick.

Intrabar touches of target or stoploss that reverse before the next
poll are not seen here.
"""

from __future__ import annotations

import logging
from typing import Optional

import pandas as pd

from ..config.schema import Config
from ..execution.models import Signal, TradeState, TradeStatus
from ..utils.timeutils import is_at_or_after, now_local, parse_time_str, to_timezone


logger = logging.getLogger(__name__)


class LiveTickEngine:
    """Apply one polled price to a symbol's trade state."""

    def __init__(self, config: Config) -> None:
        self.timezone = config.data.timezone
        self.entry_cutoff = parse_time_str(config.session.entry_cutoff)
        self.cascade = config.live.cascade_same_tick

    def tick(
        self,
        signal: Signal,
        last_price: Optional[float],
        prev_state: Optional[TradeState],
        now: Optional[pd.Timestamp] = None,
    ) -> TradeState:
        """Return the state that follows `prev_state` at price `last_price`.

        A missing price returns `prev_state` untouched.  A missing
        previous state is treated as a fresh pending trade.
        """
        state = prev_state if prev_state is not None else TradeState()
        if last_price is None or state.is_terminal:
            return state

        now = to_timezone(now if now is not None else now_local(self.timezone), self.timezone)
        when = now.isoformat()

        if (
            state.status == TradeStatus.PENDING
            and is_at_or_after(now, self.entry_cutoff, self.timezone)
            and last_price >= signal.entry
        ):
            state = state.enter(when)
            logger.info("%s entered at %s (ltp=%s)", signal.symbol, signal.entry, last_price)
            if not self.cascade:
                return state

        if state.status == TradeStatus.ENTERED and last_price >= signal.target:
            state = state.exit(TradeStatus.EXITED_TARGET, when, signal.target)
            logger.info("%s hit target %s (ltp=%s)", signal.symbol, signal.target, last_price)
        elif state.status == TradeStatus.ENTERED and last_price <= signal.stoploss:
            state = state.exit(TradeStatus.EXITED_SL, when, signal.stoploss)
            logger.info("%s hit stoploss %s (ltp=%s)", signal.symbol, signal.stoploss, last_price)

        return state
