"""
Live session coordination.

This module provides the `SessionCoordinator`, which owns one trading
day's live session: it picks the trade date (falling back to the
previous trading day when today has no signals), seeds every symbol's
trade state once per day by replaying the day's bars, and then drives
the live tick engine from a cancellable background poll loop.  State
is persisted after every tick so that a restart on the same day adopts
it instead of replaying again.

Every tick is computed and merged into one mapping before it is
persisted and published; the coordinator lock only serialises ticks
with initialisation and reset.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from ..config.schema import Config
from ..execution.errors import NoSignalsFound, TransportFailure
from ..execution.models import Signal, TradeState
from ..reporting.metrics import live_row
from ..strategy.live import LiveTickEngine
from ..strategy.replay import ReplayEngine
from ..utils.persistence import FileCache, load_trade_states, save_trade_states
from ..utils.timeutils import format_date, now_local, prev_trading_date, to_timezone


logger = logging.getLogger(__name__)

Publisher = Callable[[List[Dict[str, Any]]], None]


class SessionStage:
    UNINITIALIZED = "UNINITIALIZED"
    SEEDING = "SEEDING"
    SEEDED = "SEEDED"


@dataclass
class SessionContext:
    """The live session of one trade date."""
    trade_date: str
    signals: Dict[str, Signal] = field(default_factory=dict)
    states: Dict[str, TradeState] = field(default_factory=dict)


class PollingHandle:
    """Handle on a running poll loop; `stop()` ends it and joins the thread."""

    def __init__(self, thread: threading.Thread, stop_event: threading.Event) -> None:
        self._thread = thread
        self._stop_event = stop_event

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and not self._stop_event.is_set()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)


class SessionCoordinator:
    """Run the live breakout session of the current trading day.

    Parameters
    ----------
    config : Config
        Root configuration.
    signal_source : object
        Anything with ``fetch_signals(date=None) -> SignalBatch``.
    candle_source : object
        Anything with ``fetch_full() -> {symbol: [Bar]}`` and
        ``fetch_latest() -> {symbol: price}``.
    cache : FileCache
        Store for per-date trade state.
    publish : callable, optional
        Receives the rows of every live tick.
    clock : callable, optional
        Returns the current local time; defaults to the wall clock in
        the configured timezone.
    """

    def __init__(
        self,
        config: Config,
        signal_source,
        candle_source,
        cache: FileCache,
        publish: Optional[Publisher] = None,
        clock: Optional[Callable[[], pd.Timestamp]] = None,
    ) -> None:
        self.config = config
        self.timezone = config.data.timezone
        self.signal_source = signal_source
        self.candle_source = candle_source
        self.cache = cache
        self.publish = publish
        self.clock = clock or (lambda: now_local(self.timezone))
        self.replay_engine = ReplayEngine(config)
        self.live_engine = LiveTickEngine(config)
        self.stage = SessionStage.UNINITIALIZED
        self.context: Optional[SessionContext] = None
        self._lock = threading.RLock()
        self._handle: Optional[PollingHandle] = None

    def _now(self) -> pd.Timestamp:
        return to_timezone(self.clock(), self.timezone)

    def _select_signals(self):
        today = self._now().date()
        batch = self.signal_source.fetch_signals()
        if batch.found:
            return batch.trade_date or format_date(today), batch

        fallback = format_date(prev_trading_date(today))
        logger.info("No BUY signals for today. Trying %s...", fallback)
        batch = self.signal_source.fetch_signals(fallback)
        if not batch.found:
            raise NoSignalsFound([format_date(today), fallback])
        return batch.trade_date or fallback, batch

    def init_live_once(self) -> SessionContext:
        """Fix the trade date and seed every signal's state, once per session.

        Cached state for the trade date is adopted as-is; otherwise the
        day's full bars are replayed per signal and the result persisted.

        Raises
        ------
        NoSignalsFound
            If neither today nor the previous trading day has signals.
        TransportFailure
            If a data source cannot be reached.
        """
        with self._lock:
            if self.stage == SessionStage.SEEDED and self.context is not None:
                return self.context

            self.stage = SessionStage.SEEDING
            try:
                trade_date, batch = self._select_signals()
                signals = {s.symbol: s for s in batch.data}

                states = load_trade_states(self.cache, trade_date)
                if states is not None:
                    logger.info("Adopting cached state for %s (%d symbols)", trade_date, len(states))
                else:
                    all_bars = self.candle_source.fetch_full()
                    states = {
                        symbol: self.replay_engine.replay(signal, all_bars.get(symbol) or [])
                        for symbol, signal in signals.items()
                    }
                    save_trade_states(self.cache, trade_date, states)
                    logger.info("Seeded %d symbols for %s from replay", len(states), trade_date)
            except Exception:
                self.stage = SessionStage.UNINITIALIZED
                raise

            self.context = SessionContext(trade_date=trade_date, signals=signals, states=dict(states))
            self.stage = SessionStage.SEEDED
            logger.info("Live mode using signals from %s", trade_date)
            return self.context

    def live_tick(self, now: Optional[pd.Timestamp] = None) -> List[Dict[str, Any]]:
        """Apply one poll of latest prices to every tracked symbol.

        Symbols without a price in this poll keep their state and are
        left out of the returned rows.

        Returns
        -------
        list of dict
            The published rows, empty before the session is seeded.
        """
        with self._lock:
            if self.stage != SessionStage.SEEDED or self.context is None:
                return []
            ctx = self.context
            prices = self.candle_source.fetch_latest()
            now = to_timezone(now, self.timezone) if now is not None else self._now()
            updated_at = now.isoformat()

            next_states = dict(ctx.states)
            rows: List[Dict[str, Any]] = []
            for symbol, signal in ctx.signals.items():
                ltp = prices.get(symbol)
                if ltp is None:
                    continue
                state = self.live_engine.tick(signal, ltp, next_states.get(symbol), now)
                next_states[symbol] = state
                rows.append(live_row(signal, state, ltp, self.config.live.margin, updated_at))

            ctx.states = next_states
            save_trade_states(self.cache, ctx.trade_date, next_states)

        missing = len(ctx.signals) - len(rows)
        if missing:
            logger.debug("%d symbols had no price this tick", missing)
        if self.publish is not None:
            self.publish(rows)
        return rows

    def _poll_loop(self, stop_event: threading.Event) -> None:
        interval = self.config.live.poll_interval
        while not stop_event.wait(interval):
            try:
                self.live_tick()
            except TransportFailure as exc:
                logger.warning("Live tick skipped, state kept at last known value: %s", exc)
            except Exception:
                logger.exception("Live tick failed")

    def start(self) -> PollingHandle:
        """Initialise the session and start polling in a background thread.

        Raises whatever `init_live_once` raises; polling is not started
        in that case.
        """
        self.stop()
        self.init_live_once()
        stop_event = threading.Event()
        thread = threading.Thread(
            target=self._poll_loop,
            args=(stop_event,),
            name="breakout-live-poll",
            daemon=True,
        )
        self._handle = PollingHandle(thread, stop_event)
        thread.start()
        logger.info("Polling every %.1fs", self.config.live.poll_interval)
        return self._handle

    def stop(self) -> None:
        """Stop the poll loop if it is running."""
        if self._handle is not None:
            self._handle.stop()
            self._handle = None

    def reset(self, restart: bool = True) -> Optional[PollingHandle]:
        """Discard all persisted state and start over.

        Clears the session and historical caches, returns to
        UNINITIALIZED and, if `restart` is true, starts a new session.
        """
        self.stop()
        with self._lock:
            self.cache.clear()
            self.context = None
            self.stage = SessionStage.UNINITIALIZED
        logger.info("All local data cleared. Reloading live mode...")
        if restart:
            return self.start()
        return None
