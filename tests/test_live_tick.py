import os
import sys
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from breakout_monitor.config.schema import Config
from breakout_monitor.execution.models import Signal, TradeState, TradeStatus
from breakout_monitor.strategy.live import LiveTickEngine

import unittest


TZ = "Asia/Kolkata"
SIGNAL = Signal(symbol="TEST", entry=103.0, target=107.0, stoploss=99.0, qty=10, trade_date="2024-01-02")


def at(hhmm: str) -> pd.Timestamp:
    return pd.Timestamp(f"2024-01-02 {hhmm}", tz=TZ)


class TestLiveTick(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = LiveTickEngine(Config())

    def test_entry_and_target_on_one_tick(self) -> None:
        state = self.engine.tick(SIGNAL, 110.0, TradeState(), now=at("09:30"))
        self.assertEqual(state.status, TradeStatus.EXITED_TARGET)
        self.assertEqual(state.entry_time, at("09:30").isoformat())
        self.assertEqual(state.exit_time, at("09:30").isoformat())
        self.assertEqual(state.exit_price, 107.0)

    def test_single_transition_per_tick_when_cascade_disabled(self) -> None:
        cfg = Config()
        cfg.live.cascade_same_tick = False
        engine = LiveTickEngine(cfg)
        state = engine.tick(SIGNAL, 110.0, TradeState(), now=at("09:30"))
        self.assertEqual(state.status, TradeStatus.ENTERED)
        state = engine.tick(SIGNAL, 110.0, state, now=at("09:31"))
        self.assertEqual(state.status, TradeStatus.EXITED_TARGET)
        self.assertEqual(state.entry_time, at("09:30").isoformat())
        self.assertEqual(state.exit_time, at("09:31").isoformat())

    def test_no_entry_before_cutoff(self) -> None:
        state = self.engine.tick(SIGNAL, 110.0, TradeState(), now=at("09:19"))
        self.assertEqual(state.status, TradeStatus.PENDING)
        self.assertIsNone(state.entry_time)

    def test_entry_only_below_target(self) -> None:
        state = self.engine.tick(SIGNAL, 104.0, TradeState(), now=at("10:00"))
        self.assertEqual(state.status, TradeStatus.ENTERED)
        self.assertIsNone(state.exit_price)

    def test_stoploss_after_entry(self) -> None:
        entered = TradeState().enter(at("09:25").isoformat())
        state = self.engine.tick(SIGNAL, 98.0, entered, now=at("11:00"))
        self.assertEqual(state.status, TradeStatus.EXITED_SL)
        self.assertEqual(state.exit_price, 99.0)
        self.assertEqual(state.entry_time, at("09:25").isoformat())

    def test_missing_price_leaves_state_untouched(self) -> None:
        prev = TradeState().enter(at("09:25").isoformat())
        self.assertIs(self.engine.tick(SIGNAL, None, prev, now=at("11:00")), prev)

    def test_terminal_state_never_changes(self) -> None:
        done = TradeState().enter(at("09:25").isoformat()).exit(
            TradeStatus.EXITED_SL, at("09:40").isoformat(), 99.0
        )
        for price in (50.0, 103.0, 200.0):
            self.assertEqual(self.engine.tick(SIGNAL, price, done, now=at("12:00")), done)

    def test_previous_state_is_not_modified(self) -> None:
        prev = TradeState()
        self.engine.tick(SIGNAL, 110.0, prev, now=at("09:30"))
        self.assertEqual(prev.status, TradeStatus.PENDING)
        self.assertIsNone(prev.entry_time)

    def test_missing_previous_state_is_pending(self) -> None:
        state = self.engine.tick(SIGNAL, 100.0, None, now=at("09:30"))
        self.assertEqual(state, TradeState())

    def test_status_only_moves_forward(self) -> None:
        state = TradeState()
        rank = TradeStatus.rank(state.status)
        for hhmm, price in (("09:16", 120), ("09:21", 100), ("09:22", 103.5), ("09:23", 101), ("09:24", 98), ("09:25", 120)):
            state = self.engine.tick(SIGNAL, float(price), state, now=at(hhmm))
            self.assertGreaterEqual(TradeStatus.rank(state.status), rank)
            rank = TradeStatus.rank(state.status)
        self.assertEqual(state.status, TradeStatus.EXITED_SL)
        self.assertEqual(state.entry_time, at("09:22").isoformat())


if __name__ == '__main__':
    unittest.main()
