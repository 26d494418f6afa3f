import os
import sys
import tempfile
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from breakout_monitor.config.schema import Config
from breakout_monitor.execution.errors import NoDataForDate
from breakout_monitor.execution.historical import HistoricalBatchAnalyzer
from breakout_monitor.execution.models import Bar, TradeStatus
from breakout_monitor.utils.persistence import FileCache, load_historical

import unittest


TZ = "Asia/Kolkata"
DATE = "2024-01-02"


def bar(hhmm: str, o, h, l, c=None) -> Bar:
    return Bar(int(pd.Timestamp(f"{DATE} {hhmm}", tz=TZ).timestamp()), o, h, l, c)


def day_candles():
    return {
        # Entered at 09:22, target 107 hit at 09:23
        "WIN": [bar("09:15", 100, 100.5, 99.5), bar("09:22", 103, 104, 103), bar("09:23", 106, 108, 106)],
        # Entered at 09:21, stoploss 99 hit at 09:40
        "LOSS": [bar("09:15", 100, 100.5, 99.5), bar("09:21", 102, 103.5, 102), bar("09:40", 100, 100, 98)],
        # Entered, never exited
        "OPEN": [bar("09:15", 100, 100.5, 99.5), bar("09:21", 102, 104, 102)],
        # Never reached entry
        "FLAT": [bar("09:15", 100, 100.5, 99.5), bar("09:21", 100, 101, 99.5)],
        "EMPTY": [],
        "NOOPEN": [bar("09:15", None, 101, 99)],
    }


class FakeBarSource:
    def __init__(self, candles) -> None:
        self.candles = candles
        self.calls = []

    def fetch_by_date(self, date: str):
        self.calls.append(date)
        return self.candles


class TestHistoricalAnalyzer(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.cache = FileCache(self._tmp.name)
        self.config = Config()
        self.source = FakeBarSource(day_candles())
        self.analyzer = HistoricalBatchAnalyzer(self.config, self.source, self.cache)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _rows(self, snapshot):
        return {row['symbol']: row for row in snapshot.results}

    def test_symbols_without_data_are_dropped(self) -> None:
        snapshot = self.analyzer.analyze(DATE, day_candles())
        rows = self._rows(snapshot)
        self.assertEqual(set(rows), {"WIN", "LOSS", "OPEN", "FLAT"})
        self.assertNotIn("NO_DATA", [r['status'] for r in snapshot.results])

    def test_effective_price_per_status(self) -> None:
        rows = self._rows(self.analyzer.analyze(DATE, day_candles()))
        self.assertEqual(rows["WIN"]['status'], TradeStatus.EXITED_TARGET)
        self.assertEqual(rows["WIN"]['ltp'], 107.0)
        self.assertEqual(rows["LOSS"]['status'], TradeStatus.EXITED_SL)
        self.assertEqual(rows["LOSS"]['ltp'], 99.0)
        self.assertEqual(rows["OPEN"]['status'], TradeStatus.ENTERED)
        self.assertEqual(rows["OPEN"]['ltp'], 103.0)
        self.assertEqual(rows["FLAT"]['status'], TradeStatus.PENDING)
        self.assertEqual(rows["FLAT"]['ltp'], 100)

    def test_pnl_fields(self) -> None:
        rows = self._rows(self.analyzer.analyze(DATE, day_candles()))
        self.assertEqual(rows["WIN"]['pnl_per_share'], 4.0)
        self.assertEqual(rows["WIN"]['pnl_pct'], 3.88)
        self.assertEqual(rows["LOSS"]['pnl_per_share'], -4.0)
        self.assertEqual(rows["OPEN"]['pnl_pct'], 0.0)
        self.assertEqual(rows["FLAT"]['pnl_per_share'], -3.0)
        self.assertEqual(rows["WIN"]['updated_at'], DATE)

    def test_out_of_range_timestamps_drop_only_that_symbol(self) -> None:
        candles = day_candles()
        candles["FAR"] = [Bar(10 ** 20, 100, 101, 99), Bar(10 ** 20 + 60_000, 102, 104, 102)]
        candles["MIXED"] = [bar("09:15", 100, 100.5, 99.5), Bar(10 ** 20, 103, 120, 103)]
        rows = self._rows(self.analyzer.analyze(DATE, candles))
        self.assertNotIn("FAR", rows)
        self.assertEqual(rows["MIXED"]['status'], TradeStatus.PENDING)
        self.assertEqual(rows["WIN"]['status'], TradeStatus.EXITED_TARGET)

    def test_all_empty_raises_no_data(self) -> None:
        with self.assertRaises(NoDataForDate):
            self.analyzer.analyze(DATE, {"A": [], "B": []})
        with self.assertRaises(NoDataForDate):
            self.analyzer.analyze(DATE, {})

    def test_snapshot_keeps_params_and_raw_bars(self) -> None:
        snapshot = self.analyzer.analyze(DATE, day_candles(), {'rr': 2})
        self.assertEqual(snapshot.params, {'entry_pct': 0.03, 'stoploss_pct': 0.01, 'rr': 2})
        self.assertEqual(len(snapshot.candles["WIN"]), 3)
        self.assertEqual(snapshot.candles["EMPTY"], [])
        self.assertEqual(snapshot.candles["WIN"][0][1], 100)
        self.assertEqual(self._rows(snapshot)["WIN"]['target'], 111.0)

    def test_run_caches_snapshot(self) -> None:
        first = self.analyzer.run(DATE)
        second = self.analyzer.run(DATE)
        self.assertEqual(self.source.calls, [DATE])
        self.assertEqual(first.results, second.results)
        self.assertIsNotNone(load_historical(self.cache, DATE))

    def test_run_recomputes_with_other_params(self) -> None:
        self.analyzer.run(DATE)
        snapshot = self.analyzer.run(DATE, params={'entry_pct': 0.05})
        self.assertEqual(self.source.calls, [DATE, DATE])
        self.assertEqual(self._rows(snapshot)["WIN"]['entry'], 105.0)

    def test_oversized_snapshot_is_not_cached(self) -> None:
        self.config.cache.snapshot_max_bytes = 100
        with self.assertLogs('breakout_monitor.execution.historical', level='WARNING'):
            snapshot = self.analyzer.run(DATE)
        self.assertEqual(len(snapshot.results), 4)
        self.assertIsNone(load_historical(self.cache, DATE))

    def test_no_data_is_not_cached(self) -> None:
        analyzer = HistoricalBatchAnalyzer(self.config, FakeBarSource({"A": []}), self.cache)
        with self.assertRaises(NoDataForDate):
            analyzer.run(DATE)
        self.assertEqual(self.cache.keys(), [])


if __name__ == '__main__':
    unittest.main()
