import os
import sys
import tempfile

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from breakout_monitor.app import main, run_cache_admin, run_historical
from breakout_monitor.config.schema import Config
from breakout_monitor.execution.models import TradeState
from breakout_monitor.utils.persistence import (
    FileCache,
    list_historical_dates,
    load_historical,
    load_trade_states,
    save_historical,
    save_trade_states,
)

import unittest


DATE = "2024-01-02"


class TestHistoricalMode(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        root = self._tmp.name
        self.config = Config()
        self.config.data.csv_dir = os.path.join(root, "data")
        self.config.cache.dir = os.path.join(root, "cache")
        self.config.results_dir = os.path.join(root, "results")
        day_dir = os.path.join(self.config.data.csv_dir, DATE)
        os.makedirs(day_dir)
        with open(os.path.join(day_dir, "AAA.csv"), "w", encoding="utf-8") as fh:
            fh.write("time,open,high,low,close\n")
            fh.write(f"{DATE} 09:15:00,100,100.5,99.5,100\n")
            fh.write(f"{DATE} 09:21:00,102,104,102,103.5\n")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_csv_run_writes_report_and_cache(self) -> None:
        self.assertEqual(run_historical(self.config, DATE, source='csv', refresh=False), 0)
        day_dir = os.path.join(self.config.results_dir, DATE)
        for name in ('results.csv', 'summary.json', 'pnl.png'):
            self.assertTrue(os.path.exists(os.path.join(day_dir, name)))
        cached = load_historical(FileCache(self.config.cache.dir), DATE)
        self.assertEqual(cached['results'][0]['status'], 'ENTERED')

    def test_date_without_data_fails(self) -> None:
        self.assertEqual(run_historical(self.config, "2024-01-03", source='csv', refresh=True), 1)


class TestCacheAdmin(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.config = Config()
        self.config.cache.dir = self._tmp.name
        self.cache = FileCache(self._tmp.name)
        for date in ("2024-01-02", "2024-01-03"):
            save_historical(self.cache, date, {'results': [], 'candles': {}}, max_bytes=4_500_000)
        save_trade_states(self.cache, "2024-01-03", {"AAA": TradeState()})

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_list_cached_dates(self) -> None:
        with self.assertLogs('breakout_monitor.app', level='INFO') as logs:
            self.assertEqual(run_cache_admin(self.config, None, list_dates=True, clear=False), 0)
        self.assertIn("2024-01-02, 2024-01-03", "\n".join(logs.output))

    def test_clear_one_date(self) -> None:
        run_cache_admin(self.config, "2024-01-02", list_dates=False, clear=True)
        self.assertEqual(list_historical_dates(self.cache), ["2024-01-03"])

    def test_clear_all_keeps_live_state(self) -> None:
        run_cache_admin(self.config, None, list_dates=False, clear=True)
        self.assertEqual(list_historical_dates(self.cache), [])
        self.assertIsNotNone(load_trade_states(self.cache, "2024-01-03"))

    def test_cli_flag_skips_date_requirement(self) -> None:
        config_path = os.path.join(self._tmp.name, "config.yaml")
        with open(config_path, "w", encoding="utf-8") as fh:
            fh.write(f"cache:\n  dir: '{self._tmp.name}'\n")
        self.assertEqual(main(['historical', '--config', config_path, '--clear-cached']), 0)
        self.assertEqual(list_historical_dates(self.cache), [])


class TestArguments(unittest.TestCase):
    def test_historical_requires_date(self) -> None:
        with self.assertRaises(SystemExit) as ctx:
            main(['historical', '--config', os.path.join(CURRENT_DIR, 'missing.yaml')])
        self.assertEqual(ctx.exception.code, 2)

    def test_unknown_mode(self) -> None:
        with self.assertRaises(SystemExit):
            main(['backtest'])


if __name__ == '__main__':
    unittest.main()
