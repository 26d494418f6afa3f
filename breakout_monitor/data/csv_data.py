"""
CSV data loader.

This module provides a class to load one day of intraday bars per
symbol from CSV files, so that historical analysis can run offline.
Files are laid out as ``<csv_dir>/<YYYY-MM-DD>/<SYMBOL>.csv`` and the
expected schema for each CSV is:

```
time,open,high,low,close,volume
```

Only the `time`, `open`, `high`, `low` and `close` columns are
required.  Additional columns are ignored.  The `time` column
should contain ISO‑formatted timestamps or UNIX epochs (seconds or
milliseconds).  Naive timestamps are interpreted in the configured
exchange timezone.  MT5 tab-separated exports with `<DATE>`/`<TIME>`
columns are also accepted.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List
import pandas as pd

from ..execution.models import Bar, to_price
from ..utils.timeutils import to_ms


logger = logging.getLogger(__name__)

_MT5_REQUIRED = ["<DATE>", "<TIME>", "<OPEN>", "<HIGH>", "<LOW>", "<CLOSE>"]


class CSVDataLoader:
    """Load per-date OHLC bars from CSV files.

    Parameters
    ----------
    csv_dir : str
        Root directory holding one sub-directory per date.
    timezone : str
        IANA timezone name used to localise naive timestamps.
    """

    def __init__(self, csv_dir: str, timezone: str) -> None:
        self.csv_dir = Path(csv_dir)
        self.timezone = timezone

    def _parse_time(self, col: pd.Series) -> pd.DatetimeIndex:
        if pd.api.types.is_numeric_dtype(col):
            return pd.DatetimeIndex(pd.to_datetime([to_ms(v) for v in col], unit="ms", utc=True))
        idx = pd.DatetimeIndex(pd.to_datetime(col, errors="raise"))
        if idx.tz is None:
            idx = idx.tz_localize(self.timezone)
        return idx

    def _read_frame(self, file_path: Path) -> pd.DataFrame:
        df = pd.read_csv(file_path)
        if "time" in df.columns:
            df.index = self._parse_time(df["time"])
            return df

        # MT5 export format: tab-separated with <DATE> and <TIME>
        df = pd.read_csv(file_path, sep="\t", engine="python")
        df.columns = [c.strip() for c in df.columns]
        missing = [c for c in _MT5_REQUIRED if c not in df.columns]
        if missing:
            raise ValueError(
                f"Unrecognized CSV format in {file_path}. Missing columns: {missing}. "
                f"Found columns: {list(df.columns)}"
            )
        dt = df["<DATE>"].astype(str).str.strip() + " " + df["<TIME>"].astype(str).str.strip()
        ts = pd.to_datetime(dt, format="%Y.%m.%d %H:%M:%S", errors="coerce")
        if ts.isna().any():
            bad = dt[ts.isna()].head(5).tolist()
            raise ValueError(f"Could not parse MT5 DATE/TIME in {file_path}. Examples: {bad}")
        out = pd.DataFrame(
            {
                "open": df["<OPEN>"],
                "high": df["<HIGH>"],
                "low": df["<LOW>"],
                "close": df["<CLOSE>"],
            }
        )
        out.index = pd.DatetimeIndex(ts).tz_localize(self.timezone)
        return out

    def load(self, symbol: str, date: str) -> List[Bar]:
        """Load the bars of `symbol` on `date` in file order.

        Raises
        ------
        FileNotFoundError
            If no CSV exists for the symbol on that date.
        """
        file_path = self.csv_dir / date / f"{symbol}.csv"
        if not file_path.exists():
            raise FileNotFoundError(f"CSV file not found for symbol {symbol}: {file_path}")
        df = self._read_frame(file_path)
        bars: List[Bar] = []
        for ts, row in df.iterrows():
            bars.append(
                Bar(
                    ts=int(ts.value // 1_000_000),
                    open=to_price(row.get("open")),
                    high=to_price(row.get("high")),
                    low=to_price(row.get("low")),
                    close=to_price(row.get("close")),
                )
            )
        return bars

    def fetch_by_date(self, date: str) -> Dict[str, List[Bar]]:
        """Load every symbol with a CSV file for `date`."""
        day_dir = self.csv_dir / date
        if not day_dir.is_dir():
            logger.warning("No CSV directory for %s under %s", date, self.csv_dir)
            return {}
        return {path.stem: self.load(path.stem, date) for path in sorted(day_dir.glob("*.csv"))}
