"""
Timezone and trading session utilities.

This module centralises all timezone handling and session calculations.
The engines use these helpers to normalise bar timestamps, to read the
local time-of-day of a bar or tick, and to pick the trade date used
when today's signals are missing.
"""

from __future__ import annotations

import math
from datetime import date, time, timedelta
from typing import Optional, Union
import pandas as pd


SECONDS_THRESHOLD = 10 ** 12

# Epoch-ms bounds that still convert to a local `pandas.Timestamp`, with a
# day of slack for timezone offsets
_DAY_MS = 86_400_000
MIN_MS = pd.Timestamp.min.value // 1_000_000 + _DAY_MS
MAX_MS = pd.Timestamp.max.value // 1_000_000 - _DAY_MS


def parse_time_str(ts: str) -> time:
    """Parse a `HH:MM` string into a `datetime.time` object.

    Parameters
    ----------
    ts : str
        A string in 24‑hour format such as ``"09:20"``.

    Returns
    -------
    datetime.time
        The corresponding time.
    """
    hour, minute = map(int, ts.split(":"))
    return time(hour=hour, minute=minute)


def to_ms(ts: Union[int, float]) -> int:
    """Normalise an epoch timestamp to milliseconds.

    Values below 10^12 are taken to be seconds.

    Raises
    ------
    ValueError
        If `ts` is not a finite number.
    """
    value = float(ts)
    if not math.isfinite(value):
        raise ValueError(f"timestamp is not finite: {ts!r}")
    if value < SECONDS_THRESHOLD:
        value *= 1000
    return int(value)


def in_range_ms(ts_ms: int) -> bool:
    """Return `True` if `ts_ms` can be represented as a `pandas.Timestamp`."""
    return MIN_MS <= ts_ms <= MAX_MS


def to_timezone(ts: pd.Timestamp, tz_name: str) -> pd.Timestamp:
    """Convert a `pandas.Timestamp` to the specified timezone.

    If the timestamp is naive, it is assumed to be in UTC before
    conversion.  If it already has a timezone, it will be converted.
    """
    if not isinstance(ts, pd.Timestamp):
        ts = pd.Timestamp(ts)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.tz_convert(tz_name)


def local_timestamp(ts_ms: int, tz_name: str) -> pd.Timestamp:
    """Return the epoch-millisecond timestamp as a local `pandas.Timestamp`."""
    return pd.Timestamp(ts_ms, unit="ms", tz="UTC").tz_convert(tz_name)


def is_at_or_after(ts: pd.Timestamp, cutoff: time, tz_name: str) -> bool:
    """Check whether the local time-of-day of `ts` is at or after `cutoff`."""
    local_ts = to_timezone(ts, tz_name)
    return (local_ts.hour, local_ts.minute) >= (cutoff.hour, cutoff.minute)


def matches_minute(ts: pd.Timestamp, candidate: time, tz_name: str) -> bool:
    """Return `True` if the local hour and minute of `ts` equal `candidate`."""
    local_ts = to_timezone(ts, tz_name)
    return local_ts.hour == candidate.hour and local_ts.minute == candidate.minute


def now_local(tz_name: str) -> pd.Timestamp:
    """Current wall-clock time in the given timezone."""
    return pd.Timestamp.now(tz=tz_name)


def prev_trading_date(base: Optional[date] = None, tz_name: str = "UTC") -> date:
    """Return the trading date before `base`, skipping Saturdays and Sundays.

    Steps one calendar day back, then keeps stepping back while the day
    falls on a weekend.  Exchange holidays are not known here.
    """
    if base is None:
        base = now_local(tz_name).date()
    d = base - timedelta(days=1)
    while d.weekday() >= 5:
        d -= timedelta(days=1)
    return d


def format_date(d: Union[date, str]) -> str:
    """Format a date as ``YYYY-MM-DD``; strings are passed through."""
    if isinstance(d, str):
        return d
    return d.isoformat()
