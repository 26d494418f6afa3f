"""
Exceptions raised by the session coordinator, the historical analyzer
and the data sources.  Replay and level calculation never raise.
"""

from __future__ import annotations


class BreakoutMonitorError(Exception):
    """Base class for all errors raised by this package."""


class NoSignalsFound(BreakoutMonitorError):
    """Neither today nor the previous trading day has signals."""

    def __init__(self, dates) -> None:
        self.dates = list(dates)
        super().__init__(f"No BUY signals found for {' or '.join(self.dates)}")


class NoDataForDate(BreakoutMonitorError):
    """Every symbol's bar series is empty for a historical date."""

    def __init__(self, date: str) -> None:
        self.date = date
        super().__init__(f"Market holiday / no data for {date}")


class CacheWriteSkipped(BreakoutMonitorError):
    """A historical snapshot is larger than the cache accepts."""

    def __init__(self, key: str, size: int, limit: int) -> None:
        self.key = key
        self.size = size
        self.limit = limit
        super().__init__(f"Snapshot {key} is {size} bytes, above the {limit} byte limit")


class TransportFailure(BreakoutMonitorError):
    """A retrieval call failed after all retries."""


class ShardConflictError(BreakoutMonitorError):
    """Two candle shards reported the same symbol."""

    def __init__(self, symbol: str, shards) -> None:
        self.symbol = symbol
        self.shards = list(shards)
        super().__init__(f"Symbol {symbol} returned by more than one shard: {', '.join(self.shards)}")
