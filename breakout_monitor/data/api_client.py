"""
HTTP data sources.

Signals come from a single endpoint.  Candles are served by several
shards, each owning a disjoint set of symbols; every shard is queried
in parallel and the responses are merged by symbol.  A symbol reported
by more than one shard breaks that contract and is raised as an error
rather than silently overwritten.

Every request carries a timeout and is retried with exponential
backoff before a `TransportFailure` is raised.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from ..config.schema import DataConfig
from ..execution.errors import ShardConflictError, TransportFailure
from ..execution.models import Bar, Signal, SignalBatch, to_price


logger = logging.getLogger(__name__)

MAX_BACKOFF_SEC = 15.0


class HttpJsonClient:
    """GET JSON documents with a timeout and bounded retries."""

    def __init__(
        self,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff: float = 0.5,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        self.max_retries = max(1, int(max_retries))
        self.backoff = backoff
        self.session = session or requests.Session()

    def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        delay = self.backoff
        last_exc: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                resp = self.session.get(url, params=params, timeout=self.timeout)
                resp.raise_for_status()
                return resp.json()
            except (requests.RequestException, ValueError) as exc:
                last_exc = exc
                logger.debug("GET %s failed (attempt %d/%d): %s", url, attempt, self.max_retries, exc)
                if attempt < self.max_retries and delay > 0:
                    time.sleep(min(MAX_BACKOFF_SEC, delay))
                    delay *= 2
        raise TransportFailure(f"GET {url} failed after {self.max_retries} attempts: {last_exc}") from last_exc


def parse_bars(rows: Any) -> List[Bar]:
    """Convert a raw candle list into bars.

    Rows without a usable timestamp are dropped.
    """
    bars: List[Bar] = []
    if not isinstance(rows, (list, tuple)):
        return bars
    for row in rows or []:
        try:
            bar = Bar.from_raw(row)
        except (TypeError, ValueError, OverflowError, IndexError, KeyError):
            logger.debug("Skipping malformed candle row: %r", row)
            continue
        if not bar.has_time():
            logger.debug("Skipping candle row with out-of-range timestamp: %r", row)
            continue
        bars.append(bar)
    return bars


def parse_signals(rows: Any, trade_date: Optional[str]) -> List[Signal]:
    """Convert raw signal records, dropping those without a symbol or with non-numeric levels."""
    signals: List[Signal] = []
    if not isinstance(rows, (list, tuple)):
        return signals
    for raw in rows or []:
        if not isinstance(raw, dict):
            logger.debug("Skipping malformed signal record: %r", raw)
            continue
        try:
            signals.append(Signal.from_dict(raw, trade_date))
        except (TypeError, ValueError, KeyError):
            logger.debug("Skipping malformed signal record: %r", raw)
    return signals


def _json_object(body: Any, url: str) -> Dict[str, Any]:
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise TransportFailure(f"GET {url} returned {type(body).__name__}, expected a JSON object")
    return body


def merge_shards(responses: Sequence[Tuple[str, Dict[str, Any]]]) -> Dict[str, Any]:
    """Merge per-shard ``{symbol: value}`` maps.

    Raises
    ------
    ShardConflictError
        If a symbol appears in more than one shard.
    """
    merged: Dict[str, Any] = {}
    owner: Dict[str, str] = {}
    for shard, data in responses:
        for symbol, value in data.items():
            if symbol in owner:
                raise ShardConflictError(symbol, [owner[symbol], shard])
            owner[symbol] = shard
            merged[symbol] = value
    return merged


class SignalClient:
    """Fetch the breakout signals issued for a trade date."""

    def __init__(self, config: DataConfig, http: Optional[HttpJsonClient] = None) -> None:
        self.url = config.signals_url
        self.http = http or HttpJsonClient(config.request_timeout, config.max_retries, config.retry_backoff)

    def fetch_signals(self, date: Optional[str] = None) -> SignalBatch:
        """Fetch signals for `date`, or for the source's current day when omitted."""
        params = {"date": date} if date else None
        body = _json_object(self.http.get_json(self.url, params=params), self.url)
        trade_date = body.get("trade_date") or date
        signals = parse_signals(body.get("data"), trade_date)
        return SignalBatch(found=bool(body.get("found")) and bool(signals), trade_date=trade_date, data=signals)


class ShardedCandleClient:
    """Fetch candles from every shard in parallel and merge by symbol."""

    def __init__(self, config: DataConfig, http: Optional[HttpJsonClient] = None) -> None:
        self.shard_urls = list(config.shard_urls)
        self.http = http or HttpJsonClient(config.request_timeout, config.max_retries, config.retry_backoff)

    def _fetch_all(self, params: Optional[Dict[str, Any]] = None) -> List[Tuple[str, Dict[str, Any]]]:
        if not self.shard_urls:
            return []

        def _one(url: str) -> Tuple[str, Dict[str, Any]]:
            body = _json_object(self.http.get_json(url, params=params), url)
            data = body.get("data") or {}
            if not isinstance(data, dict):
                raise TransportFailure(f"GET {url} returned {type(data).__name__} data, expected symbols")
            return url, data

        with ThreadPoolExecutor(max_workers=len(self.shard_urls)) as executor:
            return list(executor.map(_one, self.shard_urls))

    def fetch_full(self) -> Dict[str, List[Bar]]:
        """Full-resolution bars of the current day for every symbol."""
        merged = merge_shards(self._fetch_all())
        return {symbol: parse_bars(rows) for symbol, rows in merged.items()}

    def fetch_by_date(self, date: str) -> Dict[str, List[Bar]]:
        """Bars of a past date for every symbol."""
        merged = merge_shards(self._fetch_all({"date": date}))
        return {symbol: parse_bars(rows) for symbol, rows in merged.items()}

    def fetch_latest(self) -> Dict[str, float]:
        """Last traded price per symbol, taken from each symbol's latest candle close."""
        merged = merge_shards(self._fetch_all({"latest": "true"}))
        prices: Dict[str, float] = {}
        for symbol, candle in merged.items():
            if not candle:
                continue
            if isinstance(candle, dict):
                close = to_price(candle.get("close"))
            elif isinstance(candle, (list, tuple)) and len(candle) > 4:
                close = to_price(candle[4])
            else:
                close = None
            if close:
                prices[symbol] = close
            else:
                logger.debug("No usable close for %s: %r", symbol, candle)
        return prices
