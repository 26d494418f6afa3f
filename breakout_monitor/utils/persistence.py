"""
State persistence utilities.

Live sessions need to remember their per-symbol trade state across
restarts within the same trading day, and historical runs keep a
snapshot per analysed date so that a date is only computed once.
Both are stored as JSON documents in a small file-backed key-value
cache: one file per key, last write wins.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from ..execution.errors import CacheWriteSkipped
from ..execution.models import TradeState


logger = logging.getLogger(__name__)

TRADE_STATE_PREFIX = "trade_state_"
HISTORICAL_PREFIX = "HISTORICAL_BREAKOUT_v1_"
SNAPSHOT_VERSION = 1


class FileCache:
    """Key-value store keeping each value in `<dir>/<key>.json`."""

    suffix = ".json"

    def __init__(self, directory: str) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"Invalid cache key: {key!r}")
        return self.directory / f"{key}{self.suffix}"

    def get(self, key: str) -> Optional[bytes]:
        file_path = self._path(key)
        if not file_path.exists():
            return None
        return file_path.read_bytes()

    def put(self, key: str, value: bytes) -> None:
        file_path = self._path(key)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = file_path.with_name(file_path.name + ".tmp")
        tmp_path.write_bytes(value)
        tmp_path.replace(file_path)

    def delete(self, key: str) -> None:
        file_path = self._path(key)
        if file_path.exists():
            file_path.unlink()

    def keys(self, prefix: str = "") -> List[str]:
        if not self.directory.exists():
            return []
        return sorted(
            p.name[: -len(self.suffix)]
            for p in self.directory.glob(f"{prefix}*{self.suffix}")
            if p.is_file()
        )

    def clear(self) -> None:
        for key in self.keys():
            self.delete(key)


def _load_json(cache: FileCache, key: str) -> Optional[Any]:
    raw = cache.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable cache entry %s: %s", key, exc)
        return None


def load_trade_states(cache: FileCache, trade_date: str) -> Optional[Dict[str, TradeState]]:
    """Load the per-symbol states persisted for `trade_date`.

    Returns
    -------
    dict or None
        Symbol to `TradeState`, or `None` if nothing was stored yet.
    """
    data = _load_json(cache, TRADE_STATE_PREFIX + trade_date)
    if not isinstance(data, dict):
        return None
    return {symbol: TradeState.from_dict(raw) for symbol, raw in data.items()}


def save_trade_states(cache: FileCache, trade_date: str, states: Mapping[str, TradeState]) -> None:
    """Persist the full symbol -> state mapping for `trade_date`."""
    payload = {symbol: state.to_dict() for symbol, state in states.items()}
    text = json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True)
    cache.put(TRADE_STATE_PREFIX + trade_date, text.encode("utf-8"))


def load_historical(cache: FileCache, date: str) -> Optional[Dict[str, Any]]:
    """Load the historical snapshot for `date`.

    Entries that do not carry the expected date, results and candles
    are treated as absent.
    """
    data = _load_json(cache, HISTORICAL_PREFIX + date)
    if not isinstance(data, dict):
        return None
    if data.get("date") != date or "results" not in data or "candles" not in data:
        return None
    return data


def save_historical(cache: FileCache, date: str, payload: Mapping[str, Any], max_bytes: int) -> None:
    """Store a historical snapshot for `date`, replacing any previous one.

    Raises
    ------
    CacheWriteSkipped
        If the serialized snapshot is larger than `max_bytes`.
    """
    key = HISTORICAL_PREFIX + date
    data = {
        "version": SNAPSHOT_VERSION,
        "date": date,
        "created_at": payload.get("created_at") or datetime.now(timezone.utc).isoformat(),
        "params": payload.get("params") or {},
        "candles": payload.get("candles") or {},
        "results": payload.get("results") or [],
    }
    text = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
    if len(text) > max_bytes:
        raise CacheWriteSkipped(key, len(text), max_bytes)
    cache.put(key, text.encode("utf-8"))


def clear_historical(cache: FileCache, date: str) -> None:
    cache.delete(HISTORICAL_PREFIX + date)


def clear_all_historical(cache: FileCache) -> None:
    for key in cache.keys(HISTORICAL_PREFIX):
        cache.delete(key)


def list_historical_dates(cache: FileCache) -> List[str]:
    return [key[len(HISTORICAL_PREFIX):] for key in cache.keys(HISTORICAL_PREFIX)]
