"""
Historical batch analysis.

This module contains the `HistoricalBatchAnalyzer` class which runs the
breakout rules retroactively over one past date for every symbol at
once: it loads the day's bars, derives levels from each symbol's
opening bar, replays the bars after it and bundles the result rows,
the parameters and the raw bars into a snapshot cached per date.
The analyzer never touches live session state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..config.schema import Config
from ..execution.errors import CacheWriteSkipped, NoDataForDate
from ..execution.models import Bar, NO_DATA
from ..reporting.metrics import historical_row
from ..strategy.replay import ReplayEngine
from ..utils.persistence import FileCache, load_historical, save_historical


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoricalSnapshot:
    """Everything computed for one analysed date."""
    date: str
    created_at: str
    params: Dict[str, float]
    candles: Dict[str, List[List[Any]]] = field(default_factory=dict)
    results: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date,
            'created_at': self.created_at,
            'params': dict(self.params),
            'candles': self.candles,
            'results': self.results,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "HistoricalSnapshot":
        return cls(
            date=raw['date'],
            created_at=raw.get('created_at') or "",
            params=dict(raw.get('params') or {}),
            candles=dict(raw.get('candles') or {}),
            results=list(raw.get('results') or []),
        )


class HistoricalBatchAnalyzer:
    """Replay a past date for all symbols and cache the outcome.

    Parameters
    ----------
    config : Config
        Root configuration; `breakout` provides the default parameters.
    bar_source : object
        Anything with ``fetch_by_date(date) -> {symbol: [Bar]}``.
    cache : FileCache
        Store for historical snapshots.
    """

    def __init__(self, config: Config, bar_source, cache: FileCache) -> None:
        self.config = config
        self.bar_source = bar_source
        self.cache = cache
        self.engine = ReplayEngine(config)

    def default_params(self) -> Dict[str, float]:
        b = self.config.breakout
        return {'entry_pct': b.entry_pct, 'stoploss_pct': b.stoploss_pct, 'rr': b.rr}

    def analyze(
        self,
        date: str,
        candles_by_symbol: Mapping[str, Sequence[Bar]],
        params: Optional[Mapping[str, float]] = None,
    ) -> HistoricalSnapshot:
        """Replay every symbol's bars for `date`.

        Symbols whose series yields no data are left out of the results.

        Raises
        ------
        NoDataForDate
            If every symbol's series is empty.
        """
        if all(not bars for bars in candles_by_symbol.values()):
            raise NoDataForDate(date)

        used = self.default_params()
        used.update(params or {})

        results: List[Dict[str, Any]] = []
        for symbol, bars in candles_by_symbol.items():
            result = self.engine.replay_from_open(
                bars,
                entry_pct=used['entry_pct'],
                stoploss_pct=used['stoploss_pct'],
                rr=used['rr'],
            )
            if result is NO_DATA:
                logger.debug("%s: no usable bars on %s, skipped", symbol, date)
                continue
            results.append(historical_row(symbol, result, date))

        logger.info("Analysed %d of %d symbols for %s", len(results), len(candles_by_symbol), date)
        return HistoricalSnapshot(
            date=date,
            created_at=datetime.now(timezone.utc).isoformat(),
            params=used,
            candles={symbol: [bar.to_raw() for bar in bars] for symbol, bars in candles_by_symbol.items()},
            results=results,
        )

    def store(self, snapshot: HistoricalSnapshot) -> bool:
        """Persist `snapshot`; returns `False` when it is too large to cache."""
        try:
            save_historical(
                self.cache,
                snapshot.date,
                snapshot.to_dict(),
                self.config.cache.snapshot_max_bytes,
            )
        except CacheWriteSkipped as exc:
            logger.warning("Historical data too large to cache, skipping save: %s", exc)
            return False
        return True

    def run(
        self,
        date: str,
        params: Optional[Mapping[str, float]] = None,
        use_cache: bool = True,
    ) -> HistoricalSnapshot:
        """Return the snapshot for `date`, computing and caching it if needed.

        A cached snapshot is only reused when it was built with the same
        parameters.
        """
        wanted = self.default_params()
        wanted.update(params or {})
        if use_cache:
            cached = load_historical(self.cache, date)
            if cached is not None and cached.get('params') == wanted:
                logger.info("Historical breakout results for %s (cached)", date)
                return HistoricalSnapshot.from_dict(cached)

        logger.info("Running historical breakout analysis for %s...", date)
        candles = self.bar_source.fetch_by_date(date)
        snapshot = self.analyze(date, candles, wanted)
        self.store(snapshot)
        return snapshot
