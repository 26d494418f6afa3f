"""
Configuration schema and loader.

This module defines dataclasses that mirror the expected structure of
the YAML configuration file (`config.yaml`).  A helper function
`load_config()` reads a YAML file from disk and returns an instance
of `Config` populated with reasonable defaults for any missing
fields.

Using dataclasses provides type hints and a clear contract for what
values are expected.  When extending the configuration, add new
fields to the appropriate dataclass and update `load_config()`
accordingly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Dict, Any
import yaml


@dataclass
class BreakoutConfig:
    """Parameters used to derive price levels from the opening price.

    Attributes
    ----------
    entry_pct : float
        Breakout threshold above the open (e.g. 0.03 for +3 %).
    stoploss_pct : float
        Drawdown threshold below the open (e.g. 0.01 for -1 %).
    rr : float
        Risk:reward multiplier.  The target sits `risk * rr` above entry.
    """

    entry_pct: float = 0.03
    stoploss_pct: float = 0.01
    rr: float = 1.0


@dataclass
class SessionConfig:
    """Defines the intraday timing rules.

    Attributes
    ----------
    open_times : List[str]
        Local `HH:MM` times whose bar is preferred as the opening bar,
        in order of preference.
    entry_cutoff : str
        Local `HH:MM` time before which entries are disallowed.  The
        time is interpreted in the timezone given by `data.timezone`.
    """

    open_times: List[str] = field(default_factory=lambda: ["09:15", "09:16"])
    entry_cutoff: str = "09:20"


@dataclass
class LiveConfig:
    """Live polling configuration.

    Attributes
    ----------
    poll_interval : float
        Seconds between two live ticks.
    margin : float
        Leverage used to derive the margin required from capital used.
    cascade_same_tick : bool
        When true a single tick may enter and exit within one call.
        When false a tick is treated like a zero-width bar: at most one
        transition per tick.
    """

    poll_interval: float = 3.0
    margin: float = 5.0
    cascade_same_tick: bool = True


@dataclass
class DataConfig:
    """Data source configuration.

    Attributes
    ----------
    signals_url : str
        Endpoint returning the day's breakout signals.
    shard_urls : List[str]
        Candle endpoints.  Each shard owns a disjoint set of symbols.
    csv_dir : str
        Directory with per-date CSV bar files for offline analysis.
    timezone : str
        IANA timezone name of the exchange.  All time-of-day rules and
        trade dates are evaluated in this timezone.
    request_timeout : float
        Timeout in seconds applied to every outbound request.
    max_retries : int
        Attempts per request before a transport failure is reported.
    retry_backoff : float
        Base delay in seconds between retries; doubled on each attempt.
    """

    signals_url: str = "https://project-get-entry.vercel.app/api/signals"
    shard_urls: List[str] = field(
        default_factory=lambda: [
            f"https://project-g-stock-{i}.vercel.app/api/live-candles" for i in range(1, 11)
        ]
    )
    csv_dir: str = "data"
    timezone: str = "Asia/Kolkata"
    request_timeout: float = 10.0
    max_retries: int = 3
    retry_backoff: float = 0.5


@dataclass
class CacheConfig:
    """Key-value cache configuration.

    Attributes
    ----------
    dir : str
        Directory holding one file per cache key.
    snapshot_max_bytes : int
        Historical snapshots whose serialized form exceeds this size are
        not persisted.
    """

    dir: str = ".cache"
    snapshot_max_bytes: int = 4_500_000


@dataclass
class Config:
    """Root configuration for the breakout monitor.

    Attributes
    ----------
    breakout : BreakoutConfig
        Level derivation parameters.
    session : SessionConfig
        Opening bar and entry cutoff times.
    live : LiveConfig
        Poll loop settings.
    data : DataConfig
        Data source configuration.
    cache : CacheConfig
        Persistence configuration.
    results_dir : str
        Directory where reports are written.
    """

    breakout: BreakoutConfig = field(default_factory=BreakoutConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    live: LiveConfig = field(default_factory=LiveConfig)
    data: DataConfig = field(default_factory=DataConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    results_dir: str = "results"


def _merge_dict(defaults: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries.

    The values in `override` take precedence over those in `defaults`.
    This helper is used when loading YAML into nested dataclasses.
    """
    result: Dict[str, Any] = defaults.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def load_config(path: str) -> Config:
    """Load a configuration file from the given YAML path.

    Parameters
    ----------
    path : str
        Path to the YAML file.

    Returns
    -------
    Config
        A populated configuration object.  Missing fields are filled with
        sensible defaults defined in the dataclasses.
    """
    with open(path, "r", encoding="utf-8") as fh:
        raw: Dict[str, Any] = yaml.safe_load(fh) or {}

    # Build nested dictionaries representing the default dataclasses
    defaults: Dict[str, Any] = {
        'breakout': vars(BreakoutConfig()),
        'session': vars(SessionConfig()),
        'live': vars(LiveConfig()),
        'data': vars(DataConfig()),
        'cache': vars(CacheConfig()),
        'results_dir': 'results',
    }

    merged = _merge_dict(defaults, raw)

    breakout = merged['breakout']
    session = merged['session']
    live = merged['live']
    data = merged['data']
    cache = merged['cache']

    cfg = Config(
        breakout=BreakoutConfig(
            entry_pct=float(breakout['entry_pct']),
            stoploss_pct=float(breakout['stoploss_pct']),
            rr=float(breakout['rr']),
        ),
        session=SessionConfig(
            open_times=[str(t) for t in session['open_times']],
            entry_cutoff=str(session['entry_cutoff']),
        ),
        live=LiveConfig(
            poll_interval=float(live['poll_interval']),
            margin=float(live['margin']),
            cascade_same_tick=bool(live['cascade_same_tick']),
        ),
        data=DataConfig(
            signals_url=str(data['signals_url']),
            shard_urls=[str(u) for u in data['shard_urls']],
            csv_dir=str(data['csv_dir']),
            timezone=str(data['timezone']),
            request_timeout=float(data['request_timeout']),
            max_retries=int(data['max_retries']),
            retry_backoff=float(data['retry_backoff']),
        ),
        cache=CacheConfig(
            dir=str(cache['dir']),
            snapshot_max_bytes=int(cache['snapshot_max_bytes']),
        ),
        results_dir=str(merged.get('results_dir', 'results')),
    )
    return cfg
