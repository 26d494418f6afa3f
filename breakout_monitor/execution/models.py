"""
Signal, bar and trade state models.

These dataclasses represent the objects passed between the data
sources, the engines and the session coordinator.  Keeping them in a
separate module improves readability and makes unit testing easier.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Union
import math

from ..utils.timeutils import in_range_ms, to_ms


class TradeStatus:
    PENDING = "PENDING"
    ENTERED = "ENTERED"
    EXITED_TARGET = "EXITED_TARGET"
    EXITED_SL = "EXITED_SL"

    TERMINAL = (EXITED_TARGET, EXITED_SL)
    ALL = (PENDING, ENTERED, EXITED_TARGET, EXITED_SL)

    @classmethod
    def rank(cls, status: str) -> int:
        """Position along PENDING -> ENTERED -> EXITED_*; both exits share rank 2."""
        if status == cls.PENDING:
            return 0
        if status == cls.ENTERED:
            return 1
        return 2


class _NoData:
    """Sentinel returned by replay when a series cannot be evaluated."""

    status = "NO_DATA"

    def __repr__(self) -> str:
        return "NO_DATA"

    def __bool__(self) -> bool:
        return False


NO_DATA = _NoData()


def to_price(value: Any) -> Optional[float]:
    """Parse a price field; missing, non-finite or non-numeric values become `None`."""
    if value is None:
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price):
        return None
    return price


@dataclass(frozen=True)
class Signal:
    """One breakout candidate issued for a symbol on a trade date."""
    symbol: str
    entry: float
    target: float
    stoploss: float
    qty: float = 0.0
    trade_date: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], trade_date: Optional[str] = None) -> "Signal":
        return cls(
            symbol=str(raw["symbol"]),
            entry=float(raw.get("entry") or 0.0),
            target=float(raw.get("target") or 0.0),
            stoploss=float(raw.get("stoploss") or 0.0),
            qty=float(raw.get("qty") or 0.0),
            trade_date=raw.get("trade_date") or trade_date,
        )


@dataclass(frozen=True)
class SignalBatch:
    """Response of the signal source for one request."""
    found: bool
    trade_date: Optional[str]
    data: List[Signal] = field(default_factory=list)


@dataclass(frozen=True)
class Bar:
    """One OHLC sample.  `ts` is always in epoch milliseconds."""
    ts: int
    open: Optional[float]
    high: Optional[float]
    low: Optional[float]
    close: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "ts", to_ms(self.ts))

    @classmethod
    def from_raw(cls, raw: Union[Sequence[Any], Dict[str, Any]]) -> "Bar":
        """Build a bar from the wire form.

        Accepts ``[ts, open, high, low, close, ...]`` lists (extra columns
        are ignored) or mappings keyed by ``timestamp``/``time``/``ts`` and
        ``open``/``high``/``low``/``close``.
        """
        if isinstance(raw, dict):
            ts = raw.get("timestamp", raw.get("time", raw.get("ts")))
            values = [raw.get("open"), raw.get("high"), raw.get("low"), raw.get("close")]
        else:
            row = list(raw)
            ts = row[0]
            values = (row[1:5] + [None] * 4)[:4]
        return cls(int(float(ts)), *(to_price(v) for v in values))

    def to_raw(self) -> List[Any]:
        return [self.ts, self.open, self.high, self.low, self.close]

    def has_time(self) -> bool:
        return in_range_ms(self.ts)

    def has_open(self) -> bool:
        return self.open is not None

    def has_range(self) -> bool:
        return self.high is not None and self.low is not None


@dataclass(frozen=True)
class TradeState:
    """Lifecycle record of one signal on one trade date.

    Instances are immutable; the engines return a new state for every
    transition so a caller's previous state is never modified.
    """
    status: str = TradeStatus.PENDING
    entry_time: Optional[str] = None
    exit_time: Optional[str] = None
    exit_price: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TradeStatus.TERMINAL

    def enter(self, when: str) -> "TradeState":
        return replace(self, status=TradeStatus.ENTERED, entry_time=when)

    def exit(self, status: str, when: str, price: float) -> "TradeState":
        return replace(self, status=status, exit_time=when, exit_price=price)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "entry_time": self.entry_time,
            "exit_time": self.exit_time,
            "exit_price": self.exit_price,
        }

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "TradeState":
        if not raw:
            return cls()
        status = raw.get("status") or TradeStatus.PENDING
        if status not in TradeStatus.ALL:
            status = TradeStatus.PENDING
        return cls(
            status=status,
            entry_time=raw.get("entry_time"),
            exit_time=raw.get("exit_time"),
            exit_price=to_price(raw.get("exit_price")),
        )
