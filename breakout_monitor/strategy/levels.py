"""
Price level derivation.

Entry, stoploss and target are all derived from the day's opening
price.  Every level is rounded to two decimals, half-up, so that the
same open always produces the same levels regardless of float noise.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP


_CENT = Decimal("0.01")

# Floats at or above this magnitude carry no cents to round
_NO_CENTS = 1e15


def round2(value: float) -> float:
    """Round to two decimals using half-up rounding.

    Non-finite and very large values are returned unchanged.
    """
    value = float(value)
    if not math.isfinite(value) or abs(value) >= _NO_CENTS:
        return value
    return float(Decimal(repr(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PriceLevels:
    """Levels derived from one opening price."""
    open: float
    entry: float
    stoploss: float
    target: float
    risk: float
    rr: float


def compute_levels(open_price: float, entry_pct: float, stoploss_pct: float, rr: float) -> PriceLevels:
    """Derive entry, stoploss and target from the opening price.

    ``open_price <= 0`` is not rejected; the resulting levels are
    degenerate and it is up to the caller to skip such symbols.
    """
    entry = round2(open_price * (1 + entry_pct))
    stoploss = round2(open_price * (1 - stoploss_pct))
    risk = round2(entry - stoploss)
    target = round2(entry + risk * rr)
    return PriceLevels(
        open=open_price,
        entry=entry,
        stoploss=stoploss,
        target=target,
        risk=risk,
        rr=rr,
    )

