from __future__ import annotations

"""
Decimal utilities for precise comparisons and wire-safe string formatting.

Kraken accepts volumes and prices as decimal strings; floats are converted via
Decimal(str(x)) so that values like 0.1 never reach the wire as 0.1000000000000000055.
"""

from decimal import Decimal, getcontext
from typing import Union

getcontext().prec = 28

NumberLike = Union[str, int, float, Decimal]


def q_dec(x: NumberLike) -> Decimal:
    """Convert input to Decimal via str() to avoid binary float issues."""
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


def str_decimal(x: NumberLike) -> str:
    """Return a string without scientific notation or trailing zeros."""
    s = format(q_dec(x), "f")
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    return s if s else "0"


def below(x: NumberLike, limit: NumberLike) -> bool:
    """True when x is strictly smaller than limit, compared as decimals."""
    return q_dec(x) < q_dec(limit)


__all__ = [
    "q_dec",
    "str_decimal",
    "below",
]
