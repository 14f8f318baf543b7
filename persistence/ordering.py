from __future__ import annotations

import functools
import math
import struct
from typing import Any

_SIGN_MASK = 0x7FFF_FFFF_FFFF_FFFF


def is_comparable(value: Any) -> bool:
    """Only JSON bools, numbers and strings take part in the index."""
    return isinstance(value, (bool, int, float, str))


def _total_order_bits(x: float) -> int:
    # IEEE-754 totalOrder: flip the magnitude bits of negatives so the signed
    # integer view sorts -NaN < -inf < ... < -0.0 < +0.0 < ... < inf < NaN.
    bits = struct.unpack(">q", struct.pack(">d", x))[0]
    if bits < 0:
        bits ^= _SIGN_MASK
    return bits


def _as_double(n: int | float) -> float:
    try:
        return float(n)
    except OverflowError:
        # ints beyond double range saturate, like a lossy f64 conversion
        return math.copysign(math.inf, n)


def _cmp(a: Any, b: Any) -> int:
    return (a > b) - (a < b)


def compare_values(a: Any, b: Any) -> int:
    """Three-way comparison of two JSON values.

    Values of different kinds, and anything that is not a bool, number or
    string, compare equal.
    """
    if isinstance(a, bool) or isinstance(b, bool):
        if isinstance(a, bool) and isinstance(b, bool):
            return _cmp(a, b)
        return 0
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return _cmp(_total_order_bits(_as_double(a)), _total_order_bits(_as_double(b)))
    if isinstance(a, str) and isinstance(b, str):
        # Python compares str by code point
        return _cmp(a, b)
    return 0


value_key = functools.cmp_to_key(compare_values)


def kind_rank(value: Any) -> int | None:
    """Position of a comparable value's kind in an index sequence (bool, number, string)."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return 1
    if isinstance(value, str):
        return 2
    return None


def index_key(value: Any) -> tuple[int | None, Any]:
    # Cross-kind values compare equal, which is not transitive, so a sequence
    # holding several kinds is sorted as one ascending run per kind.
    return kind_rank(value), value_key(value)
