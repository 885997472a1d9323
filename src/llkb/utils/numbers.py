"""Numeric helpers shared by the report writers."""

import math


def round_half_up(value: float, places: int = 2) -> float:
    """Round ``value`` to ``places`` decimals with halves rounded up.

    Matches the ``Math.round(x * 100) / 100`` rounding used by the other LLKB
    tools that read the same documents, so ``0.125`` becomes ``0.13`` where
    the built-in ``round`` would give ``0.12``.
    """
    factor = 10**places
    return math.floor(value * factor + 0.5) / factor
