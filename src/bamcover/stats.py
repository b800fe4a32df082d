from __future__ import annotations

from typing import Sequence

import numpy as np

PHRED_SCALE = 10.0  # scaling factor for phred scores


def phred_q2p(q: float, scale: float = PHRED_SCALE) -> float:
    """Phred quality to error probability; negative qualities count as 0."""
    if q < 0:
        q = 0
    return 10.0 ** (q / -scale)


def mean(array, start: int = 0, end: int | None = None) -> float:
    """
    Arithmetic mean of array[start:end] (start inclusive, end exclusive).
    NaN for a missing or empty array, or an empty window. A window outside
    the array is a ValueError.
    """
    if array is None or len(array) == 0:
        return float("nan")
    if end is None:
        end = len(array)
    if end <= start:
        return float("nan")
    if start < 0 or end > len(array):
        raise ValueError(f"window [{start}, {end}) outside array of length {len(array)}")
    return float(np.sum(array[start:end], dtype=np.float64)) / (end - start)


def which_bin(x: int, breaks: Sequence[int]) -> int:
    """Index k of the (breaks[k], breaks[k+1]] bin holding x; len(breaks) - 1 if none."""
    k = 0
    while k < len(breaks) - 1:
        if breaks[k] < x <= breaks[k + 1]:
            break
        k += 1
    return k


def overlap_rate(start1: int, end1: int, start2: int, end2: int) -> float:
    """Fraction of closed region 1 covered by closed region 2."""
    if not (start1 <= end2 and end1 >= start2):
        return 0.0
    over_start = max(start1, start2)
    over_end = min(end1, end2)
    return (over_end - over_start + 1) / (end1 - start1 + 1)
