from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .bamcoverClasses import RegionBoundsError
from .cigar import Cigar, walk_reference
from .stats import mean, which_bin

ChromLengths = Union[Mapping[str, int], Iterable[Tuple[str, int]]]


def _iter_lengths(chrom_lengths: ChromLengths) -> Iterable[Tuple[str, int]]:
    if isinstance(chrom_lengths, Mapping):
        return chrom_lengths.items()
    return chrom_lengths


class PositionalAccumulator:
    """
    Per-chromosome dense coverage arrays.

    Each chromosome gets an array of chrom_len + 1 cells (int32 read counts by
    default, float32 for Wiggle values); cell 0 is unused and cells
    1..chrom_len are 1-based genomic positions.
    """

    DTYPE = np.int32

    def __init__(self, chrom_lengths: ChromLengths, clamp_to_chrom_bounds: bool = True, dtype=None):
        self.clamp = clamp_to_chrom_bounds
        self.dtype = dtype or self.DTYPE
        self._idx: Dict[str, np.ndarray] = {}
        self.total_weight = 0
        self.records = 0
        for chr_, length in _iter_lengths(chrom_lengths):
            length = int(length)
            if length < 0:
                raise ValueError(f"Negative length for chromosome {chr_!r}: {length}")
            self._idx[chr_] = np.zeros(length + 1, dtype=self.dtype)  # position 0 is dummy

    def has_chr(self, chr_: str) -> bool:
        return chr_ in self._idx

    def chroms(self) -> List[str]:
        return list(self._idx)

    def chrom_len(self, chr_: str) -> int:
        return len(self._idx[chr_]) - 1

    def array(self, chr_: str) -> Optional[np.ndarray]:
        return self._idx.get(chr_)

    def nbytes(self) -> int:
        return sum(a.nbytes for a in self._idx.values())

    def record(self, weight: int = 1) -> None:
        """Count one accumulated record towards the RPM denominator."""
        self.records += 1
        self.total_weight += weight

    def _bounded(self, chr_: str, start: int, end: int) -> Optional[Tuple[int, int]]:
        """Clip half-open [start, end) to 1..chrom_len, or raise if clamping is off."""
        size = len(self._idx[chr_])
        if start >= 1 and end <= size:
            return start, end
        if not self.clamp:
            raise RegionBoundsError(
                f"{chr_}:{start}-{end - 1} outside chromosome bounds 1-{size - 1}"
            )
        start, end = max(start, 1), min(end, size)
        return (start, end) if start < end else None

    def add_alignment(self, chr_: str, start: int, cigar: Cigar, weight: int = 1,
                      count_soft: bool = False) -> bool:
        """
        Add `weight` to every reference position the CIGAR writes, walking
        from the unclipped `start`. Unknown chromosomes are skipped.
        """
        idx = self._idx.get(chr_)
        if idx is None:
            return False
        # all runs are bounded before any write
        spans = [self._bounded(chr_, s, e) for s, e in walk_reference(start, cigar, count_soft=count_soft)]
        for span in spans:
            if span is not None:
                idx[span[0]:span[1]] += weight
        self.record(weight)
        return True

    def add_region(self, chr_: str, start: int, end: int, weight: int = 1) -> bool:
        """Add `weight` to every position of the closed 1-based region [start, end]."""
        idx = self._idx.get(chr_)
        if idx is None:
            return False
        if start > end:
            raise ValueError(f"start must not be greater than end: {chr_}:{start}-{end}")
        span = self._bounded(chr_, start, end + 1)
        if span is not None:
            idx[span[0]:span[1]] += weight
        self.record(weight)
        return True

    def set_region(self, chr_: str, start: int, end: int, value: float) -> bool:
        """Overwrite every position of the closed region [start, end] with `value`."""
        idx = self._idx.get(chr_)
        if idx is None:
            return False
        if start > end:
            raise ValueError(f"start must not be greater than end: {chr_}:{start}-{end}")
        span = self._bounded(chr_, start, end + 1)
        if span is not None:
            idx[span[0]:span[1]] = value
        return True

    def mean_coverage(self, chr_: str, start: int, end: int) -> float:
        """
        Mean coverage over the half-open [start, end).
        NaN for unknown chromosomes and empty windows; windows reaching past the
        chromosome are clipped, or raise RegionBoundsError when clamping is off.
        """
        idx = self._idx.get(chr_)
        if idx is None or end <= start:
            return float("nan")
        span = self._bounded(chr_, start, end)
        if span is None:
            return float("nan")
        return mean(idx, span[0], span[1])

    def rpm_scale(self) -> float:
        """Reads-per-million factor; only meaningful once accumulation is complete."""
        if self.total_weight <= 0:
            return 1.0
        return 1e6 / self.total_weight

    def iter_windows(
        self,
        chr_: str,
        start: int,
        end: int,
        step: int = 1,
        keep0: bool = False,
        scale: float = 1.0,
    ) -> Iterator[Tuple[int, int, float]]:
        """
        Walk [start, end] in `step` increments, yielding (win_start, win_end, value)
        with win_end exclusive and value the scaled window mean.
        Zero-valued windows are dropped unless keep0.
        """
        if step < 1:
            raise ValueError(f"step must be positive, got {step}")
        idx = self._idx.get(chr_)
        if idx is None:
            return
        size = len(idx)
        pos = start
        while pos <= end and pos < size:
            win_end = min(pos + step, size)
            val = mean(idx, pos, win_end) * scale
            if keep0 or val != 0:
                yield pos, win_end, val
            pos += step

    def coverage_range(self, chr_: str, start: int, end: int) -> Tuple[int, int]:
        """(min, max) of the non-zero coverage in closed [start, end]; (0, 0) if none."""
        idx = self._idx.get(chr_)
        if idx is None:
            return 0, 0
        cells = idx[max(start, 1):min(end + 1, len(idx))]
        covered = cells[cells > 0]
        if covered.size == 0:
            return 0, 0
        return int(covered.min()), int(covered.max())

    def bin_summary(self, chr_: str, start: int, end: int, breaks: Sequence[int]) -> Tuple[List[int], int]:
        """
        Histogram of per-base coverage in the closed region [start, end].
        Bin k counts covered bases with breaks[k] < cover <= breaks[k+1].
        Returns (bin_counts, bases_scanned).
        """
        counts = [0] * (len(breaks) - 1)
        idx = self._idx.get(chr_)
        if idx is None:
            return counts, 0
        cells = idx[max(start, 1):min(end + 1, len(idx))]
        values, freq = np.unique(cells[cells > 0], return_counts=True)
        for v, n in zip(values.tolist(), freq.tolist()):
            k = which_bin(v, breaks)
            if k < len(counts):
                counts[k] += n
        return counts, int(cells.size)
