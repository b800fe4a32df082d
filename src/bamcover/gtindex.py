from __future__ import annotations

from typing import Dict, List, Optional, Set, Tuple

import numpy as np

from .bamcoverClasses import RegionBoundsError


class BitVector:
    """Fixed-length packed bit-vector over numpy uint8, little bit order."""
    __slots__ = ("length", "_bits")

    def __init__(self, length: int):
        self.length = length
        self._bits = np.zeros((length + 7) >> 3, dtype=np.uint8)

    def __len__(self) -> int:
        return self.length

    @property
    def nbytes(self) -> int:
        return self._bits.nbytes

    def set_range(self, start: int, end: int) -> None:
        """Set bits [start, end)."""
        if start >= end:
            return
        first, last = start >> 3, (end - 1) >> 3
        lo_mask = (0xFF << (start & 7)) & 0xFF
        hi_mask = 0xFF >> (7 - ((end - 1) & 7))
        if first == last:
            self._bits[first] |= lo_mask & hi_mask
            return
        self._bits[first] |= lo_mask
        self._bits[first + 1:last] = 0xFF
        self._bits[last] |= hi_mask

    def _window(self, start: int, end: int) -> np.ndarray:
        first, last = start >> 3, ((end - 1) >> 3) + 1
        bits = np.unpackbits(self._bits[first:last], bitorder="little")
        offset = start - (first << 3)
        return bits[offset:offset + end - start]

    def count(self, start: int, end: int) -> int:
        """Number of set bits in [start, end)."""
        if start >= end:
            return 0
        return int(np.count_nonzero(self._window(start, end)))

    def any(self, start: int, end: int) -> bool:
        if start >= end:
            return False
        return bool(self._window(start, end).any())

    def get(self, pos: int) -> bool:
        return bool((self._bits[pos >> 3] >> (pos & 7)) & 1)


class BitMask:
    """Label -> BitVector for one chromosome; vectors are created on first use."""

    def __init__(self, length: int):
        self.length = length
        self.vectors: Dict[str, BitVector] = {}

    def vector(self, label: str) -> BitVector:
        vec = self.vectors.get(label)
        if vec is None:
            vec = self.vectors[label] = BitVector(self.length)
        return vec

    @property
    def nbytes(self) -> int:
        return sum(v.nbytes for v in self.vectors.values())


class LabelBitIndex:
    """
    Genetic-type index: one packed bit per base per label, per chromosome.

    Masking is permissive: unknown chromosomes and out-of-range regions are
    ignored. Query ranges are half-open 0-based [start, end).
    """

    def __init__(self, clamp_to_chrom_bounds: bool = True):
        self.clamp = clamp_to_chrom_bounds
        self._chr_idx: Dict[str, BitMask] = {}
        self._labels: Dict[str, None] = {}

    def add_chr(self, chr_: str, length: int) -> None:
        if length < 0:
            raise ValueError(f"Negative length for chromosome {chr_!r}: {length}")
        self._chr_idx[chr_] = BitMask(int(length))

    def remove_chr(self, chr_: str) -> Optional[BitMask]:
        return self._chr_idx.pop(chr_, None)

    def has_chr(self, chr_: str) -> bool:
        return chr_ in self._chr_idx

    def chrom_len(self, chr_: str) -> int:
        return self._chr_idx[chr_].length

    def chroms(self) -> List[str]:
        return list(self._chr_idx)

    def labels(self) -> List[str]:
        return list(self._labels)

    def num_labels(self) -> int:
        return len(self._labels)

    def nbytes(self) -> int:
        return sum(m.nbytes for m in self._chr_idx.values())

    def mask_region(self, chr_: str, start: int, end: int, label: str) -> bool:
        """
        Mark 0-based [start, end) on chr_ with label.
        Returns False, without touching the index, for unknown chromosomes
        or ranges outside 0 <= start <= end <= chrom_len.
        """
        mask = self._chr_idx.get(chr_)
        if mask is None or not (0 <= start <= end <= mask.length):
            return False
        self._labels.setdefault(label, None)
        mask.vector(label).set_range(start, end)
        return True

    def _query(self, chr_: str, start: int, end: int) -> Tuple[Optional[BitMask], int, int]:
        mask = self._chr_idx.get(chr_)
        if mask is None:
            return None, start, end
        if 0 <= start and end <= mask.length:
            return mask, start, end
        if not self.clamp:
            raise RegionBoundsError(
                f"{chr_}:{start}-{end} outside chromosome bounds 0-{mask.length}"
            )
        return mask, max(start, 0), min(end, mask.length)

    def unmask(self, chr_: str, start: int, end: int) -> Set[str]:
        """Labels with at least one set bit in [start, end)."""
        mask, start, end = self._query(chr_, start, end)
        if mask is None:
            return set()
        return {label for label, vec in mask.vectors.items() if vec.any(start, end)}

    def unmask_sum(self, chr_: str, start: int, end: int) -> Dict[str, int]:
        """Per-label count of set bits in [start, end), for labels with any."""
        mask, start, end = self._query(chr_, start, end)
        hit_sum: Dict[str, int] = {}
        if mask is None:
            return hit_sum
        for label in self._labels:
            vec = mask.vectors.get(label)
            if vec is None:
                continue
            n = vec.count(start, end)
            if n:
                hit_sum[label] = n
        return hit_sum
