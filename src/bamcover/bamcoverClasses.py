from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Pattern, Tuple

# Read names of non-redundant tags embed the clone count, e.g. "nr123:45:36"
NR_PATTERN = r"^(?:tr|un|nr)\d+:(\d+):\d+"


class RegionBoundsError(ValueError):
    """Coordinates fall outside a declared chromosome and clamping is off."""


@dataclass(order=True)
class GenomeInterval:
    """
    A genomic interval on one chromosome, 1-based with both ends inclusive.
    Ordered by chromosome name, then start, then end.
    """
    chr: str
    start: int
    end: int

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(
                f"start must not be greater than end: {self.chr}:{self.start}-{self.end}"
            )

    def __hash__(self):
        return hash((self.chr, self.start, self.end))

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def copy(self) -> GenomeInterval:
        return GenomeInterval(self.chr, self.start, self.end)

    def is_overlap(self, other: GenomeInterval) -> bool:
        # Closed ranges must share at least one coordinate
        return self.chr == other.chr and self.start <= other.end and self.end >= other.start

    def merge_with(self, other: GenomeInterval) -> GenomeInterval:
        """
        Merge another interval into this one, in place.
        Non-overlapping intervals leave this one untouched; check is_overlap first.
        """
        if not self.is_overlap(other):
            return self
        self.start = min(self.start, other.start)
        self.end = max(self.end, other.end)
        return self

    def __str__(self) -> str:
        return f"{self.chr}:{self.start}-{self.end}"


# A more memory efficient way of storing just essential information from all the alignment info
@dataclass
class AlignmentData:
    """Minimal decoded alignment: reference, 1-based locus, CIGAR and clone weight."""
    __slots__ = ('chr', 'start_1b', 'end_1b', 'is_reverse', 'mapq', 'cigar', 'read_name', 'read_len', 'clone')
    chr: str
    start_1b: int
    end_1b: int
    is_reverse: bool
    mapq: int
    cigar: Tuple[Tuple[int, int], ...]
    read_name: str
    read_len: int
    clone: int

    @property
    def strand(self) -> str:
        return "-" if self.is_reverse else "+"


@dataclass
class CoverOptions:
    """
    Policy shared by the coverage and classification tools.

    strand is a bit flag: 1 plus (or sense), 2 minus (or antisense), 3 both.
    """
    count_soft: bool = False
    strand: int = 3
    min_mapq: int = 0
    nr: bool = False
    clamp_to_chrom_bounds: bool = True
    nr_pattern: Optional[Pattern[str]] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.strand not in (1, 2, 3):
            raise ValueError(f"strand must be 1, 2 or 3, got {self.strand}")
        if self.nr:
            self.nr_pattern = re.compile(NR_PATTERN)

    def strand_ok(self, is_reverse: bool) -> bool:
        return bool((2 if is_reverse else 1) & self.strand)

    def clone_of(self, read_name: str) -> int:
        if self.nr_pattern is None:
            return 1
        m = self.nr_pattern.search(read_name or "")
        return int(m.group(1)) if m else 1
