from __future__ import annotations

import re
from typing import Iterable, List, Sequence, Tuple

# BAM operation codes (same numbering as pysam/bamnostic cigartuples)
CIGAR_OPS = "MIDNSHP=XB"
M, I, D, N, S, H, P, EQ, X, B = range(10)

# Reference-consuming operations that write coverage
WRITE_OPS = frozenset((M, D, EQ, X))
# Advance the reference pointer without writing
SKIP_OPS = frozenset((N, H))
# Aligned blocks, as used for classification
BLOCK_OPS = frozenset((M, EQ, X))

_CIGAR_RE = re.compile(r"(\d+)([MIDNSHP=XB])")

Cigar = Sequence[Tuple[int, int]]


def parse_cigar(cigar_string: str) -> List[Tuple[int, int]]:
    """Decode a CIGAR string into (op, length) tuples."""
    if cigar_string in ("", "*"):
        return []
    ops: List[Tuple[int, int]] = []
    pos = 0
    for m in _CIGAR_RE.finditer(cigar_string):
        if m.start() != pos:
            break
        ops.append((CIGAR_OPS.index(m.group(2)), int(m.group(1))))
        pos = m.end()
    if pos != len(cigar_string):
        raise ValueError(f"Malformed CIGAR string: {cigar_string!r}")
    return ops


def cigar_to_string(cigar: Cigar) -> str:
    return "".join(f"{length}{CIGAR_OPS[op]}" for op, length in cigar) or "*"


def unclipped_start(start: int, cigar: Cigar) -> int:
    """Alignment start moved back over leading soft/hard clips."""
    clipped = 0
    for op, length in cigar:
        if op not in (S, H):
            break
        clipped += length
    return start - clipped


def walk_reference(start: int, cigar: Cigar, count_soft: bool = False) -> List[Tuple[int, int]]:
    """
    Walk a CIGAR over the reference from the unclipped start.

    Returns the written positions as half-open [s, e) runs, adjacent runs merged.
    M/=/X/D write and advance; S writes only if count_soft but always advances;
    N/H advance only; I/P/B neither write nor advance.
    """
    runs: List[Tuple[int, int]] = []
    pos = start
    for op, length in cigar:
        if op in WRITE_OPS or (op == S and count_soft):
            if runs and runs[-1][1] == pos:
                runs[-1] = (runs[-1][0], pos + length)
            else:
                runs.append((pos, pos + length))
            pos += length
        elif op == S or op in SKIP_OPS:
            pos += length
    return [(s, e) for s, e in runs if e > s]


def alignment_blocks(start: int, cigar: Cigar) -> List[Tuple[int, int]]:
    """Aligned (ref_start, length) blocks of an alignment starting at `start`."""
    blocks: List[Tuple[int, int]] = []
    pos = start
    for op, length in cigar:
        if op in BLOCK_OPS:
            blocks.append((pos, length))
            pos += length
        elif op in (D, N):
            pos += length
    return blocks


def reference_length(cigar: Iterable[Tuple[int, int]]) -> int:
    return sum(length for op, length in cigar if op in (M, D, N, EQ, X))
