from __future__ import annotations

from typing import Dict, Iterable, List

from .bamcoverClasses import GenomeInterval


def merge(a: GenomeInterval, b: GenomeInterval) -> GenomeInterval:
    """Merge two intervals into a new one; a copy of `a` if they do not overlap."""
    return a.copy().merge_with(b)


def optimize_intervals(intervals: Iterable[GenomeInterval]) -> List[GenomeInterval]:
    """
    Collapse a collection of intervals into a sorted list of disjoint ones.

    Sorts by (chr, start, end), then scans left to right keeping a stack:
    an interval overlapping the top is merged into it, otherwise pushed.
    Inputs are copied, the caller's intervals are never modified.
    """
    stack: List[GenomeInterval] = []
    for iv in sorted(intervals):
        if stack and stack[-1].is_overlap(iv):
            stack[-1].merge_with(iv)
        else:
            stack.append(iv.copy())
    return stack


def intervals_by_chrom(intervals: Iterable[GenomeInterval]) -> Dict[str, List[GenomeInterval]]:
    """Group intervals per chromosome, keeping their order."""
    out: Dict[str, List[GenomeInterval]] = {}
    for iv in intervals:
        out.setdefault(iv.chr, []).append(iv)
    return out
