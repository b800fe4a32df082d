from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import bamnostic as bn

from .bamcoverClasses import AlignmentData, CoverOptions, GenomeInterval
from .cigar import parse_cigar, reference_length
from .intervals import intervals_by_chrom, optimize_intervals
from .utils import _open_text_auto

_GTF_ATTR_RE = re.compile(r'\s*([^\s";]+)\s+(?:"([^"]*)"|([^\s;]+))\s*;?')


# Chromosome sizes ----------------------------------------------------------------------------------------------------
def read_chrom_sizes(path: str | Path) -> List[Tuple[str, int]]:
    """Read a 2-column chrom-size table. Malformed lines abort the run."""
    sizes: List[Tuple[str, int]] = []
    with open(path, "rt", encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, 1):
            if not line.strip() or line.startswith("#"):
                continue
            cols = line.rstrip("\n").split("\t")
            if len(cols) < 2:
                raise ValueError(f"{path}:{lineno}: expected 'chrom<TAB>length', got {line.rstrip()!r}")
            try:
                length = int(cols[1])
            except ValueError:
                raise ValueError(f"{path}:{lineno}: bad chromosome length {cols[1]!r}") from None
            if length < 0:
                raise ValueError(f"{path}:{lineno}: negative chromosome length {length}")
            sizes.append((cols[0], length))
    return sizes


# BED -----------------------------------------------------------------------------------------------------------------
def iter_bed_fields(path: str | Path, min_fields: int = 3) -> Iterator[List[str]]:
    """Yield tab-split BED records; header/track lines and short lines are skipped."""
    with open(path, "rt", encoding="utf-8") as fh:
        for line in fh:
            if line.startswith(("#", "track", "browser")):
                continue
            cols = line.rstrip("\n").split("\t")
            if len(cols) < min_fields:
                continue
            yield cols


def read_bed_regions(path: str | Path, chroms: Optional[Sequence[str]] = None) -> List[GenomeInterval]:
    """
    Read BED regions as 1-based closed intervals (BED start + 1 .. BED end).
    With `chroms`, regions on other chromosomes are dropped.
    """
    keep = set(chroms) if chroms is not None else None
    regions: List[GenomeInterval] = []
    for cols in iter_bed_fields(path):
        if keep is not None and cols[0] not in keep:
            continue
        regions.append(GenomeInterval(cols[0], int(cols[1]) + 1, int(cols[2])))
    return regions


# GFF3/GTF ------------------------------------------------------------------------------------------------------------
def _parse_attrs(attr_field: str) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for kv in attr_field.strip().split(";"):
        if not kv:
            continue
        if "=" in kv:
            k, v = kv.split("=", 1)
            out[k.strip()] = v
    return out


def _parse_gtf_attrs(attr_field: str) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for m in _GTF_ATTR_RE.finditer(attr_field):
        out[m.group(1)] = m.group(2) if m.group(2) is not None else m.group(3)
    return out


def gff_spec(path: str | Path) -> int:
    """2 for GTF, 3 for GFF3, by file extension (a trailing .gz is ignored)."""
    name = str(path).lower()
    if name.endswith(".gz"):
        name = name[:-3]
    if name.endswith(".gtf"):
        return 2
    if name.endswith((".gff", ".gff3")):
        return 3
    raise ValueError(f"Unrecognized GFF file extension: {path}")


def iter_gff_features(path: str | Path, tag: Optional[str] = None) -> Iterator[Tuple[str, str, int, int]]:
    """
    Yield (chrom, gtype, start, end) from a GTF/GFF3 file, 1-based closed.
    gtype is the feature type, or the value of attribute `tag` when present.
    """
    spec = gff_spec(path)
    parse = _parse_gtf_attrs if spec == 2 else _parse_attrs
    with _open_text_auto(path) as fh:
        for line in fh:
            if not line.strip() or line.startswith("#"):
                continue
            cols = line.rstrip("\n").split("\t")
            if len(cols) < 9:
                continue
            chrom, _src, feature, start_s, end_s = cols[:5]
            try:
                start = int(start_s); end = int(end_s)
            except ValueError:
                continue
            gtype = feature
            if tag:
                gtype = parse(cols[8]).get(tag, feature)
            yield chrom, gtype, start, end


# BAM -----------------------------------------------------------------------------------------------------------------
def open_bam(bam_path: str | Path):
    try:
        return bn.AlignmentFile(str(bam_path), "rb")
    except Exception as e:
        raise RuntimeError(f"Could not open BAM: {bam_path}: {e}") from e


def bam_chrom_sizes(bam) -> List[Tuple[str, int]]:
    refs = list(getattr(bam, "references", []) or [])
    lens = list(getattr(bam, "lengths", []) or [])
    return list(zip(refs, (int(n) for n in lens)))


def _get_read_name(aln) -> str:
    for attr in ("query_name", "qname", "read_name"):
        v = getattr(aln, attr, None)
        if v:
            return v
    return ""


def _get_cigar(aln) -> Tuple[Tuple[int, int], ...]:
    # bamnostic keeps (op, length) pairs in .cigar; pysam-style readers in .cigartuples
    for attr in ("cigartuples", "cigar"):
        v = getattr(aln, attr, None)
        if v and not isinstance(v, str):
            return tuple((int(op), int(length)) for op, length in v)
    cs = getattr(aln, "cigarstring", None)
    if isinstance(cs, str):
        return tuple(parse_cigar(cs))
    return ()


def _get_read_len(aln, cigar) -> int:
    for attr in ("query_length", "l_seq"):
        v = getattr(aln, attr, None)
        if isinstance(v, int) and v > 0:
            return v
    seq = getattr(aln, "seq", None) or getattr(aln, "query_sequence", None)
    if seq and seq != "*":
        return len(seq)
    # sequence-less records: infer from query-consuming operations
    return sum(length for op, length in cigar if op in (0, 1, 4, 7, 8))


def _extract_alignment_data(aln, options: CoverOptions | None = None) -> Optional[AlignmentData]:
    """Extract only necessary data from a bamnostic alignment; None for unmapped records."""
    if getattr(aln, "is_unmapped", False):
        return None
    chr_ = getattr(aln, "reference_name", None)
    if chr_ is None or chr_ == "*":
        return None

    # bamnostic uses 'pos' (0-based) instead of 'reference_start'
    start_1b = (getattr(aln, "pos", 0) or 0) + 1
    cigar = _get_cigar(aln)
    end_1b = start_1b + max(reference_length(cigar), 1) - 1
    mapq = getattr(aln, "mapq", None)
    if mapq is None:
        mapq = getattr(aln, "mapping_quality", 0) or 0
    name = _get_read_name(aln)
    clone = options.clone_of(name) if options else 1

    return AlignmentData(
        chr_, start_1b, end_1b, bool(getattr(aln, "is_reverse", False)), int(mapq),
        cigar, name, _get_read_len(aln, cigar), clone,
    )


def iter_alignments(
    bam,
    regions: Optional[List[GenomeInterval]] = None,
    options: CoverOptions | None = None,
    logger: logging.Logger | None = None,
) -> Iterator[AlignmentData]:
    """
    Stream decoded, mapped alignments passing the strand and MAPQ filters.

    With `regions` (already optimized) each one is fetched through the BAM
    index; an alignment overlapping two consecutive regions is only
    reported for the first.
    """
    options = options or CoverOptions()

    def passes(a: AlignmentData) -> bool:
        return a.read_len > 0 and options.strand_ok(a.is_reverse) and a.mapq >= options.min_mapq

    if regions is None:
        for aln in bam:
            a = _extract_alignment_data(aln, options)
            if a is not None and passes(a):
                yield a
        return

    for chr_, ivs in intervals_by_chrom(optimize_intervals(regions)).items():
        prev_end = 0
        for iv in ivs:
            if logger and logger.isEnabledFor(logging.DEBUG):
                logger.debug(f"Fetching region {iv}")
            for aln in bam.fetch(contig=chr_, start=iv.start - 1, stop=iv.end):
                a = _extract_alignment_data(aln, options)
                if a is None or a.start_1b <= prev_end:
                    continue
                if passes(a):
                    yield a
            prev_end = iv.end


def read_regions_for_bam(bed_path: str | Path, chrom_sizes: List[Tuple[str, int]]) -> List[GenomeInterval]:
    """BED regions of interest restricted to chromosomes of a BAM header, optimized."""
    return optimize_intervals(read_bed_regions(bed_path, chroms=[c for c, _ in chrom_sizes]))


def scan_plan(
    chrom_sizes: List[Tuple[str, int]],
    regions: Optional[List[GenomeInterval]] = None,
) -> Dict[str, List[GenomeInterval]]:
    """
    Intervals to report per chromosome: whole chromosomes, or the optimized
    regions of interest (only chromosomes carrying a region are indexed).
    """
    if regions is None:
        return {c: [GenomeInterval(c, 1, n)] for c, n in chrom_sizes if n > 0}
    return intervals_by_chrom(optimize_intervals(regions))


def bam_scan_setup(bam, regions_path: str | Path | None = None, logger: logging.Logger | None = None):
    """
    Chromosome sizes, optimized regions (or None) and the per-chromosome scan
    plan for a BAM, restricted to chromosomes carrying a region when given.
    """
    chrom_sizes = bam_chrom_sizes(bam)
    regions = None
    if regions_path is not None:
        regions = read_regions_for_bam(regions_path, chrom_sizes)
        if logger:
            logger.info(f"Read {len(regions)} optimized regions from {regions_path}")
    plan = scan_plan(chrom_sizes, regions)
    chrom_sizes = [(c, n) for c, n in chrom_sizes if c in plan]
    if logger and logger.isEnabledFor(logging.DEBUG):
        for c, n in chrom_sizes:
            logger.debug(f"  {c}: {n}")
    return chrom_sizes, regions, plan
