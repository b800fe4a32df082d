from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, TextIO, Tuple

from .accumulator import PositionalAccumulator
from .bamcoverClasses import CoverOptions, GenomeInterval
from .cigar import unclipped_start
from .progress import ProcessStatus
from .readers import (
    bam_scan_setup,
    iter_alignments,
    iter_bed_fields,
    open_bam,
    read_bed_regions,
    read_chrom_sizes,
    scan_plan,
)
from .stats import phred_q2p
from .utils import _fmt_float, _get_memory_usage, _make_logger, _open_out

DEFAULT_BREAKS = "0,5,10,20,30,100"
INF_STR = "Inf"
TRACK_HEADER = "track type=wiggle_0"


def _track_line(out_path: str | Path, name: Optional[str], desc: Optional[str]) -> str:
    name = name or Path(out_path).name.removesuffix(".wig")
    desc = desc or name
    return f"{TRACK_HEADER} name={name} description={desc}"


def _write_fixed_step(fh: TextIO, chr_: str, windows: Iterable[Tuple[int, int, float]], step: int) -> int:
    """Write fixedStep blocks, starting a new block whenever windows stop being consecutive."""
    n = 0
    prev_start = 0
    for start, _end, val in windows:
        if prev_start == 0 or start - prev_start != step:
            fh.write(f"fixedStep chrom={chr_} start={start} step={step}\n")
        fh.write(_fmt_float(val) + "\n")
        prev_start = start
        n += 1
    return n


def accumulate_bam(
    bam,
    acc: PositionalAccumulator,
    options: CoverOptions,
    regions: Optional[List[GenomeInterval]] = None,
    logger: logging.Logger | None = None,
) -> int:
    """Add every passing alignment of a BAM into `acc`; returns alignments accumulated."""
    status = ProcessStatus("alignment(s) processed", logger)
    reason_no_chr = 0
    for a in iter_alignments(bam, regions, options, logger):
        status.update_status()
        if not acc.add_alignment(a.chr, unclipped_start(a.start_1b, a.cigar), a.cigar, weight=a.clone, count_soft=options.count_soft):
            reason_no_chr += 1
    status.finish()
    if logger:
        logger.debug(f"Alignments on chromosomes outside the index: {reason_no_chr}")
    return acc.records


def _init_accumulator(chrom_sizes, options: CoverOptions, logger: logging.Logger) -> PositionalAccumulator:
    logger.info(f"Initialize chrom-index for {len(chrom_sizes)} chromosome(s) ...")
    acc = PositionalAccumulator(chrom_sizes, clamp_to_chrom_bounds=options.clamp_to_chrom_bounds)
    logger.debug(f"Index size: {acc.nbytes() / 1024 / 1024:.1f} MB; memory: {_get_memory_usage():.1f} MB")
    return acc


def _log_options(options: CoverOptions, logger: logging.Logger) -> None:
    logger.info(
        f"strand={options.strand}, min_mapq={options.min_mapq} "
        f"(error p<={phred_q2p(options.min_mapq):.3g}), count_soft={options.count_soft}, nr={options.nr}"
    )


def _scan_bam(bam_path, regions_path, options: CoverOptions, logger: logging.Logger):
    """Open a BAM, size the accumulator from its header and accumulate it."""
    with open_bam(bam_path) as bam:
        chrom_sizes, regions, plan = bam_scan_setup(bam, regions_path, logger)
        acc = _init_accumulator(chrom_sizes, options, logger)
        logger.info(f"Scan BAM file {bam_path} ...")
        accumulate_bam(bam, acc, options, regions, logger)
    logger.info(f"Accumulated {acc.records:,} alignments (total weight {acc.total_weight:,})")
    return acc, plan


def _accumulate_bed(chrom_sizes_path, bed_path, regions_path, options: CoverOptions, clone_value: bool,
                    logger: logging.Logger):
    """Index the chromosomes to report and add every passing BED6 record; returns (acc, plan)."""
    chrom_sizes = read_chrom_sizes(chrom_sizes_path)
    regions = None
    if regions_path is not None:
        regions = read_bed_regions(regions_path, chroms=[c for c, _ in chrom_sizes])
    plan = scan_plan(chrom_sizes, regions)
    acc = _init_accumulator([(c, n) for c, n in chrom_sizes if c in plan], options, logger)

    logger.info(f"Scan BED file {bed_path} ...")
    status = ProcessStatus("BED record(s) processed", logger)
    for cols in iter_bed_fields(bed_path):
        status.update_status()
        chr_ = cols[0]
        if not acc.has_chr(chr_):
            continue
        rec_strand = cols[5] if len(cols) > 5 else "."
        if rec_strand == "+":
            flag = 1
        elif rec_strand == "-":
            flag = 2
        else:
            flag = 3
        if not flag & options.strand:
            continue
        # BED start is 0-based
        start, end = int(cols[1]) + 1, int(cols[2])
        if end < start:
            continue
        clone = int(cols[4]) if clone_value and len(cols) > 4 else 1
        acc.add_region(chr_, start, end, weight=clone)
    status.finish()
    return acc, plan


def sam_to_wig(
    bam_path: str | Path,
    out_path: str | Path,
    *,
    options: CoverOptions | None = None,
    regions_path: str | Path | None = None,
    step: int = 1,
    keep0: bool = False,
    norm_rpm: bool = False,
    include_track: bool = True,
    track_name: str | None = None,
    track_desc: str | None = None,
    log_level: str = "INFO",
) -> int:
    """Format a BAM file as a fixedStep Wiggle coverage track."""
    logger = _make_logger("bamcover.cover", log_level)
    options = options or CoverOptions()
    _log_options(options, logger)
    try:
        acc, plan = _scan_bam(bam_path, regions_path, options, logger)
        scale = acc.rpm_scale() if norm_rpm else 1.0
        logger.info("Output ...")
        n = 0
        with _open_out(out_path) as fh:
            if include_track:
                fh.write(_track_line(out_path, track_name, track_desc) + "\n")
            for chr_, intervals in plan.items():
                for iv in intervals:
                    n += _write_fixed_step(fh, chr_, acc.iter_windows(chr_, iv.start, iv.end, step, keep0, scale), step)
    except Exception as e:
        logger.error(f"{bam_path}: {e}")
        return 1
    logger.info(f"Wrote {n:,} windows to {out_path}")
    return 0


def bed_to_wig(
    chrom_sizes_path: str | Path,
    bed_path: str | Path,
    out_path: str | Path,
    *,
    strand: int = 3,
    clone_value: bool = False,
    regions_path: str | Path | None = None,
    step: int = 1,
    keep0: bool = False,
    norm_rpm: bool = False,
    fix: bool = False,
    include_track: bool = True,
    track_name: str | None = None,
    track_desc: str | None = None,
    log_level: str = "INFO",
) -> int:
    """
    Accumulate BED6 records into a fixedStep Wiggle track.
    Column 5 is used as the clone value with clone_value; column 6 is the strand.
    """
    logger = _make_logger("bamcover.cover", log_level)
    try:
        options = CoverOptions(strand=strand, clamp_to_chrom_bounds=fix)
        acc, plan = _accumulate_bed(chrom_sizes_path, bed_path, regions_path, options, clone_value, logger)
        scale = acc.rpm_scale() if norm_rpm else 1.0
        n = 0
        with _open_out(out_path) as fh:
            if include_track:
                fh.write(_track_line(out_path, track_name, track_desc) + "\n")
            for chr_, intervals in plan.items():
                for iv in intervals:
                    n += _write_fixed_step(fh, chr_, acc.iter_windows(chr_, iv.start, iv.end, step, keep0, scale), step)
    except Exception as e:
        logger.error(f"{bed_path}: {e}")
        return 1
    logger.info(f"Wrote {n:,} windows to {out_path}")
    return 0


def bed_to_abs_cover(
    chrom_sizes_path: str | Path,
    bed_path: str | Path,
    out_path: str | Path,
    *,
    strand: int = 3,
    clone_value: bool = False,
    regions_path: str | Path | None = None,
    step: int = 1,
    keep0: bool = False,
    norm_rpm: bool = False,
    fix: bool = False,
    log_level: str = "INFO",
) -> int:
    """Tabular absolute coverage of BED6 records: chrom, start, end (1-based, inclusive), cover."""
    logger = _make_logger("bamcover.cover", log_level)
    try:
        options = CoverOptions(strand=strand, clamp_to_chrom_bounds=fix)
        acc, plan = _accumulate_bed(chrom_sizes_path, bed_path, regions_path, options, clone_value, logger)
        scale = acc.rpm_scale() if norm_rpm else 1.0
        n = 0
        with _open_out(out_path) as fh:
            fh.write("chrom\tstart\tend\tcover\n")
            for chr_, intervals in plan.items():
                for iv in intervals:
                    for start, end, val in acc.iter_windows(chr_, iv.start, iv.end, step, keep0, scale):
                        fh.write(f"{chr_}\t{start}\t{end - 1}\t{_fmt_float(val)}\n")
                        n += 1
    except Exception as e:
        logger.error(f"{bed_path}: {e}")
        return 1
    logger.info(f"Wrote {n:,} rows to {out_path}")
    return 0


def sam_to_abs_cover(
    bam_path: str | Path,
    out_path: str | Path,
    *,
    options: CoverOptions | None = None,
    regions_path: str | Path | None = None,
    step: int = 1,
    min_cover: int = 1,
    norm_rpm: bool = False,
    log_level: str = "INFO",
) -> int:
    """
    Tabular absolute coverage: chrom, start, end (1-based, inclusive), cover.
    Windows below min_cover (compared before RPM scaling) are not reported.
    """
    logger = _make_logger("bamcover.cover", log_level)
    options = options or CoverOptions()
    _log_options(options, logger)
    try:
        acc, plan = _scan_bam(bam_path, regions_path, options, logger)
        scale = acc.rpm_scale() if norm_rpm else 1.0
        n = 0
        with _open_out(out_path) as fh:
            fh.write("chrom\tstart\tend\tcover\n")
            for chr_, intervals in plan.items():
                for iv in intervals:
                    for start, end, val in acc.iter_windows(chr_, iv.start, iv.end, step, keep0=True):
                        if val < min_cover:
                            continue
                        if norm_rpm:
                            cover = _fmt_float(val * scale)
                        elif step == 1:
                            cover = str(int(val))
                        else:
                            cover = _fmt_float(val)
                        fh.write(f"{chr_}\t{start}\t{end - 1}\t{cover}\n")
                        n += 1
    except Exception as e:
        logger.error(f"{bam_path}: {e}")
        return 1
    logger.info(f"Wrote {n:,} rows to {out_path}")
    return 0


def parse_breaks(break_str: str) -> List[int]:
    try:
        breaks = sorted({int(b) for b in break_str.split(",") if b.strip()})
    except ValueError:
        raise ValueError(f"--breaks must be comma-separated integers, got {break_str!r}") from None
    if not breaks:
        raise ValueError("--breaks must not be empty")
    return breaks


def sam_to_cover_summ(
    bam_path: str | Path,
    out_path: str | Path,
    *,
    options: CoverOptions | None = None,
    regions_path: str | Path | None = None,
    breaks: str = DEFAULT_BREAKS,
    do_total: bool = True,
    log_level: str = "INFO",
) -> int:
    """Summarize basewise coverage into (b[k], b[k+1]] bins."""
    logger = _make_logger("bamcover.cover", log_level)
    options = options or CoverOptions()
    try:
        brks = parse_breaks(breaks)
    except ValueError as e:
        logger.error(str(e))
        return 2
    try:
        acc, plan = _scan_bam(bam_path, regions_path, options, logger)

        min_cover, max_cover = None, 0
        for chr_, intervals in plan.items():
            for iv in intervals:
                lo, hi = acc.coverage_range(chr_, iv.start, iv.end)
                if hi > 0:
                    min_cover = lo if min_cover is None else min(min_cover, lo)
                    max_cover = max(max_cover, hi)
        if min_cover is not None and brks[0] > min_cover:
            brks.insert(0, 0)
        if brks[-1] < max_cover:
            brks.append(float("inf"))

        logger.info("Checking basewise coverages ...")
        bin_summ: List[int] = [0] * (len(brks) - 1)
        total_cover = 0
        for chr_, intervals in plan.items():
            for iv in intervals:
                counts, scanned = acc.bin_summary(chr_, iv.start, iv.end, brks)
                total_cover += scanned
                bin_summ = [a + b for a, b in zip(bin_summ, counts)]

        with _open_out(out_path) as fh:
            fh.write("bin_name\tbin_min\tbin_max\tcover_length\n")
            for k in range(len(brks) - 1):
                lo = str(brks[k])
                hi = INF_STR if brks[k + 1] == float("inf") else str(brks[k + 1])
                fh.write(f"({lo},{hi}]\t{lo}\t{hi}\t{bin_summ[k]}\n")
            if do_total:
                fh.write(f"total\t0\t{INF_STR}\t{total_cover}\n")
    except Exception as e:
        logger.error(f"{bam_path}: {e}")
        return 1
    logger.info(f"Wrote coverage summary to {out_path}")
    return 0
