from __future__ import annotations

import dataclasses
import math
from pathlib import Path
from typing import Tuple

from .accumulator import PositionalAccumulator
from .bamcoverClasses import CoverOptions, GenomeInterval
from .cigar import unclipped_start
from .progress import ProcessStatus
from .readers import bam_chrom_sizes, iter_alignments, iter_bed_fields, open_bam
from .stats import overlap_rate
from .utils import _fmt_float, _make_logger, _open_out

SENSE, ANTISENSE, UNKNOWN_STRAND = 1, 2, 3


def relative_strand(aln_strand: str, region_strand: str) -> int:
    if region_strand not in ("+", "-"):
        return UNKNOWN_STRAND
    return SENSE if aln_strand == region_strand else ANTISENSE


def sam_to_region_count(
    bam_path: str | Path,
    bed6_path: str | Path,
    out_path: str | Path,
    *,
    options: CoverOptions | None = None,
    max_flank: int = 0,
    min_rate: float = 1e-9,
    log_level: str = "INFO",
) -> int:
    """
    Count alignments per BED6 region using the BAM index.

    The scan region is the region extended by max_flank on both sides and
    clipped to the chromosome. An alignment counts (with its clone value) when
    it covers at least min_rate of the scan region and its strand relative to
    the region passes options.strand (1 sense, 2 antisense, 3 both).
    """
    logger = _make_logger("bamcover.regioncount", log_level)
    options = options or CoverOptions()
    # strand is judged relative to each region below
    scan_options = dataclasses.replace(options, strand=3)
    n = 0
    try:
        with open_bam(bam_path) as bam, _open_out(out_path) as fh:
            chrom_len = dict(bam_chrom_sizes(bam))
            logger.info(f"Scanning BED6 regions in {bed6_path} ...")
            status = ProcessStatus("region(s) counted", logger, every=10000)
            fh.write("chrom\tstart\tend\tname\tcount\tstrand\n")
            for fields in iter_bed_fields(bed6_path, min_fields=6):
                chr_ = fields[0]
                if chr_ not in chrom_len:
                    logger.debug(f"Region on unknown chromosome skipped: {chr_}")
                    continue
                # BED start is 0-based
                region_start = int(fields[1]) + 1
                region_end = int(fields[2])
                if region_end < region_start:
                    continue
                name, region_strand = fields[3], fields[5]
                scan_start = max(region_start - max_flank, 1)
                scan_end = min(region_end + max_flank, chrom_len[chr_])
                if scan_end < scan_start:
                    continue

                count = 0
                scan = GenomeInterval(chr_, scan_start, scan_end)
                for aln in iter_alignments(bam, [scan], scan_options):
                    if not relative_strand(aln.strand, region_strand) & options.strand:
                        continue
                    if overlap_rate(scan_start, scan_end, aln.start_1b, aln.end_1b) >= min_rate:
                        count += aln.clone
                fh.write(f"{chr_}\t{region_start}\t{region_end}\t{name}\t{count}\t{region_strand}\n")
                status.update_status()
                n += 1
            status.finish()
    except Exception as e:
        logger.error(f"{bam_path}: {e}")
        return 1
    logger.info(f"Wrote counts for {n:,} regions to {out_path}")
    return 0


def bin_bounds(region_start: int, region_end: int, region_strand: str, i: int, bin_width: float) -> Tuple[int, int]:
    """
    Closed genomic span of bin `i` of a region; bins run 5' to 3' of the region
    strand, so on the minus strand bin 0 ends at region_end. Negative bins and
    bins past the last one fall into the flanks.
    """
    if region_strand == "-":
        end = math.floor(region_end - i * bin_width)
        start = math.floor(region_end - (i + 1) * bin_width) + 1
    else:
        start = math.floor(region_start + i * bin_width)
        end = math.floor(region_start + (i + 1) * bin_width) - 1
    return start, end


def sam_to_bin_cover(
    bam_path: str | Path,
    bed6_path: str | Path,
    out_path: str | Path,
    *,
    options: CoverOptions | None = None,
    n_bin: int = 100,
    max_flank: int = 0,
    log_level: str = "INFO",
) -> int:
    """
    Mean coverage of every BED6 region split into n_bin equal-width bins,
    plus max_flank bins of the same width up- and downstream.

    One row per bin: chrom, start, end, name, cover, strand, bin, from, to,
    cover_strand. `from`/`to` are offsets from the region's 5' end on its
    strand; regions with a `.` strand are laid out as plus-strand regions.
    """
    logger = _make_logger("bamcover.regioncount", log_level)
    options = options or CoverOptions()
    if n_bin < 1:
        logger.error(f"number of bins must be positive, got {n_bin}")
        return 2
    scan_options = dataclasses.replace(options, strand=3)
    n = 0
    try:
        with open_bam(bam_path) as bam, _open_out(out_path) as fh:
            chrom_len = dict(bam_chrom_sizes(bam))
            logger.info(f"Scanning BED6 regions in {bed6_path} ...")
            status = ProcessStatus("region(s) scanned", logger, every=10000)
            fh.write("chrom\tstart\tend\tname\tcover\tstrand\tbin\tfrom\tto\tcover_strand\n")
            for fields in iter_bed_fields(bed6_path, min_fields=6):
                status.update_status()
                chr_ = fields[0]
                if chr_ not in chrom_len:
                    continue
                region_start = int(fields[1]) + 1
                region_end = int(fields[2])
                region_len = region_end - region_start + 1
                if region_len <= 0:
                    continue
                name, region_strand = fields[3], fields[5]
                bin_width = region_len / n_bin
                flank_len = math.ceil(max_flank * bin_width)
                scan_start = max(region_start - flank_len, 1)
                scan_end = min(region_end + flank_len, chrom_len[chr_])
                if scan_end < scan_start:
                    continue

                # scan positions are shifted so scan_start is cell 1
                shift = scan_start - 1
                scan = PositionalAccumulator({chr_: scan_end - scan_start + 1})
                for aln in iter_alignments(bam, [GenomeInterval(chr_, scan_start, scan_end)], scan_options):
                    if not relative_strand(aln.strand, region_strand) & options.strand:
                        continue
                    scan.add_alignment(chr_, unclipped_start(aln.start_1b, aln.cigar) - shift, aln.cigar,
                                       weight=aln.clone, count_soft=options.count_soft)

                for i in range(-max_flank, n_bin + max_flank):
                    start, end = bin_bounds(region_start, region_end, region_strand, i, bin_width)
                    if start > scan_end or end < scan_start:
                        continue
                    start, end = max(start, scan_start), min(end, scan_end)
                    if region_strand == "-":
                        from_, to = region_end - end, region_end - start
                    else:
                        from_, to = start - region_start, end - region_start
                    val = scan.mean_coverage(chr_, start - shift, end - shift + 1)
                    fh.write(f"{chr_}\t{start}\t{end}\t{name}\t{_fmt_float(val)}\t{region_strand}\t"
                             f"{i}\t{from_}\t{to}\t{options.strand}\n")
                n += 1
            status.finish()
    except Exception as e:
        logger.error(f"{bam_path}: {e}")
        return 1
    logger.info(f"Wrote bin coverage for {n:,} regions to {out_path}")
    return 0
