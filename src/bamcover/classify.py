from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from .bamcoverClasses import AlignmentData, CoverOptions
from .cigar import alignment_blocks
from .gtindex import LabelBitIndex
from .progress import ProcessStatus
from .readers import bam_scan_setup, iter_alignments, iter_gff_features, open_bam, read_chrom_sizes
from .utils import _get_memory_usage, _make_logger, _open_out, _open_text_auto

DEFAULT_UNCLASSIFIED_GTYPE = "intergenic"
BED_GTYPE_KEY = "GType"
VCF_GTYPE_KEY = "GTYPE"
VCF_GTYPE_HEADER = f'##INFO=<ID={VCF_GTYPE_KEY},Number=.,Type=String,Description="Genetic Type">'
BED_DETAIL_TYPE = "bedDetail"


def build_gtype_index(
    chrom_sizes: Sequence[Tuple[str, int]],
    gff_paths: Sequence[str | Path],
    *,
    tag: str | None = None,
    clamp_to_chrom_bounds: bool = True,
    logger: logging.Logger | None = None,
) -> LabelBitIndex:
    """Mask every GFF3/GTF feature on a known chromosome into a fresh index."""
    gtype_idx = LabelBitIndex(clamp_to_chrom_bounds=clamp_to_chrom_bounds)
    for chr_, length in chrom_sizes:
        gtype_idx.add_chr(chr_, length)

    status = ProcessStatus("GFF feature(s) read", logger)
    skipped = 0
    for gff_path in gff_paths:
        if logger:
            logger.info(f"Reading GFF annotation file {gff_path}")
        for chr_, gtype, start, end in iter_gff_features(gff_path, tag=tag):
            status.update_status()
            # GFF start is 1-based
            if not gtype_idx.mask_region(chr_, start - 1, end, gtype):
                skipped += 1
    status.finish()

    if logger:
        logger.info(f"Indexed {gtype_idx.num_labels()} genetic type(s) on {len(gtype_idx.chroms())} chromosome(s)")
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Genetic types: {gtype_idx.labels()}")
            logger.debug(f"Features on unknown chromosomes or out of range: {skipped}")
            logger.debug(f"Index size: {gtype_idx.nbytes() / 1024 / 1024:.1f} MB; memory: {_get_memory_usage():.1f} MB")
    return gtype_idx


def alignment_type_sum(gtype_idx: LabelBitIndex, aln: AlignmentData) -> Tuple[Dict[str, int], int]:
    """Per-type overlap summed over all aligned blocks, and the aligned length."""
    type_sum: Dict[str, int] = {}
    align_len = 0
    for block_start, block_len in alignment_blocks(aln.start_1b, aln.cigar):
        align_len += block_len
        # block start is 1-based
        for gtype, n in gtype_idx.unmask_sum(aln.chr, block_start - 1, block_start - 1 + block_len).items():
            type_sum[gtype] = type_sum.get(gtype, 0) + n
    return type_sum, align_len


def format_types(type_sum: Dict[str, int], un_type: str, length: int, show_summ: bool = False) -> str:
    """Comma-joined types, or type:overlap pairs with show_summ; un_type when empty."""
    if not type_sum:
        return f"{un_type}:{length}" if show_summ else un_type
    if show_summ:
        return ",".join(f"{k}:{v}" for k, v in type_sum.items())
    return ",".join(type_sum)


def _open_gtype_bam(bam_path, gff_paths, regions_path, tag, logger):
    bam = open_bam(bam_path)
    try:
        chrom_sizes, regions, _plan = bam_scan_setup(bam, regions_path, logger)
        gtype_idx = build_gtype_index(chrom_sizes, gff_paths, tag=tag, logger=logger)
    except Exception:
        bam.close()
        raise
    return bam, regions, gtype_idx


def classify_sam(
    bam_path: str | Path,
    gff_paths: List[str],
    out_path: str | Path,
    *,
    options: CoverOptions | None = None,
    regions_path: str | Path | None = None,
    show_summ: bool = False,
    un_type: str = DEFAULT_UNCLASSIFIED_GTYPE,
    tag: str | None = None,
    log_level: str = "INFO",
) -> int:
    """
    Classify each alignment by the genetic types its aligned blocks overlap.
    Output is TSV: name, chrom, strand, start, end, type.
    """
    logger = _make_logger("bamcover.classify", log_level)
    options = options or CoverOptions()
    n = 0
    try:
        bam, regions, gtype_idx = _open_gtype_bam(bam_path, gff_paths, regions_path, tag, logger)
        with bam, _open_out(out_path) as fh:
            logger.info(f"Scanning BAM file {bam_path} ...")
            status = ProcessStatus("alignment(s) scanned", logger)
            fh.write("name\tchrom\tstrand\tstart\tend\ttype\n")
            for aln in iter_alignments(bam, regions, options, logger):
                status.update_status()
                type_sum, align_len = alignment_type_sum(gtype_idx, aln)
                type_str = format_types(type_sum, un_type, align_len, show_summ)
                fh.write(f"{aln.read_name}\t{aln.chr}\t{aln.strand}\t{aln.start_1b}\t{aln.end_1b}\t{type_str}\n")
                n += 1
            status.finish()
    except Exception as e:
        logger.error(f"{bam_path}: {e}")
        return 1
    logger.info(f"Wrote {n:,} classified alignments to {out_path}")
    return 0


def class_summ_sam(
    bam_path: str | Path,
    gff_paths: List[str],
    out_path: str | Path,
    *,
    options: CoverOptions | None = None,
    regions_path: str | Path | None = None,
    rel_count: bool = False,
    un_type: str = DEFAULT_UNCLASSIFIED_GTYPE,
    tag: str | None = None,
    log_level: str = "INFO",
) -> int:
    """
    Summarize alignments per genetic type.
    Each alignment adds 1 to every type it overlaps, or the overlapped fraction
    of its aligned length with rel_count; alignments with no type count as un_type.
    """
    logger = _make_logger("bamcover.classify", log_level)
    options = options or CoverOptions()
    gtype_count: Dict[str, float] = {}
    try:
        bam, regions, gtype_idx = _open_gtype_bam(bam_path, gff_paths, regions_path, tag, logger)
        with bam:
            logger.info(f"Scanning BAM file {bam_path} ...")
            status = ProcessStatus("alignment(s) scanned", logger)
            for aln in iter_alignments(bam, regions, options, logger):
                status.update_status()
                type_sum, align_len = alignment_type_sum(gtype_idx, aln)
                if not type_sum:
                    gtype_count[un_type] = gtype_count.get(un_type, 0.0) + 1
                    continue
                for gtype, n in type_sum.items():
                    inc = n / align_len if rel_count else 1.0
                    gtype_count[gtype] = gtype_count.get(gtype, 0.0) + inc
            status.finish()
        with _open_out(out_path) as fh:
            fh.write("type\tcount\n")
            for gtype, cnt in gtype_count.items():
                fh.write(f"{gtype}\t{cnt}\n")
    except Exception as e:
        logger.error(f"{bam_path}: {e}")
        return 1
    logger.info(f"Wrote {len(gtype_count)} type summaries to {out_path}")
    return 0


def _bed_track_line(line: str | None, name: str, desc: str) -> str:
    """Rewrite (or create) a BED track line as a bedDetail track."""
    if line is None:
        return f'track name="{name}" type={BED_DETAIL_TYPE} description="{desc}"'
    track = re.sub(r'name=(?:"[^"=]*"|\S+)', f'name="{name}"', line)
    track = re.sub(r'description=(?:"[^"=]*"|\S+)', f'description="{desc}"', track)
    if re.search(r"type=\w+", track):
        return re.sub(r"type=\w+", f"type={BED_DETAIL_TYPE}", track)
    return f"{track} type={BED_DETAIL_TYPE}"


def classify_bed(
    chrom_sizes_path: str | Path,
    bed_path: str | Path,
    gff_paths: List[str],
    out_path: str | Path,
    *,
    show_summ: bool = False,
    fix: bool = False,
    un_type: str = DEFAULT_UNCLASSIFIED_GTYPE,
    tag: str | None = None,
    keep_track: bool = True,
    track_name: str | None = None,
    track_desc: str | None = None,
    log_level: str = "INFO",
) -> int:
    """
    Append a GType=<types> column to every BED record.
    Out-of-range records abort the run unless fix, which clamps them to the chromosome.
    """
    logger = _make_logger("bamcover.classify", log_level)
    track_name = track_name or Path(out_path).stem
    track_desc = track_desc or track_name
    n = 0
    try:
        chrom_sizes = read_chrom_sizes(chrom_sizes_path)
        gtype_idx = build_gtype_index(chrom_sizes, gff_paths, tag=tag, clamp_to_chrom_bounds=fix, logger=logger)
        logger.info(f"Scanning BED file {bed_path} ...")
        status = ProcessStatus("BED record(s) scanned", logger)
        with open(bed_path, "rt", encoding="utf-8") as bed_in, _open_out(out_path) as fh:
            is_header = True
            for line in bed_in:
                line = line.rstrip("\n")
                if is_header:
                    is_header = False
                    if line.startswith("track"):
                        if keep_track:
                            fh.write(_bed_track_line(line, track_name, track_desc) + "\n")
                        continue
                    if keep_track:
                        fh.write(_bed_track_line(None, track_name, track_desc) + "\n")
                if not line.strip() or line.startswith(("#", "browser", "track")):
                    fh.write(line + "\n")
                    continue
                fields = line.split("\t")
                if len(fields) < 3:
                    raise ValueError(f"Malformed BED record: {line!r}")
                status.update_status()
                chr_ = fields[0]
                # BED start is 0-based, end is 1-based
                start, end = int(fields[1]), int(fields[2])
                type_sum = gtype_idx.unmask_sum(chr_, start, end)
                fh.write(f"{line}\t{BED_GTYPE_KEY}={format_types(type_sum, un_type, end - start, show_summ)}\n")
                n += 1
            status.finish()
    except Exception as e:
        logger.error(f"{bed_path}: {e}")
        return 1
    logger.info(f"Wrote {n:,} classified BED records to {out_path}")
    return 0


def _add_info(info: str, key: str, value: str) -> str:
    if info in ("", "."):
        return f"{key}={value}"
    return f"{info};{key}={value}"


def classify_vcf(
    chrom_sizes_path: str | Path,
    vcf_path: str | Path,
    gff_paths: List[str],
    out_path: str | Path,
    *,
    show_summ: bool = False,
    un_type: str = DEFAULT_UNCLASSIFIED_GTYPE,
    tag: str | None = None,
    log_level: str = "INFO",
) -> int:
    """Add a GTYPE INFO field to every variant, covering POS..POS+len(REF)-1."""
    logger = _make_logger("bamcover.classify", log_level)
    n = 0
    try:
        chrom_sizes = read_chrom_sizes(chrom_sizes_path)
        gtype_idx = build_gtype_index(chrom_sizes, gff_paths, tag=tag, logger=logger)
        logger.info(f"Scanning VCF file {vcf_path} ...")
        status = ProcessStatus("variant(s) scanned", logger)
        with _open_text_auto(vcf_path) as vcf_in, _open_out(out_path) as fh:
            for line in vcf_in:
                line = line.rstrip("\n")
                if line.startswith("##"):
                    fh.write(line + "\n")
                    continue
                if line.startswith("#"):
                    # column header: declare the new INFO key just before it
                    fh.write(VCF_GTYPE_HEADER + "\n")
                    fh.write(line + "\n")
                    continue
                if not line.strip():
                    continue
                fields = line.split("\t")
                if len(fields) < 8:
                    raise ValueError(f"Malformed VCF record: {line!r}")
                status.update_status()
                chr_, pos, ref = fields[0], int(fields[1]), fields[3]
                end = pos + max(len(ref), 1) - 1
                type_sum = gtype_idx.unmask_sum(chr_, pos - 1, end)
                type_str = format_types(type_sum, un_type, end - pos + 1, show_summ)
                fields[7] = _add_info(fields[7], VCF_GTYPE_KEY, type_str)
                fh.write("\t".join(fields) + "\n")
                n += 1
            status.finish()
    except Exception as e:
        logger.error(f"{vcf_path}: {e}")
        return 1
    logger.info(f"Wrote {n:,} classified variants to {out_path}")
    return 0
