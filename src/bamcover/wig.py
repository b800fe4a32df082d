from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, Sequence, Tuple

import numpy as np

from .accumulator import PositionalAccumulator
from .cover import _write_fixed_step
from .progress import ProcessStatus
from .readers import iter_bed_fields, read_bed_regions, read_chrom_sizes, scan_plan
from .utils import _fmt_float, _make_logger, _open_out, _open_text_auto

FIXED, VARIABLE = "fixed", "variable"
REL_COVER_HEADER = "name\tchrom\tstart\tend\tmid\twidth\tstart_dist\tend_dist\tcover"


def _parse_declaration(line: str) -> Dict[str, str]:
    """key=value pairs of a fixedStep/variableStep declaration line."""
    return dict(tok.split("=", 1) for tok in line.split()[1:] if "=" in tok)


def load_wig(
    wig_paths: Sequence[str | Path],
    acc: PositionalAccumulator,
    fmt: str,
    status: ProcessStatus | None = None,
    logger: logging.Logger | None = None,
) -> Optional[str]:
    """
    Read fixedStep (fmt="fixed") or variableStep (fmt="variable") Wiggle files
    into a float accumulator; each value overwrites `span` positions.

    Data on chromosomes the accumulator does not index is skipped. A
    declaration of the other format raises ValueError. Returns the last track
    line seen, or None.
    """
    if fmt not in (FIXED, VARIABLE):
        raise ValueError(f"Wiggle format must be {FIXED!r} or {VARIABLE!r}, got {fmt!r}")
    track_line = None
    skipped = 0
    for path in wig_paths:
        chr_ = None
        loc = step = span = 1
        with _open_text_auto(path) as fh:
            for lineno, line in enumerate(fh, 1):
                line = line.strip()
                if not line or line.startswith(("#", "browser")):
                    continue
                if line.startswith("track"):
                    track_line = line
                    continue
                if line.startswith(("fixedStep", "variableStep")):
                    kind = FIXED if line.startswith("fixedStep") else VARIABLE
                    if kind != fmt:
                        raise ValueError(f"{path}:{lineno}: {kind}Step data found, expecting {fmt}Step")
                    decl = _parse_declaration(line)
                    try:
                        chr_ = decl["chrom"]
                        span = int(decl.get("span", 1))
                        if kind == FIXED:
                            loc, step = int(decl["start"]), int(decl["step"])
                    except (KeyError, ValueError):
                        raise ValueError(f"{path}:{lineno}: bad declaration line {line!r}") from None
                    continue

                if chr_ is None:
                    raise ValueError(f"{path}:{lineno}: data line before any declaration")
                if fmt == FIXED:
                    start, value = loc, float(line)
                    loc += step
                else:
                    cols = line.split()
                    start, value = int(cols[0]), float(cols[1])
                if not acc.set_region(chr_, start, start + span - 1, value):
                    skipped += 1
                    continue
                if status:
                    status.update_status()
    if logger and skipped:
        logger.debug(f"Wiggle values on chromosomes without regions: {skipped:,}")
    return track_line


def _tally(windows: Iterable[Tuple[int, int, float]], status: ProcessStatus) -> Iterator[Tuple[int, int, float]]:
    for w in windows:
        status.update_status()
        yield w


def _wig_index(chrom_sizes_path, regions_path, logger: logging.Logger) -> Tuple[PositionalAccumulator, Dict]:
    """Float index for the chromosomes carrying a region, and the per-chromosome region plan."""
    chrom_sizes = read_chrom_sizes(chrom_sizes_path)
    regions = read_bed_regions(regions_path, chroms=[c for c, _ in chrom_sizes])
    plan = scan_plan(chrom_sizes, regions)
    logger.info(f"Initialize chrom-index for {len(plan)} chromosome(s) ...")
    acc = PositionalAccumulator([(c, n) for c, n in chrom_sizes if c in plan], dtype=np.float32)
    return acc, plan


def filter_wig(
    chrom_sizes_path: str | Path,
    wig_paths: Sequence[str | Path],
    regions_path: str | Path,
    out_path: str | Path,
    *,
    fmt: str = FIXED,
    step: int = 1,
    keep0: bool = False,
    log_level: str = "INFO",
) -> int:
    """
    Restrict Wiggle tracks to BED regions, averaging values over `step`.

    The output keeps the input format and the input track line. fixedStep
    output starts a new block at every region (keep0) or after every run of
    zero-valued windows; variableStep output declares each chromosome once.
    """
    logger = _make_logger("bamcover.wig", log_level)
    if step < 1:
        logger.error(f"step must be positive, got {step}")
        return 2
    n = 0
    try:
        acc, plan = _wig_index(chrom_sizes_path, regions_path, logger)
        logger.info(f"Scan {fmt}Step Wiggle file(s) ...")
        status = ProcessStatus("Wiggle value(s) processed", logger)
        track_line = load_wig(wig_paths, acc, fmt, status, logger)
        status.finish()
        status.reset()
        status.set_info("Wiggle record(s) written")

        logger.info("Output ...")
        with _open_out(out_path) as fh:
            if track_line is not None:
                fh.write(track_line + "\n")
            for chr_, intervals in plan.items():
                if fmt == VARIABLE:
                    fh.write(f"variableStep chrom={chr_} span={step}\n")
                for iv in intervals:
                    windows = _tally(acc.iter_windows(chr_, iv.start, iv.end, step, keep0), status)
                    if fmt == FIXED:
                        _write_fixed_step(fh, chr_, windows, step)
                        continue
                    for start, _end, val in windows:
                        fh.write(f"{start}\t{_fmt_float(val)}\n")
        n = status.finish()
    except Exception as e:
        logger.error(f"{', '.join(map(str, wig_paths))}: {e}")
        return 1
    logger.info(f"Wrote {n:,} values to {out_path}")
    return 0


def wig_to_rel_cover(
    chrom_sizes_path: str | Path,
    wig_paths: Sequence[str | Path],
    regions_path: str | Path,
    out_path: str | Path,
    *,
    fmt: str = FIXED,
    step: int = 1,
    flank: int = 0,
    log_level: str = "INFO",
) -> int:
    """
    Wiggle values around BED4 regions, averaged over `step` windows.
    Each window row carries its midpoint distance to the region start and end.
    """
    logger = _make_logger("bamcover.wig", log_level)
    if step < 1:
        logger.error(f"step must be positive, got {step}")
        return 2
    n = 0
    try:
        acc, _plan = _wig_index(chrom_sizes_path, regions_path, logger)
        logger.info(f"Scan {fmt}Step Wiggle file(s) ...")
        status = ProcessStatus("Wiggle value(s) processed", logger)
        load_wig(wig_paths, acc, fmt, status, logger)
        status.finish()
        status.reset()
        status.set_info("coverage record(s) written")

        logger.info("Output ...")
        with _open_out(out_path) as fh:
            fh.write(REL_COVER_HEADER + "\n")
            for fields in iter_bed_fields(regions_path, min_fields=4):
                chr_ = fields[0]
                if not acc.has_chr(chr_):
                    continue
                # BED start is 0-based
                rg_start, rg_end, name = int(fields[1]) + 1, int(fields[2]), fields[3]
                start = max(rg_start - flank, 1)
                end = min(rg_end + flank, acc.chrom_len(chr_))
                for win_start, win_end, val in acc.iter_windows(chr_, start, end, step, keep0=True):
                    mid = (win_start + win_end) // 2
                    fh.write(f"{name}\t{chr_}\t{win_start}\t{win_end - 1}\t{mid}\t{win_end - win_start}\t"
                             f"{mid - rg_start}\t{mid - rg_end}\t{_fmt_float(val)}\n")
                    status.update_status()
        n = status.finish()
    except Exception as e:
        logger.error(f"{', '.join(map(str, wig_paths))}: {e}")
        return 1
    logger.info(f"Wrote {n:,} rows to {out_path}")
    return 0
