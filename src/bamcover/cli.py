import argparse

from .bamcoverClasses import CoverOptions
from .classify import DEFAULT_UNCLASSIFIED_GTYPE, class_summ_sam, classify_bed, classify_sam, classify_vcf
from .cover import DEFAULT_BREAKS, bed_to_abs_cover, bed_to_wig, sam_to_abs_cover, sam_to_cover_summ, sam_to_wig
from .regioncount import sam_to_bin_cover, sam_to_region_count
from .wig import FIXED, VARIABLE, filter_wig, wig_to_rel_cover


def _cover_options(args) -> CoverOptions:
    return CoverOptions(
        count_soft=getattr(args, "count_soft", False),
        strand=args.strand,
        min_mapq=args.min_mapq,
        nr=getattr(args, "nr", False),
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Policy options shared by the BAM tools; bad values are usage errors
    if hasattr(args, "min_mapq"):
        try:
            options = _cover_options(args)
        except ValueError as e:
            parser.error(str(e))

    # Coverage tracks
    if args.cmd == "sam-to-wig":
        return sam_to_wig(
            args.bam,
            args.out,
            options=options,
            regions_path=args.regions,
            step=args.step,
            keep0=args.keep_uncover,
            norm_rpm=args.norm_rpm,
            include_track=not args.no_track,
            track_name=args.name,
            track_desc=args.desc,
            log_level=args.log_level,
        )

    elif args.cmd == "bed-to-wig":
        return bed_to_wig(
            args.chrom_sizes,
            args.bed,
            args.out,
            strand=args.strand,
            clone_value=args.clone_value,
            regions_path=args.regions,
            step=args.step,
            keep0=args.keep_uncover,
            norm_rpm=args.norm_rpm,
            fix=args.fix,
            include_track=not args.no_track,
            track_name=args.name,
            track_desc=args.desc,
            log_level=args.log_level,
        )

    elif args.cmd == "bed-to-abs-cover":
        return bed_to_abs_cover(
            args.chrom_sizes,
            args.bed,
            args.out,
            strand=args.strand,
            clone_value=args.clone_value,
            regions_path=args.regions,
            step=args.step,
            keep0=args.keep_uncover,
            norm_rpm=args.norm_rpm,
            fix=args.fix,
            log_level=args.log_level,
        )

    elif args.cmd == "sam-to-abs-cover":
        return sam_to_abs_cover(
            args.bam,
            args.out,
            options=options,
            regions_path=args.regions,
            step=args.step,
            min_cover=args.min_cover,
            norm_rpm=args.norm_rpm,
            log_level=args.log_level,
        )

    elif args.cmd == "sam-to-cover-summ":
        return sam_to_cover_summ(
            args.bam,
            args.out,
            options=options,
            regions_path=args.regions,
            breaks=args.breaks,
            do_total=not args.no_total,
            log_level=args.log_level,
        )

    # Wiggle tracks
    elif args.cmd in ("filter-wig-fix", "filter-wig-var"):
        return filter_wig(
            args.chrom_sizes,
            args.wig,
            args.regions,
            args.out,
            fmt=args.fmt,
            step=args.step,
            keep0=args.keep_uncover,
            log_level=args.log_level,
        )

    elif args.cmd in ("wig-fix-to-rel-cover", "wig-var-to-rel-cover"):
        return wig_to_rel_cover(
            args.chrom_sizes,
            args.wig,
            args.regions,
            args.out,
            fmt=args.fmt,
            step=args.step,
            flank=args.flank,
            log_level=args.log_level,
        )

    # Classification by genetic type
    elif args.cmd == "classify-sam":
        return classify_sam(
            args.bam,
            args.gff,
            args.out,
            options=options,
            regions_path=args.regions,
            show_summ=args.sum,
            un_type=args.unclassified,
            tag=args.tag,
            log_level=args.log_level,
        )

    elif args.cmd == "class-summ-sam":
        return class_summ_sam(
            args.bam,
            args.gff,
            args.out,
            options=options,
            regions_path=args.regions,
            rel_count=args.rel_count,
            un_type=args.unclassified,
            tag=args.tag,
            log_level=args.log_level,
        )

    elif args.cmd == "classify-bed":
        return classify_bed(
            args.chrom_sizes,
            args.bed,
            args.gff,
            args.out,
            show_summ=args.sum,
            fix=args.fix,
            un_type=args.unclassified,
            tag=args.tag,
            keep_track=not args.no_track,
            track_name=args.name,
            track_desc=args.desc,
            log_level=args.log_level,
        )

    elif args.cmd == "classify-vcf":
        return classify_vcf(
            args.chrom_sizes,
            args.vcf,
            args.gff,
            args.out,
            show_summ=args.sum,
            un_type=args.unclassified,
            tag=args.tag,
            log_level=args.log_level,
        )

    # Region counts
    elif args.cmd == "sam-to-region-count":
        return sam_to_region_count(
            args.bam,
            args.regions,
            args.out,
            options=options,
            max_flank=args.flank,
            min_rate=args.min_rate,
            log_level=args.log_level,
        )

    elif args.cmd == "sam-to-bin-cover":
        return sam_to_bin_cover(
            args.bam,
            args.regions,
            args.out,
            options=options,
            n_bin=args.bins,
            max_flank=args.flank,
            log_level=args.log_level,
        )
    else:
        parser.error("Unknown command")

    return 2


def _add_log_level(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["ERROR", "WARNING", "INFO", "DEBUG"],
        help="Logging verbosity (default: INFO)."
    )


def _add_bam_filters(p: argparse.ArgumentParser, relative: bool = False) -> None:
    p.add_argument(
        "bam",
        help="Input BAM file."
    )
    p.add_argument(
        "-s", "--strand",
        type=int,
        choices=[1, 2, 3],
        default=3,
        help=("Relative strand(s) to look at, 1: sense, 2: antisense, 3: both (default 3)." if relative
              else "Genome strand(s) to look at, 1: plus, 2: minus, 3: both (default 3).")
    )
    p.add_argument(
        "-Q", "--min-mapq",
        dest="min_mapq",
        type=int,
        default=0,
        help="Minimum MAPQ cutoff (default 0)."
    )
    p.add_argument(
        "--nr",
        action="store_true",
        help="Treat reads as non-redundant tags with their clone count embedded in the read name."
    )


def _add_soft_clip(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--count-soft",
        dest="count_soft",
        action="store_true",
        help="Count soft-clipped bases as covered."
    )


def _add_regions(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "-R", "--regions",
        default=None,
        help="Genome regions to search, as a BED file; the BAM must be sorted and indexed (.bai)."
    )


def _add_track(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--no-track",
        dest="no_track",
        action="store_true",
        help="Do not write a track line as the first output line."
    )
    p.add_argument(
        "--name",
        default=None,
        help="Track name (defaults to the output file name)."
    )
    p.add_argument(
        "--desc",
        default=None,
        help="Track description (defaults to the track name)."
    )


def _add_windows(p: argparse.ArgumentParser, keep_uncover: bool = True) -> None:
    p.add_argument(
        "--step",
        type=int,
        default=1,
        help="Step width for averaging coverage (default 1)."
    )
    p.add_argument(
        "--norm-rpm",
        dest="norm_rpm",
        action="store_true",
        help="Normalize coverage to reads per million of accumulated reads."
    )
    if keep_uncover:
        p.add_argument(
            "-k", "--keep-uncover",
            dest="keep_uncover",
            action="store_true",
            help="Keep 0-covered windows."
        )


def _add_gff(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--gff",
        action="append",
        required=True,
        help="GTF/GFF3 annotation file used for classification; repeat for more files."
    )
    p.add_argument(
        "--unclassified",
        default=DEFAULT_UNCLASSIFIED_GTYPE,
        help=f"Name for unclassified records (default {DEFAULT_UNCLASSIFIED_GTYPE})."
    )
    p.add_argument(
        "--tag",
        default=None,
        help="Use the value of this attribute (9th column) instead of the feature type (3rd column), if present."
    )


def _add_wig_input(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "wig",
        nargs="+",
        help="Input Wiggle file(s), optionally gzipped."
    )
    p.add_argument(
        "-g", "--chrom-sizes",
        dest="chrom_sizes",
        required=True,
        help="Chrom size file: chromosome names and lengths, tab-separated."
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="bamcover",
        description="Coverage tracks, genetic-type classification and region counts from BAM/BED/GFF files."
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # BAM -> Wiggle
    w = sub.add_parser(
        "sam-to-wig",
        help="Format a BAM file as a fixedStep Wiggle coverage track."
    )
    _add_bam_filters(w)
    w.add_argument("-o", "--out", required=True, help="Output Wiggle file.")
    _add_soft_clip(w)
    _add_regions(w)
    _add_windows(w)
    _add_track(w)
    _add_log_level(w)

    # BED6 -> Wiggle
    bw = sub.add_parser(
        "bed-to-wig",
        help="Accumulate BED6 records into a fixedStep Wiggle coverage track."
    )
    bw.add_argument("bed", help="Input BED6 file.")
    bw.add_argument("-g", "--chrom-sizes", dest="chrom_sizes", required=True,
                    help="Chrom size file: chromosome names and lengths, tab-separated.")
    bw.add_argument("-o", "--out", required=True, help="Output Wiggle file.")
    bw.add_argument("-s", "--strand", type=int, choices=[1, 2, 3], default=3,
                    help="Genome strand(s) to look at, 1: plus, 2: minus, 3: both (default 3).")
    bw.add_argument("-c", "--clone-value", dest="clone_value", action="store_true",
                    help="Use BED column 5 as the read clone value.")
    bw.add_argument("--fix", action="store_true",
                    help="Clamp records extending past chromosome ends instead of failing.")
    _add_regions(bw)
    _add_windows(bw)
    _add_track(bw)
    _add_log_level(bw)

    # BED6 -> tabular coverage
    ba = sub.add_parser(
        "bed-to-abs-cover",
        help="Write absolute coverage of BED6 records as TSV (chrom, start, end, cover)."
    )
    ba.add_argument("bed", help="Input BED6 file.")
    ba.add_argument("-g", "--chrom-sizes", dest="chrom_sizes", required=True,
                    help="Chrom size file: chromosome names and lengths, tab-separated.")
    ba.add_argument("-o", "--out", required=True, help="Output TSV file.")
    ba.add_argument("-s", "--strand", type=int, choices=[1, 2, 3], default=3,
                    help="Genome strand(s) to look at, 1: plus, 2: minus, 3: both (default 3).")
    ba.add_argument("-c", "--clone-value", dest="clone_value", action="store_true",
                    help="Use BED column 5 as the read clone value.")
    ba.add_argument("--fix", action="store_true",
                    help="Clamp records extending past chromosome ends instead of failing.")
    _add_regions(ba)
    _add_windows(ba)
    _add_log_level(ba)

    # BAM -> tabular coverage
    a = sub.add_parser(
        "sam-to-abs-cover",
        help="Write absolute coverage of a BAM file as TSV (chrom, start, end, cover)."
    )
    _add_bam_filters(a)
    a.add_argument("-o", "--out", required=True, help="Output TSV file.")
    _add_soft_clip(a)
    _add_regions(a)
    _add_windows(a, keep_uncover=False)
    a.add_argument("--min-cover", dest="min_cover", type=int, default=1,
                   help="Minimum cover value to report (default 1).")
    _add_log_level(a)

    # BAM -> coverage histogram
    cs = sub.add_parser(
        "sam-to-cover-summ",
        help="Summarize basewise coverage of a BAM file into bins."
    )
    _add_bam_filters(cs)
    cs.add_argument("-o", "--out", required=True, help="Output TSV file.")
    _add_soft_clip(cs)
    _add_regions(cs)
    cs.add_argument("-b", "--breaks", default=DEFAULT_BREAKS,
                    help=f"Comma-separated coverage breaks (default {DEFAULT_BREAKS}).")
    cs.add_argument("-n", "--no-total", dest="no_total", action="store_true",
                    help="Do not report the total scanned length as the last line.")
    _add_log_level(cs)

    # Wiggle filtering and region profiles
    for fmt, tag in ((FIXED, "fix"), (VARIABLE, "var")):
        fw = sub.add_parser(
            f"filter-wig-{tag}",
            help=f"Restrict {fmt}Step Wiggle file(s) to BED regions."
        )
        _add_wig_input(fw)
        fw.add_argument("-R", "--regions", required=True, help="BED regions to keep.")
        fw.add_argument("-o", "--out", required=True, help=f"Output {fmt}Step Wiggle file.")
        fw.add_argument("--step", type=int, default=1,
                        help="Step width for averaging values (default 1).")
        fw.add_argument("-k", "--keep-uncover", dest="keep_uncover", action="store_true",
                        help="Keep 0-valued windows.")
        fw.set_defaults(fmt=fmt)
        _add_log_level(fw)

        rw = sub.add_parser(
            f"wig-{tag}-to-rel-cover",
            help=f"Tabulate {fmt}Step Wiggle values around BED4 regions."
        )
        _add_wig_input(rw)
        rw.add_argument("-R", "--regions", required=True, help="BED4 regions (name in column 4).")
        rw.add_argument("-o", "--out", required=True, help="Output TSV file.")
        rw.add_argument("--step", type=int, default=1,
                        help="Step width for averaging values (default 1).")
        rw.add_argument("--flank", type=int, default=0,
                        help="Up/downstream flank added to each region (default 0).")
        rw.set_defaults(fmt=fmt)
        _add_log_level(rw)

    # Classify alignments
    c = sub.add_parser(
        "classify-sam",
        help="Classify BAM alignments by overlapping GFF feature types."
    )
    _add_bam_filters(c)
    c.add_argument("-o", "--out", required=True, help="Output TSV file.")
    _add_gff(c)
    _add_regions(c)
    c.add_argument("--sum", action="store_true",
                   help="Report type:overlap-length pairs instead of type names.")
    _add_log_level(c)

    cc = sub.add_parser(
        "class-summ-sam",
        help="Count BAM alignments per overlapping GFF feature type."
    )
    _add_bam_filters(cc)
    cc.add_argument("-o", "--out", required=True, help="Output TSV file.")
    _add_gff(cc)
    _add_regions(cc)
    cc.add_argument("--rel-count", dest="rel_count", action="store_true",
                    help="Count each type by its share of the aligned length instead of 1.")
    _add_log_level(cc)

    # Classify BED records
    cb = sub.add_parser(
        "classify-bed",
        help="Append GType=<types> to each BED record (BED-detail output)."
    )
    cb.add_argument("bed", help="Input BED file.")
    cb.add_argument("-g", "--chrom-sizes", dest="chrom_sizes", required=True,
                    help="Chrom size file: chromosome names and lengths, tab-separated.")
    cb.add_argument("-o", "--out", required=True, help="Output BED-detail file.")
    _add_gff(cb)
    cb.add_argument("--sum", action="store_true",
                    help="Report type:overlap-length pairs instead of type names.")
    cb.add_argument("--fix", action="store_true",
                    help="Clamp records extending past chromosome ends instead of failing.")
    _add_track(cb)
    _add_log_level(cb)

    # Classify variants
    cv = sub.add_parser(
        "classify-vcf",
        help="Add a GTYPE INFO field to each VCF record."
    )
    cv.add_argument("vcf", help="Input VCF file (.vcf or .vcf.gz).")
    cv.add_argument("-g", "--chrom-sizes", dest="chrom_sizes", required=True,
                    help="Chrom size file: chromosome names and lengths, tab-separated.")
    cv.add_argument("-o", "--out", required=True, help="Output VCF file.")
    _add_gff(cv)
    cv.add_argument("--sum", action="store_true",
                    help="Report type:overlap-length pairs instead of type names.")
    _add_log_level(cv)

    # Region counts
    r = sub.add_parser(
        "sam-to-region-count",
        help="Count alignments per BED6 region; the BAM must be sorted and indexed."
    )
    _add_bam_filters(r, relative=True)
    r.add_argument("-R", "--regions", required=True, help="BED6 regions to count.")
    r.add_argument("-o", "--out", required=True, help="Output TSV file.")
    r.add_argument("--flank", type=int, default=0,
                   help="Up/downstream flank added to each region (default 0).")
    r.add_argument("--min-rate", dest="min_rate", type=float, default=1e-9,
                   help="Minimum fraction of the scan region an alignment must cover (default 1e-9).")
    _add_log_level(r)

    b = sub.add_parser(
        "sam-to-bin-cover",
        help="Mean coverage in equal-width bins along each BED6 region; the BAM must be sorted and indexed."
    )
    _add_bam_filters(b, relative=True)
    b.add_argument("-R", "--regions", required=True, help="BED6 regions to profile.")
    b.add_argument("-o", "--out", required=True, help="Output TSV file.")
    _add_soft_clip(b)
    b.add_argument("--bins", type=int, default=100,
                   help="Number of bins per region (default 100).")
    b.add_argument("--flank", type=int, default=0,
                   help="Number of extra bins of the same width up- and downstream (default 0).")
    _add_log_level(b)

    return p

if __name__ == "__main__":
    raise SystemExit(main())
