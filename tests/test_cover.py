import pytest

from bamcover import cover, readers
from bamcover.bamcoverClasses import CoverOptions
from conftest import FakeAlignment, read_lines, write_text

SIZES = [("chr1", 20), ("chr2", 5)]


@pytest.fixture
def two_reads(fake_bam):
    # chr1 cover: 1-5 -> 1, 6-10 -> 2
    return fake_bam(SIZES, [
        FakeAlignment("r1", "chr1", 0, [(0, 10)]),
        FakeAlignment("r2", "chr1", 5, [(0, 5)], is_reverse=True),
    ])


def test_sam_to_wig(two_reads, tmp_path):
    out = tmp_path / "s.wig"
    rc = cover.sam_to_wig("fake.bam", out)
    assert rc == 0
    assert two_reads["path"] == "fake.bam"
    assert two_reads["bam"].closed
    assert read_lines(out) == [
        "track type=wiggle_0 name=s description=s",
        "fixedStep chrom=chr1 start=1 step=1",
    ] + ["1.0"] * 5 + ["2.0"] * 5


def test_sam_to_wig_plus_strand_only(two_reads, tmp_path):
    out = tmp_path / "plus.wig"
    assert cover.sam_to_wig("fake.bam", out, options=CoverOptions(strand=1), include_track=False) == 0
    assert read_lines(out) == ["fixedStep chrom=chr1 start=1 step=1"] + ["1.0"] * 10


def test_sam_to_wig_step_and_rpm(two_reads, tmp_path):
    out = tmp_path / "s.wig"
    assert cover.sam_to_wig("fake.bam", out, step=5, norm_rpm=True, track_name="t", track_desc="d") == 0
    assert read_lines(out) == [
        "track type=wiggle_0 name=t description=d",
        "fixedStep chrom=chr1 start=1 step=5",
        "500000.0",
        "1000000.0",
    ]


def test_sam_to_wig_gap_starts_new_block(fake_bam, tmp_path):
    fake_bam(SIZES, [
        FakeAlignment("r1", "chr1", 0, [(0, 3)]),
        FakeAlignment("r2", "chr1", 10, [(0, 2)]),
    ])
    out = tmp_path / "gap.wig"
    assert cover.sam_to_wig("fake.bam", out, include_track=False) == 0
    assert read_lines(out) == [
        "fixedStep chrom=chr1 start=1 step=1", "1.0", "1.0", "1.0",
        "fixedStep chrom=chr1 start=11 step=1", "1.0", "1.0",
    ]


def test_sam_to_wig_regions(two_reads, tmp_path):
    bed = write_text(tmp_path / "roi.bed", ["chr1\t5\t8", "chr9\t0\t5"])
    out = tmp_path / "roi.wig"
    assert cover.sam_to_wig("fake.bam", out, regions_path=bed, include_track=False) == 0
    assert read_lines(out) == ["fixedStep chrom=chr1 start=6 step=1", "2.0", "2.0", "2.0"]
    assert two_reads["bam"].fetched == [("chr1", 5, 8)]


def test_sam_to_wig_bad_bam(monkeypatch, tmp_path):
    def broken(path, mode):
        raise OSError("truncated file")
    monkeypatch.setattr(readers.bn, "AlignmentFile", broken)
    assert cover.sam_to_wig("bad.bam", tmp_path / "x.wig") == 1


def test_bed_to_wig(tmp_path):
    sizes = write_text(tmp_path / "genome.txt", ["chr1\t20", "chr2\t5"])
    bed = write_text(tmp_path / "in.bed", [
        "chr1\t0\t5\ta\t2\t+",
        "chr1\t3\t8\tb\t1\t-",
        "chr3\t0\t5\tc\t1\t+",
    ])
    out = tmp_path / "b.wig"
    assert cover.bed_to_wig(sizes, bed, out) == 0
    assert read_lines(out) == [
        "track type=wiggle_0 name=b description=b",
        "fixedStep chrom=chr1 start=1 step=1",
        "1.0", "1.0", "1.0", "2.0", "2.0", "1.0", "1.0", "1.0",
    ]

    assert cover.bed_to_wig(sizes, bed, out, clone_value=True, strand=1, include_track=False) == 0
    assert read_lines(out) == ["fixedStep chrom=chr1 start=1 step=1"] + ["2.0"] * 5


def test_bed_to_wig_out_of_bounds(tmp_path):
    sizes = write_text(tmp_path / "genome.txt", ["chr1\t20"])
    bed = write_text(tmp_path / "in.bed", ["chr1\t15\t25\ta\t1\t+"])
    out = tmp_path / "b.wig"
    assert cover.bed_to_wig(sizes, bed, out) == 1
    assert cover.bed_to_wig(sizes, bed, out, fix=True, include_track=False) == 0
    assert read_lines(out) == ["fixedStep chrom=chr1 start=16 step=1"] + ["1.0"] * 5


def test_bed_to_abs_cover(tmp_path):
    sizes = write_text(tmp_path / "genome.txt", ["chr1\t20", "chr2\t5"])
    bed = write_text(tmp_path / "in.bed", [
        "chr1\t0\t5\ta\t2\t+",
        "chr1\t3\t8\tb\t1\t-",
    ])
    out = tmp_path / "abs.tsv"
    assert cover.bed_to_abs_cover(sizes, bed, out, step=4, keep0=True) == 0
    assert read_lines(out) == [
        "chrom\tstart\tend\tcover",
        "chr1\t1\t4\t1.25",
        "chr1\t5\t8\t1.25",
        "chr1\t9\t12\t0.0",
        "chr1\t13\t16\t0.0",
        "chr1\t17\t20\t0.0",
        "chr2\t1\t4\t0.0",
        "chr2\t5\t5\t0.0",
    ]

    assert cover.bed_to_abs_cover(sizes, bed, out, strand=1, clone_value=True) == 0
    assert read_lines(out)[1:] == [f"chr1\t{p}\t{p}\t2.0" for p in range(1, 6)]


def test_bed_to_abs_cover_regions_and_bounds(tmp_path):
    sizes = write_text(tmp_path / "genome.txt", ["chr1\t20", "chr2\t5"])
    bed = write_text(tmp_path / "in.bed", ["chr1\t15\t25\ta\t1\t+"])
    roi = write_text(tmp_path / "roi.bed", ["chr1\t17\t20"])
    out = tmp_path / "abs.tsv"
    assert cover.bed_to_abs_cover(sizes, bed, out, regions_path=roi) == 1
    assert cover.bed_to_abs_cover(sizes, bed, out, regions_path=roi, fix=True, norm_rpm=True) == 0
    assert read_lines(out)[1:] == [f"chr1\t{p}\t{p}\t1000000.0" for p in (18, 19, 20)]


def test_sam_to_abs_cover(two_reads, tmp_path):
    out = tmp_path / "abs.tsv"
    assert cover.sam_to_abs_cover("fake.bam", out, min_cover=2) == 0
    lines = read_lines(out)
    assert lines[0] == "chrom\tstart\tend\tcover"
    assert lines[1:] == [f"chr1\t{p}\t{p}\t2" for p in range(6, 11)]

    assert cover.sam_to_abs_cover("fake.bam", out, step=5) == 0
    assert read_lines(out)[1:] == ["chr1\t1\t5\t1.0", "chr1\t6\t10\t2.0"]


def test_parse_breaks():
    assert cover.parse_breaks("10,0,5,5") == [0, 5, 10]
    with pytest.raises(ValueError):
        cover.parse_breaks("a,b")
    with pytest.raises(ValueError):
        cover.parse_breaks("")


def test_sam_to_cover_summ(two_reads, tmp_path):
    out = tmp_path / "summ.tsv"
    assert cover.sam_to_cover_summ("fake.bam", out) == 0
    assert read_lines(out) == [
        "bin_name\tbin_min\tbin_max\tcover_length",
        "(0,5]\t0\t5\t10",
        "(5,10]\t5\t10\t0",
        "(10,20]\t10\t20\t0",
        "(20,30]\t20\t30\t0",
        "(30,100]\t30\t100\t0",
        "total\t0\tInf\t25",
    ]


def test_sam_to_cover_summ_extends_breaks(two_reads, tmp_path):
    out = tmp_path / "summ.tsv"
    assert cover.sam_to_cover_summ("fake.bam", out, breaks="1", do_total=False) == 0
    assert read_lines(out) == ["bin_name\tbin_min\tbin_max\tcover_length", "(1,Inf]\t1\tInf\t5"]

    assert cover.sam_to_cover_summ("fake.bam", out, breaks="3", do_total=False) == 0
    assert read_lines(out)[1:] == ["(0,3]\t0\t3\t10"]


def test_sam_to_cover_summ_bad_breaks(two_reads, tmp_path):
    assert cover.sam_to_cover_summ("fake.bam", tmp_path / "summ.tsv", breaks="x") == 2
