from types import SimpleNamespace

import pytest

from bamcover import readers
from bamcover.bamcoverClasses import CoverOptions, GenomeInterval
from conftest import FakeAlignment, FakeAlignmentFile, write_text


def test_read_chrom_sizes(tmp_path):
    p = write_text(tmp_path / "genome.txt", ["# comment", "chr1\t100", "", "chr2\t50\textra"])
    assert readers.read_chrom_sizes(p) == [("chr1", 100), ("chr2", 50)]


@pytest.mark.parametrize("line", ["chr1", "chr1\tabc", "chr1\t-5"])
def test_read_chrom_sizes_malformed(tmp_path, line):
    p = write_text(tmp_path / "genome.txt", ["chr0\t10", line])
    with pytest.raises(ValueError, match=":2:"):
        readers.read_chrom_sizes(p)


def test_read_bed_regions(tmp_path):
    p = write_text(tmp_path / "r.bed", ["track name=x", "chr1\t0\t10", "chr3\t5\t8", "chr2\t4\t6\tname"])
    regions = readers.read_bed_regions(p, chroms=["chr1", "chr2"])
    assert regions == [GenomeInterval("chr1", 1, 10), GenomeInterval("chr2", 5, 6)]


def test_gff_spec():
    assert readers.gff_spec("a.gtf") == 2
    assert readers.gff_spec("a.GFF3.gz") == 3
    assert readers.gff_spec("a.gff") == 3
    with pytest.raises(ValueError):
        readers.gff_spec("a.bed")


def test_iter_gff_features(tmp_path):
    gtf = write_text(tmp_path / "a.gtf", [
        "#!genome-build test",
        'chr1\tsrc\texon\t1\t10\t.\t+\t.\tgene_id "g1"; gene_biotype "miRNA";',
        'chr1\tsrc\texon\t20\t30\t.\t+\t.\tgene_id "g2";',
        "chr1\tsrc\texon\tx\t30\t.\t+\t.\tgene_id \"g3\";",
        "short\tline",
    ])
    assert list(readers.iter_gff_features(gtf)) == [("chr1", "exon", 1, 10), ("chr1", "exon", 20, 30)]
    assert [f[1] for f in readers.iter_gff_features(gtf, tag="gene_biotype")] == ["miRNA", "exon"]

    gff3 = write_text(tmp_path / "a.gff3", ["chr2\tsrc\tgene\t5\t9\t.\t-\t.\tID=g1;biotype=tRNA"])
    assert list(readers.iter_gff_features(gff3, tag="biotype")) == [("chr2", "tRNA", 5, 9)]


def test_extract_alignment_data():
    opts = CoverOptions(nr=True)
    a = readers._extract_alignment_data(FakeAlignment("nr7:12:22", "chr1", 4, [(4, 2), (0, 5), (3, 10), (0, 3)], True, 30), opts)
    assert (a.chr, a.start_1b, a.end_1b) == ("chr1", 5, 22)
    assert (a.strand, a.mapq, a.read_len, a.clone) == ("-", 30, 10, 12)

    assert readers._extract_alignment_data(FakeAlignment("r", "chr1", 0, [(0, 5)], is_unmapped=True)) is None
    assert readers._extract_alignment_data(FakeAlignment("r", "*", 0, [(0, 5)])) is None


def test_extract_from_cigar_string():
    aln = SimpleNamespace(reference_name="chr1", pos=9, cigarstring="3S5M", query_name="r1",
                          is_reverse=False, mapq=60)
    a = readers._extract_alignment_data(aln)
    assert a.cigar == ((4, 3), (0, 5))
    assert (a.start_1b, a.end_1b, a.read_len, a.clone) == (10, 14, 8, 1)


def test_iter_alignments_filters():
    bam = FakeAlignmentFile([("chr1", 100)], [
        FakeAlignment("r1", "chr1", 0, [(0, 10)], mapq=10),
        FakeAlignment("r2", "chr1", 0, [(0, 10)], is_reverse=True, mapq=40),
        FakeAlignment("r3", "chr1", 0, [(0, 10)], mapq=40),
    ])
    names = [a.read_name for a in readers.iter_alignments(bam, options=CoverOptions(min_mapq=20, strand=1))]
    assert names == ["r3"]


def test_iter_alignments_reports_spanning_alignment_once():
    bam = FakeAlignmentFile([("chr1", 100)], [
        FakeAlignment("span", "chr1", 5, [(0, 20)]),
        FakeAlignment("second", "chr1", 21, [(0, 5)]),
    ])
    regions = [GenomeInterval("chr1", 20, 30), GenomeInterval("chr1", 1, 10)]
    names = [a.read_name for a in readers.iter_alignments(bam, regions)]
    assert names == ["span", "second"]
    assert bam.fetched == [("chr1", 0, 10), ("chr1", 19, 30)]


def test_scan_plan():
    sizes = [("chr1", 100), ("chr2", 0), ("chr3", 10)]
    plan = readers.scan_plan(sizes)
    assert list(plan) == ["chr1", "chr3"]
    assert plan["chr1"] == [GenomeInterval("chr1", 1, 100)]

    plan = readers.scan_plan(sizes, [GenomeInterval("chr3", 2, 4), GenomeInterval("chr3", 3, 6)])
    assert plan == {"chr3": [GenomeInterval("chr3", 2, 6)]}


def test_open_bam_failure(monkeypatch):
    def broken(path, mode):
        raise OSError("no such file")
    monkeypatch.setattr(readers.bn, "AlignmentFile", broken)
    with pytest.raises(RuntimeError, match="missing.bam"):
        readers.open_bam("missing.bam")
