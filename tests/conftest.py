import pytest

from bamcover import readers


class FakeAlignment:
    """Just the bamnostic alignment attributes the readers look at."""

    def __init__(self, name, chrom, pos, cigar, is_reverse=False, mapq=60, is_unmapped=False):
        self.query_name = name
        self.reference_name = chrom
        self.pos = pos  # 0-based, as in bamnostic
        self.cigar = list(cigar)
        self.is_reverse = is_reverse
        self.mapq = mapq
        self.is_unmapped = is_unmapped
        self.query_length = sum(n for op, n in self.cigar if op in (0, 1, 4, 7, 8))

    @property
    def ref_end(self):
        return self.pos + sum(n for op, n in self.cigar if op in (0, 2, 3, 7, 8))


class FakeAlignmentFile:
    def __init__(self, chrom_sizes, alignments):
        self.references = [c for c, _ in chrom_sizes]
        self.lengths = [n for _, n in chrom_sizes]
        self.alignments = list(alignments)
        self.fetched = []
        self.closed = False

    def __iter__(self):
        return iter(self.alignments)

    def fetch(self, contig=None, start=None, stop=None, **kw):
        self.fetched.append((contig, start, stop))
        return [a for a in self.alignments
                if a.reference_name == contig and a.pos < stop and a.ref_end > start]

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


@pytest.fixture
def fake_bam(monkeypatch):
    """Install a fake bamnostic AlignmentFile; returns a function taking (chrom_sizes, alignments)."""
    opened = {}

    def install(chrom_sizes, alignments):
        def fake_alignmentfile(path, mode):
            opened["path"] = path
            opened["mode"] = mode
            opened["bam"] = FakeAlignmentFile(chrom_sizes, alignments)
            return opened["bam"]
        monkeypatch.setattr(readers.bn, "AlignmentFile", fake_alignmentfile)
        return opened

    return install


def write_text(path, lines):
    path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    return path


def read_lines(path):
    return path.read_text(encoding="utf-8").splitlines()
