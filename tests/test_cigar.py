import pytest

from bamcover.cigar import (
    alignment_blocks,
    cigar_to_string,
    parse_cigar,
    reference_length,
    unclipped_start,
    walk_reference,
)


def test_insertion_does_not_advance():
    # 5M2I3M at 10 writes positions 10..17
    assert walk_reference(10, [(0, 5), (1, 2), (0, 3)]) == [(10, 18)]


def test_soft_clip_counted_only_on_request():
    cigar = [(4, 3), (0, 5)]
    start = unclipped_start(10, cigar)
    assert start == 7
    assert walk_reference(start, cigar) == [(10, 15)]
    assert walk_reference(start, cigar, count_soft=True) == [(7, 15)]


def test_hard_clip_advances_only():
    cigar = [(5, 2), (0, 3)]
    start = unclipped_start(10, cigar)
    assert start == 8
    assert walk_reference(start, cigar, count_soft=True) == [(10, 13)]


def test_deletion_writes_and_skip_does_not():
    assert walk_reference(1, [(0, 3), (2, 2), (0, 2)]) == [(1, 8)]
    assert walk_reference(1, [(0, 3), (3, 4), (0, 2)]) == [(1, 4), (8, 10)]


def test_alignment_blocks():
    assert alignment_blocks(1, [(4, 2), (0, 3), (2, 2), (1, 1), (8, 2), (3, 5), (7, 1)]) == [
        (1, 3), (6, 2), (13, 1),
    ]


def test_reference_length():
    assert reference_length([(4, 2), (0, 5), (2, 1), (3, 10), (1, 3)]) == 16


def test_parse_cigar():
    assert parse_cigar("5M2I3M") == [(0, 5), (1, 2), (0, 3)]
    assert parse_cigar("3S4=1X2H") == [(4, 3), (7, 4), (8, 1), (5, 2)]
    assert parse_cigar("*") == []
    assert cigar_to_string(parse_cigar("10M100N5M")) == "10M100N5M"


@pytest.mark.parametrize("bad", ["5Q", "M5", "5M3", "5M 3M"])
def test_parse_cigar_malformed(bad):
    with pytest.raises(ValueError):
        parse_cigar(bad)
