import math

import numpy as np
import pytest

from bamcover.accumulator import PositionalAccumulator
from bamcover.bamcoverClasses import RegionBoundsError


def test_alignment_end_to_end():
    acc = PositionalAccumulator({"chr1": 20})
    assert acc.add_alignment("chr1", 1, [(0, 10)], weight=3)
    assert acc.mean_coverage("chr1", 1, 11) == 3.0
    assert acc.mean_coverage("chr1", 11, 20) == 0.0
    assert (acc.records, acc.total_weight) == (1, 3)


def test_unknown_chromosome():
    acc = PositionalAccumulator([("chr1", 20)])
    assert not acc.add_alignment("chrX", 1, [(0, 10)])
    assert acc.records == 0
    assert math.isnan(acc.mean_coverage("chrX", 1, 5))


def test_negative_length_rejected():
    with pytest.raises(ValueError):
        PositionalAccumulator({"chr1": -1})


def test_windows():
    acc = PositionalAccumulator({"chr1": 10})
    acc.add_region("chr1", 3, 6)
    assert list(acc.iter_windows("chr1", 1, 10, step=2)) == [(3, 5, 1.0), (5, 7, 1.0)]
    windows = list(acc.iter_windows("chr1", 1, 10, step=2, keep0=True))
    assert [w[0] for w in windows] == [1, 3, 5, 7, 9]
    assert windows[-1] == (9, 11, 0.0)
    with pytest.raises(ValueError):
        list(acc.iter_windows("chr1", 1, 10, step=0))


def test_rpm_scale():
    acc = PositionalAccumulator({"chr1": 10})
    assert acc.rpm_scale() == 1.0
    acc.add_alignment("chr1", 1, [(0, 2)], weight=1)
    acc.add_alignment("chr1", 1, [(0, 2)], weight=3)
    assert acc.rpm_scale() == 250000.0
    assert list(acc.iter_windows("chr1", 1, 2, scale=acc.rpm_scale())) == [(1, 2, 1e6), (2, 3, 1e6)]


def test_clamped_to_chromosome():
    acc = PositionalAccumulator({"chr1": 10})
    acc.add_region("chr1", 8, 15)
    acc.add_alignment("chr1", 9, [(0, 5)])
    assert acc.array("chr1").tolist() == [0, 0, 0, 0, 0, 0, 0, 0, 1, 2, 2]


def test_out_of_bounds_raises_without_clamping():
    acc = PositionalAccumulator({"chr1": 10}, clamp_to_chrom_bounds=False)
    with pytest.raises(RegionBoundsError):
        acc.add_region("chr1", 8, 15)
    with pytest.raises(ValueError):
        acc.add_alignment("chr1", 0, [(0, 3)])


def test_region_start_after_end():
    acc = PositionalAccumulator({"chr1": 10})
    with pytest.raises(ValueError):
        acc.add_region("chr1", 5, 4)


def test_coverage_range_and_bins():
    acc = PositionalAccumulator({"chr1": 10})
    acc.add_region("chr1", 1, 4)
    acc.add_region("chr1", 3, 4, weight=5)
    assert acc.coverage_range("chr1", 1, 10) == (1, 6)
    assert acc.coverage_range("chr1", 5, 10) == (0, 0)
    assert acc.bin_summary("chr1", 1, 10, [0, 5, 10]) == ([2, 2], 10)


def test_mean_coverage_clipped_to_chromosome():
    acc = PositionalAccumulator({"chr1": 20})
    acc.add_region("chr1", 1, 20)
    assert acc.mean_coverage("chr1", 11, 25) == 1.0
    assert acc.mean_coverage("chr1", -2, 3) == 1.0
    assert math.isnan(acc.mean_coverage("chr1", 25, 30))
    assert math.isnan(acc.mean_coverage("chr1", 5, 5))


def test_mean_coverage_out_of_bounds_raises_without_clamping():
    acc = PositionalAccumulator({"chr1": 20}, clamp_to_chrom_bounds=False)
    acc.add_region("chr1", 1, 20)
    assert acc.mean_coverage("chr1", 1, 21) == 1.0
    with pytest.raises(RegionBoundsError):
        acc.mean_coverage("chr1", 11, 25)
    with pytest.raises(RegionBoundsError):
        acc.mean_coverage("chr1", -2, 3)


def test_rejected_alignment_leaves_array_untouched():
    acc = PositionalAccumulator({"chr1": 10}, clamp_to_chrom_bounds=False)
    # first run 8..9 fits, the run after the skip reaches past the end
    with pytest.raises(RegionBoundsError):
        acc.add_alignment("chr1", 8, [(0, 2), (3, 1), (0, 5)])
    assert acc.array("chr1").tolist() == [0] * 11
    assert (acc.records, acc.total_weight) == (0, 0)


def test_float_values_overwrite():
    acc = PositionalAccumulator({"chr1": 5}, dtype=np.float32)
    acc.set_region("chr1", 2, 3, 1.5)
    acc.set_region("chr1", 3, 3, 0.5)
    assert acc.array("chr1").tolist() == [0.0, 0.0, 1.5, 0.5, 0.0, 0.0]
    assert acc.mean_coverage("chr1", 2, 4) == 1.0
    assert not acc.set_region("chrX", 1, 2, 1.0)
