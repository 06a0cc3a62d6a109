import numpy as np
import pytest

from srad.grid import Grid
from srad.parameters import EPSILON, Q0SQR_SENTINEL, ROI
from srad.reduction import RegionStatistics, StatisticsReducer, region_statistics


def test_constant_grid_has_exact_mean_and_zero_variance():
    grid = Grid.from_image(np.full((30, 17), 16.0))
    stats = region_statistics(grid)

    assert stats.mean == 4.0
    assert stats.variance == 0.0
    assert stats.q0sqr == 0.0


@pytest.mark.parametrize("shape, block", [
    ((1, 1), 256),
    ((1, 7), 4),
    ((37, 53), 8),
    ((64, 64), 256),
    ((100, 3), 2),
])
def test_sums_match_numpy_for_partial_blocks(shape, block):
    rng = np.random.default_rng(3)
    values = rng.uniform(0.0, 16.0, size=shape)

    total, total_sq = StatisticsReducer(block).reduce(values)

    assert total == pytest.approx(np.sum(values), rel=1e-12)
    assert total_sq == pytest.approx(np.sum(values ** 2), rel=1e-12)


def test_multi_pass_count():
    reducer = StatisticsReducer(block=8)
    reducer.reduce(np.ones((25, 40)))
    # 1000 -> 125 -> 16 -> 2 -> 1
    assert reducer.passes == 4


def test_single_block_needs_one_pass():
    reducer = StatisticsReducer(block=256)
    total, _ = reducer.reduce(np.ones((10, 10)))
    assert reducer.passes == 1
    assert total == 100.0


def test_non_contiguous_region():
    values = np.arange(100, dtype=np.float64).reshape(10, 10)
    view = values[2:7, 3:9]
    total, total_sq = StatisticsReducer(block=4).reduce(view)
    assert total == np.sum(view)
    assert total_sq == np.sum(view ** 2)


def test_roi_restricts_statistics():
    image = np.full((20, 20), 4.0)
    image[10:, :] = 64.0
    roi = ROI(0, 9, 0, 19)
    stats = region_statistics(Grid.from_image(image, roi=roi))

    assert stats.mean == 2.0
    assert stats.variance == 0.0


def test_zero_mean_uses_sentinel():
    stats = region_statistics(Grid.from_image(np.zeros((5, 5))))
    assert stats.mean == 0.0
    assert stats.q0sqr == Q0SQR_SENTINEL


def test_from_sums_clamps_negative_variance():
    # sum_sq / n slightly below mean^2 from rounding
    stats = RegionStatistics.from_sums(30.0, 89.99999999, 10)
    assert stats.variance == 0.0
    assert stats.q0sqr == 0.0


def test_from_sums_q0sqr():
    # values 1 and 3: mean 2, variance 1
    stats = RegionStatistics.from_sums(4.0, 10.0, 2)
    assert stats.mean == 2.0
    assert stats.variance == 1.0
    assert stats.q0sqr == pytest.approx(0.25)
    assert stats.mean ** 2 > EPSILON


@pytest.mark.parametrize("block", [0, 1, 3, 100])
def test_block_must_be_power_of_two(block):
    with pytest.raises(ValueError):
        StatisticsReducer(block)


def test_empty_region_rejected():
    with pytest.raises(ValueError):
        StatisticsReducer().reduce(np.empty((0, 4)))
