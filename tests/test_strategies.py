import numpy as np
import pytest

from srad.errors import InputError
from srad.grid import Grid
from srad.parameters import HALO, STRATEGY_NAMES, TILE_SIZE
from srad.reduction import region_statistics
from srad.strategies import (
    FusedStrategy,
    NaiveStrategy,
    TiledStrategy,
    create_strategy,
    v3_coefficients,
    v3_update,
)


def one_iteration(image, name, lam=0.5):
    grid = Grid.from_image(image)
    before = grid.J.copy()
    stats = region_statistics(grid)
    strategy = create_strategy(name)
    strategy.step(grid, stats.q0sqr, lam)
    return before, grid.J


def test_registry():
    assert isinstance(create_strategy('v1'), NaiveStrategy)
    assert isinstance(create_strategy('V2'), FusedStrategy)
    assert isinstance(create_strategy('v3'), TiledStrategy)


def test_unknown_strategy():
    with pytest.raises(InputError):
        create_strategy('v4')


@pytest.mark.parametrize("name", STRATEGY_NAMES)
@pytest.mark.parametrize("lam", [0.1, 0.5, 1.0, 3.0])
def test_flat_image_is_a_fixed_point(flat_image, name, lam):
    before, after = one_iteration(flat_image, name, lam)
    np.testing.assert_array_equal(before, after)


@pytest.mark.parametrize("name", STRATEGY_NAMES)
def test_impulse_changes_only_itself_and_four_neighbours(impulse_image, name):
    before, after = one_iteration(impulse_image, name)

    changed = set(zip(*np.nonzero(after != before)))
    assert changed == {(8, 8), (7, 8), (9, 8), (8, 7), (8, 9)}
    # Diffusion pulls the impulse down and its neighbours up
    assert after[8, 8] < before[8, 8]
    assert after[7, 8] > before[7, 8]


@pytest.mark.parametrize("name", STRATEGY_NAMES)
def test_impulse_coefficient_below_background(impulse_image, name):
    grid = Grid.from_image(impulse_image)
    stats = region_statistics(grid)
    c = create_strategy(name).coefficients(grid, stats.q0sqr)

    assert c[8, 8] < c[0, 0]
    assert c[0, 0] == 1.0
    assert np.all((c >= 0.0) & (c <= 1.0))


def test_coefficients_agree_across_strategies(speckle_image):
    grid = Grid.from_image(speckle_image)
    q0sqr = region_statistics(grid).q0sqr
    fields = [create_strategy(name).coefficients(grid, q0sqr) for name in STRATEGY_NAMES]

    np.testing.assert_allclose(fields[1], fields[0], rtol=0, atol=1e-12)
    np.testing.assert_allclose(fields[2], fields[0], rtol=0, atol=1e-12)


@pytest.mark.parametrize("shape", [(8, 8), (9, 9), (16, 24), (17, 3), (3, 17), (7, 8)])
def test_tile_edges_match_naive(shape):
    rng = np.random.default_rng(11)
    image = rng.uniform(10.0, 250.0, size=shape)

    _, naive = one_iteration(image, 'v1')
    _, fused = one_iteration(image, 'v2')
    _, tiled = one_iteration(image, 'v3')

    np.testing.assert_allclose(fused, naive, rtol=0, atol=1e-10)
    np.testing.assert_allclose(tiled, naive, rtol=0, atol=1e-10)


@pytest.mark.parametrize("name", STRATEGY_NAMES)
@pytest.mark.parametrize("shape", [(1, 1), (1, 9), (9, 1), (2, 2)])
def test_degenerate_shapes(name, shape):
    image = np.linspace(10.0, 200.0, shape[0] * shape[1]).reshape(shape)
    _, after = one_iteration(image, name)
    assert after.shape == shape
    assert np.all(np.isfinite(after))


@pytest.mark.parametrize("name", STRATEGY_NAMES)
def test_single_pixel_is_unchanged(name):
    before, after = one_iteration(np.array([[42.0]]), name)
    np.testing.assert_array_equal(before, after)


@pytest.mark.parametrize("name", STRATEGY_NAMES)
def test_zero_image_stays_zero(name):
    before, after = one_iteration(np.zeros((12, 10)), name)
    np.testing.assert_array_equal(after, 0.0)


@pytest.mark.parametrize("name", STRATEGY_NAMES)
def test_larger_lambda_gives_larger_update(speckle_image, name):
    before, small = one_iteration(speckle_image, name, lam=0.2)
    _, large = one_iteration(speckle_image, name, lam=0.4)

    d_small = np.abs(small - before)
    d_large = np.abs(large - before)
    moved = d_small > 0

    assert np.any(moved)
    assert np.all(d_large[moved] > d_small[moved])
    np.testing.assert_allclose(d_large, 2.0 * d_small, rtol=1e-9, atol=1e-12)


def test_buffers_allocated_once(speckle_image):
    grid = Grid.from_image(speckle_image)
    strategy = TiledStrategy()
    strategy.prepare(grid)
    buffers = (strategy.c, strategy.out, strategy.scratch_J, strategy.scratch_C)

    for _ in range(3):
        strategy.step(grid, region_statistics(grid).q0sqr, 0.5)

    after = (strategy.c, strategy.out, strategy.scratch_J, strategy.scratch_C)
    assert all(a is b for a, b in zip(after, buffers))


def test_naive_keeps_derivative_grids(impulse_image):
    grid = Grid.from_image(impulse_image)
    strategy = NaiveStrategy()
    strategy.prepare(grid)
    strategy.compute_coefficients(grid, region_statistics(grid).q0sqr)

    # Impulse J = 20 on a J = 10 background
    assert strategy.dN[8, 8] == -10.0
    assert strategy.dS[7, 8] == 10.0
    assert strategy.dE[8, 7] == 10.0
    assert strategy.dW[8, 9] == 10.0
    # Clamped border: no difference toward the missing neighbour
    assert np.all(strategy.dN[0, :] == 0.0)
    assert np.all(strategy.dE[:, -1] == 0.0)


@pytest.mark.parametrize("workers", [1, 2, 5, 40])
def test_tiled_result_does_not_depend_on_worker_count(speckle_image, workers):
    grid = Grid.from_image(speckle_image)
    q0sqr = region_statistics(grid).q0sqr
    expected = create_strategy('v1').coefficients(grid, q0sqr)

    scratch_J = np.empty((workers, TILE_SIZE + 2 * HALO, TILE_SIZE + 2 * HALO))
    scratch_C = np.empty((workers, TILE_SIZE + HALO, TILE_SIZE + HALO))
    c = np.empty(grid.shape)
    out = np.empty(grid.shape)
    v3_coefficients(grid.J, q0sqr, c, scratch_J)
    v3_update(grid.J, c, 0.5, out, scratch_J, scratch_C)

    _, naive = one_iteration(speckle_image, 'v1')
    np.testing.assert_allclose(c, expected, rtol=0, atol=1e-12)
    np.testing.assert_allclose(out, naive, rtol=0, atol=1e-10)
