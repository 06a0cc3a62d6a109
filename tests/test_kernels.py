import math

import numpy as np
import pytest

from srad.kernels import copy_grid, diffusion_coefficient, diffusion_update, floor_eps
from srad.parameters import EPSILON, Q0SQR_SENTINEL


def test_flat_pixel_gets_full_diffusion():
    assert diffusion_coefficient(10.0, 0.0, 0.0, 0.0, 0.0, 0.05) == 1.0


def test_edge_pixel_diffuses_less_than_flat():
    c_edge = diffusion_coefficient(20.0, -10.0, -10.0, -10.0, -10.0, 0.05)
    c_flat = diffusion_coefficient(10.0, 0.0, 0.0, 0.0, 0.0, 0.05)
    assert 0.0 <= c_edge < c_flat


@pytest.mark.parametrize("args", [
    (0.0, 0.0, 0.0, 0.0, 0.0, 0.0),             # black flat image, q0sqr 0
    (0.0, 0.0, 0.0, 0.0, 0.0, Q0SQR_SENTINEL),  # zero-mean ROI
    (0.0, 10.0, 10.0, 10.0, 10.0, 0.1),         # black pixel, bright neighbours
    (1e-12, 5.0, -5.0, 0.0, 0.0, 1e-12),
    (10.0, -10.0, -10.0, -10.0, -10.0, 0.0),    # den = (1 + l/4)^2 = 0
    (16.0, 0.0, 0.0, 0.0, -16.0, 0.3),
])
def test_coefficient_is_finite_and_clamped(args):
    c = diffusion_coefficient(*args)
    assert math.isfinite(c)
    assert 0.0 <= c <= 1.0


def test_update_uses_own_coefficient_for_north_and_west():
    # Only dN and dW are non-zero; cS / cE must not matter
    a = diffusion_update(5.0, 0.5, 0.0, 0.0, 2.0, 0.0, 2.0, 0.0, 1.0)
    b = diffusion_update(5.0, 0.5, 1.0, 1.0, 2.0, 0.0, 2.0, 0.0, 1.0)
    assert a == b == 5.0 + 0.25 * (0.5 * 2.0 + 0.5 * 2.0)


def test_update_uses_neighbour_coefficient_for_south_and_east():
    new = diffusion_update(5.0, 1.0, 0.2, 0.6, 0.0, 1.0, 0.0, 1.0, 0.5)
    assert new == pytest.approx(5.0 + 0.125 * (0.2 + 0.6))


def test_copy_grid():
    src = np.arange(12, dtype=np.float64).reshape(3, 4)
    dst = np.zeros_like(src)
    copy_grid(src, dst)
    np.testing.assert_array_equal(src, dst)


def test_floor_eps():
    assert floor_eps(0.0) == EPSILON
    assert floor_eps(-1.0) == EPSILON
    assert floor_eps(2.5) == 2.5
