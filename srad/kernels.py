"""
SRAD Pixel Kernels
==================

Per-pixel formulas shared by every execution strategy. The strategies differ
only in where the inputs of these functions come from (main-memory grids,
locals, or a staged tile), never in the arithmetic.

Directional differences (clamped neighbours):
    dN = J[north] - J    dS = J[south] - J
    dW = J[west]  - J    dE = J[east]  - J

Instantaneous coefficient of variation:
    g2  = (dN^2 + dS^2 + dW^2 + dE^2) / J^2
    l   = (dN + dS + dW + dE) / J
    q2  = (0.5*g2 - l^2/16) / (1 + l/4)^2

Diffusion coefficient:
    c = 1 / (1 + (q2 - q0^2) / (q0^2 * (1 + q0^2)))    clamped to [0, 1]

Update (forward stencil; north/west reuse the pixel's own coefficient):
    J += lambda/4 * (c*dN + c_south*dS + c*dW + c_east*dE)
"""

from __future__ import annotations

import numba
import numpy as np

from .parameters import EPSILON


# =============================================================================
# Numba Helper Functions
# =============================================================================

@numba.jit(nopython=True, cache=True)
def floor_eps(x: float) -> float:
    """Floor a non-negative denominator at EPSILON."""
    return x if x >= EPSILON else EPSILON


# =============================================================================
# Pixel Formulas
# =============================================================================

@numba.jit(nopython=True, cache=True)
def diffusion_coefficient(
    jc: float,
    dN: float,
    dS: float,
    dW: float,
    dE: float,
    q0sqr: float,
) -> float:
    """
    SRAD diffusion coefficient of one pixel.

    Every denominator is floored at EPSILON so that flat, black or zero-mean
    regions produce a finite coefficient instead of NaN/Inf.

    Parameters
    ----------
    jc : float
        Pixel value (square-root domain, >= 0)
    dN, dS, dW, dE : float
        Directional differences toward the four neighbours
    q0sqr : float
        ROI speckle scale q0^2 for this iteration

    Returns
    -------
    c : float
        Diffusion coefficient in [0, 1]
    """
    jc = floor_eps(jc)

    g2 = (dN * dN + dS * dS + dW * dW + dE * dE) / (jc * jc)
    l = (dN + dS + dW + dE) / jc

    num = 0.5 * g2 - 0.0625 * l * l
    den = 1.0 + 0.25 * l
    q2 = num / floor_eps(den * den)

    denom = 1.0 + (q2 - q0sqr) / floor_eps(q0sqr * (1.0 + q0sqr))
    if abs(denom) < EPSILON:
        denom = EPSILON
    c = 1.0 / denom

    if c < 0.0:
        c = 0.0
    elif c > 1.0:
        c = 1.0
    return c


@numba.jit(nopython=True, cache=True)
def diffusion_update(
    jc: float,
    c: float,
    cS: float,
    cE: float,
    dN: float,
    dS: float,
    dW: float,
    dE: float,
    lam: float,
) -> float:
    """New pixel value from its own, south and east coefficients."""
    div = c * dN + cS * dS + c * dW + cE * dE
    return jc + 0.25 * lam * div


@numba.jit(nopython=True, cache=True, parallel=True)
def copy_grid(src: np.ndarray, dst: np.ndarray) -> None:
    """Write back an output buffer into the grid, one row per work unit."""
    rows, cols = src.shape
    for i in numba.prange(rows):
        for j in range(cols):
            dst[i, j] = src[i, j]
