"""
ROI Statistics Reduction
========================

Tree-style parallel reduction of sum and sum of squares over the ROI.

Pass 1: every work unit (one prange iteration) stages `block` elements of the
        ROI into a local scratch buffer, zero padded past the end, and folds it
        in halves until one partial sum remains.
Pass 2+: the partial sums are reduced the same way until one value is left.

From (sum, sum_sq, N):
    mean     = sum / N
    variance = sum_sq / N - mean^2          (clamped at 0)
    q0sqr    = variance / mean^2            (Q0SQR_SENTINEL if mean^2 < EPSILON)
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple

import numba
import numpy as np

from .grid import Grid, allocate
from .parameters import EPSILON, Q0SQR_SENTINEL, REDUCTION_BLOCK


# =============================================================================
# Numba-Accelerated Reduction Kernels
# =============================================================================

@numba.jit(nopython=True, cache=True)
def _tree_fold(scratch: np.ndarray, scratch_sq: np.ndarray, block: int) -> None:
    """Fold a power-of-two scratch pair in halves; result lands in slot 0."""
    stride = block // 2
    while stride > 0:
        for t in range(stride):
            scratch[t] += scratch[t + stride]
            scratch_sq[t] += scratch_sq[t + stride]
        stride //= 2


@numba.jit(nopython=True, cache=True, parallel=True)
def reduce_first_pass(
    values: np.ndarray,
    block: int,
    partial_sum: np.ndarray,
    partial_sq: np.ndarray,
) -> None:
    """
    First reduction pass over a 2D region.

    Parameters
    ----------
    values : np.ndarray (rows, cols)
        Region to reduce (may be a non-contiguous view)
    block : int
        Elements per work unit (power of two)
    partial_sum, partial_sq : np.ndarray (n_blocks,)
        Output partial sums of values and squared values
    """
    rows, cols = values.shape
    n = rows * cols
    n_blocks = partial_sum.shape[0]

    for b in numba.prange(n_blocks):
        scratch = np.zeros(block)
        scratch_sq = np.zeros(block)
        start = b * block

        # Stage; slots past the end of the region stay zero
        for t in range(block):
            k = start + t
            if k < n:
                v = values[k // cols, k % cols]
                scratch[t] = v
                scratch_sq[t] = v * v

        _tree_fold(scratch, scratch_sq, block)
        partial_sum[b] = scratch[0]
        partial_sq[b] = scratch_sq[0]


@numba.jit(nopython=True, cache=True, parallel=True)
def reduce_combine_pass(
    in_sum: np.ndarray,
    in_sq: np.ndarray,
    block: int,
    out_sum: np.ndarray,
    out_sq: np.ndarray,
) -> None:
    """Reduce partial sums from the previous pass by another factor of `block`."""
    n = in_sum.shape[0]
    n_blocks = out_sum.shape[0]

    for b in numba.prange(n_blocks):
        scratch = np.zeros(block)
        scratch_sq = np.zeros(block)
        start = b * block

        for t in range(block):
            k = start + t
            if k < n:
                scratch[t] = in_sum[k]
                scratch_sq[t] = in_sq[k]

        _tree_fold(scratch, scratch_sq, block)
        out_sum[b] = scratch[0]
        out_sq[b] = scratch_sq[0]


# =============================================================================
# Region Statistics
# =============================================================================

@dataclass(frozen=True)
class RegionStatistics:
    """Baseline speckle statistics of the ROI for one iteration."""
    mean: float
    variance: float
    q0sqr: float

    @classmethod
    def from_sums(cls, total: float, total_sq: float, n: int) -> RegionStatistics:
        """Derive mean, variance and q0^2 from a sum / sum-of-squares pair."""
        mean = total / n
        variance = total_sq / n - mean * mean
        if variance < 0.0:
            # Cancellation when all values are (nearly) equal
            variance = 0.0

        mean2 = mean * mean
        if mean2 < EPSILON:
            q0sqr = Q0SQR_SENTINEL
        else:
            q0sqr = variance / mean2

        return cls(mean=float(mean), variance=float(variance), q0sqr=float(q0sqr))


# =============================================================================
# Statistics Reducer
# =============================================================================

class StatisticsReducer:
    """
    Multi-pass sum / sum-of-squares reducer.

    Parameters
    ----------
    block : int
        Elements folded by one work unit per pass (power of two)
    """

    def __init__(self, block: int = REDUCTION_BLOCK):
        if block < 2 or block & (block - 1):
            raise ValueError(f"block must be a power of two >= 2, got {block}")
        self.block = block
        self.passes = 0

    def _n_blocks(self, n: int) -> int:
        return (n + self.block - 1) // self.block

    def reduce(self, values: np.ndarray) -> Tuple[float, float]:
        """
        Sum and sum of squares of a 2D region.

        Parameters
        ----------
        values : np.ndarray (rows, cols)
            Region to reduce

        Returns
        -------
        total, total_sq : float
        """
        if values.ndim != 2 or values.size == 0:
            raise ValueError(f"Expected a non-empty 2D region, got shape {values.shape}")

        n_blocks = self._n_blocks(values.size)
        partial_sum = allocate((n_blocks,))
        partial_sq = allocate((n_blocks,))
        reduce_first_pass(values, self.block, partial_sum, partial_sq)
        self.passes = 1

        while n_blocks > 1:
            n_blocks = self._n_blocks(n_blocks)
            out_sum = allocate((n_blocks,))
            out_sq = allocate((n_blocks,))
            reduce_combine_pass(partial_sum, partial_sq, self.block, out_sum, out_sq)
            partial_sum, partial_sq = out_sum, out_sq
            self.passes += 1

        return float(partial_sum[0]), float(partial_sq[0])

    def statistics(self, grid: Grid) -> RegionStatistics:
        """ROI statistics of the grid's current state."""
        roi = grid.roi_view()
        total, total_sq = self.reduce(roi)
        return RegionStatistics.from_sums(total, total_sq, roi.size)


def region_statistics(grid: Grid, block: int = REDUCTION_BLOCK) -> RegionStatistics:
    """Pure `Grid -> RegionStatistics` helper."""
    return StatisticsReducer(block).statistics(grid)
