"""
SRAD Execution Strategies
=========================

Three interchangeable implementations of one SRAD iteration (after the ROI
statistics are known). They share the arithmetic in `kernels` and differ only
in memory traffic:

V1 (naive)   three passes; dN/dS/dW/dE and c are full grids in main memory.
V2 (fused)   derivatives live in locals; only c and the new J are written.
V3 (tiled)   8x8 tiles plus a one-pixel halo are staged into a per-worker
             scratch slot; every pixel of the tile reads neighbours from it.

Each iteration runs in two phases separated by a hard barrier:
    1. coefficients  (all c computed from the grid at iteration start)
    2. update        (needs c of the south/east neighbour)

One prange iteration is one work unit: a row for V1/V2, a worker for V3
(which stages its share of tiles one after another). The end of a prange
loop is the barrier.
"""

from __future__ import annotations
import logging
from typing import Dict, Optional, Tuple, Type

import numba
import numpy as np

from .errors import InputError
from .grid import Grid, allocate
from .kernels import copy_grid, diffusion_coefficient, diffusion_update
from .parameters import HALO, STRATEGY_NAMES, TILE_SIZE

logger = logging.getLogger(__name__)


# =============================================================================
# V1: Naive Kernels (every intermediate round-trips through memory)
# =============================================================================

@numba.jit(nopython=True, cache=True, parallel=True)
def v1_derivatives(
    J: np.ndarray,
    iN: np.ndarray,
    iS: np.ndarray,
    jW: np.ndarray,
    jE: np.ndarray,
    dN: np.ndarray,
    dS: np.ndarray,
    dW: np.ndarray,
    dE: np.ndarray,
) -> None:
    """Directional differences of every pixel into four full grids."""
    rows, cols = J.shape
    for i in numba.prange(rows):
        for j in range(cols):
            jc = J[i, j]
            dN[i, j] = J[iN[i], j] - jc
            dS[i, j] = J[iS[i], j] - jc
            dW[i, j] = J[i, jW[j]] - jc
            dE[i, j] = J[i, jE[j]] - jc


@numba.jit(nopython=True, cache=True, parallel=True)
def v1_coefficients(
    J: np.ndarray,
    dN: np.ndarray,
    dS: np.ndarray,
    dW: np.ndarray,
    dE: np.ndarray,
    q0sqr: float,
    c: np.ndarray,
) -> None:
    """Diffusion coefficient of every pixel from the stored derivative grids."""
    rows, cols = J.shape
    for i in numba.prange(rows):
        for j in range(cols):
            c[i, j] = diffusion_coefficient(
                J[i, j], dN[i, j], dS[i, j], dW[i, j], dE[i, j], q0sqr
            )


@numba.jit(nopython=True, cache=True, parallel=True)
def v1_update(
    J: np.ndarray,
    c: np.ndarray,
    iS: np.ndarray,
    jE: np.ndarray,
    dN: np.ndarray,
    dS: np.ndarray,
    dW: np.ndarray,
    dE: np.ndarray,
    lam: float,
) -> None:
    """
    In-place update from stored derivatives.

    Each pixel reads only its own J and the stored grids, so writing J in
    place cannot disturb another pixel of the same pass.
    """
    rows, cols = J.shape
    for i in numba.prange(rows):
        for j in range(cols):
            J[i, j] = diffusion_update(
                J[i, j], c[i, j], c[iS[i], j], c[i, jE[j]],
                dN[i, j], dS[i, j], dW[i, j], dE[i, j], lam,
            )


# =============================================================================
# V2: Fused Kernels (derivatives held in locals)
# =============================================================================

@numba.jit(nopython=True, cache=True, parallel=True)
def v2_coefficients(
    J: np.ndarray,
    iN: np.ndarray,
    iS: np.ndarray,
    jW: np.ndarray,
    jE: np.ndarray,
    q0sqr: float,
    c: np.ndarray,
) -> None:
    """Derivatives and coefficient fused per pixel; only c is written."""
    rows, cols = J.shape
    for i in numba.prange(rows):
        n = iN[i]
        s = iS[i]
        for j in range(cols):
            jc = J[i, j]
            c[i, j] = diffusion_coefficient(
                jc,
                J[n, j] - jc,
                J[s, j] - jc,
                J[i, jW[j]] - jc,
                J[i, jE[j]] - jc,
                q0sqr,
            )


@numba.jit(nopython=True, cache=True, parallel=True)
def v2_update(
    J: np.ndarray,
    c: np.ndarray,
    iN: np.ndarray,
    iS: np.ndarray,
    jW: np.ndarray,
    jE: np.ndarray,
    lam: float,
    out: np.ndarray,
) -> None:
    """Recompute derivatives in locals and write the new J into `out`."""
    rows, cols = J.shape
    for i in numba.prange(rows):
        n = iN[i]
        s = iS[i]
        for j in range(cols):
            jc = J[i, j]
            e = jE[j]
            out[i, j] = diffusion_update(
                jc, c[i, j], c[s, j], c[i, e],
                J[n, j] - jc,
                J[s, j] - jc,
                J[i, jW[j]] - jc,
                J[i, e] - jc,
                lam,
            )


# =============================================================================
# V3: Tiled Kernels (tile + halo staged in per-worker scratch)
# =============================================================================

@numba.jit(nopython=True, cache=True)
def _clamp(k: int, n: int) -> int:
    if k < 0:
        return 0
    if k > n - 1:
        return n - 1
    return k


@numba.jit(nopython=True, cache=True)
def _stage_tile(
    src: np.ndarray,
    r0: int,
    c0: int,
    before: int,
    after: int,
    tile: np.ndarray,
) -> None:
    """
    Load src[r0-before : r0+T+after, c0-before : c0+T+after] into `tile`.

    Out-of-grid positions take the clamped edge value, matching the
    BoundaryIndex tables used by V1/V2.
    """
    rows, cols = src.shape
    for a in range(before + TILE_SIZE + after):
        gi = _clamp(r0 - before + a, rows)
        for b in range(before + TILE_SIZE + after):
            gj = _clamp(c0 - before + b, cols)
            tile[a, b] = src[gi, gj]


@numba.jit(nopython=True, cache=True, parallel=True)
def v3_coefficients(
    J: np.ndarray,
    q0sqr: float,
    c: np.ndarray,
    scratch_J: np.ndarray,
) -> None:
    """
    Tiled coefficient pass.

    Each work unit stages its TILE_SIZE x TILE_SIZE tile with a HALO-wide
    border, then computes every in-grid pixel of the tile from the staged copy.

    scratch_J holds one (T+2, T+2) staging slot per worker. Worker w takes
    tiles w, w + workers, w + 2*workers, ... and restages its own slot for
    each of them, so no tile ever shares a slot with a concurrent tile.
    """
    rows, cols = J.shape
    tiles_y = (rows + TILE_SIZE - 1) // TILE_SIZE
    tiles_x = (cols + TILE_SIZE - 1) // TILE_SIZE
    workers = scratch_J.shape[0]

    for w in numba.prange(workers):
        sJ = scratch_J[w]
        for t in range(w, tiles_y * tiles_x, workers):
            r0 = (t // tiles_x) * TILE_SIZE
            c0 = (t % tiles_x) * TILE_SIZE

            _stage_tile(J, r0, c0, HALO, HALO, sJ)
            # staging barrier: sJ is complete before any neighbour read below

            n_a = min(TILE_SIZE, rows - r0)
            n_b = min(TILE_SIZE, cols - c0)
            for a in range(n_a):
                for b in range(n_b):
                    jc = sJ[a + 1, b + 1]
                    c[r0 + a, c0 + b] = diffusion_coefficient(
                        jc,
                        sJ[a, b + 1] - jc,
                        sJ[a + 2, b + 1] - jc,
                        sJ[a + 1, b] - jc,
                        sJ[a + 1, b + 2] - jc,
                        q0sqr,
                    )


@numba.jit(nopython=True, cache=True, parallel=True)
def v3_update(
    J: np.ndarray,
    c: np.ndarray,
    lam: float,
    out: np.ndarray,
    scratch_J: np.ndarray,
    scratch_C: np.ndarray,
) -> None:
    """
    Tiled update pass.

    Stages J with a full halo (derivatives) and c with a south/east halo only
    (the stencil never reads the north/west neighbour's coefficient). Tiles
    are dealt to workers as in `v3_coefficients`.
    """
    rows, cols = J.shape
    tiles_y = (rows + TILE_SIZE - 1) // TILE_SIZE
    tiles_x = (cols + TILE_SIZE - 1) // TILE_SIZE
    workers = scratch_J.shape[0]

    for w in numba.prange(workers):
        sJ = scratch_J[w]
        sC = scratch_C[w]
        for t in range(w, tiles_y * tiles_x, workers):
            r0 = (t // tiles_x) * TILE_SIZE
            c0 = (t % tiles_x) * TILE_SIZE

            _stage_tile(J, r0, c0, HALO, HALO, sJ)
            _stage_tile(c, r0, c0, 0, HALO, sC)
            # staging barrier

            n_a = min(TILE_SIZE, rows - r0)
            n_b = min(TILE_SIZE, cols - c0)
            for a in range(n_a):
                for b in range(n_b):
                    jc = sJ[a + 1, b + 1]
                    out[r0 + a, c0 + b] = diffusion_update(
                        jc, sC[a, b], sC[a + 1, b], sC[a, b + 1],
                        sJ[a, b + 1] - jc,
                        sJ[a + 2, b + 1] - jc,
                        sJ[a + 1, b] - jc,
                        sJ[a + 1, b + 2] - jc,
                        lam,
                    )


# =============================================================================
# Strategy Classes
# =============================================================================

class ExecutionStrategy:
    """
    One SRAD iteration split into a coefficient phase and an update phase.

    Scratch buffers are allocated once per grid shape in `prepare` and reused
    by every iteration; the phases themselves do not allocate grid-sized
    memory.
    """

    name = ""
    description = ""

    def __init__(self):
        self._shape: Optional[Tuple[int, int]] = None
        self.c: Optional[np.ndarray] = None

    def prepare(self, grid: Grid) -> None:
        """Allocate scratch buffers for the grid's shape (no-op if unchanged)."""
        if self._shape == grid.shape:
            return
        self._allocate(grid.shape)
        self._shape = grid.shape
        logger.debug("%s: buffers allocated for %dx%d grid", self.name, *grid.shape)

    def _allocate(self, shape: Tuple[int, int]) -> None:
        self.c = allocate(shape)

    def compute_coefficients(self, grid: Grid, q0sqr: float) -> None:
        """Phase 1: derivatives and coefficients from the current grid."""
        raise NotImplementedError

    def apply_update(self, grid: Grid, lam: float) -> None:
        """Phase 2: update grid.J from the phase-1 coefficients."""
        raise NotImplementedError

    def step(self, grid: Grid, q0sqr: float, lam: float) -> None:
        """Run both phases of one iteration."""
        self.prepare(grid)
        self.compute_coefficients(grid, q0sqr)
        self.apply_update(grid, lam)

    def coefficients(self, grid: Grid, q0sqr: float) -> np.ndarray:
        """Coefficient field of the grid's current state (copy)."""
        self.prepare(grid)
        self.compute_coefficients(grid, q0sqr)
        return self.c.copy()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class NaiveStrategy(ExecutionStrategy):
    """V1: independent passes through full derivative/coefficient grids."""

    name = "v1"
    description = "naive (derivative and coefficient grids in memory)"

    def _allocate(self, shape: Tuple[int, int]) -> None:
        super()._allocate(shape)
        self.dN = allocate(shape)
        self.dS = allocate(shape)
        self.dW = allocate(shape)
        self.dE = allocate(shape)

    def compute_coefficients(self, grid: Grid, q0sqr: float) -> None:
        v1_derivatives(
            grid.J, grid.iN, grid.iS, grid.jW, grid.jE,
            self.dN, self.dS, self.dW, self.dE,
        )
        v1_coefficients(grid.J, self.dN, self.dS, self.dW, self.dE, q0sqr, self.c)

    def apply_update(self, grid: Grid, lam: float) -> None:
        v1_update(
            grid.J, self.c, grid.iS, grid.jE,
            self.dN, self.dS, self.dW, self.dE, lam,
        )


class FusedStrategy(ExecutionStrategy):
    """V2: per-pixel temporaries, only c and the new J written back."""

    name = "v2"
    description = "fused (derivatives in locals)"

    def _allocate(self, shape: Tuple[int, int]) -> None:
        super()._allocate(shape)
        self.out = allocate(shape)

    def compute_coefficients(self, grid: Grid, q0sqr: float) -> None:
        v2_coefficients(grid.J, grid.iN, grid.iS, grid.jW, grid.jE, q0sqr, self.c)

    def apply_update(self, grid: Grid, lam: float) -> None:
        v2_update(grid.J, self.c, grid.iN, grid.iS, grid.jW, grid.jE, lam, self.out)
        copy_grid(self.out, grid.J)


class TiledStrategy(ExecutionStrategy):
    """V3: 8x8 tiles with a one-pixel halo staged in per-worker scratch."""

    name = "v3"
    description = f"tiled ({TILE_SIZE}x{TILE_SIZE} tiles, {HALO}-pixel halo)"

    def _allocate(self, shape: Tuple[int, int]) -> None:
        super()._allocate(shape)
        self.out = allocate(shape)
        workers = numba.get_num_threads()
        self.scratch_J = allocate((workers, TILE_SIZE + 2 * HALO, TILE_SIZE + 2 * HALO))
        self.scratch_C = allocate((workers, TILE_SIZE + HALO, TILE_SIZE + HALO))

    def compute_coefficients(self, grid: Grid, q0sqr: float) -> None:
        v3_coefficients(grid.J, q0sqr, self.c, self.scratch_J)

    def apply_update(self, grid: Grid, lam: float) -> None:
        v3_update(grid.J, self.c, lam, self.out, self.scratch_J, self.scratch_C)
        copy_grid(self.out, grid.J)


# =============================================================================
# Registry
# =============================================================================

STRATEGIES: Dict[str, Type[ExecutionStrategy]] = {
    NaiveStrategy.name: NaiveStrategy,
    FusedStrategy.name: FusedStrategy,
    TiledStrategy.name: TiledStrategy,
}


def create_strategy(name: str) -> ExecutionStrategy:
    """Instantiate a strategy by name ('v1', 'v2' or 'v3')."""
    try:
        return STRATEGIES[name.lower()]()
    except KeyError:
        raise InputError(
            f"Unknown strategy {name!r} (expected one of {', '.join(STRATEGY_NAMES)})"
        ) from None
