"""
SRAD Parameter Management
=========================

Run configuration and numeric constants for Speckle Reducing Anisotropic
Diffusion.

Numeric policy (shared by every execution strategy):
    EPSILON         floor for every denominator in the coefficient formula
    Q0SQR_SENTINEL  q0^2 used when the ROI mean is ~0

Reference:
    Yu Y, Acton ST. "Speckle reducing anisotropic diffusion."
    IEEE Trans Image Process. 2002;11(11):1260-1270.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import InputError


# =============================================================================
# Numeric Constants
# =============================================================================

EPSILON = 1e-10            # Denominator floor
Q0SQR_SENTINEL = 1e10      # q0^2 for a zero-mean ROI
TILE_SIZE = 8              # V3 tile edge [pixels]
HALO = 1                   # V3 halo width [pixels]
REDUCTION_BLOCK = 256      # Elements per reduction work unit (power of two)

STRATEGY_NAMES = ('v1', 'v2', 'v3')


# =============================================================================
# Region of Interest
# =============================================================================

@dataclass(frozen=True)
class ROI:
    """
    Region of interest for the q0 statistics, inclusive bounds.

    Attributes
    ----------
    r1, r2 : int
        First and last row
    c1, c2 : int
        First and last column
    """
    r1: int
    r2: int
    c1: int
    c2: int

    @classmethod
    def full(cls, shape: Tuple[int, int]) -> ROI:
        """ROI covering a whole grid of the given shape."""
        rows, cols = shape
        return cls(0, rows - 1, 0, cols - 1)

    @property
    def size(self) -> int:
        return (self.r2 - self.r1 + 1) * (self.c2 - self.c1 + 1)

    def validate(self, shape: Tuple[int, int]) -> None:
        """Check the ROI lies inside a grid of the given shape."""
        rows, cols = shape
        if not (0 <= self.r1 <= self.r2 < rows):
            raise InputError(
                f"ROI rows [{self.r1}, {self.r2}] outside grid with {rows} rows"
            )
        if not (0 <= self.c1 <= self.c2 < cols):
            raise InputError(
                f"ROI columns [{self.c1}, {self.c2}] outside grid with {cols} columns"
            )


# =============================================================================
# SRAD Run Parameters
# =============================================================================

@dataclass
class SRADParams:
    """
    SRAD run parameters.

    `roi=None` means the statistics are taken over the whole image.
    """
    n_iter: int = 50             # Number of diffusion iterations
    lam: float = 0.5             # Update step (lambda)
    strategy: str = 'v3'         # Execution strategy: v1 / v2 / v3
    roi: Optional[ROI] = None    # Statistics region (None = whole image)
    reduction_block: int = REDUCTION_BLOCK

    def validate(self) -> None:
        """Check parameters are in valid ranges."""
        if int(self.n_iter) != self.n_iter or self.n_iter < 0:
            raise InputError(f"n_iter must be a non-negative integer, got {self.n_iter!r}")
        if not self.lam > 0:
            raise InputError(f"lambda must be positive, got {self.lam!r}")
        if self.strategy not in STRATEGY_NAMES:
            raise InputError(
                f"Unknown strategy {self.strategy!r} (expected one of {', '.join(STRATEGY_NAMES)})"
            )
        block = self.reduction_block
        if block < 2 or block & (block - 1):
            raise InputError(f"reduction_block must be a power of two >= 2, got {block}")

    def summary(self) -> str:
        """Human-readable parameter summary."""
        roi = "whole image" if self.roi is None else (
            f"rows {self.roi.r1}-{self.roi.r2}, cols {self.roi.c1}-{self.roi.c2}"
        )
        lines = [
            "SRAD Parameters",
            "=" * 40,
            f"  Iterations = {self.n_iter}",
            f"  Lambda     = {self.lam}",
            f"  Strategy   = {self.strategy}",
            f"  ROI        = {roi}",
            "",
            "Numeric Policy:",
            f"  EPSILON        = {EPSILON:.0e}",
            f"  Q0SQR_SENTINEL = {Q0SQR_SENTINEL:.0e}",
            f"  Tile           = {TILE_SIZE}x{TILE_SIZE} (+{HALO} halo)",
            f"  Reduction unit = {self.reduction_block} elements",
        ]
        return "\n".join(lines)


# =============================================================================
# Factory Functions
# =============================================================================

def default_params() -> SRADParams:
    """Get default SRAD parameters (50 iterations, lambda 0.5, tiled)."""
    return SRADParams()
