"""
Image Grid
==========

The single long-lived mutable entity of an SRAD run: a row-major float64
array `J` in the square-root intensity domain, its ROI and its clamped
neighbour tables.

Domain transform:
    load:  J = sqrt(I)        I in [0, 255]
    done:  I = clip(J^2, 0, 255)

Boundary handling is clamped (edge pixels are their own missing neighbour),
so the derivative toward a missing neighbour is exactly zero.
"""

from __future__ import annotations
from typing import Optional, Tuple

import numpy as np

from .errors import AllocationError, InputError
from .parameters import ROI


# =============================================================================
# Allocation
# =============================================================================

def allocate(shape: Tuple[int, ...], dtype=np.float64, fill: Optional[float] = None) -> np.ndarray:
    """
    Allocate a grid or scratch buffer.

    Parameters
    ----------
    shape : tuple of int
        Buffer shape
    dtype : numpy dtype
        Element type
    fill : float, optional
        Initial value; the buffer is left uninitialized when None

    Returns
    -------
    buf : np.ndarray
        C-contiguous buffer

    Raises
    ------
    AllocationError
        If the buffer cannot be allocated; carries the requested shape so the
        caller can retry at a smaller resolution.
    """
    shape = tuple(int(n) for n in shape)
    nbytes = int(np.prod(shape, dtype=np.float64) * np.dtype(dtype).itemsize)
    try:
        if fill is None:
            return np.empty(shape, dtype=dtype)
        return np.full(shape, fill, dtype=dtype)
    except MemoryError as exc:
        raise AllocationError(shape, nbytes, "out of memory") from exc
    except ValueError as exc:
        # numpy rejects sizes it cannot even represent ("array is too big")
        raise AllocationError(shape, nbytes, str(exc)) from exc


# =============================================================================
# Boundary Index
# =============================================================================

def boundary_index(n: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Clamped previous/next neighbour index along one axis.

    Parameters
    ----------
    n : int
        Axis length

    Returns
    -------
    prev, next : np.ndarray (n,) int64
        prev[k] = max(k-1, 0), next[k] = min(k+1, n-1)
    """
    k = np.arange(n, dtype=np.int64)
    prev = np.maximum(k - 1, 0)
    nxt = np.minimum(k + 1, n - 1)
    return prev, nxt


# =============================================================================
# Grid
# =============================================================================

class Grid:
    """
    2D image grid in the square-root domain.

    Attributes
    ----------
    J : np.ndarray (rows, cols)
        Current intensities, updated in place each iteration
    roi : ROI
        Statistics region
    iN, iS : np.ndarray (rows,)
        North/south neighbour row of each row
    jW, jE : np.ndarray (cols,)
        West/east neighbour column of each column
    """

    def __init__(self, J: np.ndarray, roi: Optional[ROI] = None, copy: bool = True):
        J = np.asarray(J)
        if J.ndim != 2:
            raise InputError(f"Expected a 2D grayscale grid, got shape {J.shape}")
        if J.size == 0:
            raise InputError(f"Image is empty (shape {J.shape})")

        self.rows, self.cols = J.shape
        if copy:
            self.J = allocate(J.shape)
            self.J[...] = J
        else:
            self.J = J

        self.roi = roi if roi is not None else ROI.full(self.shape)
        self.roi.validate(self.shape)

        self.iN, self.iS = boundary_index(self.rows)
        self.jW, self.jE = boundary_index(self.cols)

    @classmethod
    def from_image(cls, image: np.ndarray, roi: Optional[ROI] = None) -> Grid:
        """
        Build a grid from decoded intensities in [0, 255].

        Parameters
        ----------
        image : np.ndarray (rows, cols)
            Grayscale intensities
        roi : ROI, optional
            Statistics region (default: whole image)
        """
        image = np.asarray(image, dtype=np.float64)
        if image.ndim != 2:
            raise InputError(f"Expected a 2D grayscale image, got shape {image.shape}")
        if image.size == 0:
            raise InputError(f"Image is empty (shape {image.shape})")
        if not np.all(np.isfinite(image)):
            raise InputError("Image contains non-finite values")
        if np.min(image) < 0.0:
            raise InputError(f"Image intensities must be >= 0 (min = {np.min(image)})")

        J = allocate(image.shape)
        np.sqrt(image, out=J)
        return cls(J, roi=roi, copy=False)

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.rows, self.cols)

    @property
    def size(self) -> int:
        return self.rows * self.cols

    def roi_view(self) -> np.ndarray:
        """View of J restricted to the ROI."""
        r = self.roi
        return self.J[r.r1:r.r2 + 1, r.c1:r.c2 + 1]

    def to_image(self) -> np.ndarray:
        """Inverse domain transform: intensities in [0, 255]."""
        return np.clip(self.J * self.J, 0.0, 255.0)

    def __repr__(self) -> str:
        return f"Grid({self.rows}x{self.cols}, roi={self.roi})"
