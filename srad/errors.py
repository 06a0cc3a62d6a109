"""
SRAD Error Types
================

InputError       bad image or parameters, raised before any compute
AllocationError  grid or scratch buffer could not be allocated

Numeric degeneracies (zero mean, flat regions) are handled by the epsilon
guards in `kernels` and never raised.
"""

from __future__ import annotations
from typing import Tuple


class SRADError(Exception):
    """Base class for all SRAD failures."""


class InputError(SRADError, ValueError):
    """Unreadable or unsupported image, empty image, or invalid parameters."""


class AllocationError(SRADError, MemoryError):
    """Not enough memory for a buffer of the requested shape."""

    def __init__(self, shape: Tuple[int, ...], nbytes: int, reason: str = ""):
        self.shape = tuple(shape)
        self.nbytes = int(nbytes)
        msg = f"Cannot allocate buffer of shape {self.shape} ({self.nbytes:,} bytes)"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
