"""
SRAD: Speckle Reducing Anisotropic Diffusion
============================================

Numba-accelerated SRAD for grayscale images with three interchangeable
execution strategies (naive, fused, tiled) that produce the same result.

Reference:
    Yu Y, Acton ST. IEEE Trans Image Process. 2002;11(11):1260-1270.
"""

from .errors import AllocationError, InputError, SRADError
from .grid import Grid
from .parameters import (
    EPSILON,
    ROI,
    SRADParams,
    STRATEGY_NAMES,
    TILE_SIZE,
    default_params,
)
from .reduction import RegionStatistics, StatisticsReducer, region_statistics
from .simulation import IterationDriver, RunReport, compare_strategies, srad
from .strategies import (
    ExecutionStrategy,
    FusedStrategy,
    NaiveStrategy,
    TiledStrategy,
    create_strategy,
)

__version__ = "0.1.0"
__all__ = [
    "AllocationError",
    "InputError",
    "SRADError",
    "Grid",
    "EPSILON",
    "ROI",
    "SRADParams",
    "STRATEGY_NAMES",
    "TILE_SIZE",
    "default_params",
    "RegionStatistics",
    "StatisticsReducer",
    "region_statistics",
    "IterationDriver",
    "RunReport",
    "compare_strategies",
    "srad",
    "ExecutionStrategy",
    "FusedStrategy",
    "NaiveStrategy",
    "TiledStrategy",
    "create_strategy",
]
