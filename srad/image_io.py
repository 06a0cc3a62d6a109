"""
Image Input / Output
====================

Pillow-backed codec: any raster format Pillow can read is decoded to a
single-channel float64 intensity array in [0, 255]; results are encoded as
8-bit grayscale (PNG unless the output suffix says otherwise).
"""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Tuple, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import InputError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def load_image(path: PathLike) -> np.ndarray:
    """
    Decode an image file to grayscale intensities.

    Parameters
    ----------
    path : str or Path
        Image file

    Returns
    -------
    image : np.ndarray (rows, cols) float64
        Intensities in [0, 255]

    Raises
    ------
    InputError
        Missing, unreadable, unsupported or empty image
    """
    path = Path(path)
    try:
        with Image.open(path) as img:
            gray = img.convert('L')
            image = np.asarray(gray, dtype=np.float64)
    except FileNotFoundError as exc:
        raise InputError(f"Image not found: {path}") from exc
    except UnidentifiedImageError as exc:
        raise InputError(f"Unsupported image format: {path}") from exc
    except OSError as exc:
        raise InputError(f"Cannot read image {path}: {exc}") from exc

    if image.size == 0:
        raise InputError(f"Image is empty: {path}")

    logger.debug("Loaded %s (%dx%d)", path, *image.shape)
    return image


def save_image(image: np.ndarray, path: PathLike) -> Path:
    """
    Encode intensities in [0, 255] as an 8-bit grayscale image.

    Values are rounded and clipped, so the only loss is 8-bit quantization.

    Raises
    ------
    InputError
        Unknown output format or unwritable path
    """
    path = Path(path)
    if path.suffix == '':
        path = path.with_suffix('.png')

    data = np.clip(np.rint(np.asarray(image, dtype=np.float64)), 0, 255).astype(np.uint8)
    try:
        Image.fromarray(data).save(path)
    except ValueError as exc:
        raise InputError(f"Cannot encode {path}: {exc}") from exc
    except OSError as exc:
        raise InputError(f"Cannot write {path}: {exc}") from exc
    logger.debug("Wrote %s (%dx%d)", path, *data.shape)
    return path


def synthetic_speckle(
    shape: Tuple[int, int],
    seed: int = 0,
    looks: int = 4,
) -> np.ndarray:
    """
    Speckled test phantom: piecewise-constant regions times gamma noise.

    Parameters
    ----------
    shape : (rows, cols)
        Image size
    seed : int
        RNG seed
    looks : int
        Number of looks (higher = weaker speckle)

    Returns
    -------
    image : np.ndarray (rows, cols)
        Intensities in [0, 255]
    """
    rows, cols = shape
    if rows <= 0 or cols <= 0:
        raise InputError(f"Invalid synthetic image size {rows}x{cols}")

    rng = np.random.default_rng(seed)
    y, x = np.mgrid[0:rows, 0:cols]

    clean = np.full(shape, 60.0)
    clean[:, cols // 2:] = 110.0
    r = min(rows, cols) / 4.0
    disk = (y - rows / 2.0) ** 2 + (x - cols / 2.0) ** 2 < r * r
    clean[disk] = 180.0

    noise = rng.gamma(shape=looks, scale=1.0 / looks, size=shape)
    return np.clip(clean * noise, 0.0, 255.0)
