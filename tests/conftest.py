import logging

import numpy as np
import pytest

from srad.image_io import synthetic_speckle


@pytest.fixture
def flat_image():
    return np.full((19, 23), 81.0)


@pytest.fixture
def impulse_image():
    """16x16 background of 100 with a single 400 pixel at (8, 8)."""
    image = np.full((16, 16), 100.0)
    image[8, 8] = 400.0
    return image


@pytest.fixture
def speckle_image():
    # Not a multiple of the 8x8 tile in either direction
    return synthetic_speckle((37, 53), seed=7)


@pytest.fixture(autouse=True)
def reset_srad_logger():
    """The CLI attaches handlers bound to the (captured) stdout; drop them."""
    yield
    logger = logging.getLogger("srad")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
