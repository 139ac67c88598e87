"""
DIVSTAB Normalization
=====================

Min-max rescaling of network attributes into [0, 1].
"""

import logging
from typing import Optional

import numpy as np

from .grid import Grid
from .stream_network import StreamNetwork


class Normalizer:
    """
    Rescale values so that the network minimum maps to 0 and the maximum to 1.

    Minimum and maximum are taken over finite values only; NaNs pass
    through. With no spread every finite value maps to 0.

    Attributes:
        logger (logging.Logger): Logger instance
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def normalize(self, values: np.ndarray) -> np.ndarray:
        values = np.asarray(values, dtype=np.float64)
        finite = np.isfinite(values)
        normalized = np.full(values.shape, np.nan)

        if not np.any(finite):
            return normalized

        low = values[finite].min()
        high = values[finite].max()
        spread = high - low

        if spread == 0:
            self.logger.debug("Zero range in normalized values, setting all to 0")
            normalized[finite] = 0.0
        else:
            normalized[finite] = (values[finite] - low) / spread
        return normalized

    def normalize_on_network(self, network: StreamNetwork, grid: Grid) -> np.ndarray:
        """Sample ``grid`` on the network once and normalize the sample."""
        return self.normalize(network.sample(grid))
