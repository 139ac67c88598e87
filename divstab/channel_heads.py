"""
DIVSTAB Channel Heads
=====================

Locate channel heads and sample raw divide stability metrics at them.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
from rasterio.transform import Affine

from .exceptions import NetworkError
from .grid import Grid, _frozen, transforms_match
from .stream_network import StreamNetwork


@dataclass(frozen=True)
class ChannelHeads:
    """
    Channel head locations.

    Attributes:
        xy (np.ndarray): (k, 2) map coordinates of cell centres
        ix (np.ndarray): Linear grid indices
        shape (Tuple[int, int]): Shape of the grid the indices refer to
        transform (Affine): Affine transform of that grid
    """

    xy: np.ndarray
    ix: np.ndarray
    shape: Tuple[int, int]
    transform: Affine

    def __post_init__(self):
        object.__setattr__(self, "xy", _frozen(self.xy, dtype=np.float64))
        object.__setattr__(self, "ix", _frozen(self.ix, dtype=np.int64))

    def __len__(self) -> int:
        return self.ix.size


class ChannelHeadExtractor:
    """
    Find network leaves and sample grids at them.

    Heads are returned in ascending grid index order; position k refers to
    the same head in every array produced.

    Attributes:
        logger (logging.Logger): Logger instance
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def extract(self, network: StreamNetwork) -> ChannelHeads:
        nodes = network.channel_head_nodes
        heads = ChannelHeads(
            xy=network.xy(nodes),
            ix=network.cells[nodes],
            shape=tuple(network.shape),
            transform=network.transform,
        )
        self.logger.info(f"Found {len(heads)} channel heads")
        return heads

    def sample(self, heads: ChannelHeads, **grids: Grid) -> Dict[str, np.ndarray]:
        """
        Raw values of each named grid at the channel heads.

        Example:
            extractor.sample(heads, elevation=dem, gradient=up_gradient)

        Raises:
            NetworkError: If a grid does not lie on the network grid
        """
        samples = {}
        for name, grid in grids.items():
            if grid.shape != tuple(heads.shape) or not transforms_match(grid.transform, heads.transform):
                raise NetworkError(
                    f"Grid '{name}' with shape {grid.shape} does not match the network grid {heads.shape}"
                )
            samples[name] = grid.sample(heads.ix)
        return samples
