"""
DIVSTAB Terrain Derivatives
===========================

Per-cell terrain derivatives used as upstream statistics: steepest
descent gradient and fixed-radius local relief.
"""

import logging
from typing import Optional

import numpy as np
from scipy import ndimage

from .exceptions import DEMError
from .flow_direction import D8_OFFSETS
from .grid import Grid


class TerrainAnalyzer:
    """
    Compute gradient and local relief rasters from a DEM.

    Attributes:
        logger (logging.Logger): Logger instance
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def gradient8(self, dem: Grid) -> Grid:
        """
        Steepest downward gradient to any of the 8 neighbours.

        Flats and pits get 0, no-data cells stay NaN.
        """
        z = dem.values
        height, width = z.shape
        padded = np.pad(z, 1, mode="constant", constant_values=np.nan)

        gradient = np.zeros_like(z)
        for dr, dc in D8_OFFSETS:
            neighbour = padded[1 + dr:1 + dr + height, 1 + dc:1 + dc + width]
            with np.errstate(invalid="ignore"):
                drop = (z - neighbour) / (dem.cellsize * np.hypot(dr, dc))
            gradient = np.fmax(gradient, drop)

        gradient[~dem.valid] = np.nan
        self.logger.info("Gradient raster computed")
        return dem.with_values(gradient)

    def local_relief(self, dem: Grid, radius: float) -> Grid:
        """
        Elevation range (max - min) inside a circular window.

        Args:
            dem: Elevation grid
            radius: Window radius in map units

        Raises:
            DEMError: If radius is negative
        """
        if radius < 0:
            raise DEMError(f"Relief radius must be non-negative, got {radius}")

        footprint = self._disk(radius / dem.cellsize)
        valid = dem.valid
        z = dem.values

        high = ndimage.maximum_filter(
            np.where(valid, z, -np.inf), footprint=footprint, mode="nearest"
        )
        low = ndimage.minimum_filter(
            np.where(valid, z, np.inf), footprint=footprint, mode="nearest"
        )

        relief = np.where(valid, high - low, np.nan)
        self.logger.info(
            f"Local relief computed with radius {radius} ({footprint.shape[0]}x"
            f"{footprint.shape[1]} cell window)"
        )
        return dem.with_values(relief)

    @staticmethod
    def _disk(radius_cells: float) -> np.ndarray:
        """Boolean disk footprint; always contains the centre cell."""
        r = int(np.floor(radius_cells))
        di, dj = np.mgrid[-r:r + 1, -r:r + 1]
        return di ** 2 + dj ** 2 <= radius_cells ** 2
