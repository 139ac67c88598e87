"""
DIVSTAB Grid
============

Immutable raster value object shared by every stage of the pipeline.
Values are stored as a read-only float64 array; no-data cells are NaN.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np
import rasterio
from rasterio.crs import CRS
from rasterio.transform import Affine, from_origin

from .exceptions import DEMError

logger = logging.getLogger(__name__)


def _frozen(array: np.ndarray, dtype=None) -> np.ndarray:
    """Return a read-only copy of ``array``."""
    frozen = np.array(array, dtype=dtype, copy=True)
    frozen.setflags(write=False)
    return frozen


@dataclass(frozen=True)
class Grid:
    """
    Two-dimensional raster with a square cell size and spatial reference.

    Attributes:
        values (np.ndarray): Read-only 2-D float array (NaN marks no-data)
        transform (Affine): Affine transform of the upper-left cell corner
        crs (CRS): Optional coordinate reference system
    """

    values: np.ndarray
    transform: Affine
    crs: Optional[CRS] = None

    def __post_init__(self):
        values = np.asarray(self.values)
        if values.ndim != 2:
            raise DEMError(f"Grid values must be 2-D, got shape {values.shape}")
        object.__setattr__(self, "values", _frozen(values, dtype=np.float64))

    @classmethod
    def from_array(
        cls,
        values: np.ndarray,
        cellsize: float = 1.0,
        origin: Tuple[float, float] = (0.0, 0.0),
        crs: Optional[Union[str, CRS]] = None,
    ) -> "Grid":
        """
        Build a grid from an array.

        Args:
            values: 2-D array of cell values
            cellsize: Cell size in map units
            origin: (x, y) of the upper-left corner
            crs: Optional CRS specification (e.g. "EPSG:32611")
        """
        if crs is not None and not isinstance(crs, CRS):
            crs = CRS.from_user_input(crs)
        transform = from_origin(origin[0], origin[1], cellsize, cellsize)
        return cls(np.asarray(values, dtype=np.float64), transform, crs)

    @classmethod
    def from_file(cls, path: Union[str, Path], band: int = 1) -> "Grid":
        """
        Load a single raster band, converting no-data cells to NaN.

        Raises:
            DEMError: If the raster cannot be read
        """
        try:
            with rasterio.open(path) as dataset:
                data = dataset.read(band, masked=True).astype(np.float64)
                grid = cls(data.filled(np.nan), dataset.transform, dataset.crs)
        except Exception as e:
            raise DEMError(f"Failed to load raster from {path}: {e}")

        if abs(abs(grid.transform.a) - abs(grid.transform.e)) > 1e-9 * abs(grid.transform.a):
            logger.warning(
                f"Raster {path} has non-square cells "
                f"({grid.transform.a} x {grid.transform.e}); using the x cell size"
            )
        logger.info(f"Loaded raster {path}: {grid.shape[1]}x{grid.shape[0]} cells")
        return grid

    @property
    def shape(self) -> Tuple[int, int]:
        return self.values.shape

    @property
    def size(self) -> int:
        return self.values.size

    @property
    def cellsize(self) -> float:
        return abs(self.transform.a)

    @property
    def valid(self) -> np.ndarray:
        """Boolean mask of cells holding data."""
        return np.isfinite(self.values)

    def with_values(self, values: np.ndarray) -> "Grid":
        """Return a new grid on the same georeference with different values."""
        values = np.asarray(values, dtype=np.float64)
        if values.shape != self.shape:
            raise DEMError(f"Shape mismatch: {values.shape} != {self.shape}")
        return Grid(values, self.transform, self.crs)

    def sample(self, ix: np.ndarray) -> np.ndarray:
        """Values at linear cell indices."""
        return self.values.ravel()[np.asarray(ix, dtype=np.int64)]

    def save(self, path: Union[str, Path]) -> None:
        """Write the grid as a single-band GeoTIFF."""
        try:
            with rasterio.open(
                path,
                "w",
                driver="GTiff",
                height=self.shape[0],
                width=self.shape[1],
                count=1,
                dtype="float64",
                crs=self.crs,
                transform=self.transform,
                nodata=np.nan,
            ) as dst:
                dst.write(self.values, 1)
        except Exception as e:
            raise DEMError(f"Failed to write raster to {path}: {e}")


def cell_centers(transform: Affine, shape: Tuple[int, int], ix: np.ndarray) -> np.ndarray:
    """Map coordinates of cell centres for linear indices."""
    rows, cols = np.unravel_index(np.asarray(ix, dtype=np.int64), shape)
    x, y = transform * (cols + 0.5, rows + 0.5)
    return np.column_stack([np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64)])


def transforms_match(first: Affine, second: Affine) -> bool:
    """Whether two affine transforms agree to floating point tolerance."""
    return bool(np.allclose(first.to_gdal(), second.to_gdal()))
