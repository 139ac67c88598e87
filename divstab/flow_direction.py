"""
DIVSTAB Flow Direction Calculation
==================================

Single-receiver (D8) flow routing for divide stability analysis.
Depressions are handled with a priority-flood pass whose visiting order
also routes flats and pits, so every valid cell drains to the grid edge
or to the edge of the no-data area.
"""

import heapq
import logging
from collections import deque
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from rasterio.crs import CRS
from rasterio.transform import Affine
from scipy import ndimage

from .exceptions import DEMError, FlowDirectionError
from .grid import Grid, _frozen, transforms_match

# D8 offsets (row, col), clockwise from north
D8_OFFSETS = [
    (-1, 0),   # North
    (-1, 1),   # Northeast
    (0, 1),    # East
    (1, 1),    # Southeast
    (1, 0),    # South
    (1, -1),   # Southwest
    (0, -1),   # West
    (-1, -1),  # Northwest
]


@dataclass(frozen=True)
class FlowDirectionField:
    """
    Acyclic single-receiver flow graph over all cells of a grid.

    Attributes:
        receivers (np.ndarray): Linear index of each cell's receiver, -1 for
            outlets, sinks and no-data cells
        order (np.ndarray): Topological order, every giver before its receiver
        valid (np.ndarray): Flat boolean mask of cells holding data
        shape (Tuple[int, int]): Grid shape
        transform (Affine): Grid affine transform
        crs (CRS): Optional coordinate reference system
    """

    receivers: np.ndarray
    order: np.ndarray
    valid: np.ndarray
    shape: Tuple[int, int]
    transform: Affine
    crs: Optional[CRS] = None

    def __post_init__(self):
        object.__setattr__(self, "receivers", _frozen(self.receivers, dtype=np.int64))
        object.__setattr__(self, "order", _frozen(self.order, dtype=np.int64))
        object.__setattr__(self, "valid", _frozen(self.valid, dtype=bool))

    @classmethod
    def from_receivers(
        cls,
        receivers: np.ndarray,
        shape: Tuple[int, int],
        transform: Affine,
        crs: Optional[CRS] = None,
        valid: Optional[np.ndarray] = None,
    ) -> "FlowDirectionField":
        """
        Build a flow field from an explicit receiver array.

        Args:
            receivers: Linear receiver index per cell (-1 for none), flat or
                shaped like the grid
            shape: Grid shape
            transform: Grid affine transform
            crs: Optional CRS
            valid: Optional mask of cells holding data (default: all)

        Raises:
            FlowDirectionError: If receivers are out of range, touch no-data
                cells or form a cycle
        """
        size = int(np.prod(shape))
        receivers = np.asarray(receivers, dtype=np.int64).ravel()
        if receivers.size != size:
            raise FlowDirectionError(
                f"Receiver array has {receivers.size} cells, grid has {size}"
            )
        if np.any(receivers < -1) or np.any(receivers >= size):
            raise FlowDirectionError("Receiver indices out of range")

        if valid is None:
            valid = np.ones(size, dtype=bool)
        else:
            valid = np.asarray(valid, dtype=bool).ravel()
            if valid.size != size:
                raise FlowDirectionError("Validity mask does not match grid shape")
            drains = receivers >= 0
            if np.any(drains & ~valid):
                raise FlowDirectionError("No-data cells must not have receivers")
            if np.any(~valid[receivers[drains]]):
                raise FlowDirectionError("Cells must not drain into no-data cells")

        order = _topological_order(receivers)
        return cls(receivers, order, valid, tuple(shape), transform, crs)

    @property
    def size(self) -> int:
        return self.receivers.size

    @property
    def cellsize(self) -> float:
        return abs(self.transform.a)

    def is_aligned(self, grid: Grid) -> bool:
        """Whether ``grid`` lies on the same cells as this field."""
        return grid.shape == tuple(self.shape) and transforms_match(grid.transform, self.transform)


def _topological_order(receivers: np.ndarray) -> np.ndarray:
    """Kahn's algorithm over the receiver graph."""
    size = receivers.size
    drains = receivers >= 0
    upstream_count = np.bincount(receivers[drains], minlength=size)

    # Initialize queue with cells that have no upstream flow
    queue = deque(np.flatnonzero(upstream_count == 0).tolist())
    order = []

    while queue:
        current = queue.popleft()
        order.append(current)
        downstream = receivers[current]
        if downstream >= 0:
            upstream_count[downstream] -= 1
            if upstream_count[downstream] == 0:
                queue.append(downstream)

    if len(order) != size:
        raise FlowDirectionError(
            f"Flow direction field contains cycles ({size - len(order)} cells unreachable)"
        )
    return np.asarray(order, dtype=np.int64)


class FlowDirectionCalculator:
    """
    Calculate a D8 flow direction field from a DEM.

    Cells drain to the neighbour with the steepest downward gradient.
    Cells without a lower neighbour (pits and flats) are routed along the
    priority-flood visiting order when ``fill_depressions`` is set, and
    become sinks otherwise.

    Attributes:
        fill_depressions (bool): Whether to route through depressions
        logger (logging.Logger): Logger instance
    """

    def __init__(self, fill_depressions: bool = True, logger: Optional[logging.Logger] = None):
        self.fill_depressions = fill_depressions
        self.logger = logger or logging.getLogger(__name__)

    def calculate(self, dem: Grid) -> FlowDirectionField:
        """
        Calculate flow direction from a DEM.

        Returns:
            FlowDirectionField over the DEM grid

        Raises:
            DEMError: If the DEM holds no valid data or routing fails
        """
        valid = dem.valid
        if not np.any(valid):
            raise DEMError("No valid data in DEM")

        try:
            z = dem.values
            if self.fill_depressions:
                z, flood_parent = self._priority_flood(z, valid)

            receivers = self._calculate_d8(z, dem.cellsize)

            if self.fill_depressions:
                undrained = (receivers == -1) & valid.ravel()
                receivers[undrained] = flood_parent[undrained]

            flow = FlowDirectionField.from_receivers(
                receivers, dem.shape, dem.transform, dem.crs, valid
            )
        except FlowDirectionError as e:
            raise DEMError(f"Flow direction calculation failed: {e}")

        n_outlets = int(np.sum((flow.receivers == -1) & flow.valid))
        self.logger.info(f"Flow direction calculated: {n_outlets} outlets")
        return flow

    def _priority_flood(
        self, dem_array: np.ndarray, valid_mask: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Fill depressions using the priority-flood algorithm.

        Returns:
            Tuple of (filled DEM, linear index of the cell that flooded each
            cell or -1 for border seeds)
        """
        height, width = dem_array.shape
        filled_dem = np.array(dem_array, dtype=np.float64, copy=True)
        parent = np.full(dem_array.size, -1, dtype=np.int64)

        # Seeds: valid cells on the grid edge or next to no-data
        border = ndimage.binary_dilation(~valid_mask, structure=np.ones((3, 3), dtype=bool))
        border[0, :] = border[-1, :] = border[:, 0] = border[:, -1] = True
        border &= valid_mask

        visited = ~valid_mask
        pq = []
        for i, j in zip(*np.nonzero(border)):
            heapq.heappush(pq, (filled_dem[i, j], int(i), int(j)))
            visited[i, j] = True

        self.logger.debug(f"Initialized priority queue with {len(pq)} border cells")

        while pq:
            current_elev, row, col = heapq.heappop(pq)
            for dr, dc in D8_OFFSETS:
                new_row, new_col = row + dr, col + dc
                if not (0 <= new_row < height and 0 <= new_col < width):
                    continue
                if visited[new_row, new_col]:
                    continue

                filled_elev = max(filled_dem[new_row, new_col], current_elev)
                filled_dem[new_row, new_col] = filled_elev
                parent[new_row * width + new_col] = row * width + col
                heapq.heappush(pq, (filled_elev, new_row, new_col))
                visited[new_row, new_col] = True

        n_raised = int(np.sum(filled_dem[valid_mask] > dem_array[valid_mask]))
        self.logger.debug(f"Depression filling raised {n_raised} cells")
        return filled_dem, parent

    def _calculate_d8(self, dem_array: np.ndarray, cellsize: float) -> np.ndarray:
        """
        Steepest-descent receivers; -1 where no neighbour is strictly lower.
        """
        height, width = dem_array.shape
        padded = np.pad(dem_array, 1, mode="constant", constant_values=np.nan)
        rows, cols = np.indices((height, width))

        steepest = np.zeros((height, width), dtype=np.float64)
        receivers = np.full((height, width), -1, dtype=np.int64)

        for dr, dc in D8_OFFSETS:
            neighbour = padded[1 + dr:1 + dr + height, 1 + dc:1 + dc + width]
            distance = cellsize * np.hypot(dr, dc)
            with np.errstate(invalid="ignore"):
                slope = (dem_array - neighbour) / distance
                steeper = slope > steepest
            steepest = np.where(steeper, slope, steepest)
            receivers = np.where(steeper, (rows + dr) * width + (cols + dc), receivers)

        return receivers.ravel()
