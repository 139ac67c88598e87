"""
DIVSTAB Stream Network
======================

Stream networks derived from a flow direction field, either by an
upstream area threshold or from an explicit cell mask.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from rasterio.crs import CRS
from rasterio.transform import Affine

from .exceptions import NetworkError
from .flow_accumulation import FlowAccumulationCalculator
from .flow_direction import FlowDirectionField
from .grid import Grid, _frozen, cell_centers


@dataclass(frozen=True)
class StreamNetwork:
    """
    Tree of channel cells terminating at outlets.

    Nodes are stored in upstream-first topological order: every node comes
    before the node it drains into.

    Attributes:
        cells (np.ndarray): Linear grid index of each node
        receivers (np.ndarray): Position of each node's receiver node, -1 for outlets
        shape (Tuple[int, int]): Shape of the underlying grid
        transform (Affine): Affine transform of the underlying grid
        crs (CRS): Optional coordinate reference system
    """

    cells: np.ndarray
    receivers: np.ndarray
    shape: Tuple[int, int]
    transform: Affine
    crs: Optional[CRS] = None

    def __post_init__(self):
        object.__setattr__(self, "cells", _frozen(self.cells, dtype=np.int64))
        object.__setattr__(self, "receivers", _frozen(self.receivers, dtype=np.int64))
        if self.cells.shape != self.receivers.shape:
            raise NetworkError("Network cells and receivers differ in length")

    def __len__(self) -> int:
        return self.cells.size

    @property
    def giver_counts(self) -> np.ndarray:
        """Number of upstream network nodes draining directly into each node."""
        drains = self.receivers >= 0
        return np.bincount(self.receivers[drains], minlength=len(self))

    @property
    def outlet_nodes(self) -> np.ndarray:
        return np.flatnonzero(self.receivers == -1)

    @property
    def outlet_cells(self) -> np.ndarray:
        return self.cells[self.outlet_nodes]

    @property
    def channel_head_nodes(self) -> np.ndarray:
        """Nodes with no upstream node, in ascending grid index order."""
        heads = np.flatnonzero(self.giver_counts == 0)
        return heads[np.argsort(self.cells[heads], kind="stable")]

    @property
    def channel_head_cells(self) -> np.ndarray:
        return self.cells[self.channel_head_nodes]

    @property
    def confluence_nodes(self) -> np.ndarray:
        return np.flatnonzero(self.giver_counts >= 2)

    def xy(self, nodes: Optional[np.ndarray] = None) -> np.ndarray:
        """Cell-centre coordinates of nodes (all nodes by default)."""
        cells = self.cells if nodes is None else self.cells[np.asarray(nodes, dtype=np.int64)]
        return cell_centers(self.transform, self.shape, cells)

    def edge_lengths(self) -> np.ndarray:
        """Distance from each node to its receiver node, 0 at outlets."""
        xy = self.xy()
        has_rec = self.receivers >= 0
        downstream = xy[np.where(has_rec, self.receivers, np.arange(len(self)))]
        return np.where(has_rec, np.hypot(*(xy - downstream).T), 0.0)

    def sample(self, grid: Grid) -> np.ndarray:
        """Values of ``grid`` at every node."""
        if grid.shape != tuple(self.shape):
            raise NetworkError(f"Grid shape {grid.shape} does not match network {self.shape}")
        return grid.sample(self.cells)

    def rasterize(self, values: np.ndarray) -> np.ndarray:
        """Place per-node values on a NaN grid."""
        values = np.asarray(values, dtype=np.float64)
        if values.shape != self.cells.shape:
            raise NetworkError("Attribute length does not match network")
        grid = np.full(int(np.prod(self.shape)), np.nan)
        grid[self.cells] = values
        return grid.reshape(self.shape)


class NetworkBuilder:
    """
    Derive stream networks from a flow direction field.

    Attributes:
        accumulator (FlowAccumulationCalculator): Flow accumulation engine
        logger (logging.Logger): Logger instance
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.accumulator = FlowAccumulationCalculator(self.logger)

    def build(
        self,
        flow: FlowDirectionField,
        min_area: float,
        drainage_area: Optional[Grid] = None,
    ) -> StreamNetwork:
        """
        Network of every cell whose upstream area meets ``min_area``.

        Args:
            flow: Flow direction field
            min_area: Minimum upstream area in map units squared
            drainage_area: Precomputed drainage area grid (optional)

        Raises:
            NetworkError: If no cell meets the threshold
        """
        if drainage_area is None:
            drainage_area = self.accumulator.drainage_area(flow)

        mask = (drainage_area.values >= min_area) & flow.valid.reshape(flow.shape)
        network = self.from_mask(flow, mask)
        self.logger.info(
            f"Built stream network with {len(network)} cells from area threshold {min_area:g}"
        )
        return network

    def from_mask(self, flow: FlowDirectionField, mask: np.ndarray) -> StreamNetwork:
        """
        Network of the masked cells, connected along the flow field.

        A masked cell whose receiver is outside the mask becomes an outlet.

        Raises:
            NetworkError: If the mask selects no cells
        """
        mask = np.asarray(mask, dtype=bool).ravel()
        if mask.size != flow.size:
            raise NetworkError(f"Mask has {mask.size} cells, flow field has {flow.size}")

        cells = flow.order[mask[flow.order]]
        if cells.size == 0:
            raise NetworkError("Stream network is empty")

        position = np.full(flow.size, -1, dtype=np.int64)
        position[cells] = np.arange(cells.size)

        downstream = flow.receivers[cells]
        receivers = np.where(downstream >= 0, position[np.maximum(downstream, 0)], -1)

        return StreamNetwork(cells, receivers, tuple(flow.shape), flow.transform, flow.crs)
