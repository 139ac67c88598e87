"""
DIVSTAB Flow Accumulation Calculation
=====================================

Weighted upstream accumulation over a flow direction field.
Determines the number of cells (or drainage area) that drain through
each cell of the grid.
"""

import logging
from typing import Optional

import numpy as np

from .exceptions import FlowDirectionError
from .flow_direction import FlowDirectionField
from .grid import Grid


class FlowAccumulationCalculator:
    """
    Calculate flow accumulation from a flow direction field.

    Cells are processed in the field's topological order, so each cell's
    total is complete before it is passed to its receiver.

    Attributes:
        logger (logging.Logger): Logger instance
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def accumulate(self, flow: FlowDirectionField, weights: np.ndarray) -> np.ndarray:
        """
        Sum ``weights`` over every cell upstream of and including each cell.

        Args:
            flow: Flow direction field
            weights: Per-cell weights, flat or shaped like the grid

        Returns:
            Flat float array of accumulated weights
        """
        accum = np.array(weights, dtype=np.float64, copy=True).ravel()
        if accum.size != flow.size:
            raise FlowDirectionError(
                f"Weights have {accum.size} cells, flow field has {flow.size}"
            )

        receivers = flow.receivers
        for current in flow.order:
            downstream = receivers[current]
            if downstream >= 0:
                accum[downstream] += accum[current]

        return accum

    def calculate(self, flow: FlowDirectionField) -> Grid:
        """
        Upstream cell count per cell; no-data cells count zero.
        """
        counts = self.accumulate(flow, flow.valid.astype(np.float64))
        self.logger.info(f"Flow accumulation completed, maximum {counts.max():.0f} cells")
        return Grid(counts.reshape(flow.shape), flow.transform, flow.crs)

    def drainage_area(self, flow: FlowDirectionField) -> Grid:
        """
        Upstream drainage area per cell in map units squared.
        """
        counts = self.calculate(flow)
        return counts.with_values(counts.values * flow.cellsize ** 2)
