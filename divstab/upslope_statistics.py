"""
DIVSTAB Upstream Statistics
===========================

Mean of a raster over every cell's upstream catchment.
"""

import logging
from typing import Optional

import numpy as np

from .exceptions import DEMError
from .flow_accumulation import FlowAccumulationCalculator
from .flow_direction import FlowDirectionField
from .grid import Grid


class UpstreamStatisticsAggregator:
    """
    Aggregate raster values over upstream catchments.

    The mean at a cell covers the cell itself and every cell draining
    through it. NaN values are left out of both the sum and the count.

    Attributes:
        accumulator (FlowAccumulationCalculator): Accumulation engine
        logger (logging.Logger): Logger instance
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.accumulator = FlowAccumulationCalculator(self.logger)

    def aggregate(self, flow: FlowDirectionField, raster: Grid) -> Grid:
        """
        Upstream mean of ``raster``.

        Returns:
            Grid of means; NaN where no valid value drains through a cell

        Raises:
            DEMError: If the raster does not match the flow field's grid
        """
        if not flow.is_aligned(raster):
            raise DEMError(
                f"Raster shape {raster.shape} does not match flow field {flow.shape}"
            )

        values = raster.values.ravel()
        counted = np.isfinite(values) & flow.valid

        sums = self.accumulator.accumulate(flow, np.where(counted, values, 0.0))
        counts = self.accumulator.accumulate(flow, counted.astype(np.float64))

        with np.errstate(invalid="ignore", divide="ignore"):
            mean = np.where(counts > 0, sums / counts, np.nan)

        self.logger.debug("Upstream mean aggregated")
        return raster.with_values(mean.reshape(raster.shape))
