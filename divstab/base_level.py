"""
DIVSTAB Base Level Control
==========================

Truncate a stream network so that all of its outlets share a comparable
base level. Chi is measured from the outlets, so across-divide chi
comparisons are only meaningful when base levels agree.
"""

import logging
from typing import List, Optional

import numpy as np

from .config import BaseLevelControl, BaseLevelPolicy
from .exceptions import NetworkError
from .flow_direction import FlowDirectionField
from .grid import Grid
from .stream_network import NetworkBuilder, StreamNetwork


class BaseLevelAdjuster:
    """
    Re-derive a stream network whose outlets satisfy a base level policy.

    Policies:
        - elevation: keep cells at or above a minimum elevation
        - drain_area: keep cells at or below a maximum drainage area
        - max_out_elevation: keep cells at or above the highest outlet
        - min_out_drain_area: keep cells at or below the smallest outlet area

    The retained cells are rebuilt into a network with the same derivation
    used for the initial network, so the result stays outlet-terminated.

    Attributes:
        builder (NetworkBuilder): Network derivation engine
        advisories (List[str]): Warnings raised by the most recent adjustment
        logger (logging.Logger): Logger instance
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.builder = NetworkBuilder(self.logger)
        self.advisories: List[str] = []

    def adjust(
        self,
        dem: Grid,
        flow: FlowDirectionField,
        drainage_area: Grid,
        network: StreamNetwork,
        control: BaseLevelControl,
    ) -> StreamNetwork:
        """
        Apply ``control`` to ``network``.

        Args:
            dem: Elevation grid
            flow: Flow direction field the network was derived from
            drainage_area: Upstream drainage area grid (map units²)
            network: Network to truncate
            control: Base level policy and threshold

        Returns:
            A new network, or ``network`` itself for the "none" policy

        Raises:
            NetworkError: If no cell satisfies the policy
        """
        self.advisories = []
        policy = control.policy

        if policy is BaseLevelPolicy.NONE:
            return network

        outlets = network.outlet_cells

        if policy is BaseLevelPolicy.ELEVATION:
            outlet_elevations = dem.sample(outlets)
            if np.any(outlet_elevations > control.threshold):
                self._advise(
                    "One or more stream outlets are above the provided elevation, "
                    f"maximum outlet elevation is {np.nanmax(outlet_elevations):g}"
                )
            keep = network.sample(dem) >= control.threshold

        elif policy is BaseLevelPolicy.DRAIN_AREA:
            outlet_areas = drainage_area.sample(outlets)
            if np.any(outlet_areas < control.threshold):
                self._advise(
                    "One or more stream outlets have drainage areas less than the "
                    "provided maximum drainage area, minimum outlet drainage area "
                    f"is {np.nanmin(outlet_areas):g}"
                )
            keep = network.sample(drainage_area) <= control.threshold

        elif policy is BaseLevelPolicy.MAX_OUT_ELEVATION:
            base_level = np.nanmax(dem.sample(outlets))
            self.logger.info(f"Base level set to maximum outlet elevation {base_level:g}")
            keep = network.sample(dem) >= base_level

        elif policy is BaseLevelPolicy.MIN_OUT_DRAIN_AREA:
            base_area = np.nanmin(drainage_area.sample(outlets))
            self.logger.info(f"Base level set to minimum outlet drainage area {base_area:g}")
            keep = network.sample(drainage_area) <= base_area

        else:
            raise NetworkError(f"Unhandled base level policy: {policy}")

        mask = np.zeros(flow.size, dtype=bool)
        mask[network.cells[keep]] = True
        adjusted = self.builder.from_mask(flow, mask)

        self.logger.info(
            f"Base level control '{policy.value}' kept {len(adjusted)} of "
            f"{len(network)} network cells, {adjusted.outlet_cells.size} outlets"
        )
        return adjusted

    def _advise(self, message: str) -> None:
        self.advisories.append(message)
        self.logger.warning(message)
