"""
DIVSTAB Core Implementation
===========================

Divide stability pipeline: derive a stream network, bring its outlets to a
common base level, aggregate upstream gradient and relief, integrate chi,
normalize, export and collect channel head values.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .base_level import BaseLevelAdjuster
from .channel_heads import ChannelHeadExtractor
from .chi import ChiComputer
from .config import DivideStabilityConfig
from .exceptions import DEMError, ExportError
from .export import NetworkExporter
from .flow_accumulation import FlowAccumulationCalculator
from .flow_direction import FlowDirectionCalculator, FlowDirectionField
from .grid import Grid, _frozen
from .normalization import Normalizer
from .stream_network import NetworkBuilder, StreamNetwork
from .terrain import TerrainAnalyzer
from .upslope_statistics import UpstreamStatisticsAggregator

ProgressCallback = Callable[[int, int, str], None]


@dataclass(frozen=True)
class DivideStabilityResult:
    """
    Channel head metrics of a divide stability run.

    Attributes:
        ch_xy (np.ndarray): (k, 2) coordinates of channel heads
        ch_ix (np.ndarray): Linear grid indices of channel heads
        elevation (np.ndarray): Elevation at channel heads
        gradient (np.ndarray): Mean upstream gradient at channel heads
        relief (np.ndarray): Mean upstream local relief at channel heads
        chi (np.ndarray): Chi at channel heads
        stream (StreamNetwork): Network the metrics were computed on
        ref_area (float): Reference area used to derive the network
        shapefile (Path): Written shapefile, if any
        advisories (Tuple[str, ...]): Warnings raised during the run
    """

    ch_xy: np.ndarray
    ch_ix: np.ndarray
    elevation: np.ndarray
    gradient: np.ndarray
    relief: np.ndarray
    chi: np.ndarray
    stream: StreamNetwork
    ref_area: float
    shapefile: Optional[Path] = None
    advisories: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        for name in ("ch_xy", "elevation", "gradient", "relief", "chi"):
            object.__setattr__(self, name, _frozen(getattr(self, name), dtype=np.float64))
        object.__setattr__(self, "ch_ix", _frozen(self.ch_ix, dtype=np.int64))
        object.__setattr__(self, "advisories", tuple(self.advisories))

    def __len__(self) -> int:
        return self.ch_ix.size

    def to_dataframe(self) -> pd.DataFrame:
        """One row per channel head."""
        return pd.DataFrame(
            {
                "x": self.ch_xy[:, 0],
                "y": self.ch_xy[:, 1],
                "ix": self.ch_ix,
                "elevation": self.elevation,
                "gradient": self.gradient,
                "relief": self.relief,
                "chi": self.chi,
            }
        )

    def save_channel_heads(self, path: Union[str, Path]) -> None:
        """Write channel head metrics as CSV."""
        try:
            self.to_dataframe().to_csv(path, index=False)
        except OSError as e:
            raise ExportError(f"Failed to write channel heads to {path}: {e}")


class DivideStability:
    """
    Divide stability analysis of a DEM.

    Workflow:
    1. Build the stream network from the reference area
    2. Apply base level control (optional)
    3. Aggregate mean upstream gradient and local relief
    4. Compute chi along the network
    5. Normalize elevation, gradient and relief over the network
    6. Export the attributed network and collect channel head values

    Attributes:
        dem (Grid): Elevation grid
        flow (FlowDirectionField): Flow direction field over the DEM
        config (DivideStabilityConfig): Run parameters
        progress (ProgressCallback): Optional ``progress(step, total, message)``
        logger (logging.Logger): Logger instance
    """

    TOTAL_STEPS = 12

    def __init__(
        self,
        dem: Grid,
        flow: Optional[FlowDirectionField] = None,
        config: Optional[DivideStabilityConfig] = None,
        progress: Optional[ProgressCallback] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            dem: Elevation grid
            flow: Flow direction field; derived from the DEM when omitted
            config: Run parameters (defaults when omitted)
            progress: Callback receiving (step, total, message)
            logger: Logger instance

        Raises:
            ConfigurationError: If the base level policy lacks its threshold
            DEMError: If flow field and DEM do not share a grid
        """
        self.dem = dem
        self.config = config or DivideStabilityConfig()
        self.base_level = self.config.base_level()
        self.progress = progress
        self.logger = logger or logging.getLogger(__name__)

        self.flow_direction = FlowDirectionCalculator(logger=self.logger)
        self.flow_accumulation = FlowAccumulationCalculator(self.logger)
        self.network_builder = NetworkBuilder(self.logger)
        self.base_level_adjuster = BaseLevelAdjuster(self.logger)
        self.terrain = TerrainAnalyzer(self.logger)
        self.upslope = UpstreamStatisticsAggregator(self.logger)
        self.chi_computer = ChiComputer(self.logger)
        self.normalizer = Normalizer(self.logger)
        self.exporter = NetworkExporter(self.logger)
        self.head_extractor = ChannelHeadExtractor(self.logger)

        if flow is not None and not flow.is_aligned(dem):
            raise DEMError("Flow direction field does not match the DEM grid")
        self.flow = flow

        self.advisories: List[str] = []

    @classmethod
    def from_file(
        cls,
        dem_path: Union[str, Path],
        config: Optional[DivideStabilityConfig] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> "DivideStability":
        """Load a DEM raster and derive its flow direction field."""
        return cls(Grid.from_file(dem_path), config=config, progress=progress)

    def _report(self, step: int, message: str) -> None:
        self.logger.debug(f"[{step}/{self.TOTAL_STEPS}] {message}")
        if self.progress is not None:
            self.progress(step, self.TOTAL_STEPS, message)

    def _advise(self, message: str) -> None:
        self.advisories.append(message)
        self.logger.warning(message)

    def run(self) -> DivideStabilityResult:
        """
        Run the divide stability analysis.

        Returns:
            DivideStabilityResult with raw channel head metrics

        Raises:
            DEMError: If flow routing fails
            NetworkError: If the network is empty or chi is undefined
            ExportError: If the shapefile cannot be written
        """
        config = self.config
        self.advisories = []

        if config.relief_radius > np.sqrt(config.ref_area):
            self._advise(
                "Radius for calculating local relief is larger than mean hillslope "
                "length from reference area, consider decreasing relief radius or "
                "increasing reference area to avoid significant across divide "
                "smearing of local relief values"
            )

        self._report(0, "Building stream network")
        if self.flow is None:
            self.flow = self.flow_direction.calculate(self.dem)
        flow = self.flow

        drainage_area = self.flow_accumulation.drainage_area(flow)
        stream = self.network_builder.build(flow, config.ref_area, drainage_area)
        stream = self.base_level_adjuster.adjust(
            self.dem, flow, drainage_area, stream, self.base_level
        )
        self.advisories.extend(self.base_level_adjuster.advisories)

        self._report(1, "Building upstream slope raster")
        gradient = self.terrain.gradient8(self.dem)
        self._report(2, "Building upstream slope raster")
        up_gradient = self.upslope.aggregate(flow, gradient)

        self._report(3, "Building upstream relief raster")
        relief = self.terrain.local_relief(self.dem, config.relief_radius)
        self._report(4, "Building upstream relief raster")
        up_relief = self.upslope.aggregate(flow, relief)

        self._report(5, "Calculating chi")
        chi = self.chi_computer.chi(stream, drainage_area, config.chi_ref_area, config.theta_ref)
        chi_grid = self.chi_computer.chi_grid(stream, chi, self.dem)

        self._report(6, "Normalizing grids")
        attributes = self.normalized_attributes(stream, up_gradient, up_relief)
        attributes["chi"] = chi
        self._report(9, "Normalizing grids")

        shapefile = None
        if config.export_shapefile:
            self._report(10, "Building shapefile")
            shapefile = config.shapefile_path
            self._report(11, "Saving shapefile")
            self.exporter.export(
                stream,
                attributes,
                shapefile,
                segment_length=self.dem.cellsize * config.segment_length_cells,
            )
        self._report(12, "Extracting channel heads")

        heads = self.head_extractor.extract(stream)
        values = self.head_extractor.sample(
            heads,
            elevation=self.dem,
            gradient=up_gradient,
            relief=up_relief,
            chi=chi_grid,
        )

        return DivideStabilityResult(
            ch_xy=heads.xy,
            ch_ix=heads.ix,
            elevation=values["elevation"],
            gradient=values["gradient"],
            relief=values["relief"],
            chi=values["chi"],
            stream=stream,
            ref_area=config.ref_area,
            shapefile=shapefile,
            advisories=tuple(self.advisories),
        )

    def normalized_attributes(
        self, stream: StreamNetwork, up_gradient: Grid, up_relief: Grid
    ) -> Dict[str, np.ndarray]:
        """Normalized elevation, upstream gradient and upstream relief per node."""
        return {
            "chan_elev": self.normalizer.normalize_on_network(stream, self.dem),
            "slope": self.normalizer.normalize_on_network(stream, up_gradient),
            "relief": self.normalizer.normalize_on_network(stream, up_relief),
        }


def divide_stability(
    dem: Grid,
    flow: Optional[FlowDirectionField] = None,
    progress: Optional[ProgressCallback] = None,
    **params,
) -> DivideStabilityResult:
    """
    Run a divide stability analysis with keyword parameters.

    Example:
        result = divide_stability(dem, ref_area=1e7, relief_radius=500,
                                  export_shapefile=False)
    """
    config = DivideStabilityConfig.from_dict(params)
    return DivideStability(dem, flow=flow, config=config, progress=progress).run()
