"""
DIVSTAB - Drainage Divide Stability Metrics
===========================================

A Python toolkit for comparing drainage basins across divides. Derives a
stream network from a DEM and reports, for every channel head, the channel
elevation, mean upstream gradient, mean upstream local relief and chi.

Key Features:
- D8 flow direction with priority-flood depression handling
- Stream networks from an area threshold or an explicit cell mask
- Four base level control policies for comparable outlets
- Upstream mean gradient and local relief, chi transform
- Normalized attributes exported as shapefile segments
- Python API and command-line interface

Version: 1.0.0
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .config import BaseLevelControl, BaseLevelPolicy, DivideStabilityConfig
from .core import DivideStability, DivideStabilityResult, divide_stability
from .exceptions import (
    ConfigurationError,
    DEMError,
    DivStabError,
    ExportError,
    FlowDirectionError,
    NetworkError,
)
from .flow_direction import FlowDirectionCalculator, FlowDirectionField
from .grid import Grid
from .stream_network import NetworkBuilder, StreamNetwork

__all__ = [
    "BaseLevelControl",
    "BaseLevelPolicy",
    "ConfigurationError",
    "DEMError",
    "DivStabError",
    "DivideStability",
    "DivideStabilityConfig",
    "DivideStabilityResult",
    "ExportError",
    "FlowDirectionCalculator",
    "FlowDirectionError",
    "FlowDirectionField",
    "Grid",
    "NetworkBuilder",
    "NetworkError",
    "StreamNetwork",
    "divide_stability",
]
