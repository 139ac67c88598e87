#!/usr/bin/env python3
"""
Pytest configuration and shared fixtures for DIVSTAB tests
"""

import warnings

import numpy as np
import pytest
from rasterio.transform import from_origin

from divstab.flow_direction import FlowDirectionCalculator, FlowDirectionField
from divstab.grid import Grid

# Suppress common deprecation warnings for cleaner test output
warnings.filterwarnings("ignore", category=DeprecationWarning, module="pyogrio")
warnings.filterwarnings("ignore", category=DeprecationWarning, module="pyproj")


@pytest.fixture
def linear_channel_dem():
    """
    5x5 DEM with a single valley along the centre column.

    All cells drain to the bottom-centre cell (row 4, col 2). With a cell
    size of 1 the valley cells at rows 2, 3 and 4 have upstream areas of
    9, 14 and 25; every other cell has at most 4.
    """
    rows, cols = np.indices((5, 5))
    z = 10.0 * (4 - rows) + 20.0 * np.abs(cols - 2)
    return Grid.from_array(z, cellsize=1.0)


@pytest.fixture
def linear_channel_flow(linear_channel_dem):
    """Flow direction field of the linear channel DEM."""
    return FlowDirectionCalculator().calculate(linear_channel_dem)


@pytest.fixture
def branching_dem():
    """
    4x3 DEM with two trunk channels.

    Column 0 and column 1 flow south; column 2 drains sideways into
    column 1. Outlets sit at (3, 0), elevation 100, and (3, 1), elevation 120.
    """
    z = np.array(
        [
            [130.0, 150.0, 160.0],
            [120.0, 140.0, 150.0],
            [110.0, 130.0, 140.0],
            [100.0, 120.0, 130.0],
        ]
    )
    return Grid.from_array(z, cellsize=10.0, origin=(0.0, 40.0))


@pytest.fixture
def branching_flow(branching_dem):
    """
    Explicit receivers for the branching DEM.

    Upstream areas in cells:
        col 0: 1, 2, 3, 4
        col 1: 2, 4, 6, 8
        col 2: 1, 1, 1, 1
    """
    receivers = np.array(
        [
            [3, 4, 1],
            [6, 7, 4],
            [9, 10, 7],
            [-1, -1, 10],
        ]
    )
    return FlowDirectionField.from_receivers(
        receivers, branching_dem.shape, branching_dem.transform
    )


@pytest.fixture
def ridged_dem():
    """20x20 south-tilted surface cut by three north-south valleys."""
    rows, cols = np.indices((20, 20))
    z = 3.0 * (19 - rows) + 8.0 * np.abs(np.sin(np.pi * cols / 7.0)) + 0.01 * cols
    return Grid.from_array(z, cellsize=10.0, origin=(500000.0, 4100000.0), crs="EPSG:32611")


@pytest.fixture
def path_to_outlet():
    """Function listing the nodes from a node down to its outlet."""

    def trace(network, node):
        path = [node]
        while network.receivers[path[-1]] >= 0:
            path.append(network.receivers[path[-1]])
        return path

    return trace
