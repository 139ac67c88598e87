#!/usr/bin/env python3
"""
Unit tests for terrain derivatives and upstream statistics
"""

import numpy as np
import pytest

from divstab.exceptions import DEMError
from divstab.grid import Grid
from divstab.terrain import TerrainAnalyzer
from divstab.upslope_statistics import UpstreamStatisticsAggregator


@pytest.fixture
def tilted_plane():
    """Plane dropping 10 per row, cell size 10 (gradient 1)."""
    rows, _ = np.indices((6, 6))
    return Grid.from_array(10.0 * (5 - rows), cellsize=10.0)


class TestGradient:
    """Test steepest descent gradient."""

    def test_plane_gradient(self, tilted_plane):
        """Test a uniform plane gives its slope everywhere it can drain."""
        gradient = TerrainAnalyzer().gradient8(tilted_plane).values
        np.testing.assert_allclose(gradient[:-1, :], 1.0)

    def test_flat_is_zero(self):
        """Test flat terrain and pits get zero gradient."""
        gradient = TerrainAnalyzer().gradient8(Grid.from_array(np.full((4, 4), 7.0))).values
        np.testing.assert_array_equal(gradient, 0.0)

    def test_nodata_stays_nan(self, tilted_plane):
        """Test no-data cells remain NaN and do not poison neighbours."""
        z = tilted_plane.values.copy()
        z[2, 2] = np.nan
        gradient = TerrainAnalyzer().gradient8(tilted_plane.with_values(z)).values

        assert np.isnan(gradient[2, 2])
        assert np.sum(np.isnan(gradient)) == 1
        np.testing.assert_allclose(gradient[3, 2], 1.0)

    def test_diagonal_distance(self):
        """Test diagonal drops are divided by the diagonal length."""
        z = np.array(
            [
                [10.0, 10.0, 10.0],
                [10.0, 10.0, 10.0],
                [10.0, 10.0, 0.0],
            ]
        )
        gradient = TerrainAnalyzer().gradient8(Grid.from_array(z)).values
        assert gradient[1, 1] == pytest.approx(10.0 / np.sqrt(2.0))


class TestLocalRelief:
    """Test fixed-radius local relief."""

    def test_plane_relief(self, tilted_plane):
        """Test a one-cell radius spans one row up and one row down."""
        relief = TerrainAnalyzer().local_relief(tilted_plane, 10.0).values
        np.testing.assert_allclose(relief[1:-1, :], 20.0)
        # Nearest-edge handling on the first and last rows
        np.testing.assert_allclose(relief[0, :], 10.0)

    def test_zero_radius(self, tilted_plane):
        """Test a zero radius uses only the centre cell."""
        relief = TerrainAnalyzer().local_relief(tilted_plane, 0.0).values
        np.testing.assert_array_equal(relief, 0.0)

    def test_negative_radius(self, tilted_plane):
        """Test a negative radius is rejected."""
        with pytest.raises(DEMError, match="non-negative"):
            TerrainAnalyzer().local_relief(tilted_plane, -1.0)

    def test_nodata_ignored(self, tilted_plane):
        """Test no-data cells are left out of window extrema."""
        z = tilted_plane.values.copy()
        z[0, :] = np.nan
        relief = TerrainAnalyzer().local_relief(tilted_plane.with_values(z), 10.0).values

        assert np.all(np.isnan(relief[0, :]))
        np.testing.assert_allclose(relief[1, :], 10.0)

    def test_disk_footprint(self):
        """Test the footprint is a disk, not a square."""
        disk = TerrainAnalyzer._disk(2.0)
        assert disk.shape == (5, 5)
        assert disk[2, 2]
        assert disk[0, 2]
        assert not disk[0, 0]


class TestUpstreamMean:
    """Test upstream mean aggregation."""

    def test_branching_means(self, branching_dem, branching_flow):
        """Test means over the explicit branching catchments."""
        mean = UpstreamStatisticsAggregator().aggregate(branching_flow, branching_dem).values.ravel()

        # Cells 0, 3, 6 and 9
        assert mean[9] == pytest.approx(115.0)
        # Cells 1 and 2
        assert mean[1] == pytest.approx(155.0)
        # Head cells keep their own value
        assert mean[0] == pytest.approx(130.0)

    def test_nan_excluded(self, branching_dem, branching_flow):
        """Test NaN values are left out of both sum and count."""
        z = branching_dem.values.copy()
        z[0, 0] = np.nan
        mean = UpstreamStatisticsAggregator().aggregate(
            branching_flow, branching_dem.with_values(z)
        ).values.ravel()

        assert mean[9] == pytest.approx(110.0)
        assert np.isnan(mean[0])

    def test_shape_mismatch(self, branching_flow):
        """Test rasters on another grid are rejected."""
        with pytest.raises(DEMError, match="does not match"):
            UpstreamStatisticsAggregator().aggregate(
                branching_flow, Grid.from_array(np.zeros((3, 3)))
            )
