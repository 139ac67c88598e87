#!/usr/bin/env python3
"""
Integration tests for the divide stability pipeline
"""

from unittest.mock import patch

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest

from divstab.config import DivideStabilityConfig
from divstab.core import DivideStability, divide_stability
from divstab.exceptions import ConfigurationError, DEMError
from divstab.flow_direction import FlowDirectionCalculator
from divstab.stream_network import NetworkBuilder


@pytest.fixture
def ridged_config(tmp_path):
    return DivideStabilityConfig(ref_area=2000.0, relief_radius=20.0, output_dir=str(tmp_path))


class TestDivideStability:
    """Test full pipeline runs."""

    def test_ridged_run(self, ridged_dem, ridged_config):
        """Test a complete run on a synthetic ridged DEM."""
        result = DivideStability(ridged_dem, config=ridged_config).run()

        assert len(result) > 0
        assert len(result) == len(result.stream.channel_head_nodes)
        assert result.ch_xy.shape == (len(result), 2)
        assert np.all(np.diff(result.ch_ix) > 0)
        assert np.all(np.isfinite(result.chi))
        assert np.all(result.chi >= 0)
        assert np.all(result.relief >= 0)
        assert result.ref_area == 2000.0
        assert result.advisories == ()

        # Heads lie inside the DEM extent
        left, top = ridged_dem.transform * (0, 0)
        assert np.all(result.ch_xy[:, 0] > left)
        assert np.all(result.ch_xy[:, 1] < top)

    def test_shapefile_written(self, ridged_dem, ridged_config, tmp_path):
        """Test the exported segments carry normalized attributes."""
        result = DivideStability(ridged_dem, config=ridged_config).run()

        assert result.shapefile == tmp_path / "div_stabil.shp"
        segments = gpd.read_file(result.shapefile)
        assert len(segments) > 0
        for name in ("chan_elev", "slope", "relief"):
            assert segments[name].between(0.0, 1.0).all()
        # Segment values are maxima, so the top of the range survives
        assert segments["chan_elev"].max() == pytest.approx(1.0)
        assert segments["chi"].min() >= 0.0

    def test_no_shapefile(self, ridged_dem, ridged_config, tmp_path):
        result = DivideStability(ridged_dem, config=ridged_config.replace(export_shapefile=False)).run()
        assert result.shapefile is None
        assert not (tmp_path / "div_stabil.shp").exists()

    def test_deterministic(self, ridged_dem, ridged_config):
        """Test repeated runs give identical results."""
        config = ridged_config.replace(export_shapefile=False)
        first = DivideStability(ridged_dem, config=config).run()
        second = DivideStability(ridged_dem, config=config).run()

        np.testing.assert_array_equal(first.ch_ix, second.ch_ix)
        np.testing.assert_array_equal(first.chi, second.chi)
        np.testing.assert_array_equal(first.gradient, second.gradient)

    def test_branching_head_values(self, branching_dem, branching_flow):
        """Test raw metrics at the heads of the explicit branching field."""
        config = DivideStabilityConfig(ref_area=100.0, relief_radius=5.0, export_shapefile=False)
        result = DivideStability(branching_dem, flow=branching_flow, config=config).run()

        assert result.ch_ix.tolist() == [0, 2, 5, 8, 11]
        np.testing.assert_array_equal(result.elevation, [130.0, 160.0, 150.0, 140.0, 130.0])
        # Head cell 0 drops 10 over 10 to the south
        assert result.gradient[0] == pytest.approx(1.0)
        # Relief radius below one cell only sees the cell itself
        np.testing.assert_array_equal(result.relief, 0.0)

    def test_max_out_elevation(self, branching_dem, branching_flow):
        """Test the highest outlet becomes the common base level."""
        config = DivideStabilityConfig(
            ref_area=100.0,
            relief_radius=5.0,
            base_level_control="max_out_elevation",
            export_shapefile=False,
        )
        result = DivideStability(branching_dem, flow=branching_flow, config=config).run()

        assert np.all(result.stream.sample(branching_dem) >= 120.0)
        assert sorted(result.stream.outlet_cells.tolist()) == [3, 10]
        assert result.advisories == ()

    def test_base_level_advisory(self, branching_dem, branching_flow):
        """Test base level warnings reach the result."""
        result = divide_stability(
            branching_dem,
            flow=branching_flow,
            ref_area=100.0,
            relief_radius=5.0,
            base_level_control="elevation",
            min_elevation=110.0,
            export_shapefile=False,
        )
        assert len(result.advisories) == 1
        assert "above the provided elevation" in result.advisories[0]

    def test_relief_radius_advisory(self, linear_channel_dem, caplog):
        """Test a relief radius beyond the hillslope length is reported."""
        result = divide_stability(
            linear_channel_dem, ref_area=9.0, relief_radius=5.0, export_shapefile=False
        )

        assert len(result.advisories) == 1
        assert "relief radius" in result.advisories[0]
        assert "mean hillslope length" in caplog.text
        assert result.ch_ix.tolist() == [12]

    def test_missing_threshold_fails_before_routing(self, linear_channel_dem):
        """Test configuration errors surface before any grid work."""
        with patch.object(FlowDirectionCalculator, "calculate") as calculate:
            with pytest.raises(ConfigurationError, match="min_elevation"):
                divide_stability(linear_channel_dem, base_level_control="elevation")
            calculate.assert_not_called()

    def test_out_of_range_config_fails_before_routing(self, linear_channel_dem):
        """Test schema bounds are enforced before any grid work."""
        with patch.object(FlowDirectionCalculator, "calculate") as calculate:
            with pytest.raises(ConfigurationError, match="chi_ref_area"):
                DivideStability(linear_channel_dem, config=DivideStabilityConfig(chi_ref_area=0))
            calculate.assert_not_called()

    def test_normalized_attributes_span_unit_range(self, ridged_dem, ridged_config):
        """Test every normalized node field reaches exactly 0 and exactly 1."""
        analysis = DivideStability(ridged_dem, config=ridged_config)
        flow = FlowDirectionCalculator().calculate(ridged_dem)
        stream = NetworkBuilder().build(flow, ridged_config.ref_area)
        up_gradient = analysis.upslope.aggregate(flow, analysis.terrain.gradient8(ridged_dem))
        up_relief = analysis.upslope.aggregate(
            flow, analysis.terrain.local_relief(ridged_dem, ridged_config.relief_radius)
        )

        attributes = analysis.normalized_attributes(stream, up_gradient, up_relief)

        assert set(attributes) == {"chan_elev", "slope", "relief"}
        for name, values in attributes.items():
            assert values.shape == stream.cells.shape
            assert np.nanmin(values) == 0.0, name
            assert np.nanmax(values) == 1.0, name

    def test_flow_grid_mismatch(self, linear_channel_dem, branching_flow):
        with pytest.raises(DEMError, match="does not match"):
            DivideStability(linear_channel_dem, flow=branching_flow)

    def test_progress_callback(self, ridged_dem, ridged_config):
        """Test progress steps increase up to the total."""
        calls = []
        DivideStability(
            ridged_dem,
            config=ridged_config.replace(export_shapefile=False),
            progress=lambda step, total, message: calls.append((step, total, message)),
        ).run()

        steps = [step for step, _, _ in calls]
        assert steps == sorted(steps)
        assert steps[-1] == DivideStability.TOTAL_STEPS
        assert all(total == DivideStability.TOTAL_STEPS for _, total, _ in calls)


class TestDivideStabilityResult:
    """Test result conversion and output."""

    def test_to_dataframe(self, branching_dem, branching_flow):
        config = DivideStabilityConfig(ref_area=100.0, relief_radius=5.0, export_shapefile=False)
        result = DivideStability(branching_dem, flow=branching_flow, config=config).run()
        df = result.to_dataframe()

        assert list(df.columns) == ["x", "y", "ix", "elevation", "gradient", "relief", "chi"]
        assert len(df) == 5
        assert df["ix"].tolist() == [0, 2, 5, 8, 11]

    def test_save_channel_heads(self, branching_dem, branching_flow, tmp_path):
        config = DivideStabilityConfig(ref_area=100.0, relief_radius=5.0, export_shapefile=False)
        result = DivideStability(branching_dem, flow=branching_flow, config=config).run()

        path = tmp_path / "heads.csv"
        result.save_channel_heads(path)
        loaded = pd.read_csv(path)

        assert len(loaded) == 5
        np.testing.assert_allclose(loaded["chi"], result.chi)

    def test_result_is_immutable(self, branching_dem, branching_flow):
        config = DivideStabilityConfig(ref_area=100.0, relief_radius=5.0, export_shapefile=False)
        result = DivideStability(branching_dem, flow=branching_flow, config=config).run()
        with pytest.raises(ValueError):
            result.chi[0] = 0.0
