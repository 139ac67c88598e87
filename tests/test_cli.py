#!/usr/bin/env python3
"""
Tests for the DIVSTAB command line interface
"""

import pandas as pd
import pytest

from divstab.cli import build_parser, main
from divstab.config import DivideStabilityConfig


@pytest.fixture
def dem_file(ridged_dem, tmp_path):
    path = tmp_path / "dem.tif"
    ridged_dem.save(path)
    return path


class TestRunCommand:
    """Test the run command."""

    def test_run(self, dem_file, tmp_path, capsys):
        heads = tmp_path / "heads.csv"
        main([
            "run",
            "--dem", str(dem_file),
            "--ref-area", "2000",
            "--relief-radius", "20",
            "--output-dir", str(tmp_path),
            "--heads-csv", str(heads),
        ])

        out = capsys.readouterr().out
        assert "completed successfully" in out
        assert (tmp_path / "div_stabil.shp").exists()
        assert len(pd.read_csv(heads)) > 0

    def test_run_with_config(self, dem_file, tmp_path, capsys):
        """Test command-line values override the configuration file."""
        config_path = tmp_path / "divstab.yaml"
        DivideStabilityConfig(ref_area=1e9, relief_radius=20.0).save(config_path)

        main([
            "run",
            "--dem", str(dem_file),
            "--config", str(config_path),
            "--ref-area", "2000",
            "--no-shapefile",
        ])

        assert "completed successfully" in capsys.readouterr().out
        assert not (tmp_path / "div_stabil.shp").exists()

    def test_missing_dem(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["run", "--dem", str(tmp_path / "missing.tif")])
        assert exc.value.code == 1
        assert "not found" in capsys.readouterr().err

    def test_missing_threshold(self, dem_file, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["run", "--dem", str(dem_file), "--base-level-control", "drain_area"])
        assert exc.value.code == 1
        assert "max_drainage_area" in capsys.readouterr().err

    def test_empty_network(self, dem_file, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["run", "--dem", str(dem_file), "--ref-area", "1e9", "--no-shapefile"])
        assert exc.value.code == 1
        assert "empty" in capsys.readouterr().err


class TestOtherCommands:
    """Test info and init-config."""

    def test_info(self, dem_file, capsys):
        main(["info", "--dem", str(dem_file)])
        out = capsys.readouterr().out
        assert "DEM Information" in out
        assert "20x20 cells" in out

    def test_init_config(self, tmp_path, capsys):
        output = tmp_path / "divstab.yaml"
        main(["init-config", "--output", str(output)])

        assert DivideStabilityConfig.from_yaml(output) == DivideStabilityConfig()

        with pytest.raises(SystemExit):
            main(["init-config", "--output", str(output)])
        main(["init-config", "--output", str(output), "--force"])

    def test_no_command(self):
        with pytest.raises(SystemExit):
            main([])

    def test_policy_choices(self):
        args = build_parser().parse_args(
            ["run", "--dem", "dem.tif", "--base-level-control", "min_out_drain_area"]
        )
        assert args.base_level_control == "min_out_drain_area"
