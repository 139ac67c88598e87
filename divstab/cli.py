#!/usr/bin/env python3
"""
DIVSTAB Command Line Interface
==============================

Command-line interface for DIVSTAB divide stability analysis.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
from tqdm import tqdm

from . import __version__
from .config import BaseLevelPolicy, DivideStabilityConfig, load_yaml_file
from .core import DivideStability
from .exceptions import DivStabError
from .grid import Grid


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


class TqdmProgress:
    """Progress callback drawing a tqdm bar."""

    def __init__(self, desc: str = "Divide stability"):
        self.bar: Optional[tqdm] = None
        self.desc = desc

    def __call__(self, step: int, total: int, message: str) -> None:
        if self.bar is None:
            self.bar = tqdm(total=total, desc=self.desc)
        self.bar.set_postfix_str(message)
        self.bar.update(step - self.bar.n)
        if step >= total:
            self.close()

    def close(self) -> None:
        if self.bar is not None:
            self.bar.close()
            self.bar = None


def _cli_overrides(args) -> Dict[str, Any]:
    """Configuration values given on the command line."""
    overrides = {
        "ref_area": args.ref_area,
        "relief_radius": args.relief_radius,
        "chi_ref_area": args.chi_ref_area,
        "theta_ref": args.theta_ref,
        "base_level_control": args.base_level_control,
        "min_elevation": args.min_elevation,
        "max_drainage_area": args.max_drainage_area,
        "shape_name": args.shape_name,
        "output_dir": args.output_dir,
    }
    if args.verbose:
        overrides["verbose"] = True
    if args.no_shapefile:
        overrides["export_shapefile"] = False
    return {k: v for k, v in overrides.items() if v is not None}


def run_command(args) -> None:
    """Execute divide stability analysis."""
    try:
        if not Path(args.dem).exists():
            print(f"DEM file not found: {args.dem}", file=sys.stderr)
            sys.exit(1)

        values = load_yaml_file(args.config) if args.config else {}
        values.update(_cli_overrides(args))
        config = DivideStabilityConfig.from_dict(values)

        progress = TqdmProgress() if config.verbose else None

        print(f"Loading DEM: {args.dem}")
        analysis = DivideStability.from_file(args.dem, config=config, progress=progress)
        try:
            result = analysis.run()
        finally:
            if progress is not None:
                progress.close()

        if result.shapefile is not None:
            print(f"Stream network saved to: {result.shapefile}")

        if args.heads_csv:
            result.save_channel_heads(args.heads_csv)
            print(f"Channel heads saved to: {args.heads_csv}")

        print("\nDivide stability analysis completed successfully!")
        print(f"Stream cells: {len(result.stream)}")
        print(f"Outlets: {result.stream.outlet_cells.size}")
        print(f"Channel heads: {len(result)}")
        if len(result):
            print(f"Channel head chi range: {np.nanmin(result.chi):.4g} - {np.nanmax(result.chi):.4g}")
        for advisory in result.advisories:
            print(f"Warning: {advisory}", file=sys.stderr)

    except DivStabError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        sys.exit(1)


def info_command(args) -> None:
    """Execute DEM information command."""
    try:
        dem = Grid.from_file(args.dem)
    except DivStabError as e:
        print(f"Error reading DEM: {e}", file=sys.stderr)
        sys.exit(1)

    valid = dem.values[dem.valid]
    print(f"DEM Information: {args.dem}")
    print(f"  Size: {dem.shape[1]}x{dem.shape[0]} cells")
    print(f"  Cell size: {dem.cellsize}")
    print(f"  CRS: {dem.crs}")
    if valid.size:
        print(f"  Elevation range: {valid.min():.1f} - {valid.max():.1f}")
        print(f"  Valid cells: {valid.size}/{dem.size} ({valid.size / dem.size * 100:.1f}%)")
        # Characteristic hillslope length for the default reference area
        print(f"  Default relief radius limit: {np.sqrt(DivideStabilityConfig().ref_area):.0f}")


def init_config_command(args) -> None:
    """Write the default configuration as YAML."""
    output = Path(args.output)
    if output.exists() and not args.force:
        print(f"{output} already exists, use --force to overwrite", file=sys.stderr)
        sys.exit(1)
    DivideStabilityConfig().save(output)
    print(f"Default configuration written to: {output}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="DIVSTAB - Drainage Divide Stability Metrics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with defaults (1 km^2 reference area, 500 m relief radius)
  divstab run --dem dem.tif

  # Larger reference area, common base level at 1200 m
  divstab run --dem dem.tif --ref-area 1e7 --base-level-control elevation --min-elevation 1200

  # Use a configuration file and save channel heads
  divstab run --dem dem.tif --config divstab.yaml --heads-csv heads.csv

  # Get DEM information
  divstab info --dem dem.tif
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    run_parser = subparsers.add_parser('run', help='Compute divide stability metrics')
    run_parser.add_argument('--dem', required=True, help='Path to DEM file')
    run_parser.add_argument('--config', help='Configuration file (YAML)')
    run_parser.add_argument('--ref-area', type=float, help='Minimum accumulation area defining streams (map units^2)')
    run_parser.add_argument('--relief-radius', type=float, help='Radius for local relief (map units)')
    run_parser.add_argument('--chi-ref-area', type=float, help='Reference area for chi')
    run_parser.add_argument('--theta-ref', type=float, help='Reference concavity for chi')
    run_parser.add_argument(
        '--base-level-control',
        choices=[p.value for p in BaseLevelPolicy],
        help='Base level control policy'
    )
    run_parser.add_argument('--min-elevation', type=float, help='Base level elevation for "elevation" control')
    run_parser.add_argument('--max-drainage-area', type=float, help='Base level area for "drain_area" control')
    run_parser.add_argument('--shape-name', help='Output shapefile name (without .shp)')
    run_parser.add_argument('--output-dir', help='Directory for output files')
    run_parser.add_argument('--heads-csv', help='Write channel head metrics to this CSV file')
    run_parser.add_argument('--no-shapefile', action='store_true', help='Skip writing the shapefile')
    run_parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output with progress bar')

    info_parser = subparsers.add_parser('info', help='Display DEM information')
    info_parser.add_argument('--dem', required=True, help='Path to DEM file')

    config_parser = subparsers.add_parser('init-config', help='Write the default configuration')
    config_parser.add_argument('--output', default='divstab.yaml', help='Output YAML path')
    config_parser.add_argument('--force', action='store_true', help='Overwrite an existing file')

    parser.add_argument('--version', action='version', version=f'DIVSTAB {__version__}')
    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.verbose if hasattr(args, 'verbose') else False)

    if args.command == 'run':
        run_command(args)
    elif args.command == 'info':
        info_command(args)
    elif args.command == 'init-config':
        init_config_command(args)
    else:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
