#!/usr/bin/env python3
"""Render seasonal NDVI maps and time-series charts for a region.

Plans summer and monsoon 2022 mean-NDVI composites from MODIS surface
reflectance, writes a map PNG with both seasons and one NDVI time-series
PNG and CSV per season, and optionally exports both composites as GeoTIFFs.

Usage:
    python seasonal_ndvi_report.py --output-dir report

Example:
    python seasonal_ndvi_report.py --country India --export local --output-dir out
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Check imports before running
try:
    import seasonalndvi as sn
except ImportError:
    print("Error: seasonalndvi not installed. Run: pip install -e .")
    sys.exit(1)


def generate_report(
    country: str,
    output_dir: Path,
    map_scale: float,
    chart_scale: float,
    export: str | None,
    export_scale: float,
    folder: str,
) -> None:
    """Build the seasonal run and write its map, charts and exports.

    Args:
        country: Natural Earth ``ADMIN`` name of the region.
        output_dir: Directory for PNGs and local exports.
        map_scale: Map ground sample distance in metres.
        chart_scale: Time-series sampling distance in metres.
        export: ``"local"``, ``"drive"`` or ``None`` to skip exporting.
        export_scale: Export ground sample distance in metres.
        folder: Export folder name.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    print(f"Planning seasonal NDVI for {country}...")

    run = sn.seasonal_ndvi(
        region={
            "dataset_id": "naturalearth/admin0",
            "attribute": "ADMIN",
            "value": country,
        }
    )
    print(f"  Region: {run.boundary!r}")
    for name, planned in run.composites.items():
        print(f"  Season {name}: {planned.date_range}")

    handles: dict[str, sn.ExportHandle] = {}
    exporter = None
    if export is not None:
        destination = sn.get_destination(export, root=output_dir)
        exporter = sn.Exporter(destination)
        handles = run.export(exporter, scale=export_scale, folder=folder)
        for name, handle in handles.items():
            print(f"  Submitted export {name}: {handle.destination_id}")

    print("  Rendering seasonal map...")
    map_path = run.map_context(title=f"{country} NDVI 2022").render_png(
        output_dir / "seasonal_ndvi.png", scale=map_scale
    )
    print(f"  Map: {map_path}")

    print("  Sampling seasonal NDVI time series...")
    for name, chart_path in run.season_charts(output_dir, scale=chart_scale).items():
        print(f"  Chart {name}: {chart_path}")

    if exporter is not None:
        exporter.shutdown(wait=True)
        for name, handle in handles.items():
            if handle.status is sn.ExportStatus.COMPLETED:
                print(f"  Export {name}: {handle.location}")
            else:
                print(f"  Export {name} failed:\n{handle.error}")


def main() -> None:
    """Parse arguments and run the report."""
    parser = argparse.ArgumentParser(
        description="Render seasonal NDVI maps and charts for a region.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python seasonal_ndvi_report.py --output-dir report
  python seasonal_ndvi_report.py --country Nepal --export local -d nepal
        """,
    )
    parser.add_argument(
        "--country",
        type=str,
        default="India",
        help="Natural Earth country name (default: India)",
    )
    parser.add_argument(
        "-d",
        "--output-dir",
        type=str,
        default="report",
        help="Output directory (default: report)",
    )
    parser.add_argument(
        "--map-scale",
        type=float,
        default=5000.0,
        help="Map resolution in metres (default: 5000)",
    )
    parser.add_argument(
        "--chart-scale",
        type=float,
        default=4000.0,
        help="Time-series sampling resolution in metres (default: 4000)",
    )
    parser.add_argument(
        "--export",
        choices=["local", "drive"],
        default=None,
        help="Also export GeoTIFFs to this destination",
    )
    parser.add_argument(
        "--export-scale",
        type=float,
        default=5000.0,
        help="Export resolution in metres (default: 5000)",
    )
    parser.add_argument(
        "--folder",
        type=str,
        default="NDVI_Export",
        help="Export folder name (default: NDVI_Export)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log pipeline progress",
    )

    args = parser.parse_args()

    if min(args.map_scale, args.chart_scale, args.export_scale) <= 0:
        print("Error: Scales must be greater than 0.")
        sys.exit(1)

    if args.verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )

    try:
        generate_report(
            country=args.country,
            output_dir=Path(args.output_dir),
            map_scale=args.map_scale,
            chart_scale=args.chart_scale,
            export=args.export,
            export_scale=args.export_scale,
            folder=args.folder,
        )
    except sn.SeasonalNdviError as e:
        print(f"\nError generating report: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
