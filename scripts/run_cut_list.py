#!/usr/bin/env python3
"""Fabricate every part of a JSON cut list into one run folder."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fabrication import FabricationConfig
from fabrication_errors import CutListError
from pipeline import PipelineConfig, run_pipeline_from_cut_list
from placement import MeshFormat


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fabricate all parts of a cut list")
    parser.add_argument("cut_list", help="Path to the cut list JSON")
    parser.add_argument(
        "--format",
        choices=[f.value for f in MeshFormat],
        default=MeshFormat.STL.value,
        help="Mesh export format",
    )
    parser.add_argument("--search-path", action="append", default=[], help="Profile folder")
    parser.add_argument("--runs-dir", default="runs", help="Runs output root")
    parser.add_argument(
        "--no-annotations", action="store_true", help="Skip annotation DXF export"
    )
    parser.add_argument("--overcut", type=float, default=0.1, help="Extra extrusion length")
    parser.add_argument(
        "--strict", action="store_true", help="Exit non-zero if any part fails"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logs"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = PipelineConfig(
        runs_dir=args.runs_dir,
        mesh_format=MeshFormat(args.format),
        export_annotations=not args.no_annotations,
        search_paths=list(args.search_path),
        fabrication=FabricationConfig(overcut=args.overcut),
    )
    try:
        result = run_pipeline_from_cut_list(args.cut_list, config)
    except CutListError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    report = result.report
    print(f"Run ID: {result.run_id}")
    print(f"Run dir: {result.run_dir}")
    print(f"Status: {result.status.upper()}")
    print(f"Parts: {len(report.succeeded)} of {len(report.entries)} fabricated")
    for entry in report.failed:
        print(f"Failed: {entry.request.part_name}: {entry.error}")
    print(f"Mesh files: {len(result.mesh_paths)}")
    print(f"Summary: {result.summary_path}")

    if report.failed and (args.strict or not report.succeeded):
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
