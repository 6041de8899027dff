#!/usr/bin/env python3
"""Fabricate one part (profile + length + end cuts) into a run folder."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cut_list import PartRequest
from fabrication import FabricationConfig
from geometry_primitives import CutSpec
from pipeline import PipelineConfig, run_pipeline_for_part
from placement import MeshFormat


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Extrude a DXF profile to length and apply miter/tilt end cuts"
    )
    parser.add_argument("--profile", required=True, help="Profile DXF path or part number")
    parser.add_argument("--length", type=float, required=True, help="Nominal part length")
    parser.add_argument("--block", default=None, help="Read this block instead of modelspace")
    parser.add_argument("--name", default=None, help="Part name (defaults to the profile name)")
    parser.add_argument("--left-miter", type=float, default=90.0)
    parser.add_argument("--left-tilt", type=float, default=90.0)
    parser.add_argument("--right-miter", type=float, default=90.0)
    parser.add_argument("--right-tilt", type=float, default=90.0)
    parser.add_argument("--handed", action="store_true", help="Part has left/right variants")
    parser.add_argument("--side", default="", help="Handed side; anything but L mirrors")
    parser.add_argument(
        "--preserve-orientation",
        action="store_true",
        help="Keep the drawing plane and extrude along Z",
    )
    parser.add_argument("--annotate", action="store_true", help="Export cut angle annotations")
    parser.add_argument(
        "--insert", type=float, nargs=3, default=(0.0, 0.0, 0.0), metavar=("X", "Y", "Z"),
        help="Insertion point",
    )
    parser.add_argument("--rotate", type=float, default=0.0, help="Rotation in degrees")
    parser.add_argument(
        "--rotation-axis", type=float, nargs=3, default=(0.0, 0.0, 1.0),
        metavar=("X", "Y", "Z"),
    )
    parser.add_argument(
        "--format",
        choices=[f.value for f in MeshFormat],
        default=MeshFormat.STL.value,
        help="Mesh export format",
    )
    parser.add_argument("--search-path", action="append", default=[], help="Profile folder")
    parser.add_argument("--runs-dir", default="runs", help="Runs output root")
    parser.add_argument("--overcut", type=float, default=0.1, help="Extra extrusion length")
    parser.add_argument(
        "--no-trim-overcut", action="store_true", help="Leave the overcut on a square right end"
    )
    parser.add_argument(
        "--no-center", action="store_true", help="Do not center the profile vertically"
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

    try:
        request = PartRequest(
            part_name=args.name or Path(args.profile).stem,
            profile=args.profile,
            length=args.length,
            left_cut=CutSpec(miter=args.left_miter, tilt=args.left_tilt),
            right_cut=CutSpec(miter=args.right_miter, tilt=args.right_tilt),
            handed=args.handed,
            handed_side=args.side,
            preserve_orientation=args.preserve_orientation,
            block_name=args.block,
            insertion_point=tuple(args.insert),
            rotation_deg=args.rotate,
            rotation_axis=tuple(args.rotation_axis),
            add_annotations=args.annotate,
        )
    except ValueError as exc:
        parser.error(str(exc))

    config = PipelineConfig(
        runs_dir=args.runs_dir,
        mesh_format=MeshFormat(args.format),
        export_annotations=args.annotate,
        search_paths=list(args.search_path),
        fabrication=FabricationConfig(
            overcut=args.overcut,
            trim_overcut=not args.no_trim_overcut,
            center_vertically=not args.no_center,
        ),
    )
    result = run_pipeline_for_part(request, config)
    entry = result.report.entries[0]

    print(f"Run ID: {result.run_id}")
    print(f"Run dir: {result.run_dir}")
    print(f"Status: {result.status.upper()}")
    if not entry.ok:
        print(f"Error: {entry.error}")
        return 1

    part = entry.result
    print(f"Part dimensions: Width = {part.width:.3f}, Height = {part.height:.3f}")
    print(f"Solids: {len(part.solids)}")
    print(f"Issues: {len(part.issues)}")
    for path in result.mesh_paths:
        print(f"Mesh: {path}")
    for path in result.annotation_paths:
        print(f"Annotations: {path}")
    print(f"Metrics: {result.metrics_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
