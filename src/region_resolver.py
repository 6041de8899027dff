"""
Region resolution: profile curves -> disjoint planar regions with holes.

Curves that are already closed become one region each. Loose segments
(lines, arcs, open polylines) are chained end to end into loops first.
Nesting is then resolved largest-first: a region whose extents fall inside
an accepted region's extents is treated as a hole and subtracted from it.

The extents test is a bounding-box approximation, not point-in-polygon; an
L-shaped cutout whose box overlaps a sibling of similar size can be
misclassified.
"""
import logging
import math
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry import MultiPolygon, Polygon

from fabrication_errors import InvalidProfileError
from geometry_primitives import Region, bounds_contains
from profile_loader import Point2, ProfileCurve, ProfileDefinition

logger = logging.getLogger(__name__)

DEFAULT_CHAIN_TOLERANCE = 1e-3
MIN_REGION_AREA = 1e-9


def resolve_regions(
    profile: ProfileDefinition,
    chain_tolerance: float = DEFAULT_CHAIN_TOLERANCE,
) -> List[Region]:
    """Turn a profile definition into a list of non-overlapping regions.

    Raises:
        InvalidProfileError: If a curve cannot be closed or nothing with
            area remains.
    """
    anchor = None if profile.anchor is None else np.asarray(profile.anchor, dtype=float)

    if profile.has_regions:
        regions = [Region(polygon=poly) for poly in profile.regions if poly.area > MIN_REGION_AREA]
        logger.info("Reusing %d pre-built region(s) from %s", len(regions), profile.source)
    else:
        loops = curves_to_loops(profile.curves, chain_tolerance)
        regions = [Region(polygon=poly) for poly in _loops_to_polygons(loops)]
        regions = resolve_nesting(regions)
        logger.info("Resolved %d region(s) from %d curve(s)", len(regions), len(profile.curves))

    if not regions:
        raise InvalidProfileError(f"No closed regions found in profile {profile.source}")

    return [replace(r, anchor=None if anchor is None else anchor.copy()) for r in regions]


def resolve_nesting(regions: Sequence[Region]) -> List[Region]:
    """Subtract contained regions from their containers, largest first."""
    ordered = sorted(regions, key=lambda r: r.area, reverse=True)
    accepted: List[Region] = []

    for region in ordered:
        container = _find_container(accepted, region)
        if container is None:
            accepted.append(region)
            continue
        outer = accepted[container]
        logger.debug(
            "Region (area=%.4f) inside region (area=%.4f), subtracting as hole",
            region.area, outer.area,
        )
        accepted[container] = replace(outer, polygon=outer.polygon.difference(region.polygon))

    result: List[Region] = []
    for region in accepted:
        for poly in _explode(region.polygon):
            result.append(replace(region, polygon=poly))
    return result


def curves_to_loops(
    curves: Sequence[ProfileCurve],
    tolerance: float = DEFAULT_CHAIN_TOLERANCE,
) -> List[List[Point2]]:
    """Closed curves pass through; open curves are chained into loops.

    Raises:
        InvalidProfileError: If any open chain cannot be closed.
    """
    loops = [list(c.points) for c in curves if c.closed]
    remaining = [list(c.points) for c in curves if not c.closed]

    while remaining:
        chain = remaining.pop(0)
        while not _is_closed(chain, tolerance):
            index, reverse = _find_connection(remaining, chain[-1], tolerance)
            if index is None:
                break
            segment = remaining.pop(index)
            if reverse:
                segment = segment[::-1]
            chain.extend(segment[1:])

        if not _is_closed(chain, tolerance):
            gap = _distance(chain[0], chain[-1])
            raise InvalidProfileError(
                f"Failed to create regions from curves: open chain of {len(chain)} points "
                f"(gap={gap:.4f}). Make sure all polylines are closed."
            )
        loops.append(chain[:-1])

    return loops


# ─── Internal helpers ────────────────────────────────────────────────────────

def _loops_to_polygons(loops: Sequence[Sequence[Point2]]) -> List[Polygon]:
    polygons = []
    for loop in loops:
        if len(loop) < 3:
            raise InvalidProfileError(f"Closed curve with only {len(loop)} point(s)")
        poly = Polygon(loop)
        if not poly.is_valid:
            poly = poly.buffer(0)
        parts = _explode(poly)
        if not parts:
            raise InvalidProfileError("Closed curve encloses zero area")
        polygons.extend(parts)
    return polygons


def _find_container(accepted: Sequence[Region], region: Region) -> Optional[int]:
    for i, candidate in enumerate(accepted):
        if bounds_contains(candidate.bounds, region.bounds):
            return i
    return None


def _find_connection(
    segments: Sequence[Sequence[Point2]],
    point: Point2,
    tolerance: float,
) -> Tuple[Optional[int], bool]:
    for i, segment in enumerate(segments):
        if _distance(segment[0], point) <= tolerance:
            return i, False
        if _distance(segment[-1], point) <= tolerance:
            return i, True
    return None, False


def _is_closed(chain: Sequence[Point2], tolerance: float) -> bool:
    return len(chain) > 2 and _distance(chain[0], chain[-1]) <= tolerance


def _distance(a: Point2, b: Point2) -> float:
    return math.hypot(b[0] - a[0], b[1] - a[1])


def _explode(geometry) -> List[Polygon]:
    if geometry.is_empty:
        return []
    if isinstance(geometry, Polygon):
        return [geometry] if geometry.area > MIN_REGION_AREA else []
    if isinstance(geometry, MultiPolygon):
        return [g for g in geometry.geoms if g.area > MIN_REGION_AREA]
    return [
        g for g in getattr(geometry, "geoms", [])
        if isinstance(g, Polygon) and g.area > MIN_REGION_AREA
    ]
