"""
Profile loading from DXF die drawings.

Reads a drawing with ezdxf, flattens every profile curve to a 2D point
sequence and collects HATCH areas as ready-made regions. The result is an
immutable ``ProfileDefinition``; no transformation is applied here.

A ``ProfileLoader`` resolves profile identifiers against search paths and
caches what it has read, so repeated requests for the same die only parse
the drawing once.
"""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import ezdxf
from ezdxf import path as dxf_path
from shapely.geometry import MultiPolygon, Polygon

from fabrication_errors import InvalidProfileError
from work_points import WORKPOINT_LAYER, get_drawing_work_point, get_entity_work_point

logger = logging.getLogger(__name__)

Point2 = Tuple[float, float]
Point3 = Tuple[float, float, float]

CURVE_TYPES = {"LWPOLYLINE", "POLYLINE", "LINE", "ARC", "CIRCLE", "ELLIPSE", "SPLINE"}


@dataclass
class ProfileLoaderConfig:
    """Settings for reading profile drawings."""
    flatten_distance: float = 0.01    # max chord deviation for arcs/splines
    flatten_segments: int = 16        # minimum segments per curve
    ignored_layers: Tuple[str, ...] = (WORKPOINT_LAYER, "DEFPOINTS")
    search_paths: List[str] = field(default_factory=list)
    extension: str = ".dxf"


@dataclass(frozen=True)
class ProfileCurve:
    """A profile curve flattened to points in the drawing's XY plane."""
    points: Tuple[Point2, ...]
    closed: bool
    dxftype: str = "LWPOLYLINE"
    handle: Optional[str] = None

    @property
    def start(self) -> Point2:
        return self.points[0]

    @property
    def end(self) -> Point2:
        return self.points[-1]


@dataclass(frozen=True)
class ProfileDefinition:
    """Immutable 2D profile as read from its source drawing.

    ``regions`` is non-empty when the drawing already carries filled areas;
    the region resolver then reuses them instead of building from curves.
    ``anchor`` is given relative to the profile plane (z measured from the
    curves' elevation).
    """
    source: str
    curves: Tuple[ProfileCurve, ...] = ()
    regions: Tuple[Polygon, ...] = ()
    anchor: Optional[Point3] = None

    @property
    def has_regions(self) -> bool:
        return len(self.regions) > 0

    @classmethod
    def from_polygons(
        cls,
        polygons: Iterable[Polygon],
        source: str = "<memory>",
        anchor: Optional[Sequence[float]] = None,
    ) -> "ProfileDefinition":
        """Build a curve-based definition; every ring becomes a closed curve."""
        curves = []
        for poly in polygons:
            for ring in [poly.exterior, *poly.interiors]:
                coords = [(float(x), float(y)) for x, y in list(ring.coords)[:-1]]
                curves.append(ProfileCurve(points=tuple(coords), closed=True))
        return cls(source=source, curves=tuple(curves), anchor=_as_point3(anchor))

    @classmethod
    def from_regions(
        cls,
        polygons: Iterable[Polygon],
        source: str = "<memory>",
        anchor: Optional[Sequence[float]] = None,
    ) -> "ProfileDefinition":
        """Build a definition that already carries finished regions."""
        return cls(source=source, regions=tuple(polygons), anchor=_as_point3(anchor))


def load_profile(
    filepath: str,
    block_name: Optional[str] = None,
    config: Optional[ProfileLoaderConfig] = None,
) -> ProfileDefinition:
    """Read a DXF profile drawing.

    Args:
        filepath: Path to the DXF file.
        block_name: Read this block definition instead of modelspace.
        config: Loader settings.

    Raises:
        InvalidProfileError: If the file cannot be read or the block is missing.
    """
    if config is None:
        config = ProfileLoaderConfig()

    try:
        doc = ezdxf.readfile(filepath)
    except IOError as exc:
        raise InvalidProfileError(f"Cannot read profile drawing {filepath}: {exc}") from exc
    except ezdxf.DXFStructureError as exc:
        raise InvalidProfileError(f"Invalid DXF structure in {filepath}: {exc}") from exc

    if block_name:
        layout = doc.blocks.get(block_name)
        if layout is None:
            raise InvalidProfileError(f"Block '{block_name}' not found in {filepath}")
    else:
        layout = doc.modelspace()

    ignored = {name.upper() for name in config.ignored_layers}
    curves: List[ProfileCurve] = []
    regions: List[Polygon] = []
    anchor = None
    elevations: List[float] = []

    for entity in layout:
        dxftype = entity.dxftype()
        if entity.dxf.get("layer", "0").upper() in ignored:
            continue

        if dxftype in CURVE_TYPES:
            curve, z = _flatten_curve(entity, config)
            if curve is None:
                continue
            curves.append(curve)
            elevations.append(z)
        elif dxftype == "HATCH":
            hatch_regions = _hatch_to_polygons(entity, config)
            regions.extend(hatch_regions)
            if hatch_regions:
                elevations.append(float(entity.dxf.get("elevation", (0.0, 0.0, 0.0))[2]))
        else:
            continue

        point = get_entity_work_point(entity)
        if point is not None:
            anchor = point

    if anchor is None:
        anchor = get_drawing_work_point(doc)

    elevation = elevations[0] if elevations else 0.0
    if anchor is not None:
        anchor = (float(anchor[0]), float(anchor[1]), float(anchor[2]) - elevation)

    source = f"{filepath}#{block_name}" if block_name else str(filepath)
    logger.info(
        "Loaded profile %s: %d curves, %d regions, anchor=%s",
        source, len(curves), len(regions), anchor,
    )
    return ProfileDefinition(
        source=source,
        curves=tuple(curves),
        regions=tuple(regions),
        anchor=anchor,
    )


class ProfileLoader:
    """Resolves profile identifiers to definitions and caches them."""

    def __init__(self, config: Optional[ProfileLoaderConfig] = None):
        self.config = config or ProfileLoaderConfig()
        self._cache: Dict[Tuple[str, Optional[str]], ProfileDefinition] = {}

    def resolve_path(self, source: str) -> Path:
        """Find the drawing for ``source`` (a path or a bare part number)."""
        candidates = [Path(source)]
        if not source.lower().endswith(self.config.extension):
            candidates.append(Path(source + self.config.extension))
        for directory in self.config.search_paths:
            candidates.append(Path(directory) / source)
            candidates.append(Path(directory) / (source + self.config.extension))

        for candidate in candidates:
            if candidate.is_file():
                return candidate.resolve()
        raise InvalidProfileError(f"Profile drawing not found: {source}")

    def load(self, source, block_name: Optional[str] = None) -> ProfileDefinition:
        """Return the definition for ``source``; definitions pass through."""
        if isinstance(source, ProfileDefinition):
            return source
        path = self.resolve_path(os.fspath(source))
        key = (str(path), block_name)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Profile cache hit: %s", path)
            return cached
        definition = load_profile(str(path), block_name=block_name, config=self.config)
        self._cache[key] = definition
        return definition

    def clear_cache(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


# ─── Internal helpers ────────────────────────────────────────────────────────

def _as_point3(point: Optional[Sequence[float]]) -> Optional[Point3]:
    if point is None:
        return None
    values = [float(v) for v in point]
    if len(values) == 2:
        values.append(0.0)
    return (values[0], values[1], values[2])


def _flatten_curve(entity, config: ProfileLoaderConfig) -> Tuple[Optional[ProfileCurve], float]:
    try:
        path = dxf_path.make_path(entity)
    except (TypeError, ValueError) as exc:
        logger.warning("Skipping %s %s: %s", entity.dxftype(), entity.dxf.handle, exc)
        return None, 0.0

    vertices = list(path.flattening(config.flatten_distance, segments=config.flatten_segments))
    if len(vertices) < 2:
        return None, 0.0

    points = [(float(v.x), float(v.y)) for v in vertices]
    closed = bool(path.is_closed)
    if closed and len(points) > 1 and _same_point(points[0], points[-1]):
        points = points[:-1]

    curve = ProfileCurve(
        points=tuple(points),
        closed=closed,
        dxftype=entity.dxftype(),
        handle=entity.dxf.handle,
    )
    return curve, float(vertices[0].z)


def _hatch_to_polygons(hatch, config: ProfileLoaderConfig) -> List[Polygon]:
    """Even-odd fill of all boundary paths of a hatch."""
    area = Polygon()
    for boundary in dxf_path.from_hatch(hatch):
        points = [
            (float(v.x), float(v.y))
            for v in boundary.flattening(config.flatten_distance, segments=config.flatten_segments)
        ]
        if len(points) < 3:
            continue
        ring = Polygon(points)
        if not ring.is_valid:
            ring = ring.buffer(0)
        area = area.symmetric_difference(ring)

    if area.is_empty:
        return []
    if isinstance(area, MultiPolygon):
        return [g for g in area.geoms if g.area > 0]
    if isinstance(area, Polygon):
        return [area]
    return [g for g in getattr(area, "geoms", []) if isinstance(g, Polygon) and g.area > 0]


def _same_point(a: Point2, b: Point2, tol: float = 1e-9) -> bool:
    return abs(a[0] - b[0]) <= tol and abs(a[1] - b[1]) <= tol
