"""
End-cut engine: miter and tilt cuts at both ends of an extruded part.

Planes are computed in the canonical frame (X = extrusion axis, Y = depth,
Z = height) and mapped into world space for the extrusion mode. For an end
cut with miter M and tilt T (degrees, 90 = square):

    m = M - 90, t = T - 90
    n = (cos t * cos m, cos t * sin m, sin t)

Left end: the plane starts at X = 0. An angle over 90 degrees leans the cut
into the stock, so the plane is advanced by ``depth / tan(pi/2 - m)`` (miter)
or ``height / tan(pi/2 - t)`` (tilt), whichever is larger.

Right end: the miter is mirrored (180 - M) and the normal's X/Y components
are negated. The plane starts at X = length and is pulled back by the same
offsets computed from the right-end angles. At 45 degrees this is no offset,
at 135 degrees a full depth.

Slicing intersects the solid with a half-space box on the side the normal
points to (manifold boolean engine), so the result stays watertight for
profiles with holes. Near 90 +/- eps
the offsets grow large but stay finite; callers pass angles as they are.
"""
import logging
import math
import warnings
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import numpy as np
import trimesh

from fabrication_errors import CutFailureWarning, FabricationIssue
from geometry_primitives import CutSpec, ExtrusionMode, Solid, union_bounds_3d
from orientation import canonical_frame
from transforms import compose, transform_direction, transform_point, translation

logger = logging.getLogger(__name__)

LEFT = "left"
RIGHT = "right"

BOOLEAN_ENGINE = "manifold"


@dataclass(frozen=True)
class CutPlane:
    """A cutting plane in world space. The kept side is along ``normal``."""
    end: str
    origin: np.ndarray
    normal: np.ndarray
    offset: float = 0.0   # axial pull-in from the nominal end
    trim: bool = False    # square overcut trim rather than a requested cut


@dataclass
class StockExtents:
    """Union extents of the stock in canonical coordinates."""
    length: float
    depth: float
    height: float
    min_depth: float = 0.0
    min_height: float = 0.0


@dataclass
class CutResult:
    solids: List[Solid] = field(default_factory=list)
    planes: List[CutPlane] = field(default_factory=list)
    issues: List[FabricationIssue] = field(default_factory=list)
    extents: Optional[StockExtents] = None


Slicer = Callable[[Solid, CutPlane], Solid]


def cut_normal(miter_deg: float, tilt_deg: float) -> np.ndarray:
    """Unit normal for a cut, from offsets of the miter and tilt from square."""
    m = math.radians(miter_deg - 90.0)
    t = math.radians(tilt_deg - 90.0)
    n = np.array([
        math.cos(t) * math.cos(m),
        math.cos(t) * math.sin(m),
        math.sin(t),
    ])
    return n / np.linalg.norm(n)


def end_offset(extent: float, angle_deg: float) -> float:
    """Axial shift needed for an angle over 90 degrees across ``extent``."""
    if angle_deg <= 90.0:
        return 0.0
    a = math.radians(angle_deg - 90.0)
    return abs(extent / math.tan(math.pi / 2 - a))


def stock_extents(solids: Sequence[Solid], mode: ExtrusionMode) -> StockExtents:
    """Measure the union of ``solids`` in the canonical frame."""
    to_canonical = np.linalg.inv(canonical_frame(mode))
    bounds = union_bounds_3d(solids)
    corners = np.array([transform_point(to_canonical, p) for p in bounds])
    lo = corners.min(axis=0)
    hi = corners.max(axis=0)
    return StockExtents(
        length=float(hi[0] - lo[0]),
        depth=float(hi[1] - lo[1]),
        height=float(hi[2] - lo[2]),
        min_depth=float(lo[1]),
        min_height=float(lo[2]),
    )


def left_cut_plane(cut: CutSpec, extents: StockExtents,
                   mode: ExtrusionMode = ExtrusionMode.ALONG_X) -> CutPlane:
    normal = cut_normal(cut.miter, cut.tilt)
    offset = max(end_offset(extents.depth, cut.miter), end_offset(extents.height, cut.tilt))
    origin = np.array([offset, extents.min_depth, extents.min_height])
    return _to_world(LEFT, origin, normal, offset, mode)


def right_cut_plane(cut: CutSpec, length: float, extents: StockExtents,
                    mode: ExtrusionMode = ExtrusionMode.ALONG_X) -> CutPlane:
    mirrored_miter = 180.0 - cut.miter
    normal = cut_normal(mirrored_miter, cut.tilt)
    normal[0] = -normal[0]
    normal[1] = -normal[1]
    offset = max(end_offset(extents.depth, cut.miter), end_offset(extents.height, cut.tilt))
    origin = np.array([length - offset, extents.min_depth, extents.min_height])
    return _to_world(RIGHT, origin, normal, offset, mode)


def overcut_trim_plane(length: float, extents: StockExtents,
                       mode: ExtrusionMode = ExtrusionMode.ALONG_X) -> CutPlane:
    """Square plane at the nominal length removing the extrusion overcut."""
    origin = np.array([length, extents.min_depth, extents.min_height])
    plane = _to_world(RIGHT, origin, np.array([-1.0, 0.0, 0.0]), 0.0, mode)
    return CutPlane(end=plane.end, origin=plane.origin, normal=plane.normal, trim=True)


def half_space(plane: CutPlane, solid: Solid) -> trimesh.Trimesh:
    """Box on the normal side of ``plane``, large enough to cover ``solid``."""
    center = solid.mesh.bounds.mean(axis=0)
    reach = np.linalg.norm(solid.mesh.extents) + np.linalg.norm(center - plane.origin)
    size = 4.0 * reach
    matrix = compose(
        trimesh.geometry.align_vectors([0.0, 0.0, 1.0], plane.normal),
        translation(plane.origin + plane.normal * size / 2.0),
    )
    return trimesh.creation.box(extents=(size, size, size), transform=matrix)


def slice_solid(solid: Solid, plane: CutPlane) -> Solid:
    """Keep the part of ``solid`` on the normal side of ``plane``.

    Raises:
        ImportError: If the manifold boolean engine is not installed.
        ValueError: If nothing is left or the result is not closed.
    """
    if BOOLEAN_ENGINE not in trimesh.boolean.engines_available:
        raise ImportError(f"trimesh boolean engine '{BOOLEAN_ENGINE}' is not available")
    sliced = trimesh.boolean.intersection(
        [solid.mesh, half_space(plane, solid)], engine=BOOLEAN_ENGINE,
    )
    if sliced is None or sliced.is_empty or len(sliced.faces) == 0:
        raise ValueError("cut plane removed the entire solid")
    if not sliced.is_watertight:
        raise ValueError("cut did not produce a closed solid")
    return Solid(mesh=sliced, name=solid.name, anchor=solid.anchor)


def plan_cuts(
    extents: StockExtents,
    left: CutSpec,
    right: CutSpec,
    length: float,
    mode: ExtrusionMode = ExtrusionMode.ALONG_X,
    trim_overcut: bool = True,
) -> List[CutPlane]:
    """Cutting planes to apply, left end first."""
    planes = []
    if not left.is_square:
        planes.append(left_cut_plane(left, extents, mode))
    if not right.is_square:
        planes.append(right_cut_plane(right, length, extents, mode))
    elif trim_overcut:
        planes.append(overcut_trim_plane(length, extents, mode))
    return planes


def apply_end_cuts(
    solids: Sequence[Solid],
    left: Optional[CutSpec] = None,
    right: Optional[CutSpec] = None,
    length: float = 0.0,
    mode: ExtrusionMode = ExtrusionMode.ALONG_X,
    trim_overcut: bool = True,
    slicer: Optional[Slicer] = None,
) -> CutResult:
    """Cut both ends of every solid.

    A solid that fails to slice keeps its geometry; the failure is logged,
    recorded as an issue and emitted as ``CutFailureWarning``. Other solids
    and the other end are still processed. A missing geometry library is
    not a per-solid failure and propagates.
    """
    left = left or CutSpec()
    right = right or CutSpec()
    slicer = slicer or slice_solid

    result = CutResult(solids=list(solids))
    if not result.solids:
        return result

    logger.info(
        "Applying cuts - left: %s/%s, right: %s/%s",
        left.miter, left.tilt, right.miter, right.tilt,
    )
    result.extents = stock_extents(result.solids, mode)
    logger.debug(
        "Stock extents: length=%.4f depth=%.4f height=%.4f",
        result.extents.length, result.extents.depth, result.extents.height,
    )
    result.planes = plan_cuts(result.extents, left, right, length, mode, trim_overcut)

    for plane in result.planes:
        logger.debug(
            "%s cut plane origin=%s normal=%s offset=%.4f",
            plane.end, np.round(plane.origin, 6), np.round(plane.normal, 6), plane.offset,
        )
        for i, solid in enumerate(result.solids):
            try:
                result.solids[i] = slicer(solid, plane)
            except ImportError:
                raise
            except Exception as exc:
                message = f"{plane.end} cut failed on {solid.name}: {exc}"
                logger.warning(message)
                warnings.warn(message, CutFailureWarning, stacklevel=2)
                result.issues.append(FabricationIssue(
                    code="cut_failure",
                    severity="warning",
                    message=message,
                    item=f"{solid.name}:{plane.end}",
                ))

    return result


# ─── Internal helpers ────────────────────────────────────────────────────────

def _to_world(end: str, origin: np.ndarray, normal: np.ndarray, offset: float,
              mode: ExtrusionMode) -> CutPlane:
    frame = canonical_frame(mode)
    return CutPlane(
        end=end,
        origin=transform_point(frame, origin),
        normal=transform_direction(frame, normal),
        offset=offset,
    )
