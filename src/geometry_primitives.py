"""
Core geometry types for the fabrication engine.

Regions are Shapely polygons living in the profile plane, with a 4x4
``frame`` that maps the plane into world space once the part has been
oriented for extrusion. Solids are watertight trimesh meshes. Both carry an
optional anchor ("work point") that follows every transform applied to them.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, Optional, Tuple

import numpy as np
import trimesh
from shapely import affinity
from shapely.geometry import Polygon
from shapely.geometry.polygon import orient

from transforms import transform_point

SQUARE_ANGLE = 90.0


class ExtrusionMode(Enum):
    """Direction the profile is swept in."""
    ALONG_X = "x"   # standard orientation, profile face in the YZ plane
    ALONG_Z = "z"   # original orientation preserved, profile face in XY

    @property
    def axis(self) -> np.ndarray:
        if self is ExtrusionMode.ALONG_X:
            return np.array([1.0, 0.0, 0.0])
        return np.array([0.0, 0.0, 1.0])


@dataclass(frozen=True)
class CutSpec:
    """Miter/tilt pair for one end of a part, in degrees. 90 means square."""
    miter: float = SQUARE_ANGLE
    tilt: float = SQUARE_ANGLE

    def __post_init__(self):
        for label, value in (("miter", self.miter), ("tilt", self.tilt)):
            if not 0.0 < float(value) < 180.0:
                raise ValueError(
                    f"{label} angle must be between 0 and 180 degrees, got {value}"
                )

    @property
    def is_square(self) -> bool:
        return self.miter == SQUARE_ANGLE and self.tilt == SQUARE_ANGLE


@dataclass
class Region:
    """A planar area (outer loop plus holes) of a profile.

    ``polygon`` and ``anchor`` are in profile-plane coordinates; ``frame``
    maps them to world space.
    """
    polygon: Polygon
    anchor: Optional[np.ndarray] = None   # (3,) work point
    frame: np.ndarray = field(default_factory=lambda: np.eye(4))

    @property
    def area(self) -> float:
        return float(self.polygon.area)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(min_x, min_y, max_x, max_y) in the profile plane."""
        return tuple(self.polygon.bounds)

    def translated(self, dx: float, dy: float) -> "Region":
        anchor = None
        if self.anchor is not None:
            anchor = self.anchor + np.array([dx, dy, 0.0])
        return replace(self, polygon=affinity.translate(self.polygon, dx, dy), anchor=anchor)

    def mirrored(self) -> "Region":
        """Reflect across the plane's vertical axis (x -> -x)."""
        anchor = None
        if self.anchor is not None:
            anchor = self.anchor * np.array([-1.0, 1.0, 1.0])
        polygon = orient(affinity.scale(self.polygon, xfact=-1.0, yfact=1.0, origin=(0.0, 0.0)))
        return replace(self, polygon=polygon, anchor=anchor)

    def with_frame(self, frame: np.ndarray) -> "Region":
        return replace(self, frame=np.asarray(frame, dtype=float))

    def world_anchor(self) -> Optional[np.ndarray]:
        if self.anchor is None:
            return None
        return transform_point(self.frame, self.anchor)


@dataclass
class Solid:
    """An extruded body with its (optional) work point."""
    mesh: trimesh.Trimesh
    name: str = "solid"
    anchor: Optional[np.ndarray] = None   # (3,) world-space work point

    @property
    def bounds(self) -> np.ndarray:
        """[[min_x, min_y, min_z], [max_x, max_y, max_z]]"""
        return self.mesh.bounds

    @property
    def extents(self) -> np.ndarray:
        return self.mesh.extents

    @property
    def volume(self) -> float:
        return float(self.mesh.volume)

    def transformed(self, matrix: np.ndarray) -> "Solid":
        """Return a copy with ``matrix`` applied to the mesh and the anchor."""
        mesh = self.mesh.copy()
        mesh.apply_transform(matrix)
        anchor = None if self.anchor is None else transform_point(matrix, self.anchor)
        return Solid(mesh=mesh, name=self.name, anchor=anchor)


# ─── Extents helpers ────────────────────────────────────────────────────────

def union_bounds_2d(regions: Iterable[Region]) -> Tuple[float, float, float, float]:
    """Union of region extents in the profile plane."""
    boxes = np.array([r.bounds for r in regions], dtype=float)
    if boxes.size == 0:
        return (0.0, 0.0, 0.0, 0.0)
    return (
        float(boxes[:, 0].min()),
        float(boxes[:, 1].min()),
        float(boxes[:, 2].max()),
        float(boxes[:, 3].max()),
    )


def union_bounds_3d(solids: Iterable[Solid]) -> np.ndarray:
    """Union of solid extents as [[min], [max]]."""
    boxes = [s.bounds for s in solids if len(s.mesh.vertices)]
    if not boxes:
        return np.zeros((2, 3))
    stacked = np.array(boxes)
    return np.array([stacked[:, 0].min(axis=0), stacked[:, 1].max(axis=0)])


def bounds_contains(outer: Tuple[float, float, float, float],
                    inner: Tuple[float, float, float, float]) -> bool:
    """True if 2D box ``inner`` lies fully inside box ``outer``."""
    return (
        inner[0] >= outer[0]
        and inner[1] >= outer[1]
        and inner[2] <= outer[2]
        and inner[3] <= outer[3]
    )
