"""
Orientation normalization of resolved regions.

Puts the profile into a canonical placement before extrusion:
  1. mirror for handed parts (x -> -x in the profile plane)
  2. move the union bounding box to the origin (optionally centered
     vertically)
  3. re-orient for the extrusion mode

In standard mode (``ExtrusionMode.ALONG_X``) the profile's width ends up on
world Y ("depth"), its height on world Z, and the part is swept along +X.
When the original orientation is preserved the profile stays in XY and is
swept along +Z.
"""
import logging
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from fabrication_errors import InvalidProfileError
from geometry_primitives import ExtrusionMode, Region, union_bounds_2d
from transforms import compose, rotation

logger = logging.getLogger(__name__)

# profile (x, y, z) -> world (z, x, y)
STANDARD_FRAME = compose(
    rotation(90.0, [0.0, 1.0, 0.0]),
    rotation(90.0, [1.0, 0.0, 0.0]),
)

# canonical (axis, depth, height) -> world, per extrusion mode
_CANONICAL_FRAMES = {
    ExtrusionMode.ALONG_X: np.eye(4),
    ExtrusionMode.ALONG_Z: np.array([
        [0.0, 1.0, 0.0, 0.0],
        [0.0, 0.0, 1.0, 0.0],
        [1.0, 0.0, 0.0, 0.0],
        [0.0, 0.0, 0.0, 1.0],
    ]),
}


@dataclass
class NormalizedProfile:
    """Regions in extrusion placement plus the profile's recorded size."""
    regions: List[Region]
    width: float
    height: float
    mode: ExtrusionMode
    mirrored: bool = False


def canonical_frame(mode: ExtrusionMode) -> np.ndarray:
    """Matrix taking canonical (axis, depth, height) coordinates to world."""
    return _CANONICAL_FRAMES[mode].copy()


def needs_handed_mirror(handed: bool, handed_side: str) -> bool:
    """Handed parts are mirrored for every side except "L"."""
    return bool(handed and handed_side and handed_side.upper() != "L")


def normalize_orientation(
    regions: Sequence[Region],
    handed: bool = False,
    handed_side: str = "",
    preserve_orientation: bool = False,
    center_vertically: bool = True,
) -> NormalizedProfile:
    """Place ``regions`` for extrusion. Returns new regions.

    Raises:
        InvalidProfileError: If the regions have no area.
    """
    total_area = sum(r.area for r in regions)
    if not regions or total_area <= 0.0:
        raise InvalidProfileError("Cannot orient a profile with zero area")

    min_x, min_y, max_x, max_y = union_bounds_2d(regions)
    width = max_x - min_x
    height = max_y - min_y

    work = list(regions)
    mirrored = needs_handed_mirror(handed, handed_side)
    if mirrored:
        work = [r.mirrored() for r in work]
        min_x, min_y, max_x, max_y = union_bounds_2d(work)
        logger.debug("Mirrored profile for handed side %r", handed_side)

    dx = -min_x
    dy = -min_y
    if not preserve_orientation and center_vertically:
        dy = -(min_y + max_y) / 2.0
    work = [r.translated(dx, dy) for r in work]

    if preserve_orientation:
        mode = ExtrusionMode.ALONG_Z
        frame = np.eye(4)
    else:
        mode = ExtrusionMode.ALONG_X
        frame = STANDARD_FRAME
    work = [r.with_frame(frame) for r in work]

    logger.info(
        "Normalized %d region(s): width=%.4f height=%.4f mode=%s",
        len(work), width, height, mode.value,
    )
    return NormalizedProfile(
        regions=work, width=width, height=height, mode=mode, mirrored=mirrored,
    )
