"""
Extrusion of normalized regions into solids.

Each region is swept along local +Z by ``length + overcut`` with
``trimesh.creation.extrude_polygon`` and then mapped into world space by the
region's frame. The overcut leaves material past the nominal end so that a
cut plane through the end never lands on a coincident face.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import trimesh

from fabrication_errors import FabricationIssue, PartialExtrusionError
from geometry_primitives import Region, Solid

logger = logging.getLogger(__name__)

DEFAULT_OVERCUT = 0.1


@dataclass
class ExtrusionResult:
    solids: List[Solid] = field(default_factory=list)
    issues: List[FabricationIssue] = field(default_factory=list)


def extrude_region(region: Region, sweep_length: float) -> trimesh.Trimesh:
    """Extrude one region into a world-space watertight mesh."""
    mesh = trimesh.creation.extrude_polygon(region.polygon, height=sweep_length)
    if mesh.is_empty or not mesh.is_watertight:
        raise ValueError("extrusion did not produce a closed solid")
    mesh.apply_transform(region.frame)
    return mesh


def extrude_regions(
    regions: Sequence[Region],
    length: float,
    overcut: float = DEFAULT_OVERCUT,
    name_prefix: str = "solid",
) -> ExtrusionResult:
    """Extrude every region; failed regions are skipped and reported.

    Raises:
        ValueError: If ``length`` is not positive.
        PartialExtrusionError: If no region could be extruded.
    """
    if length <= 0:
        raise ValueError(f"Extrusion length must be positive, got {length}")

    sweep = length + overcut
    result = ExtrusionResult()
    last_error: Optional[Exception] = None

    for i, region in enumerate(regions):
        name = f"{name_prefix}_{i}"
        logger.debug("Extruding region %s (area=%.4f) to %.4f", name, region.area, sweep)
        try:
            mesh = extrude_region(region, sweep)
        except Exception as exc:
            last_error = exc
            logger.warning("Failed to extrude region %s: %s", name, exc)
            result.issues.append(FabricationIssue(
                code="partial_extrusion",
                severity="warning",
                message=f"Region {i} failed to extrude: {exc}",
                item=name,
            ))
            continue
        result.solids.append(Solid(mesh=mesh, name=name, anchor=region.world_anchor()))

    if not result.solids:
        raise PartialExtrusionError(
            f"Failed to create any solids from {len(regions)} region(s)"
        ) from last_error

    logger.info("Extruded %d of %d region(s)", len(result.solids), len(regions))
    return result
