"""
Fabricated part creation: profile + length + end cuts -> placed solids.

Stages, each returning fresh values:
  1. load the profile (cached by the loader)
  2. resolve regions (holes subtracted)
  3. normalize orientation (handed mirror, move to origin, re-orient)
  4. extrude every region by length + overcut
  5. cut both ends (miter/tilt), trimming the overcut on a square end
  6. annotate the cuts (optional)
  7. apply the final transform and commit to the sink (optional)
"""
import logging
import os
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from annotations import AngularAnnotation, annotate_cuts
from end_cuts import CutPlane, apply_end_cuts
from extruder import DEFAULT_OVERCUT, extrude_regions
from fabrication_errors import FabricationIssue
from geometry_primitives import CutSpec, ExtrusionMode, Solid
from orientation import normalize_orientation
from placement import SolidSink, apply_final_transform
from profile_loader import ProfileDefinition, ProfileLoader
from region_resolver import DEFAULT_CHAIN_TOLERANCE, resolve_regions
from transforms import transform_direction, transform_point

logger = logging.getLogger(__name__)


@dataclass
class FabricationConfig:
    """Settings shared by every part a session fabricates."""
    overcut: float = DEFAULT_OVERCUT
    trim_overcut: bool = True              # square trim at length on a square right end
    center_vertically: bool = True         # standard orientation only
    chain_tolerance: float = DEFAULT_CHAIN_TOLERANCE
    solid_name_prefix: str = "solid"


@dataclass
class FabricationResult:
    """Solids of one fabricated part plus what was learned making them."""
    solids: List[Solid]
    width: float
    height: float
    mode: ExtrusionMode
    part_name: str = "part"
    length: float = 0.0
    annotations: List[AngularAnnotation] = field(default_factory=list)
    issues: List[FabricationIssue] = field(default_factory=list)
    anchor: Optional[np.ndarray] = None
    cut_planes: List[CutPlane] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "warning" if self.issues else "ok"

    @property
    def volume(self) -> float:
        return sum(s.volume for s in self.solids)

    def to_metadata(self) -> Dict[str, Any]:
        """Part data handed to sinks and written to run folders."""
        return {
            "Width": self.width,
            "Height": self.height,
            "length": self.length,
            "mode": self.mode.value,
            "solid_count": len(self.solids),
            "volume": self.volume,
            "anchor": None if self.anchor is None else np.asarray(self.anchor).tolist(),
            "annotations": [a.label for a in self.annotations],
            "issues": [asdict(i) for i in self.issues],
        }


def create_fabricated_part(
    profile_source,
    length: float,
    left_cut: CutSpec = CutSpec(),
    right_cut: CutSpec = CutSpec(),
    handed: bool = False,
    handed_side: str = "",
    final_transform: Optional[np.ndarray] = None,
    preserve_orientation: bool = False,
    add_annotations: bool = False,
    *,
    block_name: Optional[str] = None,
    loader: Optional[ProfileLoader] = None,
    sink: Optional[SolidSink] = None,
    config: Optional[FabricationConfig] = None,
    part_name: Optional[str] = None,
) -> FabricationResult:
    """Build the solids of one cut length of extruded stock.

    Args:
        profile_source: DXF path, part number resolvable by ``loader``, or a
            ``ProfileDefinition``.
        length: Nominal part length (> 0).
        left_cut: Miter/tilt at the start of the extrusion.
        right_cut: Miter/tilt at the far end.
        handed: Part comes in left/right variants.
        handed_side: "L" keeps the drawing as-is; any other side mirrors it.
        final_transform: 4x4 rigid or mirroring placement.
        preserve_orientation: Keep the drawing plane and extrude along Z.
        add_annotations: Create angular annotations for the cuts.

    Returns:
        FabricationResult with the placed solids.

    Raises:
        ValueError: If ``length`` is not positive or the transform is not rigid.
        InvalidProfileError: If the profile yields no closed region.
        PartialExtrusionError: If no region could be extruded.
    """
    if config is None:
        config = FabricationConfig()
    if loader is None:
        loader = ProfileLoader()
    if not length > 0:
        raise ValueError(f"Part length must be positive, got {length}")

    profile = loader.load(profile_source, block_name=block_name)
    if part_name is None:
        part_name = _default_part_name(profile)
    logger.info("Fabricating %s from %s, length=%s", part_name, profile.source, length)

    regions = resolve_regions(profile, chain_tolerance=config.chain_tolerance)
    normalized = normalize_orientation(
        regions,
        handed=handed,
        handed_side=handed_side,
        preserve_orientation=preserve_orientation,
        center_vertically=config.center_vertically,
    )

    extrusion = extrude_regions(
        normalized.regions,
        length,
        overcut=config.overcut,
        name_prefix=config.solid_name_prefix,
    )
    issues = list(extrusion.issues)

    cuts = apply_end_cuts(
        extrusion.solids,
        left_cut,
        right_cut,
        length,
        mode=normalized.mode,
        trim_overcut=config.trim_overcut,
    )
    issues.extend(cuts.issues)

    annotations: List[AngularAnnotation] = []
    if add_annotations and cuts.extents is not None:
        annotated = annotate_cuts(left_cut, right_cut, length, cuts.extents, normalized.mode)
        annotations = annotated.annotations
        issues.extend(annotated.issues)

    solids = apply_final_transform(cuts.solids, final_transform)
    annotations = _place_annotations(annotations, final_transform)

    result = FabricationResult(
        solids=solids,
        width=normalized.width,
        height=normalized.height,
        mode=normalized.mode,
        part_name=part_name,
        length=float(length),
        annotations=annotations,
        issues=issues,
        anchor=next((s.anchor for s in solids if s.anchor is not None), None),
        cut_planes=cuts.planes,
    )

    if sink is not None:
        sink.commit(part_name, solids, result.to_metadata())

    logger.info(
        "Fabricated %s: %d solid(s), width=%.4f height=%.4f, %d issue(s)",
        part_name, len(solids), result.width, result.height, len(issues),
    )
    return result


class Fabricator:
    """A fabrication session: one loader cache, one sink, one config."""

    def __init__(
        self,
        loader: Optional[ProfileLoader] = None,
        sink: Optional[SolidSink] = None,
        config: Optional[FabricationConfig] = None,
    ):
        self.loader = loader if loader is not None else ProfileLoader()
        self.sink = sink
        self.config = config if config is not None else FabricationConfig()

    def fabricate(self, profile_source, length: float, **kwargs) -> FabricationResult:
        """``create_fabricated_part`` with this session's loader, sink and config."""
        return create_fabricated_part(
            profile_source,
            length,
            loader=self.loader,
            sink=self.sink,
            config=self.config,
            **kwargs,
        )


# ─── Internal helpers ────────────────────────────────────────────────────────

def _default_part_name(profile: ProfileDefinition) -> str:
    source = profile.source.split("#", 1)[0]
    if source.startswith("<"):
        return "part"
    stem = Path(os.path.basename(source)).stem
    return stem or "part"


def _place_annotations(annotations: List[AngularAnnotation],
                       matrix: Optional[np.ndarray]) -> List[AngularAnnotation]:
    if matrix is None or not annotations:
        return annotations
    return [
        replace(
            a,
            vertex=transform_point(matrix, a.vertex),
            axis_point=transform_point(matrix, a.axis_point),
            cut_point=transform_point(matrix, a.cut_point),
            plane_x=transform_direction(matrix, a.plane_x),
            plane_y=transform_direction(matrix, a.plane_y),
        )
        for a in annotations
    ]
