"""
Angular annotations for end cuts.

Every non-square end gets a miter annotation (in the axis/depth plane) and a
tilt annotation (in the axis/height plane), both with their vertex at the
end's cut origin. One ray runs along the stock into the part, the other
along the trace of the cut, so the angle between them is the requested
angle.

Annotating is never fatal: a failure is logged and recorded as an issue.

Annotations can be written to DXF as ezdxf angular dimensions:
  - ANNOTATIONS (green, ACI 3): one dimension per annotation
"""
import logging
import math
import os
from dataclasses import dataclass, field
from typing import List, Optional

import ezdxf
import numpy as np
from ezdxf.math import UCS

from end_cuts import LEFT, RIGHT, StockExtents, end_offset
from fabrication_errors import AnnotationError, FabricationIssue
from geometry_primitives import CutSpec, ExtrusionMode
from orientation import canonical_frame
from transforms import transform_direction, transform_point

logger = logging.getLogger(__name__)

MITER = "miter"
TILT = "tilt"


@dataclass
class AngularAnnotation:
    """An angle between two rays from a common vertex, in world space.

    ``plane_x`` and ``plane_y`` span the plane the angle is measured in.
    """
    end: str
    kind: str
    angle_deg: float
    vertex: np.ndarray
    axis_point: np.ndarray   # end of the ray along the stock
    cut_point: np.ndarray    # end of the ray along the cut trace
    plane_x: np.ndarray
    plane_y: np.ndarray

    @property
    def label(self) -> str:
        return f"{self.end} {self.kind} {self.angle_deg:g}°"


@dataclass
class AnnotationResult:
    annotations: List[AngularAnnotation] = field(default_factory=list)
    issues: List[FabricationIssue] = field(default_factory=list)


@dataclass
class AnnotationExportConfig:
    """Configuration for annotation DXF export."""
    layer: str = "ANNOTATIONS"
    color: int = 3              # ACI green
    dimstyle: str = "EZ_CURVED"
    text_height: float = 0.25
    arc_ratio: float = 0.6      # dimension arc radius / ray length


def annotate_cuts(
    left: CutSpec,
    right: CutSpec,
    length: float,
    extents: StockExtents,
    mode: ExtrusionMode = ExtrusionMode.ALONG_X,
) -> AnnotationResult:
    """Build angular annotations for every non-square end."""
    result = AnnotationResult()
    for end, cut in ((LEFT, left), (RIGHT, right)):
        if cut.is_square:
            continue
        try:
            result.annotations.extend(annotate_end(end, cut, length, extents, mode))
        except AnnotationError as exc:
            logger.warning("Skipping %s cut annotation: %s", end, exc)
            result.issues.append(FabricationIssue(
                code="annotation",
                severity="warning",
                message=str(exc),
                item=end,
            ))
    logger.info("Created %d cut annotation(s)", len(result.annotations))
    return result


def annotate_end(
    end: str,
    cut: CutSpec,
    length: float,
    extents: StockExtents,
    mode: ExtrusionMode = ExtrusionMode.ALONG_X,
) -> List[AngularAnnotation]:
    """Miter and tilt annotations for one end.

    Raises:
        AnnotationError: If the stock has no depth or height to annotate.
    """
    ray = max(extents.depth, extents.height)
    if not ray > 0.0 or not math.isfinite(ray):
        raise AnnotationError(f"Cannot annotate {end} cut on stock without cross-section")

    try:
        offset = max(end_offset(extents.depth, cut.miter), end_offset(extents.height, cut.tilt))
        sign = 1.0 if end == LEFT else -1.0
        x = offset if end == LEFT else length - offset
        vertex = np.array([x, extents.min_depth, extents.min_height])

        m = math.radians(cut.miter)
        t = math.radians(cut.tilt)
        axis_dir = np.array([sign, 0.0, 0.0])
        miter_dir = np.array([sign * math.cos(m), math.sin(m), 0.0])
        tilt_dir = np.array([sign * math.cos(t), 0.0, math.sin(t)])
    except (ValueError, ArithmeticError) as exc:
        raise AnnotationError(f"Cannot compute {end} cut annotation: {exc}") from exc

    frame = canonical_frame(mode)
    world_vertex = transform_point(frame, vertex)
    world_axis = transform_point(frame, vertex + axis_dir * ray)
    ux = transform_direction(frame, [1.0, 0.0, 0.0])

    return [
        AngularAnnotation(
            end=end,
            kind=MITER,
            angle_deg=float(cut.miter),
            vertex=world_vertex,
            axis_point=world_axis,
            cut_point=transform_point(frame, vertex + miter_dir * ray),
            plane_x=ux,
            plane_y=transform_direction(frame, [0.0, 1.0, 0.0]),
        ),
        AngularAnnotation(
            end=end,
            kind=TILT,
            angle_deg=float(cut.tilt),
            vertex=world_vertex.copy(),
            axis_point=world_axis.copy(),
            cut_point=transform_point(frame, vertex + tilt_dir * ray),
            plane_x=ux.copy(),
            plane_y=transform_direction(frame, [0.0, 0.0, 1.0]),
        ),
    ]


def annotations_to_dxf(
    annotations: List[AngularAnnotation],
    filepath: str,
    config: Optional[AnnotationExportConfig] = None,
) -> str:
    """Write annotations as angular dimensions to a DXF file.

    Returns:
        Path to created DXF file.

    Raises:
        AnnotationError: If a dimension cannot be built or the file written.
    """
    if config is None:
        config = AnnotationExportConfig()

    doc = ezdxf.new("R2010", setup=True)
    doc.units = ezdxf.units.MM
    msp = doc.modelspace()

    if config.layer not in doc.layers:
        doc.layers.add(config.layer, color=config.color)

    try:
        for annotation in annotations:
            _add_angular_dimension(msp, annotation, config)
        os.makedirs(os.path.dirname(filepath) or ".", exist_ok=True)
        doc.saveas(filepath)
    except (ezdxf.DXFError, OSError, ValueError, ArithmeticError) as exc:
        raise AnnotationError(f"Cannot write annotation DXF {filepath}: {exc}") from exc
    logger.info("Exported annotation DXF: %s (%d dimensions)", filepath, len(annotations))
    return filepath


# ─── Internal helpers ────────────────────────────────────────────────────────

def _add_angular_dimension(msp, annotation: AngularAnnotation, config: AnnotationExportConfig):
    """Draw one annotation in its own plane via a UCS."""
    ucs = UCS(
        origin=tuple(map(float, annotation.vertex)),
        ux=tuple(map(float, annotation.plane_x)),
        uy=tuple(map(float, annotation.plane_y)),
    )

    p1 = _to_plane(annotation, annotation.axis_point)
    p2 = _to_plane(annotation, annotation.cut_point)
    if p1[0] * p2[1] - p1[1] * p2[0] < 0.0:
        # angular dimensions measure counter-clockwise from p1 to p2
        p1, p2 = p2, p1
    bisector = p1 / np.linalg.norm(p1) + p2 / np.linalg.norm(p2)
    if np.linalg.norm(bisector) < 1e-9:
        bisector = np.array([-p1[1], p1[0]])
    radius = config.arc_ratio * min(np.linalg.norm(p1), np.linalg.norm(p2))
    base = bisector / np.linalg.norm(bisector) * radius

    dim = msp.add_angular_dim_3p(
        base=(base[0], base[1]),
        center=(0.0, 0.0),
        p1=(p1[0], p1[1]),
        p2=(p2[0], p2[1]),
        dimstyle=config.dimstyle,
        override={"dimtxt": config.text_height},
        dxfattribs={"layer": config.layer},
    )
    dim.render(ucs=ucs)


def _to_plane(annotation: AngularAnnotation, point: np.ndarray) -> np.ndarray:
    d = np.asarray(point, dtype=float) - annotation.vertex
    return np.array([float(d @ annotation.plane_x), float(d @ annotation.plane_y)])
