"""
Placement of finished solids and hand-off to a sink.

The final transform is the only step that moves solids into their place in
an assembly. Committing them is delegated to a ``SolidSink`` so the engine
never needs to know where parts end up (memory, mesh files, a CAD host).
"""
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from geometry_primitives import Solid
from run_protocol import write_json
from transforms import is_identity, is_rigid_or_mirror

logger = logging.getLogger(__name__)


class MeshFormat(Enum):
    """Mesh file formats written by ``MeshFileSink``."""
    STL = "stl"
    PLY = "ply"
    OBJ = "obj"
    GLB = "glb"


def apply_final_transform(solids: Sequence[Solid], matrix: Optional[np.ndarray]) -> List[Solid]:
    """Move ``solids`` (and their anchors) by ``matrix``.

    Raises:
        ValueError: If ``matrix`` scales or shears.
    """
    if matrix is None or is_identity(matrix):
        return list(solids)
    if not is_rigid_or_mirror(matrix):
        raise ValueError("Final transform must be rigid or a mirror (orthonormal rotation block)")
    logger.debug("Applying final transform to %d solid(s)", len(solids))
    return [s.transformed(matrix) for s in solids]


@dataclass
class CommittedPart:
    """What a sink received for one part."""
    part_name: str
    solids: List[Solid]
    metadata: Dict[str, Any] = field(default_factory=dict)
    paths: List[str] = field(default_factory=list)


class SolidSink(ABC):
    """Destination for finished parts."""

    @abstractmethod
    def commit(self, part_name: str, solids: Sequence[Solid],
               metadata: Optional[Dict[str, Any]] = None) -> CommittedPart:
        """Store the solids of one part.

        Args:
            part_name: Identifier of the part (mark or part number).
            solids: Finished, placed solids.
            metadata: JSON-serializable part data (Width, Height, anchor...).
        """
        ...


class MemorySink(SolidSink):
    """Keeps committed parts in memory, in commit order."""

    def __init__(self):
        self.parts: List[CommittedPart] = []

    def commit(self, part_name, solids, metadata=None):
        part = CommittedPart(part_name=part_name, solids=list(solids), metadata=dict(metadata or {}))
        self.parts.append(part)
        logger.debug("Committed %s (%d solids) to memory", part_name, len(part.solids))
        return part

    def get(self, part_name: str) -> Optional[CommittedPart]:
        """Most recent commit for ``part_name``."""
        for part in reversed(self.parts):
            if part.part_name == part_name:
                return part
        return None

    def __len__(self) -> int:
        return len(self.parts)


class MeshFileSink(SolidSink):
    """Exports each solid as a mesh file plus one JSON sidecar per part.

    Files: ``<output_dir>/<part>_<solid>.<ext>`` and ``<output_dir>/<part>.json``.
    """

    def __init__(self, output_dir: str, file_format: MeshFormat = MeshFormat.STL):
        self.output_dir = output_dir
        self.file_format = file_format
        self.paths: List[str] = []   # every file exported so far

    def commit(self, part_name, solids, metadata=None):
        os.makedirs(self.output_dir, exist_ok=True)
        ext = self.file_format.value
        paths = []
        for solid in solids:
            filepath = os.path.join(self.output_dir, f"{part_name}_{solid.name}.{ext}")
            solid.mesh.export(filepath, file_type=ext)
            paths.append(filepath)
        self.paths.extend(paths)

        sidecar = {
            "part_name": part_name,
            "format": ext,
            "files": [os.path.basename(p) for p in paths],
            "solids": [_solid_summary(s) for s in solids],
            **_jsonable(dict(metadata or {})),
        }
        write_json(Path(self.output_dir) / f"{part_name}.json", sidecar)
        logger.info("Exported %d mesh file(s) for %s to %s", len(paths), part_name, self.output_dir)
        return CommittedPart(part_name=part_name, solids=list(solids),
                             metadata=dict(metadata or {}), paths=paths)


# ─── Internal helpers ────────────────────────────────────────────────────────

def _solid_summary(solid: Solid) -> Dict[str, Any]:
    return {
        "name": solid.name,
        "volume": solid.volume,
        "bounds": solid.bounds.tolist(),
        "anchor": None if solid.anchor is None else np.asarray(solid.anchor).tolist(),
    }


def _jsonable(value):
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, Enum):
        return value.value
    return value
