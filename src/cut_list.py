"""
Cut lists: batch fabrication of part requests from a JSON file.

A cut list is either a list of part entries or an object::

    {
      "name": "elevation-a",
      "search_paths": ["profiles"],
      "parts": [
        {
          "part_name": "M1",
          "profile": "451T-001",
          "length": 60.0,
          "left_cut": {"miter": 45, "tilt": 90},
          "right_cut": {"miter": 90, "tilt": 90},
          "handed": true,
          "handed_side": "R",
          "insertion_point": [0, 0, 0],
          "rotation_deg": 90,
          "rotation_axis": [0, 0, 1]
        }
      ]
    }

Relative search paths are taken from the cut list's folder, which is itself
searched too. Requests run in order; a failing request is reported and the
rest still run.
"""
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import numpy as np

from fabrication import FabricationResult, Fabricator
from fabrication_errors import CutListError, FabricationError
from geometry_primitives import CutSpec
from profile_loader import ProfileLoader, ProfileLoaderConfig
from transforms import compose, rotation, translation

logger = logging.getLogger(__name__)


@dataclass
class PartRequest:
    """One line of a cut list."""
    part_name: str
    profile: str
    length: float
    left_cut: CutSpec = field(default_factory=CutSpec)
    right_cut: CutSpec = field(default_factory=CutSpec)
    handed: bool = False
    handed_side: str = ""
    preserve_orientation: bool = False
    block_name: Optional[str] = None
    insertion_point: Sequence[float] = (0.0, 0.0, 0.0)
    rotation_deg: float = 0.0
    rotation_axis: Sequence[float] = (0.0, 0.0, 1.0)
    add_annotations: bool = False

    def placement_matrix(self) -> Optional[np.ndarray]:
        """Rotation about the origin, then displacement to the insertion point."""
        if self.rotation_deg == 0.0 and not any(self.insertion_point):
            return None
        return compose(
            rotation(self.rotation_deg, self.rotation_axis),
            translation(self.insertion_point),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any], index: int = 0) -> "PartRequest":
        """Parse one entry.

        Raises:
            CutListError: If required keys are missing or values are invalid.
        """
        if not isinstance(data, dict):
            raise CutListError(f"Cut list entry {index} is not an object")
        try:
            profile = str(data["profile"])
            length = float(data["length"])
            request = cls(
                part_name=str(data.get("part_name") or f"part_{index + 1}"),
                profile=profile,
                length=length,
                left_cut=_parse_cut(data.get("left_cut")),
                right_cut=_parse_cut(data.get("right_cut")),
                handed=bool(data.get("handed", False)),
                handed_side=str(data.get("handed_side") or ""),
                preserve_orientation=bool(data.get("preserve_orientation", False)),
                block_name=data.get("block"),
                insertion_point=tuple(float(v) for v in data.get("insertion_point", (0, 0, 0))),
                rotation_deg=float(data.get("rotation_deg", 0.0)),
                rotation_axis=tuple(float(v) for v in data.get("rotation_axis", (0, 0, 1))),
                add_annotations=bool(data.get("annotate", False)),
            )
        except KeyError as exc:
            raise CutListError(f"Cut list entry {index} is missing {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise CutListError(f"Cut list entry {index} is invalid: {exc}") from exc
        if len(request.insertion_point) != 3 or len(request.rotation_axis) != 3:
            raise CutListError(f"Cut list entry {index}: points must have three coordinates")
        return request


@dataclass
class CutList:
    name: str
    requests: List[PartRequest]
    search_paths: List[str] = field(default_factory=list)


@dataclass
class CutListEntry:
    """Outcome of one request."""
    request: PartRequest
    result: Optional[FabricationResult] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result is not None


@dataclass
class CutListReport:
    name: str
    entries: List[CutListEntry] = field(default_factory=list)

    @property
    def succeeded(self) -> List[CutListEntry]:
        return [e for e in self.entries if e.ok]

    @property
    def failed(self) -> List[CutListEntry]:
        return [e for e in self.entries if not e.ok]


def parse_cut_list(data: Union[Dict[str, Any], List[Any]], base_dir: Optional[str] = None,
                   name: str = "cut-list") -> CutList:
    """Build a ``CutList`` from decoded JSON."""
    if isinstance(data, list):
        data = {"parts": data}
    if not isinstance(data, dict) or not isinstance(data.get("parts"), list):
        raise CutListError("Cut list must be a list of parts or an object with a 'parts' list")

    search_paths = []
    if base_dir:
        search_paths.append(base_dir)
    for directory in data.get("search_paths", []):
        if base_dir and not os.path.isabs(directory):
            directory = os.path.join(base_dir, directory)
        search_paths.append(directory)

    requests = [PartRequest.from_dict(entry, i) for i, entry in enumerate(data["parts"])]
    return CutList(name=str(data.get("name") or name), requests=requests, search_paths=search_paths)


def load_cut_list(filepath: str) -> CutList:
    """Read a cut list JSON file.

    Raises:
        CutListError: If the file is missing, not JSON, or malformed.
    """
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as exc:
        raise CutListError(f"Cannot read cut list {filepath}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise CutListError(f"Cut list {filepath} is not valid JSON: {exc}") from exc

    base_dir = os.path.dirname(os.path.abspath(filepath))
    stem = os.path.splitext(os.path.basename(filepath))[0]
    cut_list = parse_cut_list(data, base_dir=base_dir, name=stem)
    logger.info("Loaded cut list %s: %d part(s)", filepath, len(cut_list.requests))
    return cut_list


def run_cut_list(
    cut_list: Union[str, CutList],
    fabricator: Optional[Fabricator] = None,
    on_result: Optional[Callable[[CutListEntry], None]] = None,
) -> CutListReport:
    """Fabricate every request of a cut list in order.

    Args:
        cut_list: A ``CutList`` or the path of a cut list file.
        fabricator: Session to use; by default one whose loader searches
            the cut list's search paths.
        on_result: Called with each entry as soon as it is done.
    """
    if isinstance(cut_list, (str, os.PathLike)):
        cut_list = load_cut_list(os.fspath(cut_list))
    if fabricator is None:
        loader = ProfileLoader(ProfileLoaderConfig(search_paths=list(cut_list.search_paths)))
        fabricator = Fabricator(loader=loader)

    report = CutListReport(name=cut_list.name)
    for request in cut_list.requests:
        entry = CutListEntry(request=request)
        try:
            entry.result = fabricator.fabricate(
                request.profile,
                request.length,
                left_cut=request.left_cut,
                right_cut=request.right_cut,
                handed=request.handed,
                handed_side=request.handed_side,
                final_transform=request.placement_matrix(),
                preserve_orientation=request.preserve_orientation,
                add_annotations=request.add_annotations,
                block_name=request.block_name,
                part_name=request.part_name,
            )
        except (FabricationError, ValueError, OSError) as exc:
            entry.error = f"{type(exc).__name__}: {exc}"
            logger.error("Part %s failed: %s", request.part_name, entry.error)
        report.entries.append(entry)
        if on_result is not None:
            on_result(entry)

    logger.info(
        "Cut list %s: %d succeeded, %d failed",
        report.name, len(report.succeeded), len(report.failed),
    )
    return report


# ─── Internal helpers ────────────────────────────────────────────────────────

def _parse_cut(data: Optional[Dict[str, Any]]) -> CutSpec:
    if data is None:
        return CutSpec()
    if isinstance(data, (list, tuple)):
        miter, tilt = data
        return CutSpec(miter=float(miter), tilt=float(tilt))
    return CutSpec(
        miter=float(data.get("miter", 90.0)),
        tilt=float(data.get("tilt", 90.0)),
    )
