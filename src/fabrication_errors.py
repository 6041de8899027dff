"""
Error taxonomy for the fabrication engine.

Fatal problems are exceptions (``FabricationError`` and subclasses). Problems
that only affect one region, solid or annotation are recorded as
``FabricationIssue`` entries on the result; cut failures are additionally
emitted on Python's warnings channel as ``CutFailureWarning``.
"""
from dataclasses import dataclass
from typing import Optional


class FabricationError(Exception):
    """Base exception for a failed fabrication request."""
    pass


class InvalidProfileError(FabricationError):
    """The source profile cannot produce any closed, non-empty region."""
    pass


class PartialExtrusionError(FabricationError):
    """Region extrusion failed for every region of the profile."""
    pass


class AnnotationError(FabricationError):
    """An angular annotation could not be built. Never leaves the annotator."""
    pass


class CutListError(FabricationError):
    """A cut list file is malformed."""
    pass


class CutFailureWarning(UserWarning):
    """A single solid could not be sliced at one end and kept its geometry."""
    pass


@dataclass
class FabricationIssue:
    """A non-fatal problem recorded while fabricating a part."""

    code: str       # "partial_extrusion", "cut_failure", "annotation", ...
    severity: str   # "error" or "warning"
    message: str
    item: Optional[str] = None  # region / solid / end the issue refers to
