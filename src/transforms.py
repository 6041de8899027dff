"""
4x4 transform helpers for placing fabricated parts.

All matrices are homogeneous numpy arrays that act on column vectors, the
same convention as ``trimesh.transformations``. ``compose`` takes the
transforms in the order they are applied.
"""
import math
from typing import Sequence

import numpy as np
import trimesh

Vector = Sequence[float]


def identity() -> np.ndarray:
    return np.eye(4)


def translation(offset: Vector) -> np.ndarray:
    """Displacement by ``offset`` (x, y, z)."""
    return trimesh.transformations.translation_matrix(np.asarray(offset, dtype=float))


def rotation(angle_deg: float, axis: Vector, point: Vector = (0.0, 0.0, 0.0)) -> np.ndarray:
    """Rotation of ``angle_deg`` about ``axis`` through ``point``."""
    return trimesh.transformations.rotation_matrix(
        math.radians(angle_deg),
        np.asarray(axis, dtype=float),
        point=np.asarray(point, dtype=float),
    )


def mirroring(point: Vector, normal: Vector) -> np.ndarray:
    """Reflection across the plane through ``point`` with ``normal``."""
    return trimesh.transformations.reflection_matrix(
        np.asarray(point, dtype=float),
        np.asarray(normal, dtype=float),
    )


def compose(*matrices: np.ndarray) -> np.ndarray:
    """Combine transforms; the first argument is applied first."""
    result = np.eye(4)
    for matrix in matrices:
        result = np.asarray(matrix, dtype=float) @ result
    return result


def transform_point(matrix: np.ndarray, point: Vector) -> np.ndarray:
    p = np.append(np.asarray(point, dtype=float), 1.0)
    return (np.asarray(matrix, dtype=float) @ p)[:3]


def transform_direction(matrix: np.ndarray, direction: Vector) -> np.ndarray:
    return np.asarray(matrix, dtype=float)[:3, :3] @ np.asarray(direction, dtype=float)


def is_identity(matrix: np.ndarray, tol: float = 1e-12) -> bool:
    return bool(np.allclose(np.asarray(matrix, dtype=float), np.eye(4), atol=tol))


def is_rigid_or_mirror(matrix: np.ndarray, tol: float = 1e-6) -> bool:
    """True for rotations, translations and reflections (no scale or shear)."""
    m = np.asarray(matrix, dtype=float)
    if m.shape != (4, 4):
        return False
    if not np.allclose(m[3], [0.0, 0.0, 0.0, 1.0], atol=tol):
        return False
    r = m[:3, :3]
    return bool(np.allclose(r.T @ r, np.eye(3), atol=tol))
