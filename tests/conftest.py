"""
Shared test fixtures for the fabrication engine tests.
"""
import sys
import warnings
from pathlib import Path

# Suppress trimesh internal RuntimeWarning for degenerate cross-sections
# (divide-by-zero in center_mass when slicing yields zero-volume geometry).
warnings.filterwarnings(
    "ignore",
    message="invalid value encountered in divide",
    category=RuntimeWarning,
    module=r"trimesh\.triangles",
)

import ezdxf
import pytest
from shapely.geometry import Polygon, box

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from profile_loader import ProfileDefinition


def write_profile_dxf(filepath, loops=(), open_paths=(), lines=(), block=None):
    """Write a profile drawing.

    Args:
        loops: Closed LWPOLYLINE point lists.
        open_paths: Open LWPOLYLINE point lists.
        lines: ((x1, y1), (x2, y2)) LINE segments.
        block: Put the geometry into this block instead of modelspace.

    Returns:
        (doc, layout) so callers can add more before saving again.
    """
    doc = ezdxf.new("R2010")
    layout = doc.blocks.new(name=block) if block else doc.modelspace()
    for points in loops:
        layout.add_lwpolyline(points, close=True)
    for points in open_paths:
        layout.add_lwpolyline(points, close=False)
    for start, end in lines:
        layout.add_line(start, end)
    doc.saveas(str(filepath))
    return doc, layout


@pytest.fixture
def square_polygon():
    """2x2 square at the origin."""
    return box(0.0, 0.0, 2.0, 2.0)


@pytest.fixture
def tube_polygon():
    """4x3 rectangular tube with 1-unit walls (area 12 - 2 = 10)."""
    return Polygon(
        [(0, 0), (4, 0), (4, 3), (0, 3)],
        holes=[[(1, 1), (3, 1), (3, 2), (1, 2)]],
    )


@pytest.fixture
def square_profile(square_polygon):
    return ProfileDefinition.from_polygons([square_polygon], source="square.dxf")


@pytest.fixture
def two_bar_profile():
    """Two separate 2x2 bars side by side (two regions)."""
    return ProfileDefinition.from_polygons(
        [box(0.0, 0.0, 2.0, 2.0), box(3.0, 0.0, 5.0, 2.0)],
        source="two_bars.dxf",
    )


@pytest.fixture
def l_profile():
    """Asymmetric L section, 3 wide and 2 tall."""
    return ProfileDefinition.from_polygons(
        [Polygon([(0, 0), (3, 0), (3, 0.5), (0.5, 0.5), (0.5, 2), (0, 2)])],
        source="angle.dxf",
    )


@pytest.fixture
def square_dxf(tmp_path):
    """2x2 closed polyline profile."""
    path = tmp_path / "square.dxf"
    write_profile_dxf(path, loops=[[(0, 0), (2, 0), (2, 2), (0, 2)]])
    return str(path)


@pytest.fixture
def tube_dxf(tmp_path):
    """4x3 tube drawn as two closed polylines."""
    path = tmp_path / "tube.dxf"
    write_profile_dxf(path, loops=[
        [(0, 0), (4, 0), (4, 3), (0, 3)],
        [(1, 1), (3, 1), (3, 2), (1, 2)],
    ])
    return str(path)


@pytest.fixture
def lines_dxf(tmp_path):
    """2x2 square drawn as four loose lines, out of order."""
    path = tmp_path / "lines.dxf"
    write_profile_dxf(path, lines=[
        ((0, 0), (2, 0)),
        ((0, 2), (0, 0)),
        ((2, 0), (2, 2)),
        ((2, 2), (0, 2)),
    ])
    return str(path)


@pytest.fixture
def open_dxf(tmp_path):
    """A U shape that never closes."""
    path = tmp_path / "open.dxf"
    write_profile_dxf(path, open_paths=[[(0, 0), (2, 0), (2, 2), (0, 2)]])
    return str(path)
