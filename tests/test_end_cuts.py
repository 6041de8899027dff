"""Tests for end_cuts module."""
import math
import warnings

import numpy as np
import pytest
from shapely.geometry import box

import end_cuts
from end_cuts import (
    StockExtents,
    apply_end_cuts,
    cut_normal,
    end_offset,
    left_cut_plane,
    right_cut_plane,
    slice_solid,
)
from extruder import extrude_regions
from fabrication_errors import CutFailureWarning
from geometry_primitives import CutSpec, ExtrusionMode
from orientation import normalize_orientation
from profile_loader import ProfileDefinition
from region_resolver import resolve_regions

LENGTH = 60.0


def _stock(profile, length=LENGTH, **kwargs):
    normalized = normalize_orientation(resolve_regions(profile), **kwargs)
    return extrude_regions(normalized.regions, length).solids, normalized.mode


def _cut(profile, left=CutSpec(), right=CutSpec(), length=LENGTH, trim_overcut=True, **kwargs):
    solids, mode = _stock(profile, length, **kwargs)
    return apply_end_cuts(solids, left, right, length, mode=mode, trim_overcut=trim_overcut)


def _x_range_at_depth(mesh, y, tol=1e-6):
    xs = mesh.vertices[np.abs(mesh.vertices[:, 1] - y) < tol][:, 0]
    return xs.min(), xs.max()


class TestCutGeometry:
    """Normals and offsets."""

    def test_square_normal_is_axis(self):
        np.testing.assert_allclose(cut_normal(90, 90), [1.0, 0.0, 0.0], atol=1e-12)

    def test_miter_normal(self):
        h = math.sqrt(0.5)
        np.testing.assert_allclose(cut_normal(45, 90), [h, -h, 0.0], atol=1e-12)

    def test_tilt_normal(self):
        h = math.sqrt(0.5)
        np.testing.assert_allclose(cut_normal(90, 135), [h, 0.0, h], atol=1e-12)

    @pytest.mark.parametrize("angle,expected", [
        (45.0, 0.0),
        (90.0, 0.0),
        (135.0, 2.0),
        (120.0, 2.0 * math.tan(math.radians(30))),
    ])
    def test_end_offset(self, angle, expected):
        assert end_offset(2.0, angle) == pytest.approx(expected)

    def test_right_end_special_angles(self):
        extents = StockExtents(length=LENGTH, depth=2.0, height=3.0)

        at_45 = right_cut_plane(CutSpec(45, 90), LENGTH, extents)
        at_135 = right_cut_plane(CutSpec(135, 90), LENGTH, extents)

        assert at_45.origin[0] == pytest.approx(LENGTH)
        assert at_135.origin[0] == pytest.approx(LENGTH - 2.0)

    def test_larger_offset_wins(self):
        extents = StockExtents(length=LENGTH, depth=2.0, height=3.0)

        plane = left_cut_plane(CutSpec(135, 135), extents)

        assert plane.offset == pytest.approx(3.0)
        assert plane.origin[0] == pytest.approx(3.0)

    def test_plane_anchored_at_stock_min_corner(self):
        extents = StockExtents(length=LENGTH, depth=2.0, height=2.0, min_depth=0.0, min_height=-1.0)

        plane = left_cut_plane(CutSpec(45, 90), extents)

        np.testing.assert_allclose(plane.origin, [0.0, 0.0, -1.0])

    def test_preserve_mode_planes_map_axis_to_z(self):
        extents = StockExtents(length=LENGTH, depth=2.0, height=2.0)

        plane = right_cut_plane(CutSpec(90, 90), LENGTH, extents, ExtrusionMode.ALONG_Z)

        np.testing.assert_allclose(plane.origin, [0.0, 0.0, LENGTH])
        np.testing.assert_allclose(plane.normal, [0.0, 0.0, -1.0], atol=1e-12)


class TestGoldenScenario:
    """2x2 square stock, length 60."""

    def test_left_miter_45(self, square_profile):
        result = _cut(square_profile, left=CutSpec(45, 90))

        mesh = result.solids[0].mesh
        assert mesh.bounds[0][0] == pytest.approx(0.0, abs=1e-9)
        assert mesh.bounds[1][0] == pytest.approx(LENGTH, abs=1e-9)
        assert result.solids[0].volume == pytest.approx(236.0)

        long_start, long_end = _x_range_at_depth(mesh, 0.0)
        short_start, short_end = _x_range_at_depth(mesh, 2.0)
        assert long_end - long_start == pytest.approx(60.0)
        assert short_end - short_start == pytest.approx(58.0)
        assert result.issues == []

    def test_left_miter_135_leans_the_other_way(self, square_profile):
        result = _cut(square_profile, left=CutSpec(135, 90))

        mesh = result.solids[0].mesh
        assert result.solids[0].volume == pytest.approx(236.0)
        assert _x_range_at_depth(mesh, 0.0)[0] == pytest.approx(2.0)
        assert _x_range_at_depth(mesh, 2.0)[0] == pytest.approx(0.0, abs=1e-9)

    def test_right_miter_45(self, square_profile):
        result = _cut(square_profile, right=CutSpec(45, 90))

        mesh = result.solids[0].mesh
        assert result.solids[0].volume == pytest.approx(236.0)
        assert _x_range_at_depth(mesh, 0.0)[1] == pytest.approx(60.0)
        assert _x_range_at_depth(mesh, 2.0)[1] == pytest.approx(58.0)

    def test_left_tilt_135(self, square_profile):
        result = _cut(square_profile, left=CutSpec(90, 135))

        assert result.solids[0].volume == pytest.approx(236.0)
        assert result.solids[0].bounds[0][0] == pytest.approx(0.0, abs=1e-9)


class TestSquareCuts:

    def test_square_ends_trim_overcut_to_length(self, square_profile):
        result = _cut(square_profile)

        assert result.solids[0].bounds[1][0] == pytest.approx(LENGTH, abs=1e-9)
        assert result.solids[0].volume == pytest.approx(240.0)
        assert len(result.planes) == 1
        assert result.planes[0].trim

    def test_overcut_kept_without_trim(self, square_profile):
        result = _cut(square_profile, trim_overcut=False)

        assert result.planes == []
        assert result.solids[0].bounds[1][0] == pytest.approx(LENGTH + 0.1)

    def test_preserve_mode_square_length(self, square_profile):
        result = _cut(square_profile, preserve_orientation=True)

        np.testing.assert_allclose(result.solids[0].bounds, [[0, 0, 0], [2, 2, LENGTH]], atol=1e-9)


class TestHollowProfiles:
    """Cut solids of profiles with holes stay closed."""

    @pytest.fixture
    def tube_profile(self, tube_polygon):
        return ProfileDefinition.from_polygons([tube_polygon], source="tube.dxf")

    @pytest.mark.parametrize("left,right,volume", [
        (CutSpec(), CutSpec(), 600.0),
        (CutSpec(45, 90), CutSpec(), 580.0),
        (CutSpec(90, 135), CutSpec(), 585.0),
        (CutSpec(), CutSpec(45, 90), 580.0),
    ])
    def test_cut_tube_is_watertight(self, tube_profile, left, right, volume):
        result = _cut(tube_profile, left=left, right=right)

        assert result.issues == []
        assert result.solids[0].mesh.is_watertight
        assert result.solids[0].volume == pytest.approx(volume)

    def test_square_trim_on_tube_is_exact_length(self, tube_profile):
        result = _cut(tube_profile)

        assert result.solids[0].mesh.is_watertight
        assert result.solids[0].extents[0] == pytest.approx(LENGTH, abs=1e-9)


class TestMirrorConsistency:
    """Right M/T gives the same part as left (180 - M)/T turned end for end."""

    @pytest.mark.parametrize("miter,tilt", [
        (45.0, 90.0),
        (60.0, 90.0),
        (120.0, 90.0),
        (90.0, 75.0),
        (90.0, 120.0),
    ])
    def test_right_cut_matches_mirrored_left(self, square_profile, miter, tilt):
        right = _cut(square_profile, right=CutSpec(miter, tilt))
        left = _cut(square_profile, left=CutSpec(180.0 - miter, tilt))

        assert right.solids[0].volume == pytest.approx(left.solids[0].volume)
        np.testing.assert_allclose(right.solids[0].extents, left.solids[0].extents, atol=1e-9)

    def test_vertical_centering_does_not_move_cut(self, square_profile):
        centered = _cut(square_profile, left=CutSpec(90, 120))
        raw = _cut(square_profile, left=CutSpec(90, 120), center_vertically=False)

        assert centered.solids[0].volume == pytest.approx(raw.solids[0].volume)

    def test_handed_variants_have_same_extents(self, l_profile):
        plain = _cut(l_profile, left=CutSpec(45, 90))
        mirrored = _cut(l_profile, left=CutSpec(45, 90), handed=True, handed_side="R")

        np.testing.assert_allclose(plain.solids[0].bounds, mirrored.solids[0].bounds, atol=1e-9)


class TestFailureContainment:

    @pytest.fixture
    def three_bars(self):
        return ProfileDefinition.from_polygons(
            [box(0, 0, 2, 2), box(3, 0, 5, 2), box(6, 0, 8, 2)], source="bars.dxf",
        )

    def test_one_failing_solid_keeps_geometry(self, three_bars):
        solids, mode = _stock(three_bars)
        original = solids[1]

        def flaky(solid, plane):
            if solid.name == "solid_1":
                raise RuntimeError("slice produced no cap")
            return slice_solid(solid, plane)

        with warnings.catch_warnings(record=True) as record:
            warnings.simplefilter("always")
            result = apply_end_cuts(
                solids, CutSpec(45, 90), CutSpec(), LENGTH,
                mode=mode, trim_overcut=False, slicer=flaky,
            )

        cut_warnings = [w for w in record if issubclass(w.category, CutFailureWarning)]
        assert len(cut_warnings) == 1
        assert len(result.solids) == 3
        assert result.solids[1] is original
        assert result.solids[0].volume < original.volume
        assert result.solids[2].volume < original.volume
        assert len(result.issues) == 1
        assert result.issues[0].code == "cut_failure"
        assert result.issues[0].item == "solid_1:left"

    def test_failure_is_a_warning_category(self, three_bars):
        solids, mode = _stock(three_bars)

        def broken(solid, plane):
            raise RuntimeError("kernel error")

        with pytest.warns(CutFailureWarning):
            result = apply_end_cuts(solids, CutSpec(45, 90), CutSpec(), LENGTH, mode=mode,
                                    trim_overcut=False, slicer=broken)

        assert len(result.solids) == 3
        assert len(result.issues) == 3

    def test_missing_library_is_not_contained(self, three_bars):
        solids, mode = _stock(three_bars)

        def unavailable(solid, plane):
            raise ImportError("No module named 'manifold3d'")

        with pytest.raises(ImportError):
            apply_end_cuts(solids, CutSpec(45, 90), CutSpec(), LENGTH, mode=mode,
                           slicer=unavailable)

    def test_missing_boolean_engine_raises(self, square_profile, monkeypatch):
        solids, mode = _stock(square_profile)
        monkeypatch.setattr(end_cuts, "BOOLEAN_ENGINE", "no-such-engine")

        with pytest.raises(ImportError):
            apply_end_cuts(solids, CutSpec(45, 90), CutSpec(), LENGTH, mode=mode)

    def test_no_solids(self):
        result = apply_end_cuts([], CutSpec(45, 90), CutSpec(), LENGTH)

        assert result.solids == []
        assert result.planes == []
