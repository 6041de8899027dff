"""Tests for region_resolver module."""
import numpy as np
import pytest
from shapely.geometry import box

from fabrication_errors import InvalidProfileError
from geometry_primitives import Region
from profile_loader import ProfileCurve, ProfileDefinition, load_profile
from region_resolver import curves_to_loops, resolve_nesting, resolve_regions


class TestResolveRegions:
    """Curves and pre-built regions to disjoint regions."""

    def test_tube_hole_is_subtracted(self, tube_dxf):
        regions = resolve_regions(load_profile(tube_dxf))

        assert len(regions) == 1
        assert regions[0].area == pytest.approx(4 * 3 - 2 * 1)
        assert len(regions[0].polygon.interiors) == 1

    def test_loose_lines_are_chained(self, lines_dxf):
        regions = resolve_regions(load_profile(lines_dxf))

        assert len(regions) == 1
        assert regions[0].area == pytest.approx(4.0)

    def test_open_curve_raises(self, open_dxf):
        with pytest.raises(InvalidProfileError, match="closed"):
            resolve_regions(load_profile(open_dxf))

    def test_separate_regions_stay_separate(self, two_bar_profile):
        regions = resolve_regions(two_bar_profile)

        assert len(regions) == 2
        assert sorted(r.area for r in regions) == pytest.approx([4.0, 4.0])

    def test_prebuilt_regions_are_reused(self, tube_polygon):
        profile = ProfileDefinition.from_regions([tube_polygon])

        regions = resolve_regions(profile)

        assert len(regions) == 1
        assert regions[0].polygon.equals(tube_polygon)

    def test_anchor_attached_to_every_region(self, two_bar_profile):
        profile = ProfileDefinition(
            source="bars", curves=two_bar_profile.curves, anchor=(1.0, 1.0, 0.0),
        )

        regions = resolve_regions(profile)

        for region in regions:
            np.testing.assert_allclose(region.anchor, [1.0, 1.0, 0.0])
        # copies, not a shared array
        assert regions[0].anchor is not regions[1].anchor

    def test_empty_profile_raises(self):
        with pytest.raises(InvalidProfileError):
            resolve_regions(ProfileDefinition(source="empty"))

    def test_zero_area_loop_raises(self):
        flat = ProfileCurve(points=((0, 0), (1, 0), (2, 0)), closed=True)

        with pytest.raises(InvalidProfileError, match="zero area"):
            resolve_regions(ProfileDefinition(source="flat", curves=(flat,)))


class TestNesting:
    """Largest-first hole subtraction."""

    def test_nested_area_is_outer_minus_inner(self):
        outer = Region(polygon=box(0, 0, 10, 10))
        inner = Region(polygon=box(2, 2, 5, 5))

        result = resolve_nesting([inner, outer])

        assert len(result) == 1
        assert result[0].area == pytest.approx(100 - 9)

    def test_no_overlap_between_results(self):
        regions = [
            Region(polygon=box(0, 0, 10, 10)),
            Region(polygon=box(1, 1, 3, 3)),
            Region(polygon=box(6, 6, 8, 8)),
            Region(polygon=box(20, 0, 22, 2)),
        ]

        result = resolve_nesting(regions)

        assert len(result) == 2
        for i, a in enumerate(result):
            for b in result[i + 1:]:
                assert a.polygon.intersection(b.polygon).area == pytest.approx(0.0)

    def test_hole_splitting_region_gives_two_regions(self):
        outer = Region(polygon=box(0, 0, 10, 4))
        slot = Region(polygon=box(4, 0, 6, 4))

        result = resolve_nesting([outer, slot])

        assert len(result) == 2
        assert sum(r.area for r in result) == pytest.approx(40 - 8)


class TestCurvesToLoops:

    def test_reversed_segments_are_joined(self):
        curves = [
            ProfileCurve(points=((0, 0), (1, 0)), closed=False),
            ProfileCurve(points=((1, 1), (1, 0)), closed=False),
            ProfileCurve(points=((1, 1), (0, 0)), closed=False),
        ]

        loops = curves_to_loops(curves)

        assert len(loops) == 1
        assert len(loops[0]) == 3

    def test_gap_within_tolerance(self):
        curves = [
            ProfileCurve(points=((0, 0), (1, 0), (1, 1)), closed=False),
            ProfileCurve(points=((1, 1.0005), (0, 0.0005)), closed=False),
        ]

        loops = curves_to_loops(curves, tolerance=1e-3)

        assert len(loops) == 1

    def test_gap_beyond_tolerance_raises(self):
        curves = [
            ProfileCurve(points=((0, 0), (1, 0), (1, 1)), closed=False),
            ProfileCurve(points=((1, 1.1), (0, 0.1)), closed=False),
        ]

        with pytest.raises(InvalidProfileError):
            curves_to_loops(curves, tolerance=1e-3)
