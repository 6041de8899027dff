"""Tests for extruder module."""
import numpy as np
import pytest

import extruder
from extruder import extrude_regions
from fabrication_errors import PartialExtrusionError
from orientation import normalize_orientation
from profile_loader import ProfileDefinition
from region_resolver import resolve_regions


def _normalized(profile, **kwargs):
    return normalize_orientation(resolve_regions(profile), **kwargs)


class TestExtrudeRegions:
    """Sweeping normalized regions into solids."""

    def test_standard_mode_sweeps_along_x(self, square_profile):
        result = extrude_regions(_normalized(square_profile).regions, 60.0)

        assert len(result.solids) == 1
        solid = result.solids[0]
        assert solid.mesh.is_watertight
        np.testing.assert_allclose(solid.bounds, [[0.0, 0.0, -1.0], [60.1, 2.0, 1.0]], atol=1e-9)
        assert solid.volume == pytest.approx(2 * 2 * 60.1)

    def test_preserve_mode_sweeps_along_z(self, square_profile):
        normalized = _normalized(square_profile, preserve_orientation=True)

        result = extrude_regions(normalized.regions, 10.0, overcut=0.0)

        np.testing.assert_allclose(result.solids[0].bounds, [[0, 0, 0], [2, 2, 10]], atol=1e-9)

    def test_hole_survives_extrusion(self, tube_polygon):
        profile = ProfileDefinition.from_polygons([tube_polygon])

        result = extrude_regions(_normalized(profile).regions, 5.0, overcut=0.0)

        assert result.solids[0].volume == pytest.approx(10.0 * 5.0)

    def test_one_solid_per_region_with_names(self, two_bar_profile):
        result = extrude_regions(_normalized(two_bar_profile).regions, 5.0, name_prefix="bar")

        assert [s.name for s in result.solids] == ["bar_0", "bar_1"]
        assert result.issues == []

    def test_anchor_carried_into_world(self, square_polygon):
        profile = ProfileDefinition.from_polygons([square_polygon], anchor=(1.0, 1.0, 0.0))

        result = extrude_regions(_normalized(profile).regions, 5.0)

        # profile (1, 0) after centering -> world (0, 1, 0)
        np.testing.assert_allclose(result.solids[0].anchor, [0.0, 1.0, 0.0], atol=1e-12)

    @pytest.mark.parametrize("length", [0.0, -5.0])
    def test_non_positive_length_raises(self, square_profile, length):
        with pytest.raises(ValueError):
            extrude_regions(_normalized(square_profile).regions, length)


class TestPartialFailure:

    def test_failed_region_is_skipped_and_reported(self, two_bar_profile, monkeypatch):
        original = extruder.extrude_region
        calls = []

        def flaky(region, sweep_length):
            calls.append(region)
            if len(calls) == 1:
                raise RuntimeError("triangulation failed")
            return original(region, sweep_length)

        monkeypatch.setattr(extruder, "extrude_region", flaky)

        result = extrude_regions(_normalized(two_bar_profile).regions, 5.0)

        assert len(result.solids) == 1
        assert result.solids[0].name == "solid_1"
        assert len(result.issues) == 1
        assert result.issues[0].code == "partial_extrusion"
        assert result.issues[0].severity == "warning"

    def test_all_regions_failing_raises(self, square_profile, monkeypatch):
        def broken(region, sweep_length):
            raise RuntimeError("triangulation failed")

        monkeypatch.setattr(extruder, "extrude_region", broken)

        with pytest.raises(PartialExtrusionError) as excinfo:
            extrude_regions(_normalized(square_profile).regions, 5.0)

        assert isinstance(excinfo.value.__cause__, RuntimeError)
