"""
Tests for projecters and projections.
"""

import numpy as np
import pytest

from skymosaic.errors import TransformationError
from skymosaic.geometry.projecters import available_projecters, get_projecter
from skymosaic.geometry.projection import Projection
from skymosaic.geometry.util import unit

ZENITHAL = ["Tan", "Sin", "Zea", "Arc", "Stg"]
ALL_SKY = ["Car", "Ait", "Sfl", "Mer"]


def near_pole():
    lon = np.linspace(0.1, 6.0, 12)
    lat = np.linspace(1.0, 1.5, 12)
    return unit(lon, lat)


def near_equator():
    lon = np.linspace(-1.0, 1.0, 12)
    lat = np.linspace(-0.8, 0.8, 12)
    return unit(lon, lat)


class TestProjecters:
    """Sphere to plane and back."""

    def test_registry(self):
        assert set(ZENITHAL + ALL_SKY) <= set(available_projecters())
        assert get_projecter("tan").name == "Tan"
        assert get_projecter("XYZ") is None

    @pytest.mark.parametrize("kind", ZENITHAL)
    def test_pole_projects_to_origin(self, kind):
        plane = get_projecter(kind).transform(np.array([0.0, 0.0, 1.0]))
        assert np.allclose(plane, [0.0, 0.0])

    @pytest.mark.parametrize("kind", ZENITHAL)
    def test_zenithal_round_trip(self, kind):
        projecter = get_projecter(kind)
        v = near_pole()
        assert np.allclose(projecter.inverse().transform(projecter.transform(v)), v)

    @pytest.mark.parametrize("kind", ALL_SKY)
    def test_all_sky_round_trip(self, kind):
        projecter = get_projecter(kind)
        v = near_equator()
        assert np.allclose(projecter.inverse().transform(projecter.transform(v)), v)

    def test_tan_back_hemisphere_is_nan(self):
        plane = get_projecter("Tan").transform(np.array([0.0, 0.0, -1.0]))
        assert np.isnan(plane).all()

    def test_sin_outside_disk_does_not_deproject(self):
        sphere = get_projecter("Sin").inverse().transform(np.array([1.5, 0.0]))
        assert np.isnan(sphere).all()

    def test_mercator_latitude(self):
        lat = 0.5
        plane = get_projecter("Mer").transform(unit(0.0, lat))
        assert plane[1] == pytest.approx(np.log(np.tan(np.pi / 4 + lat / 2)))

    def test_inverse_pairs(self):
        tan = get_projecter("Tan")
        assert tan.is_inverse(tan.inverse())
        assert tan.inverse().is_inverse(tan)
        assert not tan.is_inverse(get_projecter("Sin").inverse())


class TestProjection:
    """Projecter plus rotation."""

    def test_reference_maps_to_origin(self):
        ref = np.radians([30.0, -40.0])
        projection = Projection("Tan", ref)
        v = projection.rotater.transform(unit(*ref))
        assert np.allclose(projection.projecter.transform(v), [0.0, 0.0])

    def test_unknown_parametrized_kind_falls_back_to_tan(self):
        projection = Projection("Xyz", (0.1, 0.2))
        assert projection.kind == "Tan"

    def test_fixed_projection_without_reference(self):
        projection = Projection("Car")
        assert projection.fixed
        assert projection.rotater is None

    def test_parametrized_projection_needs_reference(self):
        with pytest.raises(TransformationError):
            Projection("Tan")

    def test_set_reference_moves_origin(self):
        projection = Projection("Car")
        projection.set_reference(np.radians(40.0), 0.0)
        v = projection.rotater.transform(unit(np.radians(40.0), 0.0))
        assert np.allclose(projection.projecter.transform(v), [0.0, 0.0], atol=1e-12)
