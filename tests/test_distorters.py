"""
Tests for the DSS plate model and the NEAT radial distortion.
"""

import logging

import numpy as np
import pytest

from skymosaic.errors import ConvergenceError
from skymosaic.geometry.converter import Converter
from skymosaic.geometry.distorters import DSSDistorter, NeatDistorter, PlateModel
from skymosaic.geometry.sphere_distorter import BesselianDistorter, BesselianInverse
from skymosaic.geometry.util import unit

PLATE_SCALE = 67.2


def plate(x_coeff=None, y_coeff=None):
    x = [0.0] * 20
    y = [0.0] * 20
    x[0] = PLATE_SCALE
    y[0] = PLATE_SCALE
    if x_coeff:
        for i, value in x_coeff.items():
            x[i] = value
    if y_coeff:
        for i, value in y_coeff.items():
            y[i] = value
    return DSSDistorter.from_plate(0.1, 0.2, 25.28, 25.28, PLATE_SCALE, [0.0] * 6, x, y)


class TestPlateModel:
    """Validation of plate solutions."""

    def test_too_few_coefficients(self):
        with pytest.raises(ValueError):
            PlateModel(0.0, 0.0, 25.0, 25.0, 67.0, (0.0,) * 6, (1.0,) * 5, (1.0,) * 13)

    def test_zero_plate_scale(self):
        with pytest.raises(ValueError):
            PlateModel(0.0, 0.0, 25.0, 25.0, 0.0, (0.0,) * 6, (1.0,) * 13, (1.0,) * 13)


class TestDSSDistorter:
    """Newton inversion of the plate polynomials."""

    def test_linear_model_is_identity(self):
        distorter = plate()
        pts = np.array([[1e-3, -2e-3, 0.0], [5e-4, 1e-3, 0.0]])
        solution = distorter.solve(pts)
        assert solution.converged.all()
        assert np.allclose(solution.points, pts, atol=1e-12)

    def test_near_identity_model_converges(self):
        distorter = plate(x_coeff={3: 1e-3, 12: 1e-6}, y_coeff={4: -2e-3, 6: 5e-4})
        pts = np.array([[1e-3, -2e-3, 3e-3], [5e-4, 1e-3, -2.5e-3]])
        solution = distorter.solve(pts)
        assert solution.converged.all()
        assert (solution.iterations <= 3).all()
        assert np.allclose(distorter.inverse().transform(solution.points), pts, atol=1e-11)

    def test_pathological_model_gives_nan(self, caplog):
        distorter = DSSDistorter.from_plate(0.1, 0.2, 25.28, 25.28, PLATE_SCALE, [0.0] * 6, [0.0] * 20, [0.0] * 20)
        pts = np.array([[1e-3], [1e-3]])
        with caplog.at_level(logging.WARNING, logger="skymosaic.geometry.distorters"):
            out = distorter.transform(pts)
        assert np.isnan(out).all()
        assert "did not converge" in caplog.text

    def test_pathological_model_strict(self):
        distorter = DSSDistorter.from_plate(0.1, 0.2, 25.28, 25.28, PLATE_SCALE, [0.0] * 6, [0.0] * 20, [0.0] * 20)
        with pytest.raises(ConvergenceError) as info:
            distorter.solve(np.array([1e-3, 1e-3]), strict=True)
        assert info.value.iterations == distorter.max_iterations

    def test_inverse_pair(self):
        distorter = plate()
        inverse = distorter.inverse()
        assert distorter.is_inverse(inverse)
        assert inverse.is_inverse(distorter)
        assert len(Converter(distorter, inverse).inverse()) == 2


class TestNeatDistorter:
    """Radial cubic distortion."""

    def test_forward(self):
        d = NeatDistorter(0.01)
        assert np.allclose(d.transform(np.array([2.0, 0.0])), [2.08, 0.0])

    def test_round_trip(self):
        d = NeatDistorter(1e-3, 0.5, -0.2)
        pts = np.array([[0.5, 1.0, -3.0, 4.0], [-0.2, 2.0, 1.5, -4.0]])
        assert np.allclose(d.inverse().transform(d.transform(pts)), pts, atol=1e-9)
        assert np.allclose(d.transform(d.inverse().transform(pts)), pts, atol=1e-9)

    def test_centre_is_fixed(self):
        d = NeatDistorter(0.5, 1.0, 2.0)
        assert np.allclose(d.inverse().transform(np.array([1.0, 2.0])), [1.0, 2.0])


class TestBesselianDistorter:
    """FK5 to FK4 sphere distortion."""

    @pytest.mark.parametrize("distorter", [BesselianDistorter(), BesselianInverse()], ids=["fk5-fk4", "fk4-fk5"])
    def test_output_is_unit(self, distorter):
        lon, lat = np.meshgrid(np.linspace(0, 2 * np.pi, 13), np.linspace(-1.5, 1.5, 7))
        v = unit(lon.ravel(), lat.ravel())
        out = distorter.transform(v)
        assert np.allclose(np.linalg.norm(out, axis=0), 1.0, rtol=0, atol=1e-9)

    def test_inverse_is_close(self):
        v = np.array([[1.0, 0.0, 0.6], [0.0, 1.0, 0.0], [0.0, 0.0, 0.8]])
        back = BesselianInverse().transform(BesselianDistorter().transform(v))
        assert np.allclose(back, v, atol=1e-5)
