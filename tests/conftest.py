"""
Pytest fixtures for skymosaic tests.
"""

import numpy as np
import pytest
from astropy.io import fits

from skymosaic.config import Settings
from skymosaic.geometry.wcs import WCS
from skymosaic.io.image import Image


def tan_header(lon=10.0, lat=20.0, width=4, height=4, cdelt=0.1, **extra):
    """Header of a simple north-up TAN image centred on (lon, lat)."""
    header = fits.Header()
    header["NAXIS"] = 2
    header["NAXIS1"] = width
    header["NAXIS2"] = height
    header["CTYPE1"] = "RA---TAN"
    header["CTYPE2"] = "DEC--TAN"
    header["CRVAL1"] = lon
    header["CRVAL2"] = lat
    header["CRPIX1"] = width / 2 + 0.5
    header["CRPIX2"] = height / 2 + 0.5
    header["CDELT1"] = -cdelt
    header["CDELT2"] = cdelt
    header["RADESYS"] = "FK5"
    header["EQUINOX"] = 2000.0
    for key, value in extra.items():
        header[key] = value
    return header


def make_image(value, wcs, width=4, height=4, depth=1, name="image", header=None):
    """In-memory image filled with a constant (or the given array)."""
    data = np.broadcast_to(np.asarray(value, dtype=float), (depth, height, width)).copy()
    return Image(data, wcs, width, height, depth, name=name, header=header)


@pytest.fixture(autouse=True)
def no_settings_file(monkeypatch):
    """Keep a user settings file out of the tests."""
    monkeypatch.delenv("SKYMOSAIC_SETTINGS", raising=False)


@pytest.fixture
def settings():
    """Empty run settings."""
    return Settings()


@pytest.fixture
def header():
    """Header of a 4x4 TAN image at (10, 20) degrees."""
    return tan_header()


@pytest.fixture
def tan_wcs(header):
    """WCS of a 4x4 TAN image at (10, 20) degrees with 0.1 degree pixels."""
    return WCS.from_header(header)


@pytest.fixture
def output(tan_wcs):
    """Empty 4x4 output image on the TAN grid."""
    return make_image(0.0, tan_wcs, name="output")
