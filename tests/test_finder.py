"""
Tests for image finders and exposure finders.
"""

import logging

import numpy as np
import pytest
from astropy.io import fits

from conftest import make_image, tan_header
from skymosaic.config import Settings
from skymosaic.errors import ConfigurationError, ImageError
from skymosaic.geometry.wcs import WCS
from skymosaic.io.image import FitsImage
from skymosaic.operators.sampling import NNSampler
from skymosaic.process.exposure import (
    ExposureFileExposure,
    FitsKeywordExposure,
    NullExposure,
    exposure_finder_factory,
)
from skymosaic.process.finder import (
    NO_COVERAGE,
    NON_PHYSICAL,
    BypassFinder,
    OverlapFinder,
    image_finder_factory,
)


def shifted(value, crpix1, name="shifted"):
    """4x4 candidate whose reference pixel is moved along the first axis."""
    return make_image(value, WCS.from_header(tan_header(CRPIX1=crpix1)), name=name)


class TestOverlapFinder:
    """Choosing the candidate for each output pixel."""

    def test_identical_candidate_covers_everything(self, output, settings):
        candidate = make_image(1.0, output.wcs)
        source = OverlapFinder(settings).find_images([candidate], output)
        assert source.shape == (16,)
        assert (source == 0).all()

    def test_no_candidates(self, output, settings):
        assert OverlapFinder(settings).find_images([], output) is None

    def test_uncovered_pixels(self, output, settings):
        candidate = shifted(1.0, 0.5)
        source = OverlapFinder(settings).find_images([candidate], output).reshape(4, 4)
        assert (source[:, 2:] == 0).all()
        assert (source[:, :2] == NO_COVERAGE).all()

    def test_deepest_candidate_wins(self, output, settings):
        a = make_image(1.0, output.wcs, name="a")
        b = shifted(2.0, 1.5, name="b")
        source = OverlapFinder(settings).find_images([a, b], output).reshape(4, 4)
        assert source[1, 0] == 0
        assert source[1, 3] == 1
        assert source[1, 1] == 0

    def test_first_candidate_wins_ties(self, output, settings):
        a = make_image(1.0, output.wcs, name="a")
        b = make_image(2.0, output.wcs, name="b")
        source = OverlapFinder(settings).find_images([a, b], output)
        assert (source == 0).all()

    def test_non_physical_pixels(self, settings):
        header = tan_header(cdelt=30.0)
        header["CTYPE1"] = "RA---SIN"
        header["CTYPE2"] = "DEC--SIN"
        output = make_image(0.0, WCS.from_header(header))
        candidate = make_image(1.0, WCS.from_header(tan_header()))

        source = OverlapFinder(settings).find_images([candidate], output)
        assert source[0] == NON_PHYSICAL
        assert source[5] != NON_PHYSICAL

    def test_edge(self, output):
        candidate = make_image(1.0, output.wcs)
        finder = OverlapFinder(Settings({"ImageFinderEdge": "1"}))
        source = finder.find_images([candidate], output).reshape(4, 4)
        assert (source[1:3, 1:3] == 0).all()
        assert np.count_nonzero(source >= 0) == 4

    def test_radius(self, output):
        candidate = make_image(1.0, output.wcs)
        finder = OverlapFinder(Settings({"ImageFinderRadius": "0.5"}))
        source = finder.find_images([candidate], output)
        assert np.count_nonzero(source >= 0) == 4

    def test_strict_geometry(self, output, settings):
        candidate = shifted(1.0, 2.75)
        loose = OverlapFinder(settings).find_images([candidate], output)
        strict = OverlapFinder(Settings({"StrictGeometry": None})).find_images([candidate], output)
        assert np.count_nonzero(loose >= 0) == 16
        assert np.count_nonzero(strict >= 0) == 12
        assert (strict.reshape(4, 4)[:, 3] == NO_COVERAGE).all()


class TestBypassFinder:
    """Image finding left to the processor."""

    def test_empty_map(self, output, settings):
        source = BypassFinder(settings).find_images([make_image(1.0, output.wcs)], output)
        assert source.size == 0

    def test_no_candidates(self, output, settings):
        assert BypassFinder(settings).find_images([], output) is None


class TestImageFinderFactory:
    """Image finder lookup by name."""

    @pytest.mark.parametrize("name, cls", [(None, OverlapFinder), ("default", OverlapFinder),
                                           ("overlap", OverlapFinder), ("Bypass", BypassFinder)])
    def test_names(self, name, cls):
        assert isinstance(image_finder_factory(name), cls)

    def test_unknown(self):
        with pytest.raises(ConfigurationError):
            image_finder_factory("Border")


class TestExposureFinders:
    """Exposure weights."""

    def test_null(self, output, settings):
        finder = NullExposure(settings)
        finder.set_image(make_image(1.0, output.wcs), output, NNSampler())
        assert np.array_equal(finder.exposure(np.arange(3)), [1.0, 1.0, 1.0])

    def test_fits_keyword(self, output, settings):
        header = fits.Header()
        header["EXPOSURE"] = 2.5
        finder = FitsKeywordExposure(settings)
        finder.set_image(make_image(1.0, output.wcs, header=header), output, NNSampler())
        assert np.allclose(finder.exposure(np.arange(4)), 2.5)

    def test_custom_keyword(self, output):
        header = fits.Header()
        header["EXPTIME"] = 30.0
        finder = FitsKeywordExposure(Settings({"ExposureKeyword": "EXPTIME"}))
        finder.set_image(make_image(1.0, output.wcs, header=header), output, NNSampler())
        assert finder.exposure(0)[0] == 30.0

    def test_missing_keyword(self, output, settings, caplog):
        finder = FitsKeywordExposure(settings)
        with caplog.at_level(logging.WARNING, logger="skymosaic.process.exposure"):
            finder.set_image(make_image(1.0, output.wcs, name="bare"), output, NNSampler())
        assert (finder.exposure(np.arange(2)) == -1).all()
        assert "bare" in caplog.text

    def test_non_numeric_keyword(self, output, settings):
        header = fits.Header()
        header["EXPOSURE"] = "long"
        finder = FitsKeywordExposure(settings)
        with pytest.raises(ImageError):
            finder.set_image(make_image(1.0, output.wcs, header=header), output, NNSampler())

    def test_exposure_file_name(self, tmp_path, settings):
        path = tmp_path / "field.fits"
        fits.PrimaryHDU(data=np.ones((4, 4)), header=tan_header()).writeto(path)
        finder = ExposureFileExposure(settings)
        assert finder.exposure_file(FitsImage(path)) == str(tmp_path / "field.exp.fits")

        custom = ExposureFileExposure(Settings({"ExposureFileMatch": r"^(.*)\.fits$", "ExposureFileGen": r"\1_wt.fits"}))
        assert custom.exposure_file(FitsImage(path)) == str(tmp_path / "field_wt.fits")

    def test_exposure_file_sampling(self, tmp_path, output, settings):
        path = tmp_path / "field.fits"
        fits.PrimaryHDU(data=np.ones((4, 4)), header=tan_header()).writeto(path)
        exposure = np.arange(16, dtype=float).reshape(4, 4)
        fits.PrimaryHDU(data=exposure, header=tan_header()).writeto(tmp_path / "field.exp.fits")

        finder = ExposureFileExposure(settings)
        finder.set_image(FitsImage(path), output, NNSampler())
        assert np.allclose(finder.exposure(np.arange(16)), exposure.ravel())

    def test_missing_exposure_file(self, tmp_path, output, settings):
        path = tmp_path / "field.fits"
        fits.PrimaryHDU(data=np.ones((4, 4)), header=tan_header()).writeto(path)
        with pytest.raises(ImageError):
            ExposureFileExposure(settings).set_image(FitsImage(path), output, NNSampler())

    def test_factory(self, settings):
        assert isinstance(exposure_finder_factory(None, settings), NullExposure)
        assert isinstance(exposure_finder_factory("FitsKeyword", settings), FitsKeywordExposure)
        assert isinstance(exposure_finder_factory("exposurefile", settings), ExposureFileExposure)
        with pytest.raises(ConfigurationError):
            exposure_finder_factory("Median", settings)
