"""
Tests for the mosaicking processors and the mosaic entry point.
"""

import logging

import numpy as np
import pytest
from astropy.io import fits

from conftest import make_image, tan_header
from skymosaic.config import Settings
from skymosaic.errors import ConfigurationError, NoValidPixelsError
from skymosaic.geometry.wcs import WCS
from skymosaic.io.image import Image
from skymosaic.io.survey import ImageSurvey, SurveyFinder
from skymosaic.operators.sampling import NNSampler
from skymosaic.process import (
    BLANK,
    CONSUMED,
    NO_COVERAGE,
    NON_PHYSICAL,
    AddingMosaicker,
    BackupMosaicker,
    IDMosaic,
    Mosaicker,
    mosaic,
    ordinal_suffix,
    processor_factory,
)
from skymosaic.process.idmosaic import image_line
from skymosaic.process.mosaicker import candidate_order, pixel_bounds


def shifted(value, crpix1, name, exposure=None):
    """4x4 candidate on the output sky grid moved along the first axis."""
    header = tan_header(CRPIX1=crpix1)
    if exposure is not None:
        header["EXPOSURE"] = exposure
    return make_image(value, WCS.from_header(header), name=name, header=header)


def right_half(value, name="right", **kw):
    """Candidate covering output columns 2 and 3."""
    return shifted(value, 0.5, name, **kw)


def left_half(value, name="left", **kw):
    """Candidate covering output columns 0 and 1."""
    return shifted(value, 4.5, name, **kw)


def history(header):
    return [str(line) for line in header["HISTORY"]]


class TestMosaicker:
    """Overwriting mosaicker."""

    def test_pixels_come_from_their_source(self, output, settings):
        a = make_image(10.0, output.wcs, name="a")
        b = make_image(20.0, output.wcs, name="b")
        source = np.array([0, 1] * 8)

        mosaicker = Mosaicker(settings)
        mosaicker.process([a, b], output, source, NNSampler())
        assert np.array_equal(output.data_array.ravel(), [10.0, 20.0] * 8)
        assert mosaicker.used_image_names == ["a", "b"]
        assert mosaicker.pixels_sampled == 16
        assert mosaicker.has_valid_pixels

    def test_uncovered_pixels_are_left_alone(self, output, settings):
        a = make_image(10.0, output.wcs, name="a")
        source = np.array([0] * 8 + [NO_COVERAGE] * 4 + [NON_PHYSICAL] * 2 + [CONSUMED] * 2)
        Mosaicker(settings).process([a], output, source, NNSampler())
        assert (output.data_array.ravel()[:8] == 10.0).all()
        assert (output.data_array.ravel()[8:] == 0.0).all()

    def test_caller_source_map_is_not_modified(self, output, settings):
        source = np.zeros(16, dtype=np.int64)
        Mosaicker(settings).process([make_image(1.0, output.wcs)], output, source, NNSampler())
        assert (source == 0).all()

    def test_invalid_candidate_is_skipped(self, output, settings, caplog):
        broken = Image(None, output.wcs, 4, 4, name="broken")
        good = make_image(5.0, output.wcs, name="good")
        source = np.array([0] * 8 + [1] * 8)

        mosaicker = Mosaicker(settings)
        with caplog.at_level(logging.WARNING, logger="skymosaic.process.mosaicker"):
            mosaicker.process([broken, good], output, source, NNSampler())

        assert "candidate image #0" in caplog.text
        assert mosaicker.used_image_names == ["good"]
        assert (output.data_array.ravel()[:8] == 0.0).all()
        assert (output.data_array.ravel()[8:] == 5.0).all()

    def test_multiple_planes(self, output, settings):
        cube_out = make_image(0.0, output.wcs, depth=2, name="cube")
        data = np.stack([np.full((4, 4), 1.0), np.full((4, 4), 2.0)])
        candidate = make_image(data, output.wcs, depth=2)
        Mosaicker(settings).process([candidate], cube_out, np.zeros(16, dtype=int), NNSampler())
        assert (cube_out.cube[0] == 1.0).all()
        assert (cube_out.cube[1] == 2.0).all()

    def test_candidate_released_when_sampling_fails(self, output, settings, monkeypatch):
        candidate = make_image(1.0, output.wcs)
        released = []
        monkeypatch.setattr(candidate, "clear_data", lambda: released.append(candidate.name))
        sampler = NNSampler()

        def failing_sample(pix):
            raise RuntimeError("sampling failed")

        monkeypatch.setattr(sampler, "sample", failing_sample)

        with pytest.raises(RuntimeError):
            Mosaicker(settings).process([candidate], output, np.zeros(16), sampler)
        assert released == ["image"]

    def test_size_mismatch(self, output, settings):
        with pytest.raises(ValueError):
            Mosaicker(settings).process([make_image(1.0, output.wcs)], output, np.zeros(5), NNSampler())

    def test_header(self, output, settings):
        mosaicker = Mosaicker(settings)
        mosaicker.process([make_image(1.0, output.wcs, name="plate7")], output, np.zeros(16), NNSampler())
        header = fits.Header()
        mosaicker.update_header(header)
        assert "Image mosaicking using Mosaicker" in history(header)
        assert "  Used image:plate7" in history(header)
        assert "SV_ERROR" not in header

    def test_header_without_images(self, output, settings):
        mosaicker = Mosaicker(settings)
        mosaicker.process([], output, np.full(16, NO_COVERAGE), NNSampler())
        assert not mosaicker.has_valid_pixels

        header = fits.Header()
        mosaicker.update_header(header)
        assert header["SV_ERROR"] == "No valid pixels found in mosaicker"


class TestMosaickerUtilities:
    """Helpers shared by the processors."""

    def test_candidate_order(self):
        source = np.array([NO_COVERAGE, 2, 0, 2, 1, CONSUMED, 0])
        assert list(candidate_order(source)) == [2, 0, 1]
        assert candidate_order(np.full(3, NO_COVERAGE)).size == 0

    def test_pixel_bounds(self):
        assert pixel_bounds(np.array([5, 6, 10]), 4) == (1, 3, 1, 3)

    @pytest.mark.parametrize(
        "n, suffix",
        [(1, "st"), (2, "nd"), (3, "rd"), (4, "th"), (11, "th"), (12, "th"), (13, "th"),
         (21, "st"), (22, "nd"), (101, "st"), (111, "th"), (0, "th")],
    )
    def test_ordinal_suffix(self, n, suffix):
        assert ordinal_suffix(n) == suffix


class TestAddingMosaicker:
    """Exposure weighted co-addition."""

    def test_exposure_weighted_average(self, output):
        a = shifted(10.0, 2.5, "a", exposure=2.0)
        b = shifted(20.0, 2.5, "b", exposure=3.0)
        settings = Settings({"Mosaicker": "AddingMosaicker", "ExposureFinder": "FitsKeyword"})

        processor = mosaic([a, b], output, settings)
        assert isinstance(processor, AddingMosaicker)
        assert np.allclose(output.data_array, 16.0)
        assert np.allclose(processor.exposure, 5.0)
        assert processor.used_pixel_counts == [16, 16]

    def test_unit_exposure(self, output, settings):
        a = make_image(10.0, output.wcs, name="a")
        b = make_image(20.0, output.wcs, name="b")
        AddingMosaicker(settings).process([a, b], output, np.zeros(0), NNSampler())
        assert np.allclose(output.data_array, 15.0)

    def test_partial_overlap(self, output, settings):
        a = make_image(10.0, output.wcs, name="a")
        b = right_half(20.0)
        processor = AddingMosaicker(settings)
        processor.process([a, b], output, np.zeros(0), NNSampler())

        cube = output.cube[0]
        assert np.allclose(cube[:, :2], 10.0)
        assert np.allclose(cube[:, 2:], 15.0)
        assert processor.used_pixel_counts == [16, 8]

    def test_uncovered_pixels_are_nan(self, output, settings):
        processor = AddingMosaicker(settings)
        processor.process([right_half(4.0)], output, np.zeros(0), NNSampler())

        cube = output.cube[0]
        assert np.isnan(cube[:, :2]).all()
        assert np.allclose(cube[:, 2:], 4.0)
        assert not processor.coverage.reshape(4, 4)[:, :2].any()
        assert processor.coverage.reshape(4, 4)[:, 2:].all()

    def test_zero_exposure(self, output, caplog):
        processor = AddingMosaicker(Settings({"ExposureFinder": "FitsKeyword"}))
        with caplog.at_level(logging.WARNING):
            processor.process([make_image(3.0, output.wcs, name="noexp")], output, np.zeros(0), NNSampler())

        assert np.isnan(output.data_array).all()
        assert not processor.coverage.any()
        assert not processor.has_valid_pixels

    def test_blank_value(self, output):
        settings = Settings({"ExposureFinder": "FitsKeyword", "BlankValue": "0"})
        processor = AddingMosaicker(settings)
        processor.process([make_image(3.0, output.wcs, name="noexp")], output, np.zeros(0), NNSampler())

        assert np.isfinite(output.data_array).all()
        assert (output.data_array == 0.0).all()
        assert not processor.coverage.any()

    def test_overlap_ignores_bypass_setting(self, output):
        a = make_image(10.0, output.wcs, name="a")
        b = make_image(20.0, output.wcs, name="b")
        processor = AddingMosaicker(Settings({"ImageFinder": "Bypass"}))
        processor.process([a, b], output, np.zeros(0), NNSampler())

        assert np.allclose(output.data_array, 15.0)
        assert processor.used_image_names == ["a", "b"]

    def test_mosaic_with_bypass_finder(self, output):
        a = make_image(10.0, output.wcs, name="a")
        b = right_half(20.0, name="b")
        settings = Settings({"Mosaicker": "AddingMosaicker", "ImageFinder": "Bypass"})

        processor = mosaic([a, b], output, settings)
        cube = output.cube[0]
        assert np.allclose(cube[:, :2], 10.0)
        assert np.allclose(cube[:, 2:], 15.0)
        assert processor.used_pixel_counts == [16, 8]

    def test_no_normalize(self, output):
        a = shifted(10.0, 2.5, "a", exposure=2.0)
        b = shifted(20.0, 2.5, "b", exposure=3.0)
        settings = Settings({"ExposureFinder": "FitsKeyword", "NoNormalize": None})
        AddingMosaicker(settings).process([a, b], output, np.zeros(0), NNSampler())
        assert np.allclose(output.data_array, 80.0)

    def test_header(self, output, settings):
        processor = AddingMosaicker(settings)
        processor.process([make_image(1.0, output.wcs, name="a")], output, np.zeros(0), NNSampler())
        header = fits.Header()
        processor.update_header(header)
        assert "Image mosaicking using AddingMosaicker" in history(header)
        assert "  Used 16 pixels from a" in history(header)


class TestBackupMosaicker:
    """Filling holes from backup surveys."""

    def test_backup_fills_only_holes(self, output):
        primary = right_half(10.0, name="primary")
        backup = ImageSurvey("Backup", [make_image(99.0, output.wcs, name="wide")])
        settings = Settings({"Mosaicker": "BackupMosaicker", "BackupSurvey": "backup"})

        processor = mosaic([primary], output, settings, survey_finder=SurveyFinder([backup]))
        assert isinstance(processor, BackupMosaicker)

        cube = output.cube[0]
        assert (cube[:, 2:] == 10.0).all()
        assert (cube[:, :2] == 99.0).all()
        assert len(processor.mosaickers) == 2

    def test_header_lists_every_pass(self, output):
        backup = ImageSurvey("backup", [make_image(99.0, output.wcs, name="wide")])
        settings = Settings({"BackupSurvey": "backup"})
        processor = BackupMosaicker(settings, SurveyFinder([backup]))

        source = np.array(([NO_COVERAGE] * 2 + [0] * 2) * 4)
        processor.process([right_half(10.0, name="primary")], output, source, NNSampler())

        header = fits.Header()
        processor.update_header(header)
        lines = history(header)
        assert "Image mosaicking using BackupMosaicker" in lines
        assert "  Used image:primary" in lines
        assert "  Used image:wide" in lines

    def test_later_surveys_are_not_consulted_once_filled(self, output, monkeypatch):
        first = ImageSurvey("first", [make_image(99.0, output.wcs, name="wide")])
        second = ImageSurvey("second", [])
        calls = []
        monkeypatch.setattr(second, "get_images", lambda *args: calls.append(args) or [])

        settings = Settings({"BackupSurvey": "first,second"})
        processor = BackupMosaicker(settings, SurveyFinder([first, second]))
        processor.process([], output, np.full(16, NO_COVERAGE), NNSampler())

        assert (output.data_array == 99.0).all()
        assert calls == []

    def test_failed_backup_leaves_nan(self, output, caplog):
        settings = Settings({"BackupSurvey": "nosuch"})
        processor = BackupMosaicker(settings, SurveyFinder())

        source = np.array(([NO_COVERAGE] * 2 + [0] * 2) * 4)
        with caplog.at_level(logging.WARNING, logger="skymosaic.process.backup"):
            processor.process([right_half(10.0)], output, source, NNSampler())

        assert "nosuch" in caplog.text
        cube = output.cube[0]
        assert np.isnan(cube[:, :2]).all()
        assert (cube[:, 2:] == 10.0).all()
        assert processor.has_valid_pixels

    def test_nothing_found(self, output, settings):
        processor = BackupMosaicker(settings)
        processor.process([], output, np.full(16, NO_COVERAGE), NNSampler())
        assert np.isnan(output.data_array).all()
        assert not processor.has_valid_pixels

        header = fits.Header()
        processor.update_header(header)
        assert "SV_ERROR" in header

    def test_blank_value(self):
        assert BLANK == -1e20


class TestIDMosaic:
    """Source map images."""

    def test_ids_and_counts(self, output):
        candidates = [left_half(1.0, name="west"), right_half(1.0, name="east")]
        processor = mosaic(candidates, output, Settings({"Mosaicker": "IDMosaic"}))
        assert isinstance(processor, IDMosaic)

        cube = output.cube[0]
        assert (cube[:, :2] == 0).all()
        assert (cube[:, 2:] == 1).all()
        assert list(processor.counts) == [8, 8]
        assert int(processor.counts.sum()) + processor.nocoverage + processor.nonphysical == 16

    def test_empty_source_map_is_uncovered(self, output, settings):
        processor = IDMosaic(settings)
        processor.process([make_image(1.0, output.wcs)], output, np.zeros(0, dtype=np.int64), NNSampler())

        assert (output.data_array == NO_COVERAGE).all()
        assert list(processor.counts) == [0]
        assert processor.nocoverage == 16
        assert int(processor.counts.sum()) + processor.nocoverage + processor.nonphysical == output.plane_size

    def test_sentinels_are_written(self, output, settings):
        source = np.array([0] * 10 + [NO_COVERAGE] * 4 + [NON_PHYSICAL] * 2)
        processor = IDMosaic(settings)
        processor.process([make_image(1.0, output.wcs)], output, source, NNSampler())

        assert np.array_equal(output.data_array.ravel(), source)
        assert list(processor.counts) == [10]
        assert processor.nocoverage == 4
        assert processor.nonphysical == 2

    def test_consumed_pixels_are_skipped(self, output, settings):
        output.fill(7.0)
        source = np.array([0] * 8 + [CONSUMED] * 8)
        processor = IDMosaic(settings)
        processor.process([make_image(1.0, output.wcs)], output, source, NNSampler())
        assert (output.data_array.ravel()[8:] == 7.0).all()
        assert list(processor.counts) == [8]

    def test_all_planes(self, settings, tan_wcs):
        output = make_image(0.0, tan_wcs, depth=3)
        IDMosaic(settings).process([None, make_image(1.0, tan_wcs)], output, np.ones(16), NNSampler())
        assert (output.data_array == 1).all()

    def test_header(self, output, settings):
        processor = IDMosaic(settings)
        source = np.array([1] * 12 + [NO_COVERAGE] * 4)
        processor.process([make_image(1.0, output.wcs, name="a"), make_image(1.0, output.wcs, name="b")],
                          output, source, NNSampler())
        header = fits.Header()
        processor.update_header(header)

        lines = history(header)
        assert "1 (12): b" in lines
        assert not any(line.startswith("0 (") for line in lines)
        assert "Uncovered pixels:4" in lines
        assert not any(line.startswith("Pixels off projection") for line in lines)

    def test_image_line_truncation(self):
        assert image_line(0, 5, "short.fits") == "0 (5): short.fits"

        name = "/data/survey/" + "x" * 100 + "/plate.fits"
        line = image_line(3, 120, name)
        assert line.startswith("3 (120): ...")
        assert line.endswith("/plate.fits")
        assert len(line) + 8 == 80


class TestMosaic:
    """The mosaic entry point and processor lookup."""

    def test_defaults(self, output, settings):
        a = make_image(10.0, output.wcs, name="a")
        b = make_image(20.0, output.wcs, name="b")
        header = fits.Header()

        processor = mosaic([a, b], output, settings, header=header)
        assert isinstance(processor, Mosaicker)
        assert (output.data_array == 10.0).all()
        assert "  Used image:a" in history(header)

    def test_no_candidates(self, output, settings):
        header = fits.Header()
        with pytest.raises(NoValidPixelsError):
            mosaic([], output, settings, header=header)
        assert "SV_ERROR" in header

    def test_no_overlap(self, output, settings):
        far = make_image(1.0, WCS.from_header(tan_header(lon=200.0, lat=-40.0)), name="far")
        with pytest.raises(NoValidPixelsError):
            mosaic([far], output, settings)

    def test_explicit_components(self, output, settings):
        candidate = make_image(3.0, output.wcs)
        processor = IDMosaic(settings)
        assert mosaic([candidate], output, settings, processor=processor, sampler=NNSampler()) is processor
        assert (output.data_array == 0).all()

    @pytest.mark.parametrize(
        "name, cls",
        [(None, Mosaicker), ("mosaicker", Mosaicker), ("AddingMosaicker", AddingMosaicker),
         ("backupmosaicker", BackupMosaicker), ("IDMosaic", IDMosaic)],
    )
    def test_processor_factory(self, name, cls):
        assert isinstance(processor_factory(name, Settings()), cls)

    def test_processor_factory_unknown(self):
        with pytest.raises(ConfigurationError):
            processor_factory("MedianMosaicker")

    def test_backup_gets_survey_finder(self):
        finder = SurveyFinder()
        processor = processor_factory("BackupMosaicker", Settings(), survey_finder=finder)
        assert processor.survey_finder is finder
