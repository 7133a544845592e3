"""
backup.py

Mosaicker that fills the holes left by the requested survey from a prioritised list of backup surveys.
"""

# === Imports ======================================================================================

import logging

import numpy as np

from skymosaic.config import Settings
from skymosaic.errors import SkyMosaicError
from skymosaic.geometry.position import Position
from skymosaic.io.image import Image
from skymosaic.io.survey import SurveyFinder
from skymosaic.process.finder import CONSUMED, image_finder_factory
from skymosaic.process.mosaicker import Mosaicker, Processor

logger = logging.getLogger(__name__)

# === Main =========================================================================================

# Initial value of every output pixel; large enough in magnitude to stay recognisable after interpolation.
BLANK = -1e20


class BackupMosaicker(Processor):
    """
    Run a primary `Mosaicker` pass, then fill the remaining pixels from the surveys named in the
    ``BackupSurvey`` setting, in the order given.

    A backup survey is consulted only while some pixel is still unfilled, and pixels filled by an
    earlier pass are marked consumed so no later pass overwrites them. Failures of a backup survey
    are logged and the next one is tried. Pixels that are still unfilled at the end are set to NaN.

    Args:
        settings: Run settings.
        survey_finder: Surveys available by name for the backup passes.
    """

    name = "BackupMosaicker"
    description = "Mosaic the requested survey and fill gaps from backup surveys"

    def __init__(self, settings: Settings | None = None, survey_finder: SurveyFinder | None = None):
        super().__init__(settings)
        self.survey_finder = survey_finder if survey_finder is not None else SurveyFinder()
        self.mosaickers: list[Mosaicker] = []

    @property
    def has_valid_pixels(self) -> bool:
        return any(m.has_valid_pixels for m in self.mosaickers)

    def process(self, candidates, output, source, sampler, depth_sampler=None):
        output.fill(BLANK)

        primary = Mosaicker(self.settings)
        primary.process(candidates, output, source, sampler, depth_sampler)
        self.mosaickers.append(primary)

        backups = [name for name in self.settings.get_array("BackupSurvey") if name]
        for name in backups:
            unfilled = unfilled_pixels(output)
            if not unfilled.any():
                break
            logger.info("Backup survey %s: %d pixels unfilled", name, int(np.count_nonzero(unfilled)))
            try:
                self._fill_from(name, output, unfilled, sampler, depth_sampler)
            except SkyMosaicError as err:
                logger.warning("Unable to process backup survey %s: %s", name, err)

        planes = output.data_array.reshape(output.depth, output.plane_size)
        planes[:, unfilled_pixels(output)] = np.nan

    def _fill_from(self, name: str, output: Image, unfilled: np.ndarray, sampler, depth_sampler) -> None:
        survey = self.survey_finder.find(name)

        lon, lat = output.sky_center()
        size = max(output.width, output.height) * float(np.degrees(output.wcs.scale))
        images = survey.get_images(Position(lon, lat, "J2000"), size)
        if not images:
            logger.info("No candidate images found in backup survey %s", name)
            return

        finder = image_finder_factory(self.settings.get("ImageFinder"), self.settings)
        source = finder.find_images(images, output)
        if source is None:
            return
        if source.size == output.plane_size:
            source[~unfilled] = CONSUMED

        mosaicker = Mosaicker(self.settings)
        mosaicker.process(images, output, source, sampler, depth_sampler)
        self.mosaickers.append(mosaicker)

    def update_header(self, header):
        header.add_history("")
        header.add_history(f"Image mosaicking using {self.name}")
        header.add_history("")
        if not self.has_valid_pixels:
            self._no_valid_pixels(header)
            return
        for mosaicker in self.mosaickers:
            mosaicker.update_header(header)


# === Utilities ====================================================================================

def unfilled_pixels(image: Image) -> np.ndarray:
    """Pixels of the first plane that are BLANK (or NaN) in any plane."""
    planes = image.data_array.reshape(image.depth, image.plane_size)
    with np.errstate(invalid="ignore"):
        return ((planes <= BLANK / 10) | np.isnan(planes)).any(axis=0)
