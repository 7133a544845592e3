"""
survey.py

Survey providers: named collections of candidate images that can be queried by sky position.
"""

# === Imports ======================================================================================

import glob
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable

from skymosaic.config import Settings
from skymosaic.errors import ConfigurationError, ImageError, TransformationError
from skymosaic.geometry.position import Position
from skymosaic.geometry.util import sphdist_deg
from skymosaic.io.image import FitsImage, Image

logger = logging.getLogger(__name__)

# === Main =========================================================================================

class Survey(ABC):
    """A named source of candidate images."""

    name: str = "Survey"

    @abstractmethod
    def get_images(self, position: Position, size: float) -> list[Image]:
        """
        Candidate images that may overlap a region.

        Args:
            position: Centre of the region.
            size: Radius of the region (degrees).
        """
        pass

    def _overlapping(self, images: Iterable[Image], position: Position, size: float) -> list[Image]:
        lon, lat = position.coordinates("J2000")
        selected = []
        for image in images:
            try:
                clon, clat = image.sky_center()
                reach = size + image.radius()
            except TransformationError as err:
                logger.warning("Skipping image %s of survey %s: %s", image.name, self.name, err)
                continue
            if sphdist_deg(lon, lat, clon, clat) <= reach:
                selected.append(image)
        return selected


class ImageSurvey(Survey):
    """Survey over a fixed list of in-memory images."""

    def __init__(self, name: str, images: Iterable[Image]):
        self.name = name
        self.images = list(images)

    def get_images(self, position: Position, size: float) -> list[Image]:
        return self._overlapping(self.images, position, size)


class FitsSurvey(Survey):
    """
    Survey over FITS files matching a glob pattern.

    Headers are read once on the first query; pixel data only when a mosaicker validates an image.
    """

    def __init__(self, name: str, pattern: str, settings: Settings | None = None):
        self.name = name
        self.pattern = pattern
        self.settings = settings
        self._images: list[FitsImage] | None = None

    @property
    def images(self) -> list[FitsImage]:
        if self._images is None:
            self._images = []
            for path in sorted(glob.glob(self.pattern)):
                try:
                    self._images.append(FitsImage(path, self.settings))
                except ImageError as err:
                    logger.warning("Ignoring file in survey %s: %s", self.name, err)
            logger.info("Survey %s: %d image(s) matching %s", self.name, len(self._images), self.pattern)
        return self._images

    def get_images(self, position: Position, size: float) -> list[Image]:
        return self._overlapping(self.images, position, size)


class SurveyFinder:
    """Registry of surveys by (case-insensitive) name."""

    def __init__(self, surveys: Iterable[Survey] = ()):
        self._surveys: dict[str, Survey] = {}
        for survey in surveys:
            self.register(survey)

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._surveys

    def register(self, survey: Survey) -> None:
        self._surveys[survey.name.lower()] = survey

    def find(self, name: str) -> Survey:
        try:
            return self._surveys[name.lower()]
        except KeyError as err:
            raise ConfigurationError(f"Unknown survey: {name!r}") from err

    @property
    def names(self) -> list[str]:
        return [s.name for s in self._surveys.values()]
