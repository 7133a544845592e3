"""
exposure.py

Exposure finders give the weight of each output pixel sampled from a candidate image, used by the
adding mosaicker to form an exposure weighted average.
"""

# === Imports ======================================================================================

import logging
import re
from abc import ABC, abstractmethod

import numpy as np

from skymosaic.config import Settings, default_settings
from skymosaic.errors import ConfigurationError, ImageError
from skymosaic.geometry.converter import Converter
from skymosaic.io.image import FitsImage, Image
from skymosaic.operators.sampling import Sampler

logger = logging.getLogger(__name__)

# === Main =========================================================================================

class ExposureFinder(ABC):
    """Base class for exposure finders."""

    name: str = "ExposureFinder"

    def __init__(self, settings: Settings | None = None):
        self.settings = settings if settings is not None else default_settings()

    @abstractmethod
    def set_image(self, input: Image, output: Image, sampler: Sampler) -> None:
        """Prepare to report exposures for `input` resampled onto `output`."""
        pass

    @abstractmethod
    def exposure(self, pix) -> np.ndarray:
        """Exposure of the output pixel(s) `pix` from the current input image."""
        pass


class NullExposure(ExposureFinder):
    """Unit exposure everywhere."""

    name = "Null"

    def set_image(self, input, output, sampler):
        pass

    def exposure(self, pix):
        return np.ones(np.shape(np.atleast_1d(pix)))


class FitsKeywordExposure(ExposureFinder):
    """
    Constant exposure read from a header keyword of the input image (``ExposureKeyword`` setting,
    default EXPOSURE). Images without the keyword have exposure -1 and contribute nothing.
    """

    name = "FitsKeyword"

    def __init__(self, settings: Settings | None = None):
        super().__init__(settings)
        self.keyword = self.settings.get("ExposureKeyword", "EXPOSURE")
        self.value = -1.0

    def set_image(self, input, output, sampler):
        header = input.header
        value = header.get(self.keyword) if header is not None else None
        if value is None:
            logger.warning("No %s keyword for image %s", self.keyword, input.name)
            self.value = -1.0
            return
        try:
            self.value = float(value)
        except (TypeError, ValueError) as err:
            raise ImageError(f"Exposure keyword {self.keyword} of {input.name} is not numeric: {value!r}") from err

    def exposure(self, pix):
        return np.full(np.shape(np.atleast_1d(pix)), self.value)


class ExposureFileExposure(ExposureFinder):
    """
    Exposure sampled from a companion exposure map.

    The exposure file name is derived from the input file name with the ``ExposureFileMatch``
    regular expression and ``ExposureFileGen`` replacement (default ``x.fits`` -> ``x.exp.fits``).
    The map is resampled onto the output grid with a copy of the mosaicking sampler.
    """

    name = "ExposureFile"

    DEFAULT_MATCH = r"^(.*)(\.fits(.gz)?)$"
    DEFAULT_GEN = r"\1.exp\2"

    def __init__(self, settings: Settings | None = None):
        super().__init__(settings)
        self.match = self.settings.get("ExposureFileMatch", self.DEFAULT_MATCH)
        self.gen = self.settings.get("ExposureFileGen", self.DEFAULT_GEN)
        self.sampler: Sampler | None = None
        self.exposure_image: FitsImage | None = None

    def exposure_file(self, input: Image) -> str:
        name = str(input.path) if isinstance(input, FitsImage) else input.name
        return re.sub(self.match, self.gen, name)

    def set_image(self, input, output, sampler):
        path = self.exposure_file(input)
        self.exposure_image = FitsImage(path, self.settings)
        self.exposure_image.validate()

        scratch = Image(np.zeros(output.plane_size), output.wcs, output.width, output.height, name=f"{path} (resampled)")
        self.sampler = sampler.clone()
        self.sampler.set_input(self.exposure_image)
        self.sampler.set_output(scratch)
        self.sampler.set_transform(Converter(output.wcs.inverse(), self.exposure_image.wcs))

    def exposure(self, pix):
        if self.sampler is None:
            raise ImageError("Exposure file finder used before an image was set")
        values = self.sampler.values(pix)[0]
        return np.where(np.isfinite(values), values, 0.0)


# === Factory ======================================================================================

_EXPOSURE_FINDERS: dict[str, type[ExposureFinder]] = {
    "null": NullExposure,
    "fitskeyword": FitsKeywordExposure,
    "exposurefile": ExposureFileExposure,
}


def exposure_finder_factory(name: str | None = None, settings: Settings | None = None) -> ExposureFinder:
    """
    Exposure finder registered under `name` (case-insensitive); unit exposure when no name is given.

    Raises:
        ConfigurationError: If no exposure finder is registered under the name.
    """
    key = (name or "Null").strip().lower()
    try:
        cls = _EXPOSURE_FINDERS[key]
    except KeyError as err:
        raise ConfigurationError(f"Unknown exposure finder: {name!r}") from err
    return cls(settings)
