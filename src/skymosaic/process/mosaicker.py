"""
mosaicker.py

Processors that combine candidate images into an output image, and the plain overwriting mosaicker.
"""

# === Imports ======================================================================================

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

import numpy as np
from astropy.io import fits

from skymosaic.config import Settings, default_settings
from skymosaic.errors import ImageError
from skymosaic.geometry.converter import Converter
from skymosaic.io.image import Image
from skymosaic.operators.depth import DepthSampler
from skymosaic.operators.sampling import Sampler
from skymosaic.process.finder import CONSUMED

logger = logging.getLogger(__name__)

# === Main =========================================================================================

class Processor(ABC):
    """Base class for mosaicking processors."""

    name: str = "Processor"
    description: str = ""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings if settings is not None else default_settings()

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    @abstractmethod
    def process(
        self,
        candidates: Sequence[Image],
        output: Image,
        source: np.ndarray,
        sampler: Sampler,
        depth_sampler: DepthSampler | None = None,
    ) -> None:
        """
        Fill `output` from the candidates.

        Args:
            candidates: Candidate images.
            output: Output image, updated in place.
            source: Source map (candidate index or sentinel per output pixel).
            sampler: Spatial sampler.
            depth_sampler: Optional rebinning of multi-plane candidates.
        """
        pass

    @abstractmethod
    def update_header(self, header: fits.Header) -> None:
        """Record how the output was made."""
        pass

    @property
    @abstractmethod
    def has_valid_pixels(self) -> bool:
        """Whether any candidate contributed to the output."""
        pass

    def _no_valid_pixels(self, header: fits.Header) -> None:
        header.add_comment("")
        header.add_comment("************************************")
        header.add_comment("** No valid pixels for mosaicking **")
        header.add_comment("************************************")
        header.add_comment("")
        header["SV_ERROR"] = ("No valid pixels found in mosaicker", "")


class Mosaicker(Processor):
    """
    Overwrite each output pixel with the value sampled from the candidate the source map assigns.

    Candidates are processed one at a time in order of first appearance in the source map. Each is
    loaded, sampled for all of its pixels and then released. A candidate that fails to load is
    logged and skipped.
    """

    name = "Mosaicker"
    description = "Create a new image by putting together resampled pixels from set of old images"

    def __init__(self, settings: Settings | None = None):
        super().__init__(settings)
        self.used_image_names: list[str] = []
        self.pixels_sampled = 0

    @property
    def has_valid_pixels(self) -> bool:
        return self.pixels_sampled > 0

    def process(self, candidates, output, source, sampler, depth_sampler=None):
        source = np.array(source, dtype=np.int64)
        if source.size == 0:
            return
        if source.size != output.plane_size:
            raise ValueError(f"Source map has {source.size} entries for {output.plane_size} output pixels.")

        sampler.set_output(output)
        proc_count = 0
        for img in candidate_order(source):
            pix = np.flatnonzero(source == img)
            candidate = candidates[img]

            try:
                candidate.validate()
            except ImageError as err:
                logger.warning("Error processing candidate image #%d: %s", img, err)
                source[pix] = CONSUMED
                continue
            self.used_image_names.append(candidate.name)

            proc_count += 1
            logger.info("Processing %d%s candidate image #%d", proc_count, ordinal_suffix(proc_count), img)

            try:
                converter = Converter(output.wcs.inverse(), candidate.wcs)
                image = candidate
                if candidate.depth > 1 and depth_sampler is not None:
                    image = depth_sampler.sample(candidate)

                sampler.set_bounds(pixel_bounds(pix, output.width) if image.is_tiled else None)
                sampler.set_transform(converter)
                sampler.set_input(image)
                self.pixels_sampled += sampler.sample(pix)
            finally:
                candidate.clear_data()

            source[pix] = CONSUMED

    def update_header(self, header):
        header.add_history("")
        header.add_history(f"Image mosaicking using {self.name}")
        header.add_history("")
        if not self.used_image_names:
            self._no_valid_pixels(header)
        for name in self.used_image_names:
            header.add_history(f"  Used image:{name}")
        header.add_history("")


# === Utilities ====================================================================================

def candidate_order(source: np.ndarray) -> np.ndarray:
    """Candidate indices in the source map, in order of first appearance."""
    assigned = source[source >= 0]
    if assigned.size == 0:
        return assigned
    indices, first = np.unique(assigned, return_index=True)
    return indices[np.argsort(first)]


def pixel_bounds(pix: np.ndarray, width: int) -> tuple[int, int, int, int]:
    """Bounding box ``(xmin, xmax, ymin, ymax)`` (exclusive maxima) of flat pixel indices."""
    x = pix % width
    y = pix // width
    return int(x.min()), int(x.max()) + 1, int(y.min()), int(y.max()) + 1


def ordinal_suffix(n: int) -> str:
    """English ordinal suffix: 1 -> "st", 12 -> "th", 22 -> "nd"."""
    n = abs(n)
    unit = n % 10
    tens = n % 100 // 10
    if tens == 1:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(unit, "th")
