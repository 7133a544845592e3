"""
adding.py

Mosaicker that adds every overlapping candidate, weighted by exposure, and normalises the sum.
"""

# === Imports ======================================================================================

import logging

import numpy as np

from skymosaic.config import Settings
from skymosaic.errors import ImageError
from skymosaic.geometry.converter import Converter
from skymosaic.process.exposure import exposure_finder_factory
from skymosaic.process.finder import OverlapFinder
from skymosaic.process.mosaicker import Processor

logger = logging.getLogger(__name__)

# === Main =========================================================================================

class AddingMosaicker(Processor):
    """
    Exposure weighted sum of all candidates overlapping each output pixel.

    Every candidate is tested for overlap on its own with an `OverlapFinder`, whatever the
    ``ImageFinder`` setting, so the source map given to `process` is not used. Each sampled value
    is multiplied by its exposure (from the ``ExposureFinder`` setting, unit exposure by default)
    and added to the output; the exposures are summed per pixel. Unless ``NoNormalize`` is set the
    output is then divided by the summed exposure. Pixels without exposure are False in `coverage`
    and are set to the ``BlankValue`` setting (NaN by default).
    """

    name = "AddingMosaicker"
    description = "Create a new image by adding all overlapping images"

    def __init__(self, settings: Settings | None = None):
        super().__init__(settings)
        self.exposure_finder = exposure_finder_factory(self.settings.get("ExposureFinder"), self.settings)
        self.finder = OverlapFinder(self.settings)
        self.blank = self.settings.get_float("BlankValue", np.nan)
        self.used_image_names: list[str] = []
        self.used_pixel_counts: list[int] = []
        self.exposure: np.ndarray | None = None
        self.coverage: np.ndarray | None = None

    @property
    def has_valid_pixels(self) -> bool:
        return bool(self.used_image_names)

    def process(self, candidates, output, source, sampler, depth_sampler=None):
        sampler.set_output(output)
        output.fill(0.0)
        output.set_accumulate(True)
        self.exposure = np.zeros(output.plane_size)

        try:
            for i, candidate in enumerate(candidates):
                if candidate is None:
                    continue
                try:
                    count = self._process_image(candidate, output, sampler, depth_sampler)
                except ImageError as err:
                    logger.warning("Error processing candidate image #%d: %s", i, err)
                    continue
                finally:
                    candidate.clear_data()

                if count > 0:
                    self.used_image_names.append(candidate.name)
                    self.used_pixel_counts.append(count)
                    logger.info("Image %d has overlap on %d pixels", i + 1, count)
        finally:
            output.set_accumulate(False)

        self.coverage = self.exposure > 0
        if self.settings.has("NoNormalize"):
            return

        planes = output.data_array.reshape(output.depth, output.plane_size)
        planes[:, self.coverage] /= self.exposure[self.coverage]
        planes[:, ~self.coverage] = self.blank

    def _process_image(self, candidate, output, sampler, depth_sampler) -> int:
        converter = Converter(output.wcs.inverse(), candidate.wcs)

        overlap = self.finder.find_images([candidate], output)
        if overlap is None or overlap.size == 0:
            return 0
        pix = np.flatnonzero(overlap >= 0)
        if pix.size == 0:
            return 0

        candidate.validate()
        image = candidate
        if candidate.depth > 1 and depth_sampler is not None:
            image = depth_sampler.sample(candidate)

        sampler.set_transform(converter)
        sampler.set_input(image)
        self.exposure_finder.set_image(candidate, output, sampler)

        values = sampler.values(pix)
        weights = self.exposure_finder.exposure(pix)
        used = np.isfinite(values).all(axis=0) & (weights > 0)
        if not used.any():
            return 0

        for k in range(min(image.depth, output.depth)):
            output.set_data(pix[used] + k * output.plane_size, values[k, used] * weights[used])
        self.exposure[pix[used]] += weights[used]
        return int(np.count_nonzero(used))

    def update_header(self, header):
        header.add_history("")
        header.add_history(f"Image mosaicking using {self.name}")
        header.add_history("")
        if not self.used_image_names:
            self._no_valid_pixels(header)
        for name, count in zip(self.used_image_names, self.used_pixel_counts, strict=True):
            header.add_history(f"  Used {count} pixels from {name}")
        header.add_history("")
