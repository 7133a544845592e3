"""
finder.py

Image finders decide which candidate image supplies each output pixel. The result is a source
map: one integer per output pixel holding a candidate index or one of the negative sentinels.
"""

# === Imports ======================================================================================

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

import numpy as np

from skymosaic.config import Settings, default_settings
from skymosaic.errors import ConfigurationError, TransformationError
from skymosaic.io.image import Image

logger = logging.getLogger(__name__)

# === Main =========================================================================================

# Source map sentinels
NO_COVERAGE = -2
NON_PHYSICAL = -3
CONSUMED = -4


class ImageFinder(ABC):
    """Base class for image finders."""

    name: str = "ImageFinder"
    description: str = "Find the candidate image supplying each output pixel"

    def __init__(self, settings: Settings | None = None):
        self.settings = settings if settings is not None else default_settings()

    @abstractmethod
    def find_images(self, candidates: Sequence[Image], output: Image) -> np.ndarray | None:
        """
        Source map for the first plane of `output`.

        Returns:
            Integer array with one entry per output pixel, or None when there are no candidates.
        """
        pass


class OverlapFinder(ImageFinder):
    """
    Choose, for each output pixel, the candidate in which the pixel lies furthest from an edge.

    Settings:
        ImageFinderEdge: Number of pixels to ignore at each edge of a candidate.
        ImageFinderRadius: Maximum distance from the candidate centre, as a fraction of its half
            diagonal.
        StrictGeometry: Require all four corners of the output pixel to fall inside the candidate
            instead of only its centre.
    """

    name = "Overlap"
    description = "Pick the candidate in which each output pixel lies deepest"

    def __init__(self, settings: Settings | None = None):
        super().__init__(settings)
        self.edge = self.settings.get_float("ImageFinderEdge", 0.0)
        self.radius = self.settings.get_float("ImageFinderRadius")
        self.strict = self.settings.has("StrictGeometry")

    def _sky_positions(self, output: Image) -> list[np.ndarray]:
        """Unit vectors of the output pixel centres, or of the four corners in strict mode."""
        to_sky = output.wcs.inverse()
        centers = output.pixel_grid()
        if not self.strict:
            return [to_sky.transform(centers)]
        return [
            to_sky.transform(centers + np.array([[dx], [dy]]))
            for dx, dy in ((-0.5, -0.5), (0.5, -0.5), (-0.5, 0.5), (0.5, 0.5))
        ]

    def _depth(self, candidate: Image, sky: np.ndarray) -> np.ndarray:
        """Distance (pixels) of each position inside the usable area of the candidate; -inf outside."""
        depth = np.full(sky.shape[1], -np.inf)
        physical = np.isfinite(sky).all(axis=0)
        if not physical.any():
            return depth

        x, y = candidate.wcs.transform(sky[:, physical])
        w, h, edge = candidate.width, candidate.height, self.edge
        with np.errstate(invalid="ignore"):
            inside = (x >= edge) & (x < w - edge) & (y >= edge) & (y < h - edge)
            if self.radius is not None:
                limit = self.radius * np.hypot(w, h) / 2
                inside &= np.hypot(x - w / 2, y - h / 2) <= limit
            margin = np.minimum(np.minimum(x - edge, w - edge - x), np.minimum(y - edge, h - edge - y))

        depth[physical] = np.where(inside, margin, -np.inf)
        return depth

    def find_images(self, candidates, output):
        if not candidates:
            return None

        positions = self._sky_positions(output)
        source = np.full(output.plane_size, NO_COVERAGE, dtype=np.int64)
        physical = np.isfinite(positions[0]).all(axis=0)
        source[~physical] = NON_PHYSICAL
        best = np.full(output.plane_size, -np.inf)

        for i, candidate in enumerate(candidates):
            if candidate is None or candidate.wcs is None:
                continue
            try:
                depth = np.min([self._depth(candidate, sky) for sky in positions], axis=0)
            except TransformationError as err:
                logger.warning("Unable to test overlap of candidate image #%d (%s): %s", i, candidate.name, err)
                continue

            better = physical & np.isfinite(depth) & (depth > best)
            source[better] = i
            best[better] = depth[better]

        logger.info(
            "Image finder: %d of %d pixels covered by %d candidate(s)",
            int(np.count_nonzero(source >= 0)), output.plane_size, len(candidates),
        )
        return source


class BypassFinder(ImageFinder):
    """Skip image finding; the processor decides which images to use."""

    name = "Bypass"
    description = "Bypass image finding"

    def find_images(self, candidates, output):
        if not candidates:
            return None
        logger.info("Image finder bypassed: %d images", len(candidates))
        return np.zeros(0, dtype=np.int64)


# === Factory ======================================================================================

_FINDERS: dict[str, type[ImageFinder]] = {
    "overlap": OverlapFinder,
    "bypass": BypassFinder,
}

DEFAULT_FINDER = "Overlap"


def image_finder_factory(name: str | None = None, settings: Settings | None = None) -> ImageFinder:
    """
    Image finder registered under `name` (case-insensitive, default "Overlap").

    Raises:
        ConfigurationError: If no finder is registered under the name.
    """
    key = (name or DEFAULT_FINDER).strip().lower()
    if key == "default":
        key = DEFAULT_FINDER.lower()
    try:
        cls = _FINDERS[key]
    except KeyError as err:
        raise ConfigurationError(f"Unknown image finder: {name!r}") from err
    return cls(settings)
