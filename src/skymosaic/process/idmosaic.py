"""
idmosaic.py

Diagnostic processor writing, for every output pixel, the index of the candidate that would supply it.
"""

# === Imports ======================================================================================

import logging

import numpy as np

from skymosaic.config import Settings
from skymosaic.process.finder import CONSUMED, NO_COVERAGE, NON_PHYSICAL
from skymosaic.process.mosaicker import Processor

logger = logging.getLogger(__name__)

# === Main =========================================================================================

# Width of a FITS header card
CARD_LENGTH = 80


class IDMosaic(Processor):
    """
    Write the source map itself into the output.

    Each output pixel receives the candidate index (or the NO_COVERAGE / NON_PHYSICAL sentinel)
    in every plane. The number of pixels taken from each candidate, and the number of uncovered
    and off-projection pixels, are kept for the header.
    """

    name = "IDMosaic"
    description = "Create an image of the candidate index supplying each pixel"

    def __init__(self, settings: Settings | None = None):
        super().__init__(settings)
        self.names: list[str] = []
        self.counts = np.zeros(0, dtype=np.int64)
        self.nocoverage = 0
        self.nonphysical = 0

    @property
    def has_valid_pixels(self) -> bool:
        return int(self.counts.sum()) > 0

    def process(self, candidates, output, source, sampler, depth_sampler=None):
        source = np.asarray(source, dtype=np.int64)
        self.names = [c.name if c is not None else "" for c in candidates]
        self.counts = np.zeros(len(candidates), dtype=np.int64)
        if source.size == 0:
            source = np.full(output.plane_size, NO_COVERAGE, dtype=np.int64)
        if source.size != output.plane_size:
            raise ValueError(f"Source map has {source.size} entries for {output.plane_size} output pixels.")

        pix = np.flatnonzero(source != CONSUMED)
        planes = output.data_array.reshape(output.depth, output.plane_size)
        planes[:, pix] = source[pix]

        ids = source[pix]
        assigned = ids[ids >= 0]
        if assigned.size:
            self.counts = np.bincount(assigned, minlength=len(candidates)).astype(np.int64)
        self.nocoverage = int(np.count_nonzero(ids == NO_COVERAGE))
        self.nonphysical = int(np.count_nonzero(ids == NON_PHYSICAL))
        logger.info(
            "ID mosaic: %d pixels from %d image(s), %d uncovered, %d off projection",
            int(assigned.size), int(np.count_nonzero(self.counts)), self.nocoverage, self.nonphysical,
        )

    def update_header(self, header):
        header.add_history("")
        header.add_history(f"Image mosaicking using {self.name}")
        header.add_history("")
        header.add_history("************************************")
        header.add_history("** Images used                    **")
        header.add_history("************************************")
        header.add_history("")
        for i, count in enumerate(self.counts):
            if count > 0:
                header.add_history(image_line(i, int(count), self.names[i]))
        header.add_history("")
        if self.nocoverage > 0:
            header.add_history(f"Uncovered pixels:{self.nocoverage}")
        if self.nonphysical > 0:
            header.add_history(f"Pixels off projection:{self.nonphysical}")
        header.add_history("")


# === Utilities ====================================================================================

def image_line(index: int, count: int, name: str) -> str:
    """History line ``"index (count): name"``, keeping the tail of long names so the card fits."""
    prefix = f"{index} ({count}): "
    used = len(prefix) + 8
    if used + len(name) > CARD_LENGTH:
        name = "..." + name[used + len(name) - (CARD_LENGTH - 3):]
    return prefix + name
