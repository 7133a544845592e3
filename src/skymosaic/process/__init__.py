"""Image finding, exposure weighting and the mosaicking processors."""

from skymosaic.process.adding import AddingMosaicker
from skymosaic.process.backup import BLANK, BackupMosaicker
from skymosaic.process.exposure import (
    ExposureFileExposure,
    ExposureFinder,
    FitsKeywordExposure,
    NullExposure,
    exposure_finder_factory,
)
from skymosaic.process.finder import (
    CONSUMED,
    NO_COVERAGE,
    NON_PHYSICAL,
    BypassFinder,
    ImageFinder,
    OverlapFinder,
    image_finder_factory,
)
from skymosaic.process.idmosaic import IDMosaic
from skymosaic.process.mosaicker import Mosaicker, Processor, ordinal_suffix
from skymosaic.process.pipeline import mosaic, processor_factory

__all__ = [
    "BLANK",
    "CONSUMED",
    "NON_PHYSICAL",
    "NO_COVERAGE",
    "AddingMosaicker",
    "BackupMosaicker",
    "BypassFinder",
    "ExposureFileExposure",
    "ExposureFinder",
    "FitsKeywordExposure",
    "IDMosaic",
    "ImageFinder",
    "Mosaicker",
    "NullExposure",
    "OverlapFinder",
    "Processor",
    "exposure_finder_factory",
    "image_finder_factory",
    "mosaic",
    "ordinal_suffix",
    "processor_factory",
]
