"""
pipeline.py

Processor registry and the convenience entry point running image finding, processing and header update.
"""

# === Imports ======================================================================================

import logging
from collections.abc import Sequence

import numpy as np
from astropy.io import fits

from skymosaic.config import Settings, default_settings
from skymosaic.errors import ConfigurationError, NoValidPixelsError
from skymosaic.io.image import Image
from skymosaic.io.survey import SurveyFinder
from skymosaic.operators.depth import DepthSampler
from skymosaic.operators.sampling import Sampler, sampler_factory
from skymosaic.process.adding import AddingMosaicker
from skymosaic.process.backup import BackupMosaicker
from skymosaic.process.finder import NO_COVERAGE, image_finder_factory
from skymosaic.process.idmosaic import IDMosaic
from skymosaic.process.mosaicker import Mosaicker, Processor

logger = logging.getLogger(__name__)

# === Main =========================================================================================

def mosaic(
    candidates: Sequence[Image],
    output: Image,
    settings: Settings | None = None,
    processor: Processor | None = None,
    sampler: Sampler | None = None,
    depth_sampler: DepthSampler | None = None,
    header: fits.Header | None = None,
    survey_finder: SurveyFinder | None = None,
) -> Processor:
    """
    Find the source of each output pixel and mosaic the candidates into `output`.

    Components not given are built from the settings: ``Mosaicker`` (processor),
    ``Sampler`` and ``ImageFinder``.

    Args:
        candidates: Candidate images.
        output: Output image, filled in place.
        settings: Run settings.
        processor: Processor to run.
        sampler: Spatial sampler.
        depth_sampler: Optional rebinning of multi-plane candidates.
        header: Header that receives the processing history.
        survey_finder: Surveys for the backup mosaicker.

    Returns:
        The processor that was run.

    Raises:
        NoValidPixelsError: If no candidate contributed any pixel.
    """
    settings = settings if settings is not None else default_settings()
    if processor is None:
        processor = processor_factory(settings.get("Mosaicker"), settings, survey_finder=survey_finder)
    if sampler is None:
        sampler = sampler_factory(settings.get("Sampler"))

    finder = image_finder_factory(settings.get("ImageFinder"), settings)
    source = finder.find_images(candidates, output)
    if source is None:
        source = np.full(output.plane_size, NO_COVERAGE, dtype=np.int64)

    logger.info("Mosaicking %d candidate(s) with %s and %s", len(candidates), processor.name, sampler.name)
    processor.process(candidates, output, source, sampler, depth_sampler)

    if header is not None:
        processor.update_header(header)
    if not processor.has_valid_pixels:
        raise NoValidPixelsError("No valid pixels found in mosaicker")
    return processor


# === Factory ======================================================================================

_PROCESSORS: dict[str, type[Processor]] = {
    "mosaicker": Mosaicker,
    "addingmosaicker": AddingMosaicker,
    "backupmosaicker": BackupMosaicker,
    "idmosaic": IDMosaic,
}


def processor_factory(
    name: str | None = None,
    settings: Settings | None = None,
    survey_finder: SurveyFinder | None = None,
) -> Processor:
    """
    Processor registered under `name` (case-insensitive, default "Mosaicker").

    Raises:
        ConfigurationError: If no processor is registered under the name.
    """
    key = (name or "Mosaicker").strip().lower()
    try:
        cls = _PROCESSORS[key]
    except KeyError as err:
        raise ConfigurationError(f"Unknown mosaicker: {name!r}") from err
    if cls is BackupMosaicker:
        return BackupMosaicker(settings, survey_finder=survey_finder)
    return cls(settings)
