"""SkyMosaic: resampling and mosaicking of astronomical survey images onto a common sky grid."""

import jax

# Enable 64-bit precision for scientific accuracy
jax.config.update("jax_enable_x64", True)

try:
    from ._version import __version__
except ImportError:
    __version__ = "0.1.dev0"

from skymosaic import geometry, io, operators, process
from skymosaic.config import Settings
from skymosaic.errors import (
    ConfigurationError,
    ConvergenceError,
    ImageError,
    NoValidPixelsError,
    SkyMosaicError,
    TransformationError,
)

__all__ = [
    "ConfigurationError",
    "ConvergenceError",
    "ImageError",
    "NoValidPixelsError",
    "Settings",
    "SkyMosaicError",
    "TransformationError",
    "__version__",
    "geometry",
    "io",
    "operators",
    "process",
]
