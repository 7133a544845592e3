"""
errors.py

Exception hierarchy shared by the geometry, sampling and mosaicking layers.
"""

# === Main =========================================================================================

class SkyMosaicError(Exception):
    """Base class for all errors raised by skymosaic."""


class TransformationError(SkyMosaicError):
    """A transform could not be built, composed or inverted."""


class ConvergenceError(TransformationError):
    """An iterative inversion exhausted its iteration budget."""

    def __init__(self, message: str, iterations: int | None = None):
        super().__init__(message)
        self.iterations = iterations


class ConfigurationError(SkyMosaicError):
    """Unknown component name or malformed setting."""


class ImageError(SkyMosaicError):
    """A candidate image could not be read or materialized."""


class NoValidPixelsError(SkyMosaicError):
    """No candidate image contributed a single output pixel."""
