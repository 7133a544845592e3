"""
image.py

In-memory and FITS-backed images: a flat pixel buffer plus the WCS that places it on the sky.
"""

# === Imports ======================================================================================

import logging
import os
from pathlib import Path

import numpy as np
from astropy.io import fits

from skymosaic.config import Settings, default_settings
from skymosaic.errors import ImageError, TransformationError
from skymosaic.geometry.util import coord
from skymosaic.geometry.wcs import WCS

logger = logging.getLogger(__name__)

# === Main =========================================================================================

class Image:
    """
    Rectangular image with an optional third (depth) axis.

    Pixel data are stored as a flat float64 buffer in which pixel ``(x, y, z)`` has index
    ``x + width*y + width*height*z``. Pixel coordinates place the corner of the first pixel at
    (0, 0), so the centre of pixel (x, y) is at (x + 0.5, y + 0.5).

    Args:
        data: Pixel values (any shape with ``width*height*depth`` elements), or None for an image
            whose data are loaded by `validate`.
        wcs: World coordinate system of the image.
        width: Number of pixels along the first axis.
        height: Number of pixels along the second axis.
        depth: Number of planes.
        name: Human readable name.
        header: FITS header describing the image, if any.
    """

    def __init__(
        self,
        data: np.ndarray | None,
        wcs: WCS | None,
        width: int,
        height: int,
        depth: int = 1,
        name: str = "",
        header: fits.Header | None = None,
    ):
        if width <= 0 or height <= 0 or depth <= 0:
            raise ValueError(f"Image dimensions must be positive, got {width}x{height}x{depth}.")

        self.wcs = wcs
        self.width = int(width)
        self.height = int(height)
        self.depth = int(depth)
        self.name = name
        self.header = header
        self.accumulate = False
        self._data: np.ndarray | None = None
        if data is not None:
            self._data = self._as_buffer(data)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, {self.width}x{self.height}x{self.depth})"

    def _as_buffer(self, data) -> np.ndarray:
        buffer = np.array(data, dtype=np.float64).ravel()
        if buffer.size != self.size:
            raise ValueError(
                f"Data size {buffer.size} does not match image dimensions {self.width}x{self.height}x{self.depth}."
            )
        return buffer

    # Properties
    @property
    def plane_size(self) -> int:
        return self.width * self.height

    @property
    def size(self) -> int:
        return self.width * self.height * self.depth

    @property
    def data_array(self) -> np.ndarray:
        """The flat pixel buffer, loading it first if needed."""
        if self._data is None:
            self.validate()
        return self._data

    @property
    def is_loaded(self) -> bool:
        return self._data is not None

    @property
    def is_tiled(self) -> bool:
        return False

    @property
    def cube(self) -> np.ndarray:
        """View of the data with shape (depth, height, width)."""
        return self.data_array.reshape(self.depth, self.height, self.width)

    # Data access
    def get_data(self, pix) -> np.ndarray | float:
        data = self.data_array
        if np.ndim(pix) == 0:
            return float(data[pix])
        return data[np.asarray(pix, dtype=np.int64)]

    def set_data(self, pix, value) -> None:
        """Store values at flat indices, adding to the current values when `accumulate` is set."""
        data = self.data_array
        pix = np.asarray(pix, dtype=np.int64)
        if self.accumulate:
            np.add.at(data, pix, value)
        else:
            data[pix] = value

    def set_accumulate(self, flag: bool) -> None:
        self.accumulate = bool(flag)

    def get_center(self, pix) -> np.ndarray:
        """Pixel coordinates of the centre(s) of the given flat index (or indices) in the first plane."""
        pix = np.asarray(pix, dtype=np.int64) % self.plane_size
        return np.stack([pix % self.width + 0.5, pix // self.width + 0.5]).astype(np.float64)

    def pixel_grid(self) -> np.ndarray:
        """Centres of every pixel of a plane, shape (2, width*height)."""
        return self.get_center(np.arange(self.plane_size))

    def sky_center(self) -> tuple[float, float]:
        """J2000 longitude and latitude (degrees) of the image centre."""
        if self.wcs is None:
            raise TransformationError(f"Image {self.name!r} has no WCS")
        vec = self.wcs.inverse().transform(np.array([self.width / 2, self.height / 2]))
        lon, lat = np.degrees(coord(vec))
        return float(lon), float(lat)

    def radius(self) -> float:
        """Half diagonal of the image in degrees."""
        if self.wcs is None:
            raise TransformationError(f"Image {self.name!r} has no WCS")
        return float(np.degrees(self.wcs.scale) * np.hypot(self.width, self.height) / 2)

    # Lifecycle
    def validate(self) -> None:
        """Make sure pixel data are available."""
        if self._data is None:
            raise ImageError(f"Image {self.name!r} has no data")

    def clear_data(self) -> None:
        """Release the pixel buffer of an image that can reload it."""
        pass

    def fill(self, value: float) -> None:
        self.data_array[:] = value

    def summary(self) -> str:
        lines = [
            f"{type(self).__name__}: {self.name}",
            f"  Size: {self.width} x {self.height} x {self.depth}",
            f"  Loaded: {self.is_loaded}",
        ]
        if self.wcs is not None:
            lines.append(f"  WCS: {self.wcs!r}")
            lines.append(f"  Scale: {np.degrees(self.wcs.scale) * 3600:.3f} arcsec/pixel")
        return "\n".join(lines)


class FitsImage(Image):
    """
    Image backed by a FITS file.

    The header and WCS are read when the image is created; the pixel data (with BSCALE/BZERO
    applied) are read on `validate` and may be released with `clear_data`.

    Args:
        path: FITS file.
        settings: Run settings; ``PixelOffset`` (one or two comma separated values) shifts the
            reference pixel before the WCS is built.

    Raises:
        ImageError: If the file cannot be read or its axes or WCS are unusable.
    """

    def __init__(self, path: str | os.PathLike, settings: Settings | None = None):
        self.path = Path(path)
        settings = settings if settings is not None else default_settings()

        try:
            with fits.open(self.path) as hdul:
                header = hdul[0].header.copy()
        except (OSError, ValueError) as err:
            raise ImageError(f"Unable to read FITS file '{self.path}': {err}") from err

        naxis = int(header.get("NAXIS", 0))
        if naxis < 2:
            raise ImageError(f"Image '{self.path}' has fewer than two dimensions")
        if naxis > 3:
            for i in range(4, naxis + 1):
                if int(header.get(f"NAXIS{i}", 1)) > 1:
                    raise ImageError(f"Image '{self.path}' has more than three non-degenerate dimensions")

        width = int(header["NAXIS1"])
        height = int(header["NAXIS2"])
        depth = int(header.get("NAXIS3", 1)) if naxis > 2 else 1

        if settings.has("PixelOffset"):
            offsets = [float(v) for v in settings.get_array("PixelOffset")]
            if len(offsets) == 1:
                offsets *= 2
            header["CRPIX1"] = float(header.get("CRPIX1", 0.0)) + offsets[0]
            header["CRPIX2"] = float(header.get("CRPIX2", 0.0)) + offsets[1]

        try:
            wcs = WCS.from_header(header)
        except TransformationError as err:
            raise ImageError(f"Unable to build WCS for '{self.path}': {err}") from err

        name = str(self.path)
        region = header.get("REGION")
        if region:
            name = f"{region}:{name}"

        super().__init__(None, wcs, width, height, depth, name=name, header=header)

    def validate(self) -> None:
        if self._data is not None:
            return
        logger.debug("Reading pixel data from %s", self.path)
        try:
            with fits.open(self.path) as hdul:
                data = hdul[0].data
                if data is None:
                    raise ImageError(f"No pixel data in '{self.path}'")
                self._data = self._as_buffer(data)
        except (OSError, ValueError) as err:
            raise ImageError(f"Unable to read pixel data from '{self.path}': {err}") from err

    def clear_data(self) -> None:
        self._data = None


# === Utilities ====================================================================================

def write_fits(image: Image, path: str | os.PathLike, header: fits.Header | None = None, overwrite: bool = False) -> None:
    """Write an image and header to a FITS file."""
    hdu = fits.PrimaryHDU(data=image.cube if image.depth > 1 else image.cube[0], header=header)
    hdu.writeto(path, overwrite=overwrite)
