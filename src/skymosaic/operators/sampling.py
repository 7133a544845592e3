"""
sampling.py

Samplers read the value of an input image at the position that an output pixel maps to. The
position comes from a transformer (output pixel -> input pixel) and is evaluated for whole batches
of output pixels at once.
"""

# === Imports ======================================================================================

import copy
import re
from abc import ABC, abstractmethod

import jax.numpy as jnp
import numpy as np
from jax.scipy.ndimage import map_coordinates

from skymosaic.errors import ConfigurationError
from skymosaic.geometry.transformer import Transformer
from skymosaic.io.image import Image

# === Main =========================================================================================

class Sampler(ABC):
    """
    Base class for samplers.

    Pixel coordinates put the corner of the first pixel at (0, 0), so the value of input pixel
    (i, j) is taken to be measured at (i + 0.5, j + 0.5).
    """

    name: str = "Sampler"
    description: str = "Resample an image"

    def __init__(self):
        self.input: Image | None = None
        self.output: Image | None = None
        self.transformer: Transformer | None = None
        self.bounds: tuple[int, int, int, int] | None = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    # Setup
    def set_input(self, image: Image) -> None:
        self.input = image

    def set_output(self, image: Image) -> None:
        self.output = image

    def set_transform(self, transformer: Transformer) -> None:
        """Transformation from output pixel coordinates to input pixel coordinates."""
        self.transformer = transformer

    def set_bounds(self, bounds: tuple[int, int, int, int] | None) -> None:
        """Restrict sampling to output pixels with ``xmin <= x < xmax`` and ``ymin <= y < ymax``."""
        self.bounds = tuple(int(b) for b in bounds) if bounds is not None else None

    def set_order(self, order: int) -> None:
        """Order of a parametrized sampler; ignored by fixed samplers."""
        pass

    def clone(self) -> "Sampler":
        """Copy of this sampler that can be pointed at other images."""
        return copy.copy(self)

    # Sampling
    def positions(self, pix) -> np.ndarray:
        """Input pixel coordinates, shape (2, n), of the centres of the output pixels `pix`."""
        if self.output is None or self.transformer is None:
            raise RuntimeError("Sampler output and transform must be set before sampling")
        centers = self.output.get_center(pix)
        return self.transformer.transform(centers)

    def _in_bounds(self, pix: np.ndarray) -> np.ndarray:
        if self.bounds is None:
            return np.ones(pix.shape, dtype=bool)
        xmin, xmax, ymin, ymax = self.bounds
        plane = pix % self.output.plane_size
        x = plane % self.output.width
        y = plane // self.output.width
        return (x >= xmin) & (x < xmax) & (y >= ymin) & (y < ymax)

    def _evaluate(self, pix) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        if self.input is None:
            raise RuntimeError("Sampler input must be set before sampling")
        pix = np.atleast_1d(np.asarray(pix, dtype=np.int64))
        values = np.full((self.input.depth, pix.size), np.nan)
        valid = self._in_bounds(pix)
        if valid.any():
            sub_values, sub_valid = self._interpolate(self.positions(pix[valid]))
            idx = np.flatnonzero(valid)
            valid[idx[~sub_valid]] = False
            values[:, idx[sub_valid]] = sub_values[:, sub_valid]
        return pix, values, valid

    @abstractmethod
    def _interpolate(self, positions: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """
        Values at input pixel positions.

        Args:
            positions: Input pixel coordinates, shape (2, n).

        Returns:
            Values with shape (input depth, n) and a mask of the positions that could be sampled.
        """
        pass

    def values(self, pix) -> np.ndarray:
        """Sampled values, shape (input depth, n), NaN where the input has no data, without writing."""
        return self._evaluate(pix)[1]

    def sample(self, pix) -> int:
        """
        Sample output pixel(s) into the output image.

        Output pixels whose position falls outside the input are left untouched.

        Args:
            pix: Flat index (or indices) of output pixels in the first plane.

        Returns:
            Number of output pixels written.
        """
        pix, values, valid = self._evaluate(pix)
        depth = min(self.input.depth, self.output.depth)
        for k in range(depth):
            self.output.set_data(pix[valid] + k * self.output.plane_size, values[k, valid])
        return int(np.count_nonzero(valid))


class NNSampler(Sampler):
    """Nearest neighbour sampling."""

    name = "NNSampler"
    description = "Sample using the nearest input pixel value"

    def _interpolate(self, positions):
        image = self.input
        with np.errstate(invalid="ignore"):
            ix = np.floor(positions[0])
            iy = np.floor(positions[1])
            valid = (ix >= 0) & (ix < image.width) & (iy >= 0) & (iy < image.height)

        values = np.full((image.depth, positions.shape[1]), np.nan)
        if valid.any():
            cube = image.cube
            values[:, valid] = cube[:, iy[valid].astype(np.int64), ix[valid].astype(np.int64)]
        return values, valid


class LISampler(Sampler):
    """Bilinear interpolation between the four input pixels surrounding the position."""

    name = "LISampler"
    description = "Sample using a bi-linear interpolation"

    def _interpolate(self, positions):
        image = self.input
        x = positions[0] - 0.5
        y = positions[1] - 0.5
        with np.errstate(invalid="ignore"):
            valid = (x >= 0) & (x <= image.width - 1) & (y >= 0) & (y <= image.height - 1)

        values = np.full((image.depth, positions.shape[1]), np.nan)
        if valid.any():
            coords = [jnp.asarray(y[valid]), jnp.asarray(x[valid])]
            cube = jnp.asarray(image.cube)
            for k in range(image.depth):
                values[k, valid] = np.asarray(map_coordinates(cube[k], coords, order=1, mode="nearest"))
        return values, valid


class LanczosSampler(Sampler):
    """
    Lanczos (windowed sinc) interpolation over a ``2n x 2n`` block of input pixels.

    Positions closer than `n` pixels to the edge of the input are not sampled.
    """

    description = "Sample using smoothly truncated sinc kernel"

    def __init__(self, order: int = 3):
        super().__init__()
        self.set_order(order)

    @property
    def name(self) -> str:
        return f"Lanczos{self.order} Sampler"

    def __repr__(self) -> str:
        return f"LanczosSampler(order={self.order})"

    def set_order(self, order: int) -> None:
        if order < 1:
            raise ConfigurationError(f"Lanczos order must be positive, got {order}")
        self.order = int(order)

    def _weights(self, start: np.ndarray) -> np.ndarray:
        """Kernel weights for the 2n pixels beginning at offset `start`, shape (2n, m)."""
        n = self.order
        coef = np.pi / n
        dx = start[None, :] + np.arange(2 * n)[:, None]
        small = np.abs(dx) < 1e-10
        safe = np.where(small, 1.0, dx)
        weights = np.sin(coef * safe) * np.sin(np.pi * safe) / (coef * np.pi * safe * safe)
        return np.where(small, 1.0, weights)

    def _interpolate(self, positions):
        image = self.input
        n = self.order
        x = positions[0] - 0.5
        y = positions[1] - 0.5
        with np.errstate(invalid="ignore"):
            ix = np.floor(x)
            iy = np.floor(y)
            valid = (ix >= n - 1) & (iy >= n - 1) & (ix < image.width - n) & (iy < image.height - n)

        values = np.full((image.depth, positions.shape[1]), np.nan)
        if not valid.any():
            return values, valid

        ix = ix[valid].astype(np.int64)
        iy = iy[valid].astype(np.int64)
        wx = self._weights(ix - x[valid] - (n - 1))
        wy = self._weights(iy - y[valid] - (n - 1))

        offsets = np.arange(2 * n)
        xs = ix[None, :] - (n - 1) + offsets[:, None]
        ys = iy[None, :] - (n - 1) + offsets[:, None]
        weights = wy[:, None, :] * wx[None, :, :]

        cube = image.cube
        for k in range(image.depth):
            block = cube[k][ys[:, None, :], xs[None, :, :]]
            values[k, valid] = np.sum(block * weights, axis=(0, 1))
        return values, valid


# === Factory ======================================================================================

_SAMPLERS: dict[str, type[Sampler]] = {
    "nn": NNSampler,
    "li": LISampler,
    "lanczos": LanczosSampler,
}

DEFAULT_SAMPLER = "NN"


def sampler_factory(name: str | None = None) -> Sampler:
    """
    Sampler for a name such as "NN", "LI", "Lanczos" or "Lanczos4" (trailing digits set the order).

    Raises:
        ConfigurationError: If the name is not a known sampler.
    """
    if not name or name.lower() == "default":
        name = DEFAULT_SAMPLER

    match = re.fullmatch(r"(.*?[^\d])(\d*)", name.strip())
    if match is None:
        raise ConfigurationError(f"Invalid sampler name: {name!r}")
    base, order = match.groups()
    base = base.lower()
    if base.endswith("sampler"):
        base = base[: -len("sampler")]

    cls = _SAMPLERS.get(base)
    if cls is None:
        raise ConfigurationError(f"Invalid sampler name: {name!r}")
    sampler = cls()
    if order:
        sampler.set_order(int(order))
    return sampler


def available_samplers() -> list[str]:
    return [cls.__name__ for cls in _SAMPLERS.values()]
