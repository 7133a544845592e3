"""
depth.py

Rebinning of the third (typically spectral) axis of an image.
"""

# === Imports ======================================================================================

import math

import numpy as np

from skymosaic.io.image import Image

# === Main =========================================================================================

class DepthSampler:
    """
    Resample an image in its third dimension.

    Output plane ``t`` covers input planes ``[zero + t*delta, zero + (t+1)*delta)``; each input
    plane contributes in proportion to the fraction of it that falls inside that range. Input planes
    outside the image contribute nothing.

    Args:
        zero: Input plane coordinate of the start of the first output plane.
        delta: Width of an output plane in input planes.
        n: Number of output planes.
    """

    name = "DepthSampler"
    description = "Resample an image in the third (typically energy-like) dimension"

    def __init__(self, zero: float, delta: float, n: int):
        if n <= 0:
            raise ValueError(f"Number of output planes must be positive, got {n}.")
        if delta <= 0:
            raise ValueError(f"Output plane width must be positive, got {delta}.")
        self.zero = float(zero)
        self.delta = float(delta)
        self.n = int(n)

    def __repr__(self) -> str:
        return f"DepthSampler(zero={self.zero}, delta={self.delta}, n={self.n})"

    def weights(self, depth: int) -> np.ndarray:
        """Matrix of shape (n, depth) giving the contribution of each input plane to each output plane."""
        w = np.zeros((self.n, depth))
        for t in range(self.n):
            zmin = self.zero + t * self.delta
            zmax = zmin + self.delta
            for z in range(max(math.floor(zmin), 0), min(math.ceil(zmax), depth)):
                w[t, z] = max(0.0, min(zmax, z + 1) - max(zmin, z))
        return w

    def sample(self, image: Image) -> Image:
        """Image with `n` planes rebinned from `image`; the input is returned when nothing changes."""
        if self.n == image.depth and self.zero == 0 and self.delta == 1:
            return image

        cube = image.cube.reshape(image.depth, -1)
        out = self.weights(image.depth) @ cube
        return Image(out, image.wcs, image.width, image.height, self.n, name=image.name)
