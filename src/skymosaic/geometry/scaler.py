"""
scaler.py

Affine transformations of the projection plane.
"""

# === Imports ======================================================================================

import numpy as np

from skymosaic.errors import TransformationError
from skymosaic.geometry.transformer import Transformer

# === Main =========================================================================================

class Scaler(Transformer):
    """
    Affine map of the plane::

        x' = x0 + a00*x + a01*y
        y' = y0 + a10*x + a11*y

    Used between projection-plane coordinates (radians) and pixel coordinates.
    """

    name = "Scaler"
    description = "Affine transformation in two dimensions"
    input_dimension = 2
    output_dimension = 2

    def __init__(self, x0: float, y0: float, a00: float, a01: float, a10: float, a11: float):
        self.x0 = float(x0)
        self.y0 = float(y0)
        self.a00 = float(a00)
        self.a01 = float(a01)
        self.a10 = float(a10)
        self.a11 = float(a11)

    def __repr__(self) -> str:
        return "Scaler({:.6g}, {:.6g}, {:.6g}, {:.6g}, {:.6g}, {:.6g})".format(*self.params)

    @property
    def params(self) -> tuple[float, float, float, float, float, float]:
        return (self.x0, self.y0, self.a00, self.a01, self.a10, self.a11)

    @property
    def determinant(self) -> float:
        return self.a00 * self.a11 - self.a01 * self.a10

    def _transform(self, points: np.ndarray) -> np.ndarray:
        x = points[0]
        y = points[1]
        return np.stack([
            self.x0 + self.a00 * x + self.a01 * y,
            self.y0 + self.a10 * x + self.a11 * y,
        ])

    def inverse(self) -> "Scaler":
        if self.a00 == 0 and self.a01 == 0 and self.a10 == 0 and self.a11 == 0:
            raise TransformationError("Scaler has all zero matrix elements and cannot be inverted")

        det = self.determinant
        if det == 0:
            raise TransformationError("Scaler is singular and cannot be inverted")

        return Scaler(
            -self.x0 * self.a11 / det + self.y0 * self.a01 / det,
            self.x0 * self.a10 / det - self.y0 * self.a00 / det,
            self.a11 / det,
            -self.a01 / det,
            -self.a10 / det,
            self.a00 / det,
        )

    def add(self, other: "Scaler | None") -> "Scaler":
        """Affine map applying `self` first and then `other`."""
        if other is None:
            return self
        return Scaler(
            other.x0 + other.a00 * self.x0 + other.a01 * self.y0,
            other.y0 + other.a10 * self.x0 + other.a11 * self.y0,
            other.a00 * self.a00 + other.a01 * self.a10,
            other.a00 * self.a01 + other.a01 * self.a11,
            other.a10 * self.a00 + other.a11 * self.a10,
            other.a10 * self.a01 + other.a11 * self.a11,
        )

    def interchange_axes(self) -> "Scaler":
        """The same map with the two output coordinates swapped."""
        return Scaler(self.y0, self.x0, self.a10, self.a11, self.a00, self.a01)

    def is_unit(self) -> bool:
        deviation = (
            abs(self.x0) + abs(self.y0) + abs(self.a00 - 1) + abs(self.a01) + abs(self.a10) + abs(self.a11 - 1)
        )
        return deviation < 1e-10

    def is_inverse(self, other: Transformer | None) -> bool:
        if not isinstance(other, Scaler):
            return False
        return self.add(other).is_unit()
