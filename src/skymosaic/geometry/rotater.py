"""
rotater.py

Rigid rotations of the unit sphere built from Euler angle sequences.
"""

# === Imports ======================================================================================

import numpy as np

from skymosaic.errors import TransformationError
from skymosaic.geometry.transformer import Transformer

# === Main =========================================================================================

class Rotater(Transformer):
    """
    Rotation of 3-vectors given as up to three elemental rotations.

    ``Rotater("ZYZ", a, b, c)`` rotates by `a` about Z, then `b` about the new Y, then `c` about the
    new Z. Composition with `add` keeps a record of the combined axis/angle sequence.
    """

    name = "Rotater"
    description = "Rotate a vector in 3-space"
    input_dimension = 3
    output_dimension = 3

    def __init__(self, axes: str = "", *angles: float, matrix: np.ndarray | None = None):
        axes = axes.upper()
        if matrix is not None:
            self.matrix = np.array(matrix, dtype=np.float64)
            if self.matrix.shape != (3, 3):
                raise TransformationError(f"Rotation matrix must be 3x3, got {self.matrix.shape}")
            self.axes = axes
            self.angles = tuple(float(a) for a in angles)
            return

        if len(axes) > 3:
            raise TransformationError(f"At most three elemental rotations allowed, got '{axes}'")

        # Missing angles default to 0, extra angles are ignored
        padded = [float(a) for a in angles[:len(axes)]]
        padded += [0.0] * (len(axes) - len(padded))

        self.axes = axes
        self.angles = tuple(padded)
        self.matrix = np.eye(3)
        for axis, angle in zip(axes, padded, strict=True):
            self.matrix = elemental_rotation(axis, angle) @ self.matrix

    def __repr__(self) -> str:
        return f"Rotater({self.axes!r}, {', '.join(f'{a:.6g}' for a in self.angles)})"

    def _transform(self, points: np.ndarray) -> np.ndarray:
        return self.matrix @ points

    def add(self, other: "Rotater | None") -> "Rotater":
        """Rotation applying `self` first and then `other`."""
        if other is None:
            return self
        return Rotater(
            self.axes + other.axes,
            *self.angles,
            *other.angles,
            matrix=other.matrix @ self.matrix,
        )

    def inverse(self) -> "Rotater":
        reversed_angles = tuple(-a for a in reversed(self.angles))
        return Rotater(self.axes[::-1], *reversed_angles, matrix=self.matrix.T)

    def is_inverse(self, other: Transformer | None) -> bool:
        if not isinstance(other, Rotater):
            return False
        product = other.matrix @ self.matrix
        return float(np.sum(np.abs(product - np.eye(3)))) < 1e-10


# === Utilities ====================================================================================

def elemental_rotation(axis: str, angle: float) -> np.ndarray:
    """Matrix for a single rotation of the frame by `angle` radians about X, Y or Z."""
    c = np.cos(angle)
    s = np.sin(angle)
    if axis == "X":
        return np.array([[1.0, 0.0, 0.0], [0.0, c, s], [0.0, -s, c]])
    if axis == "Y":
        return np.array([[c, 0.0, -s], [0.0, 1.0, 0.0], [s, 0.0, c]])
    if axis == "Z":
        return np.array([[c, s, 0.0], [-s, c, 0.0], [0.0, 0.0, 1.0]])
    raise TransformationError(f"Invalid rotation axis '{axis}'")
