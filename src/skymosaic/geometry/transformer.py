"""
transformer.py

Abstract base for every coordinate transformation in the pipeline.
"""

# === Imports ======================================================================================

from abc import ABC, abstractmethod

import numpy as np

from skymosaic.errors import TransformationError

# === Main =========================================================================================

class Transformer(ABC):
    """
    A pure mapping from `input_dimension`-vectors to `output_dimension`-vectors.

    Points are passed as arrays whose first axis is the vector component: a single point has shape
    (d,), a batch has shape (d, n) or (d, *shape). Implementations only see (d, n) batches through
    `_transform` and never keep per-call state, so instances can be shared.
    """

    name: str = "Transformer"
    description: str = "Generic transformation"
    input_dimension: int = 0
    output_dimension: int = 0

    def __call__(self, points) -> np.ndarray:
        return self.transform(points)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    def transform(self, points) -> np.ndarray:
        """
        Apply the transformation.

        Args:
            points: Array of shape (input_dimension,) or (input_dimension, ...).

        Returns:
            Array of shape (output_dimension,) or (output_dimension, ...).
        """
        pts = np.asarray(points, dtype=np.float64)
        if pts.ndim == 0 or pts.shape[0] != self.input_dimension:
            raise TransformationError(
                f"{self.name} expects {self.input_dimension}-vectors, got array of shape {pts.shape}"
            )
        batch_shape = pts.shape[1:]
        out = self._transform(pts.reshape(self.input_dimension, -1))
        return out.reshape((self.output_dimension, *batch_shape))

    @abstractmethod
    def _transform(self, points: np.ndarray) -> np.ndarray:
        """Transform a (input_dimension, n) batch into a (output_dimension, n) batch."""
        pass

    @abstractmethod
    def inverse(self) -> "Transformer":
        """Inverse transformation; raises TransformationError if there is none."""
        pass

    @abstractmethod
    def is_inverse(self, other: "Transformer | None") -> bool:
        """Whether `other` undoes this transformation (checked without transforming points)."""
        pass
