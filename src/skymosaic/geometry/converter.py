"""
converter.py

Ordered composition of transformers usable as a single transformer.
"""

# === Imports ======================================================================================

from collections.abc import Iterator

import numpy as np

from skymosaic.errors import TransformationError
from skymosaic.geometry.rotater import Rotater
from skymosaic.geometry.scaler import Scaler
from skymosaic.geometry.transformer import Transformer

# === Main =========================================================================================

class Converter(Transformer):
    """
    Chain of transformers applied in the order they were added.

    Stages may change the dimension of the points (plane to sphere and back) but the output
    dimension of each stage must match the input dimension of the next. An empty converter is the
    identity. Before the first transform the chain is simplified: adjacent inverse pairs are
    dropped and adjacent rotations or affine maps are merged.
    """

    name = "Converter"
    description = "A compound transformation"

    def __init__(self, *stages: Transformer | None):
        self._stages: list[Transformer] = []
        self._checked = True
        for stage in stages:
            self.add(stage)

    def __len__(self) -> int:
        return len(self._stages)

    def __iter__(self) -> Iterator[Transformer]:
        return iter(self._stages)

    def __getitem__(self, index: int) -> Transformer:
        return self._stages[index]

    def __repr__(self) -> str:
        return f"Converter({', '.join(repr(s) for s in self._stages)})"

    @property
    def input_dimension(self) -> int:
        return self._stages[0].input_dimension if self._stages else 0

    @property
    def output_dimension(self) -> int:
        return self._stages[-1].output_dimension if self._stages else 0

    def add(self, stage: Transformer | None) -> "Converter":
        """
        Append a stage (nested converters are flattened, None is ignored).

        Raises:
            TransformationError: If the stage's input dimension does not match the chain's output.
        """
        if stage is None:
            return self

        if isinstance(stage, Converter):
            for sub in stage:
                self.add(sub)
            return self

        if self._stages and self._stages[-1].output_dimension != stage.input_dimension:
            raise TransformationError(
                f"Incompatible adjacent components: {self._stages[-1].name} "
                f"(output {self._stages[-1].output_dimension}) and {stage.name} (input {stage.input_dimension})"
            )
        self._stages.append(stage)
        self._checked = False
        return self

    def check(self) -> None:
        """Drop adjacent inverse pairs and merge adjacent rotaters and scalers."""
        if self._checked:
            return

        i = 1
        while i < len(self._stages):
            last = self._stages[i - 1]
            curr = self._stages[i]

            if last.is_inverse(curr):
                del self._stages[i - 1:i + 1]
                i = 1
                continue

            if isinstance(last, Rotater) and isinstance(curr, Rotater):
                self._stages[i - 1:i + 1] = [last.add(curr)]
                continue

            if isinstance(last, Scaler) and isinstance(curr, Scaler):
                self._stages[i - 1:i + 1] = [last.add(curr)]
                continue

            i += 1
        self._checked = True

    def transform(self, points) -> np.ndarray:
        self.check()
        if not self._stages:
            return np.array(points, dtype=np.float64)
        return super().transform(points)

    def _transform(self, points: np.ndarray) -> np.ndarray:
        for stage in self._stages:
            points = stage.transform(points)
        return points

    def inverse(self) -> "Converter":
        """
        Converter applying the inverse of every stage in reverse order.

        Raises:
            TransformationError: If any stage has no inverse.
        """
        inv = Converter()
        for stage in reversed(self._stages):
            inv.add(stage.inverse())
        return inv

    def is_inverse(self, other: Transformer | None) -> bool:
        if not self._stages:
            return other is None or (isinstance(other, Converter) and len(other) == 0)

        if not isinstance(other, Converter):
            return len(self._stages) == 1 and self._stages[0].is_inverse(other)

        n = len(self._stages)
        if len(other) != n:
            return False
        return all(self._stages[n - 1 - i].is_inverse(other[i]) for i in range(n))
