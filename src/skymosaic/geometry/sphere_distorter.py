"""
sphere_distorter.py

Non-rigid corrections on the unit sphere (FK4 elliptic aberration terms).
"""

# === Imports ======================================================================================

import numpy as np

from skymosaic.geometry.transformer import Transformer

# === Main =========================================================================================

class SphereDistorter(Transformer):
    """Base class for deformations of the unit sphere; outputs are renormalized unit vectors."""

    name = "SphereDistorter"
    description = "Placeholder for distortions in celestial sphere"
    input_dimension = 3
    output_dimension = 3


# Elliptic aberration vector (radians)
E_TERMS = np.array([-1.62557e-6, -0.31919e-6, -0.13843e-6])

# FK5 -> FK4 position matrix
FK5_TO_FK4 = np.array([
    [0.9999256795, 0.0111814828, 0.0048590039],
    [-0.0111814828, 0.9999374849, -0.0000271771],
    [-0.0048590040, -0.0000271557, 0.9999881946],
])

# FK4 -> FK5 position and proper motion matrices
FK4_TO_FK5 = np.array([
    [0.9999256782, -0.0111820611, -0.0048579477],
    [0.0111820610, 0.9999374784, -0.0000271765],
    [0.0048579479, -0.0000271474, 0.9999881997],
])
FK4_TO_FK5_MOTION = np.array([
    [-0.000551, -0.238565, 0.435739],
    [0.238514, -0.002667, -0.008541],
    [-0.435623, 0.012254, 0.002117],
])

# Arcseconds per radian per century
PMF = 100.0 * 60 * 60 * 360 / (2 * np.pi)


class BesselianDistorter(SphereDistorter):
    """
    FK5 (J2000) to FK4 (B1950) distortion: frame matrix plus the E-terms of aberration.

    Dynamic (proper motion) terms are not modelled; the inverse folds in the fixed 50 year
    correction between the two epochs.
    """

    name = "BesselianDistorter"
    description = "A Besselian (FK4 based) distortion. Dynamic terms are not included."

    def _transform(self, points: np.ndarray) -> np.ndarray:
        y = FK5_TO_FK4 @ points
        r = np.sqrt(np.sum(y * y, axis=0))

        # Add the E-terms
        w = E_TERMS @ y
        y = (1 - w) * y + E_TERMS[:, None] * r
        return y / np.sqrt(np.sum(y * y, axis=0))

    def inverse(self) -> "BesselianInverse":
        return BesselianInverse(self)

    def is_inverse(self, other: Transformer | None) -> bool:
        return isinstance(other, BesselianInverse)


class BesselianInverse(SphereDistorter):
    """FK4 (B1950) to FK5 (J2000): remove the E-terms, then rotate and apply the 50 year motion term."""

    name = "BesselianInverse"
    description = "A Besselian (FK4 based) distortion (inverse)"

    def __init__(self, forward: BesselianDistorter | None = None):
        self._forward = forward

    def _transform(self, points: np.ndarray) -> np.ndarray:
        # Remove the E-terms
        w = E_TERMS @ points
        t = points - E_TERMS[:, None] - w * points

        tdelta = -50 / PMF
        y = FK4_TO_FK5 @ t + tdelta * (FK4_TO_FK5_MOTION @ t)
        return y / np.sqrt(np.sum(y * y, axis=0))

    def inverse(self) -> BesselianDistorter:
        return self._forward if self._forward is not None else BesselianDistorter()

    def is_inverse(self, other: Transformer | None) -> bool:
        return isinstance(other, BesselianDistorter)
