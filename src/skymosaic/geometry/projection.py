"""
projection.py

A projection bundles the projecter with the rotation that brings its reference point to the
projection pole and an optional plane distortion.
"""

# === Imports ======================================================================================

import logging

import numpy as np

from skymosaic.errors import TransformationError
from skymosaic.geometry.distorters import Distorter
from skymosaic.geometry.projecters import Projecter, get_projecter
from skymosaic.geometry.rotater import Rotater

logger = logging.getLogger(__name__)

# === Main =========================================================================================

# Reference points (degrees) of projections that are not re-centred on the sky
_FIXED_POINTS: dict[str, tuple[float, float]] = {
    "Car": (0.0, 0.0),
    "Ait": (0.0, 0.0),
    "Sfl": (0.0, 0.0),
    "Mer": (0.0, 0.0),
}

DEFAULT_PROJECTION = "Tan"


class Projection:
    """
    Projecter plus rotation plus distortion.

    Parametrized projections (Tan, Sin, Zea, Arc, Stg) are centred on `reference`, given in radians
    as (longitude, latitude). Fixed projections (Car, Ait, Sfl, Mer) have their own reference
    point, which may be moved with `set_reference`.

    Args:
        kind: Three letter projection abbreviation. Unknown parametrized kinds fall back to Tan.
        reference: Reference point (radians), required for parametrized projections.
    """

    def __init__(self, kind: str, reference: tuple[float, float] | np.ndarray | None = None):
        kind = kind[:1].upper() + kind[1:].lower() if kind else DEFAULT_PROJECTION
        self.distorter: Distorter | None = None
        self.rotater: Rotater | None = None

        if reference is None:
            fixed = fixed_point(kind)
            if fixed is None:
                raise TransformationError(f"Invalid non-parametrized projection: {kind}")
            self.kind = kind
            self.projecter: Projecter = get_projecter(kind)
            self.fixed = True
            self.reference = np.radians(fixed)
            return

        projecter = get_projecter(kind)
        if projecter is None or kind in _FIXED_POINTS:
            logger.warning("Unrecognized projection '%s', using %s", kind, DEFAULT_PROJECTION)
            kind = DEFAULT_PROJECTION
            projecter = get_projecter(kind)

        self.kind = kind
        self.projecter = projecter
        self.fixed = False
        self.reference = np.array(reference, dtype=np.float64)
        self.rotater = Rotater("ZYZ", self.reference[0], np.pi / 2 - self.reference[1], np.pi / 2)

    def __repr__(self) -> str:
        lon, lat = np.degrees(self.reference)
        return f"Projection({self.kind!r}, reference=({lon:.6g}, {lat:.6g}) deg)"

    def set_reference(self, lon: float, lat: float) -> None:
        """Move the reference point of a fixed projection to (lon, lat) radians."""
        if lon == self.reference[0] and lat == self.reference[1]:
            return
        r1 = Rotater("ZY", -self.reference[0], self.reference[1])
        r2 = Rotater("ZY", -lon, lat)
        self.rotater = r1.add(r2.inverse())
        self.reference = np.array([lon, lat], dtype=np.float64)

    def set_rotater(self, rotater: Rotater | None) -> None:
        self.rotater = rotater

    def set_distorter(self, distorter: Distorter | None) -> None:
        self.distorter = distorter


# === Utilities ====================================================================================

def fixed_point(kind: str) -> tuple[float, float] | None:
    """Fixed reference point (degrees) for a non-parametrized projection, or None."""
    return _FIXED_POINTS.get(kind)
