"""
position.py

A sky position that can be expressed in any supported coordinate system.
"""

# === Imports ======================================================================================

import numpy as np

from skymosaic.geometry import coordinates
from skymosaic.geometry.coordinates import CoordinateSystem
from skymosaic.geometry.util import coord, unit

# === Main =========================================================================================

class Position:
    """
    Position on the sky given in degrees in a named frame.

    Args:
        lon: Longitude (degrees).
        lat: Latitude (degrees).
        frame: Coordinate system name or instance the position is given in.
    """

    def __init__(self, lon: float, lat: float, frame: str | CoordinateSystem = "J2000"):
        self.lon = float(lon)
        self.lat = float(lat)
        self.frame = frame if isinstance(frame, CoordinateSystem) else coordinates.factory(frame)
        self._j2000 = self._to_j2000(unit(np.radians(self.lon), np.radians(self.lat)))

    def __repr__(self) -> str:
        return f"Position({self.lon:.6f}, {self.lat:.6f}, {self.frame.name!r})"

    def _to_j2000(self, vec: np.ndarray) -> np.ndarray:
        if self.frame.rotater is not None:
            vec = self.frame.rotater.inverse().transform(vec)
        if self.frame.sphere_distorter is not None:
            vec = self.frame.sphere_distorter.inverse().transform(vec)
        return vec

    def unit_vector(self, frame: str | CoordinateSystem = "J2000") -> np.ndarray:
        """Unit vector of the position in `frame`."""
        csys = frame if isinstance(frame, CoordinateSystem) else coordinates.factory(frame)
        vec = self._j2000
        if csys.sphere_distorter is not None:
            vec = csys.sphere_distorter.transform(vec)
        if csys.rotater is not None:
            vec = csys.rotater.transform(vec)
        return vec

    def coordinates(self, frame: str | CoordinateSystem | None = None) -> tuple[float, float]:
        """
        Longitude and latitude (degrees) in `frame`, defaulting to the frame the position was built in.

        Longitudes are wrapped into [0, 360).
        """
        csys = self.frame if frame is None else frame
        if not isinstance(csys, CoordinateSystem):
            csys = coordinates.factory(csys)
        if csys == self.frame:
            return self.lon, self.lat

        lon, lat = np.degrees(coord(self.unit_vector(csys)))
        return float(lon % 360.0), float(lat)
