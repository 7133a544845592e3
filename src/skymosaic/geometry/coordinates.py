"""
coordinates.py

Celestial coordinate systems. Each system supplies the rotation (and, for FK4, the sphere
distortion) that takes J2000 unit vectors into the system's own frame.
"""

# === Imports ======================================================================================

import math
import re
from abc import ABC, abstractmethod

from skymosaic.errors import ConfigurationError
from skymosaic.geometry.rotater import Rotater
from skymosaic.geometry.sphere_distorter import BesselianDistorter, SphereDistorter

# === Main =========================================================================================

# Arcseconds to radians
DAS2R = 4.8481368110953599358991410235794797595635330237270e-6


class CoordinateSystem(ABC):
    """Named reference frame; immutable once constructed."""

    name: str = "CoordinateSystem"
    description: str = ""

    @property
    @abstractmethod
    def rotater(self) -> Rotater | None:
        """Rotation from J2000 into this frame, or None for the identity."""
        pass

    @property
    def sphere_distorter(self) -> SphereDistorter | None:
        """Non-rigid correction applied before the rotation, or None."""
        return None

    @property
    def is_equatorial(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, CoordinateSystem) and type(other) is type(self) and other.name == self.name

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.name))


class Julian(CoordinateSystem):
    """FK5 equatorial coordinates for the mean equator and equinox of a Julian epoch (IAU 1976)."""

    def __init__(self, epoch: float = 2000.0):
        self.epoch = float(epoch)
        self.name = f"J{self.epoch:g}"
        self.description = f"Julian (FK5) equatorial coordinates at equinox J{self.epoch:g}"
        self._rotater = self._precession()

    @property
    def is_equatorial(self) -> bool:
        return True

    @property
    def rotater(self) -> Rotater | None:
        return self._rotater

    def _precession(self) -> Rotater | None:
        if self.epoch == 2000:
            return None

        # Julian centuries since J2000, in arcseconds to radians
        t = (self.epoch - 2000) / 100
        tas2r = t * 4.848136811095359935e-6
        w = 2306.2181

        zeta = (w + (0.30188 + 0.017998 * t) * t) * tas2r
        z = (w + (1.09468 + 0.018203 * t) * t) * tas2r
        theta = (2004.3109 + (-0.42665 - 0.041833 * t) * t) * tas2r
        return Rotater("ZYZ", -zeta, theta, -z)


class Besselian(CoordinateSystem):
    """
    FK4 equatorial coordinates at a Besselian epoch.

    The E-terms of aberration are applied by a sphere distorter ahead of the precession from
    B1950 to the requested epoch.
    """

    def __init__(self, epoch: float = 1950.0):
        self.epoch = float(epoch)
        self.name = f"B{self.epoch:g}"
        self.description = f"Besselian (FK4) equatorial coordinates at equinox B{self.epoch:g}"
        self._distorter = BesselianDistorter()
        self._rotater = self._precession()

    @property
    def is_equatorial(self) -> bool:
        return True

    @property
    def rotater(self) -> Rotater | None:
        return self._rotater

    @property
    def sphere_distorter(self) -> SphereDistorter:
        return self._distorter

    def _precession(self) -> Rotater | None:
        if self.epoch == 1950:
            return None

        # Centuries from B1950 to the start epoch (fixed) and to the end epoch
        bigt = 1.0
        t = (self.epoch - 1950) / 100
        tas2r = t * DAS2R
        w = 2303.5548 + (1.39720 + 0.000059 * bigt) * bigt

        zeta = (w + (0.30242 - 0.000269 * bigt + 0.017996 * t) * t) * tas2r
        z = (w + (1.09478 + 0.000387 * bigt + 0.018324 * t) * t) * tas2r
        theta = (
            2005.1125 + (-0.85294 - 0.000365 * bigt) * bigt
            + (-0.42647 - 0.000365 * bigt - 0.041802 * t) * t
        ) * tas2r
        return Rotater("ZYZ", -zeta, theta, -z)


class Galactic(CoordinateSystem):
    """IAU 1958 galactic coordinates."""

    name = "G"
    description = "Galactic coordinate system"

    # Pole RA, Dec and node angles (degrees)
    POLES = (122.931918, 27.128251, 192.859481)

    def __init__(self):
        theta, phi, psi = self.POLES
        self._rotater = Rotater(
            "ZYZ",
            math.radians(psi),
            math.radians(90 - phi),
            math.radians(180 - theta),
        )

    @property
    def rotater(self) -> Rotater:
        return self._rotater


class ICRS(CoordinateSystem):
    """International Celestial Reference System: a fixed small rotation from FK5 J2000."""

    name = "ICRS"
    description = "International Celestial Reference System"

    def __init__(self):
        self._rotater = Rotater(
            "XYZ",
            math.radians(-0.0199 / 3600),
            math.radians(-0.0091 / 3600),
            math.radians(0.0229 / 3600),
        )

    @property
    def is_equatorial(self) -> bool:
        return True

    @property
    def rotater(self) -> Rotater:
        return self._rotater


class Ecliptic(CoordinateSystem):
    """
    Ecliptic coordinates for the equinox of a Julian epoch.

    Args:
        epoch: Julian epoch of the equinox.
        elon: Ecliptic longitude (radians) used as the longitude origin.
    """

    prefix = "E"

    def __init__(self, epoch: float = 2000.0, elon: float = 0.0):
        self.epoch = float(epoch)
        self.elon = float(elon)
        self.name = f"{self.prefix}{self.epoch:g}"
        self.description = f"Ecliptic coordinates at equinox J{self.epoch:g}"

        # Mean obliquity of the ecliptic
        t = (self.epoch - 2000) / 100
        self.obliquity = DAS2R * (84381.448 + (-46.8150 + (-0.00059 + 0.001813 * t) * t) * t)

        r1 = Julian(self.epoch).rotater
        r2 = Rotater("XZ", self.obliquity, self.elon)
        self._rotater = r2 if r1 is None else r1.add(r2)

    @property
    def rotater(self) -> Rotater:
        return self._rotater


class Helioecliptic(Ecliptic):
    """Ecliptic coordinates with the longitude origin at the mean position of the Sun at the epoch."""

    prefix = "H"

    def __init__(self, epoch: float = 2000.0):
        super().__init__(epoch, sun_longitude(epoch))
        self.description = (
            f"Ecliptic coordinates centred on the Sun, with the solar position inferred from epoch {self.epoch:g}"
        )


# === Factory ======================================================================================

_EPOCH_SYSTEMS: dict[str, tuple[type[CoordinateSystem], float]] = {
    "J": (Julian, 2000.0),
    "B": (Besselian, 1950.0),
    "E": (Ecliptic, 2000.0),
    "H": (Helioecliptic, 2000.0),
}

_EPOCH_PATTERN = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


def factory(name: str, equinox: float | str | None = None) -> CoordinateSystem:
    """
    Coordinate system for a name such as ``J2000``, ``B1950``, ``E2000``, ``H2010``, ``Galactic``
    or ``ICRS`` (any case).

    Args:
        name: System name; for J/B/E/H an epoch may follow the prefix.
        equinox: Epoch used when the name carries none.

    Raises:
        ConfigurationError: If the name is not recognized or its epoch is malformed.
    """
    if not name or not isinstance(name, str):
        raise ConfigurationError(f"Invalid coordinate system name: {name!r}")

    key = name.strip().upper()
    if key == "ICRS":
        return ICRS()
    if key.startswith("G"):
        return Galactic()

    prefix, epoch_text = key[:1], key[1:]
    if prefix not in _EPOCH_SYSTEMS:
        raise ConfigurationError(f"Unknown coordinate system: {name!r}")

    cls, default_epoch = _EPOCH_SYSTEMS[prefix]
    if epoch_text:
        if not _EPOCH_PATTERN.match(epoch_text):
            raise ConfigurationError(f"Malformed epoch in coordinate system name: {name!r}")
        epoch = float(epoch_text)
    elif equinox is not None:
        try:
            epoch = float(equinox)
        except ValueError as err:
            raise ConfigurationError(f"Malformed equinox for coordinate system {name!r}: {equinox!r}") from err
    else:
        epoch = default_epoch
    return cls(epoch)


# === Utilities ====================================================================================

def sun_longitude(epoch: float) -> float:
    """
    Mean ecliptic longitude of the Sun (radians, in [0, 2*pi)) at a Julian epoch.

    Low precision series: mean longitude, equation of centre, perturbations by Venus, Mars,
    Jupiter and the Moon, and a long period term.
    """
    dtor = 3.1415926535 / 180.0

    # Julian centuries from 1900.0
    t = ((epoch - 2000) * 365.25 + 2451544.5 - 2415020) / 36525.0

    # Mean longitude (arcsec)
    lon = (279.696678 + math.fmod(36000.768925 * t, 360.0)) * 3600

    # Equation of centre, using the Earth's mean anomaly
    me = 358.475844 + math.fmod(35999.049750 * t, 360.0)
    lon += (6910.1 - 17.2 * t) * math.sin(me * dtor) + 72.3 * math.sin(2.0 * me * dtor)

    # Venus
    mv = 212.603219 + math.fmod(58517.803875 * t, 360.0)
    lon += (
        4.8 * math.cos((299.1017 + mv - me) * dtor)
        + 5.5 * math.cos((148.3133 + 2.0 * mv - 2.0 * me) * dtor)
        + 2.5 * math.cos((315.9433 + 2.0 * mv - 3.0 * me) * dtor)
        + 1.6 * math.cos((345.2533 + 3.0 * mv - 4.0 * me) * dtor)
        + 1.0 * math.cos((318.15 + 3.0 * mv - 5.0 * me) * dtor)
    )

    # Mars
    mm = 319.529425 + math.fmod(19139.858500 * t, 360.0)
    lon += (
        2.0 * math.cos((343.8883 - 2.0 * mm + 2.0 * me) * dtor)
        + 1.8 * math.cos((200.4017 - 2.0 * mm + me) * dtor)
    )

    # Jupiter
    mj = 225.328328 + math.fmod(3034.6920239 * t, 360.0)
    lon += (
        7.2 * math.cos((179.5317 - mj + me) * dtor)
        + 2.6 * math.cos((263.2167 - mj) * dtor)
        + 2.7 * math.cos((87.1450 - 2.0 * mj + 2.0 * me) * dtor)
        + 1.6 * math.cos((109.4933 - 2.0 * mj + me) * dtor)
    )

    # Moon, from its mean elongation
    d = 350.7376814 + math.fmod(445267.11422 * t, 360.0)
    lon += 6.5 * math.sin(d * dtor)

    # Long period terms
    lon += 6.4 * math.sin((231.19 + 20.20 * t) * dtor)

    lon = math.fmod(lon + 2592000.0, 1296000.0)
    if lon < 0:
        lon += 1296000.0
    return lon / 3600.0 * dtor
