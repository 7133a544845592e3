"""
projecters.py

Sphere to plane projections. Every projecter maps unit vectors, with the projection reference
point rotated to the pole (or to the fixed point for all-sky projections), onto the projection
plane in radians; its deprojecter performs the reverse mapping.
"""

# === Imports ======================================================================================

import numpy as np

from skymosaic.geometry.transformer import Transformer

# === Main =========================================================================================

class Projecter(Transformer):
    """Base class for projections from the unit sphere to the plane."""

    name = "Projecter"
    description = "Transform from the celestial sphere to a projection plane"
    input_dimension = 3
    output_dimension = 2

    # Period of the projection plane (0 when the projection does not repeat)
    x_tiling: float = 0.0
    y_tiling: float = 0.0
    all_valid: bool = False

    def _transform(self, points: np.ndarray) -> np.ndarray:
        with np.errstate(divide="ignore", invalid="ignore"):
            return self._project(points)

    def _project(self, sphere: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def _deproject(self, plane: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def valid_position(self, plane) -> np.ndarray:
        """Boolean mask of plane positions that correspond to a point on the sphere."""
        plane = np.asarray(plane, dtype=np.float64)
        return np.isfinite(plane[0]) & np.isfinite(plane[1])

    def inverse(self) -> "Deprojecter":
        return Deprojecter(self)

    def is_inverse(self, other: Transformer | None) -> bool:
        return isinstance(other, Deprojecter) and type(other.projecter) is type(self)


class Deprojecter(Transformer):
    """Plane to unit sphere, the reverse of a given projecter. Invalid plane positions give NaN."""

    input_dimension = 2
    output_dimension = 3

    def __init__(self, projecter: Projecter):
        self.projecter = projecter

    @property
    def name(self) -> str:
        return f"{self.projecter.name}Deproj"

    @property
    def description(self) -> str:
        return f"Transform from the {self.projecter.name} projection plane to the unit sphere"

    def _transform(self, points: np.ndarray) -> np.ndarray:
        out = np.full((3, points.shape[1]), np.nan)
        valid = self.projecter.valid_position(points)
        if valid.any():
            with np.errstate(divide="ignore", invalid="ignore"):
                out[:, valid] = self.projecter._deproject(points[:, valid])
        return out

    def inverse(self) -> Projecter:
        return self.projecter

    def is_inverse(self, other: Transformer | None) -> bool:
        return isinstance(other, Projecter) and type(other) is type(self.projecter)


# === Zenithal projections =========================================================================

class Tan(Projecter):
    """Gnomonic (tangent plane) projection."""

    name = "Tan"
    description = "Project to a tangent plane touching the sphere"
    all_valid = True

    def _project(self, sphere):
        z = sphere[2]
        back = ~(z >= 0)
        plane = sphere[:2] / z
        plane[:, back] = np.nan
        return plane

    def _deproject(self, plane):
        factor = 1 / np.sqrt(plane[0] ** 2 + plane[1] ** 2 + 1)
        return np.stack([factor * plane[0], factor * plane[1], factor])


class Sin(Projecter):
    """Orthographic projection."""

    name = "Sin"
    description = "Project to a plane with orthographic (sine) projection"

    def _project(self, sphere):
        plane = sphere[:2].copy()
        plane[:, ~(sphere[2] > 0)] = np.nan
        return plane

    def valid_position(self, plane):
        plane = np.asarray(plane, dtype=np.float64)
        return super().valid_position(plane) & (plane[0] ** 2 + plane[1] ** 2 <= 1)

    def _deproject(self, plane):
        z = np.sqrt(np.clip(1 - plane[0] ** 2 - plane[1] ** 2, 0.0, None))
        return np.stack([plane[0], plane[1], z])


class Zea(Projecter):
    """Zenithal equal area projection."""

    name = "Zea"
    description = "Zenithal equal area projection"

    def _project(self, sphere):
        num = np.clip(2 * (1 - sphere[2]), 0.0, None)
        denom = sphere[0] ** 2 + sphere[1] ** 2
        ratio = np.where(denom == 0, 0.0, np.sqrt(num) / np.sqrt(denom))
        plane = ratio * sphere[:2]
        plane[:, np.isnan(sphere[2])] = np.nan
        return plane

    def valid_position(self, plane):
        plane = np.asarray(plane, dtype=np.float64)
        return super().valid_position(plane) & (plane[0] ** 2 + plane[1] ** 2 <= 4)

    def _deproject(self, plane):
        r = np.sqrt(plane[0] ** 2 + plane[1] ** 2)
        z = 1 - r * r / 2
        ratio = 1 - z * z
        ratio = np.where(ratio > 0, np.sqrt(np.clip(ratio, 0.0, None)) / r, 0.0)
        return np.stack([ratio * plane[0], ratio * plane[1], z])


class Arc(Projecter):
    """Zenithal equidistant projection."""

    name = "Arc"
    description = "Zenithal equidistant projection"

    def _project(self, sphere):
        denom = sphere[0] ** 2 + sphere[1] ** 2
        ratio = np.where(denom == 0, 0.0, (np.pi / 2 - np.arcsin(np.clip(sphere[2], -1, 1))) / np.sqrt(denom))
        plane = ratio * sphere[:2]
        plane[:, np.isnan(sphere[2])] = np.nan
        return plane

    def valid_position(self, plane):
        plane = np.asarray(plane, dtype=np.float64)
        return super().valid_position(plane) & (plane[0] ** 2 + plane[1] ** 2 <= np.pi ** 2)

    def _deproject(self, plane):
        r = np.sqrt(plane[0] ** 2 + plane[1] ** 2)
        z = np.cos(r)
        ratio = np.where(r > 0, np.sqrt(np.clip(1 - z * z, 0.0, None)) / r, 0.0)
        return np.stack([ratio * plane[0], ratio * plane[1], z])


class Stg(Projecter):
    """Stereographic projection."""

    name = "Stg"
    description = "Stereographic projection"
    all_valid = True

    def _project(self, sphere):
        fac = 2 / (1 + sphere[2])
        plane = fac * sphere[:2]
        plane[:, ~(sphere[2] >= 0)] = np.nan
        return plane

    def _deproject(self, plane):
        r = np.sqrt(plane[0] ** 2 + plane[1] ** 2)
        z = np.cos(2 * np.arctan2(r, 2))
        fac = np.where(np.abs(z) != 1, (1 + z) / 2, 0.0)
        return np.stack([fac * plane[0], fac * plane[1], z])


# === All-sky projections ==========================================================================

class Car(Projecter):
    """Plate carree: longitude and latitude used directly as plane coordinates."""

    name = "Car"
    description = "Transform from the celestial sphere to the plane described by Lon/Lat directly"
    x_tiling = 2 * np.pi
    y_tiling = 2 * np.pi
    all_valid = True

    def _project(self, sphere):
        return np.stack([np.arctan2(sphere[1], sphere[0]), np.arcsin(np.clip(sphere[2], -1, 1))])

    def _deproject(self, plane):
        cos_lat = np.cos(plane[1])
        return np.stack([np.cos(plane[0]) * cos_lat, np.sin(plane[0]) * cos_lat, np.sin(plane[1])])


class Ait(Projecter):
    """Hammer-Aitoff equal area all-sky projection."""

    name = "Ait"
    description = "Project to Hammer-Aitoff projection"

    def _project(self, sphere):
        z = sphere[2]
        cos_b = np.sqrt(np.clip(1 - z * z, 0.0, None))
        cos_l = np.where(1 - np.abs(z) > 1e-10, sphere[0] / cos_b, 0.0)

        # Half angle formulae
        cos_l2 = np.sqrt(np.clip(0.5 * (1 + cos_l), 0.0, None))
        sin_l2 = np.sqrt(np.clip(0.5 * (1 - cos_l), 0.0, None))
        sin_l2 = np.where(sphere[1] < 0, -sin_l2, sin_l2)

        gamma = np.sqrt(2 / (1 + cos_b * cos_l2))
        plane = np.stack([2 * gamma * cos_b * sin_l2, gamma * z])
        plane[:, np.isnan(z)] = np.nan
        return plane

    def valid_position(self, plane):
        plane = np.asarray(plane, dtype=np.float64)
        return super().valid_position(plane) & (plane[0] ** 2 / 8 + plane[1] ** 2 / 2 <= 1)

    def _deproject(self, plane):
        z = np.sqrt(np.clip(1 - plane[0] ** 2 / 16 - plane[1] ** 2 / 4, 0.0, None))
        sin_b = plane[1] * z
        cos_b = np.sqrt(np.clip(1 - sin_b * sin_b, 0.0, None))
        pole = np.abs(cos_b) <= 1e-12
        safe_cos_b = np.where(pole, 1.0, cos_b)

        # Double angle formulae
        sl2 = z * plane[0] / (2 * safe_cos_b)
        cl2 = (2 * z * z - 1) / safe_cos_b
        cl = 2 * cl2 * cl2 - 1
        sl = 2 * sl2 * cl2
        x = np.where(pole, 0.0, cl * cos_b)
        y = np.where(pole, 0.0, sl * cos_b)
        return np.stack([x, y, sin_b])


class Sfl(Projecter):
    """Sanson-Flamsteed (sinusoidal) projection."""

    name = "Sfl"
    description = "Transform from the celestial sphere to the sinusoidal projection"

    def _project(self, sphere):
        lat = np.arctan2(sphere[2], np.sqrt(sphere[0] ** 2 + sphere[1] ** 2))
        lon = np.arctan2(sphere[1], sphere[0])
        return np.stack([lon * np.cos(lat), lat])

    def valid_position(self, plane):
        plane = np.asarray(plane, dtype=np.float64)
        return (
            super().valid_position(plane)
            & (np.abs(plane[1]) <= np.pi / 2)
            & (np.abs(plane[0]) <= np.pi * np.cos(plane[1]))
        )

    def _deproject(self, plane):
        lat = plane[1]
        cos_lat = np.cos(lat)
        lon = np.where(cos_lat > 0, plane[0] / np.where(cos_lat > 0, cos_lat, 1.0), plane[0])
        return np.stack([np.cos(lon) * cos_lat, np.sin(lon) * cos_lat, np.sin(lat)])


class Mer(Projecter):
    """Mercator projection."""

    name = "Mer"
    description = "Project to a Mercator projection"
    x_tiling = 2 * np.pi

    def _project(self, sphere):
        lon = np.arctan2(sphere[1], sphere[0])
        lat = np.arcsin(np.clip(sphere[2], -1, 1))
        return np.stack([lon, np.log(np.tan(np.pi / 4 + lat / 2))])

    def _deproject(self, plane):
        lon = plane[0]
        lat = 2 * np.arctan(np.exp(plane[1])) - np.pi / 2
        cos_lat = np.cos(lat)
        return np.stack([np.cos(lon) * cos_lat, np.sin(lon) * cos_lat, np.sin(lat)])


# === Registry =====================================================================================

_PROJECTERS: dict[str, type[Projecter]] = {
    "Tan": Tan,
    "Sin": Sin,
    "Zea": Zea,
    "Arc": Arc,
    "Stg": Stg,
    "Car": Car,
    "Ait": Ait,
    "Sfl": Sfl,
    "Mer": Mer,
}


def get_projecter(kind: str) -> Projecter | None:
    """Projecter instance for a three letter abbreviation (any case), or None if unknown."""
    cls = _PROJECTERS.get(kind[:1].upper() + kind[1:].lower()) if kind else None
    return cls() if cls is not None else None


def available_projecters() -> list[str]:
    return list(_PROJECTERS)
