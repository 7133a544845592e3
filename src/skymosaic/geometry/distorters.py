"""
distorters.py

Plane distortions between an idealized projection plane and instrument coordinates: the DSS plate
polynomial model and the NEAT radial cubic.
"""

# === Imports ======================================================================================

import logging
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from skymosaic.errors import ConvergenceError
from skymosaic.geometry.transformer import Transformer

logger = logging.getLogger(__name__)

# === Main =========================================================================================

class Distorter(Transformer):
    """
    Base class for distortions of the projection plane.

    The forward direction goes from the fiducial projection plane to the distorted coordinates, the
    inverse from the distorted coordinates back to the fiducial plane.
    """

    name = "Distorter"
    description = "Placeholder for distortions in projection plane"
    input_dimension = 2
    output_dimension = 2


# === DSS plate model ==============================================================================

# Arcseconds per radian
CONS2R = np.degrees(1.0) * 3600
DSS_TOLERANCE = 5e-7
DSS_MAX_ITERATIONS = 50
N_PLATE_TERMS = 13


@dataclass(frozen=True)
class PlateModel:
    """
    Immutable DSS plate solution shared by the forward and inverse distorters.

    Args:
        plate_ra: Right ascension of the plate center (radians).
        plate_dec: Declination of the plate center (radians).
        x_pixel_size: X pixel size (microns).
        y_pixel_size: Y pixel size (microns).
        plate_scale: Plate scale (arcsec/mm).
        ppo: PPO1..PPO6 pixel to plate coefficients.
        x_coeff: AMDX coefficients (at least 13 used).
        y_coeff: AMDY coefficients (at least 13 used).
    """

    plate_ra: float
    plate_dec: float
    x_pixel_size: float
    y_pixel_size: float
    plate_scale: float
    ppo: tuple[float, ...]
    x_coeff: tuple[float, ...]
    y_coeff: tuple[float, ...]

    def __post_init__(self):
        if len(self.x_coeff) < N_PLATE_TERMS or len(self.y_coeff) < N_PLATE_TERMS:
            raise ValueError(f"Plate model needs at least {N_PLATE_TERMS} coefficients per axis.")
        if self.plate_scale == 0:
            raise ValueError("Plate scale must be non-zero.")
        object.__setattr__(self, "ppo", tuple(float(c) for c in self.ppo))
        object.__setattr__(self, "x_coeff", tuple(float(c) for c in self.x_coeff))
        object.__setattr__(self, "y_coeff", tuple(float(c) for c in self.y_coeff))

    def f(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        """X model (arcsec) at plate position (mm)."""
        c = self.x_coeff
        x2, y2 = x * x, y * y
        r2 = x2 + y2
        return (
            c[0] * x + c[1] * y + c[2] + c[3] * x2 + c[4] * x * y + c[5] * y2
            + c[6] * r2 + c[7] * x2 * x + c[8] * x2 * y + c[9] * y2 * x + c[10] * y2 * y
            + c[11] * x * r2 + c[12] * x * r2 * r2
        )

    def g(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        """Y model (arcsec) at plate position (mm)."""
        d = self.y_coeff
        x2, y2 = x * x, y * y
        r2 = x2 + y2
        return (
            d[0] * y + d[1] * x + d[2] + d[3] * y2 + d[4] * x * y + d[5] * x2
            + d[6] * r2 + d[7] * y2 * y + d[8] * y2 * x + d[9] * x2 * y + d[10] * x2 * x
            + d[11] * y * r2 + d[12] * y * r2 * r2
        )

    def jacobian(self, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Partial derivatives (df/dx, df/dy, dg/dx, dg/dy)."""
        c = self.x_coeff
        d = self.y_coeff
        xy = x * y
        x2, y2 = x * x, y * y
        x4, y4 = x2 * x2, y2 * y2
        r2 = x2 + y2

        fx = (
            c[0] + 2 * c[3] * x + c[4] * y + 2 * c[6] * x + 3 * c[7] * x2 + 2 * c[8] * xy
            + c[9] * y2 + c[11] * (3 * x2 + y2) + c[12] * (5 * x4 + 6 * x2 * y2 + y4)
        )
        fy = (
            c[1] + c[4] * x + 2 * c[5] * y + 2 * c[6] * y + c[8] * x2 + 2 * c[9] * xy
            + 3 * c[10] * y2 + 2 * c[11] * xy + 4 * c[12] * xy * r2
        )
        gx = (
            d[1] + d[4] * y + 2 * d[5] * x + 2 * d[6] * x + d[8] * y2 + 2 * d[9] * xy
            + 3 * d[10] * x2 + 2 * d[11] * xy + 4 * d[12] * xy * r2
        )
        gy = (
            d[0] + 2 * d[3] * y + d[4] * x + 2 * d[6] * y + 3 * d[7] * y2 + 2 * d[8] * xy
            + d[9] * x2 + d[11] * (x2 + 3 * y2) + d[12] * (5 * y4 + 6 * x2 * y2 + x4)
        )
        return fx, fy, gx, gy


class PlateSolution(NamedTuple):
    """Result of inverting the plate model for a batch of points."""

    points: np.ndarray
    converged: np.ndarray
    iterations: np.ndarray


class DSSDistorter(Distorter):
    """
    Fiducial tangent plane to DSS plate coordinates.

    The plate model maps plate millimetres to standard coordinates in closed form, so this
    direction inverts it with a two dimensional Newton iteration. Points that do not converge
    within the iteration budget come back as NaN.
    """

    name = "DSSDistorter"
    description = "Transform from a fiducial projection plane to the DSS distorted projection plane."

    def __init__(self, model: PlateModel, max_iterations: int = DSS_MAX_ITERATIONS, tolerance: float = DSS_TOLERANCE):
        self.model = model
        self.max_iterations = max_iterations
        self.tolerance = tolerance

    @classmethod
    def from_plate(cls, plate_ra, plate_dec, x_pixel_size, y_pixel_size, plate_scale, ppo, x_coeff, y_coeff):
        model = PlateModel(
            plate_ra=plate_ra,
            plate_dec=plate_dec,
            x_pixel_size=x_pixel_size,
            y_pixel_size=y_pixel_size,
            plate_scale=plate_scale,
            ppo=tuple(ppo),
            x_coeff=tuple(x_coeff),
            y_coeff=tuple(y_coeff),
        )
        return cls(model)

    def solve(self, points, strict: bool = False) -> PlateSolution:
        """
        Newton iteration for the plate position matching each standard coordinate.

        Args:
            points: Standard coordinates (radians), shape (2,) or (2, n).
            strict: Raise ConvergenceError instead of flagging points that fail to converge.

        Returns:
            PlateSolution with distorted coordinates (radians, NaN where not converged), the
            convergence mask and the number of iterations used per point.
        """
        pts = np.asarray(points, dtype=np.float64).reshape(2, -1)
        scale = self.model.plate_scale

        # Seconds of arc, then millimetres
        xi = pts[0] * CONS2R
        eta = pts[1] * CONS2R
        xmm = xi / scale
        ymm = eta / scale

        n = xi.size
        active = np.isfinite(xmm) & np.isfinite(ymm)
        converged = np.zeros(n, dtype=bool)
        iterations = np.zeros(n, dtype=np.int64)

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            for _ in range(self.max_iterations):
                if not active.any():
                    break
                x = xmm[active]
                y = ymm[active]
                df = self.model.f(x, y) - xi[active]
                dg = self.model.g(x, y) - eta[active]
                fx, fy, gx, gy = self.model.jacobian(x, y)
                det = fx * gy - fy * gx
                dx = (-df * gy + dg * fy) / det
                dy = (-dg * fx + df * gx) / det

                xmm[active] = x + dx
                ymm[active] = y + dy
                iterations[active] += 1

                done = (np.abs(dx) < self.tolerance) & (np.abs(dy) < self.tolerance)
                idx = np.flatnonzero(active)
                converged[idx[done]] = True
                active[idx[done]] = False

        out = np.stack([xmm * scale / CONS2R, ymm * scale / CONS2R])
        out[:, ~converged] = np.nan

        n_failed = int(np.count_nonzero(~converged & np.isfinite(pts).all(axis=0)))
        if n_failed:
            if strict:
                raise ConvergenceError(
                    f"DSS plate inversion did not converge for {n_failed} point(s) in {self.max_iterations} iterations",
                    iterations=self.max_iterations,
                )
            logger.warning(
                "DSS plate inversion did not converge for %d of %d point(s)", n_failed, n
            )
        return PlateSolution(out, converged, iterations)

    def _transform(self, points: np.ndarray) -> np.ndarray:
        return self.solve(points).points

    def inverse(self) -> "DSSInverse":
        return DSSInverse(self)

    def is_inverse(self, other: Transformer | None) -> bool:
        return isinstance(other, DSSInverse) and other.forward is self


class DSSInverse(Distorter):
    """DSS plate coordinates back to the fiducial plane: direct evaluation of the plate polynomials."""

    name = "DSSInverse"
    description = "Transform from DSS distorted coordinates to the fiducial projection plane"

    def __init__(self, forward: DSSDistorter):
        self.forward = forward

    def _transform(self, points: np.ndarray) -> np.ndarray:
        model = self.forward.model
        xmm = points[0] * CONS2R / model.plate_scale
        ymm = points[1] * CONS2R / model.plate_scale
        return np.stack([model.f(xmm, ymm) / CONS2R, model.g(xmm, ymm) / CONS2R])

    def inverse(self) -> DSSDistorter:
        return self.forward

    def is_inverse(self, other: Transformer | None) -> bool:
        return other is self.forward


# === NEAT radial model ============================================================================

NEAT_TOLERANCE = 1e-10
NEAT_MAX_ITERATIONS = 10


class NeatDistorter(Distorter):
    """Radial cubic distortion ``r' = r + scale*r**3`` about (x0, y0)."""

    name = "NeatDistorter"
    description = "Perform radial distortion y = x + d x^3"

    def __init__(self, scale: float, x0: float = 0.0, y0: float = 0.0):
        self.scale = float(scale)
        self.x0 = float(x0)
        self.y0 = float(y0)

    def _transform(self, points: np.ndarray) -> np.ndarray:
        dx = points[0] - self.x0
        dy = points[1] - self.y0
        r2 = dx * dx + dy * dy
        factor = 1 + self.scale * r2
        return np.stack([self.x0 + dx * factor, self.y0 + dy * factor])

    def inverse(self) -> "NeatInverse":
        return NeatInverse(self)

    def is_inverse(self, other: Transformer | None) -> bool:
        return isinstance(other, NeatInverse) and other.forward is self


class NeatInverse(Distorter):
    """Inverse radial cubic: solves ``t + scale*t**3 = r`` by Newton's method."""

    name = "NeatInverse"
    description = "Invert a radial cubic distortion (find x from y where y=x+d x^3)"

    def __init__(self, forward: NeatDistorter):
        self.forward = forward

    def _transform(self, points: np.ndarray) -> np.ndarray:
        scale = self.forward.scale
        x0 = self.forward.x0
        y0 = self.forward.y0

        dx = points[0] - x0
        dy = points[1] - y0
        r = np.sqrt(dx * dx + dy * dy)

        t = r - scale * r ** 3
        for _ in range(NEAT_MAX_ITERATIONS):
            delta = r - t * (1 + scale * t * t)
            t = t + delta / (1 + 3 * scale * t * t)
            if np.all(np.abs(delta[np.isfinite(delta)]) <= NEAT_TOLERANCE):
                break

        with np.errstate(divide="ignore", invalid="ignore"):
            ratio = np.where(r > 0, t / r, 1.0)
        return np.stack([x0 + dx * ratio, y0 + dy * ratio])

    def inverse(self) -> NeatDistorter:
        return self.forward

    def is_inverse(self, other: Transformer | None) -> bool:
        return other is self.forward
