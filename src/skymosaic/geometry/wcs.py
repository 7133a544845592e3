"""
wcs.py

World coordinate systems: the full unit-sphere to pixel transformation of one image, built either
from components or from FITS header keywords (standard WCS, DSS plate solutions and NEAT headers).
"""

# === Imports ======================================================================================

import logging
import math
from collections.abc import Mapping

import numpy as np
from astropy.io import fits

from skymosaic.errors import ConfigurationError, TransformationError
from skymosaic.geometry import coordinates
from skymosaic.geometry.converter import Converter
from skymosaic.geometry.coordinates import CoordinateSystem
from skymosaic.geometry.distorters import DSSDistorter, Distorter, NeatDistorter
from skymosaic.geometry.projection import Projection
from skymosaic.geometry.rotater import Rotater
from skymosaic.geometry.scaler import Scaler

logger = logging.getLogger(__name__)

# === Main =========================================================================================

# CTYPE prefixes identifying the longitude and latitude axes
LON_PREFIXES = ("RA--", "GLON", "ELON", "HLON")
LAT_PREFIXES = ("DEC-", "GLAT", "ELAT", "HLAT")

# Zenithal projections centred on CRVAL
_PARAMETRIZED = ("TAN", "SIN", "ZEA", "ARC", "STG")

# Fixed projections, keyed by their FITS code
_FIXED = {"AIT": "Ait", "CAR": "Car", "SFL": "Sfl", "GLS": "Sfl", "MER": "Mer"}


class WCS(Converter):
    """
    Transformation from J2000 unit vectors to the pixel coordinates of an image.

    The stages are applied in the order: sphere distorter and rotater of the coordinate system,
    rotater and projecter of the projection, the projection's plane distorter, the scaler to pixel
    coordinates and finally any distorter defined in pixel space. Pixel coordinates place the
    corner of the first pixel at (0, 0).

    Args:
        csys: Coordinate system of the image.
        projection: Projection (with its rotater and optional plane distorter).
        scaler: Affine map from the projection plane (radians) to pixels.
        pixel_distorter: Distorter applied after the scaler.
        wcs_scale: Nominal pixel size in radians; derived from the scaler when not given.
        keywords: Header keywords the WCS was read from.
    """

    name = "WCS"
    description = "World coordinate system: celestial sphere to image pixels"

    def __init__(
        self,
        csys: CoordinateSystem,
        projection: Projection,
        scaler: Scaler,
        pixel_distorter: Distorter | None = None,
        wcs_scale: float | None = None,
        keywords: dict[str, object] | None = None,
    ):
        super().__init__()
        self.csys = csys
        self.projection = projection
        self.scaler = scaler
        self.pixel_distorter = pixel_distorter
        self.keywords: dict[str, object] = dict(keywords or {})
        self.header_naxis: tuple[int, int] | None = None
        self.standard = True

        self.add(csys.sphere_distorter)
        self.add(csys.rotater)
        self.add(projection.rotater)
        self.add(projection.projecter)
        self.add(projection.distorter)
        self.add(scaler)
        self.add(pixel_distorter)

        self._scale = wcs_scale if wcs_scale is not None else _scaler_scale(scaler)

    def __repr__(self) -> str:
        return f"WCS({self.csys.name}, {self.projection!r}, {self.scaler!r})"

    @property
    def scale(self) -> float:
        """Nominal pixel size (radians)."""
        return self._scale

    @property
    def distorter(self) -> Distorter | None:
        return self.projection.distorter or self.pixel_distorter

    def add_scaler(self, shift: Scaler) -> "WCS":
        """WCS of the same sky mapping followed by an extra pixel-space affine map."""
        return WCS(self.csys, self.projection, self.scaler.add(shift), pixel_distorter=self.pixel_distorter)

    # --- Header input -----------------------------------------------------------------------------

    @classmethod
    def from_header(cls, header: Mapping) -> "WCS":
        """
        Build the WCS described by a FITS header.

        Args:
            header: `astropy.io.fits.Header` or any mapping of keyword to value.

        Raises:
            TransformationError: If required keywords are missing or inconsistent.
        """
        if _is_dss(header):
            wcs = _dss_wcs(header)
            naxis = (_get_int(header, "NAXIS1"), _get_int(header, "NAXIS2"))
            if naxis[0] == 0:
                naxis = (_get_int(header, "XPIXELS"), _get_int(header, "YPIXELS"))
            wcs.header_naxis = naxis
            wcs.standard = False
            return wcs

        if _is_neat(header):
            wcs = _neat_wcs(header)
            wcs.header_naxis = (_get_int(header, "NAXIS1"), _get_int(header, "NAXIS2"))
            wcs.standard = False
            return wcs

        keywords: dict[str, object] = {}
        lon_axis, lat_axis = find_axes(header)
        if lon_axis is None or lat_axis is None:
            raise TransformationError("Unable to find coordinate axes")
        keywords["CTYPE1"] = _get_str(header, f"CTYPE{lon_axis}")
        keywords["CTYPE2"] = _get_str(header, f"CTYPE{lat_axis}")

        csys = _extract_coordinate_system(header, lon_axis, lat_axis, keywords)
        projection, ncp_scaler = _extract_projection(header, lon_axis, lat_axis, keywords)
        scaler = _extract_scaler(header, lon_axis, lat_axis, keywords)
        wcs_scale = _scaler_scale(scaler)
        if ncp_scaler is not None:
            scaler = ncp_scaler.add(scaler)

        wcs = cls(csys, projection, scaler, wcs_scale=wcs_scale, keywords=keywords)
        wcs.header_naxis = (_get_int(header, f"NAXIS{lon_axis}"), _get_int(header, f"NAXIS{lat_axis}"))
        return wcs

    # --- Header output ----------------------------------------------------------------------------

    def update_header(
        self,
        header: fits.Header,
        crval: tuple[float, float],
        projection: str,
        csys: str,
        scaler: Scaler | None = None,
    ) -> None:
        """
        Write FITS WCS keywords for a simple output WCS on axes 1 and 2.

        Args:
            header: Header to update.
            crval: Reference longitude and latitude (degrees).
            projection: Three letter projection name, e.g. "Tan".
            csys: Coordinate system name, e.g. "J2000", "B1950", "Galactic", "E2000".
            scaler: Projection plane to pixel map; defaults to this WCS's scaler.
        """
        s = scaler if scaler is not None else self.scaler

        if self.projection.fixed:
            lon, lat = np.degrees(self.projection.reference)
            header["CRVAL1"] = (float(lon), "Fixed reference center")
            header["CRVAL2"] = (float(lat), "Fixed reference center")
        else:
            header["CRVAL1"] = (float(crval[0]), "Reference longitude")
            header["CRVAL2"] = (float(crval[1]), "Reference latitude")

        coord = csys.upper()
        c = coord[:1]
        if c in ("J", "I"):
            header["RADESYS"] = ("FK5", "Coordinate system")
            prefixes = ("RA--", "DEC-")
        elif c == "B":
            header["RADESYS"] = ("FK4", "Coordinate system")
            prefixes = ("RA--", "DEC-")
        else:
            prefixes = (c + "LON", c + "LAT")

        if c not in ("G", "I"):
            try:
                header["EQUINOX"] = (float(coord[1:]), "Epoch of the equinox")
            except ValueError:
                logger.debug("No equinox in coordinate system name '%s'", csys)
        if c == "I":
            header["EQUINOX"] = (2000.0, "ICRS coordinates")

        proj = projection.upper()
        header["CTYPE1"] = (f"{prefixes[0]}-{proj}", "Coordinates -- projection")
        header["CTYPE2"] = (f"{prefixes[1]}-{proj}", "Coordinates -- projection")

        # FITS pixels are centred on integers starting at 1
        header["CRPIX1"] = (s.x0 + 0.5, "X reference pixel")
        header["CRPIX2"] = (s.y0 + 0.5, "Y reference pixel")

        if abs(s.a01) < 1e-14 and abs(s.a10) < 1e-14:
            header["CDELT1"] = (math.degrees(1 / s.a00), "X scale")
            header["CDELT2"] = (math.degrees(1 / s.a11), "Y scale")
        else:
            rev = s.inverse()
            header["CD1_1"] = (math.degrees(rev.a00), "Matrix element")
            header["CD1_2"] = (math.degrees(rev.a01), "Matrix element")
            header["CD2_1"] = (math.degrees(rev.a10), "Matrix element")
            header["CD2_2"] = (math.degrees(rev.a11), "Matrix element")

    def copy_to_header(self, header: fits.Header) -> None:
        """Copy the keywords this WCS was read from, in sorted order."""
        for key in sorted(self.keywords):
            value = self.keywords[key]
            if isinstance(value, (int, float, str)) and not (isinstance(value, float) and math.isnan(value)):
                header[key] = (value, "Copied WCS element")


# === Standard FITS WCS ============================================================================

def find_axes(header: Mapping) -> tuple[int | None, int | None]:
    """Indices (1-based) of the first longitude and latitude axes named in CTYPEn."""
    lon_axis = lat_axis = None
    naxis = _get_int(header, "NAXIS") or 2
    for i in range(1, naxis + 1):
        ctype = _get_str(header, f"CTYPE{i}")
        if ctype is None or len(ctype) < 4:
            continue
        prefix = ctype[:4]
        if lon_axis is None and prefix in LON_PREFIXES:
            lon_axis = i
        if lat_axis is None and prefix in LAT_PREFIXES:
            lat_axis = i
    return lon_axis, lat_axis


def _extract_coordinate_system(header, lon_axis, lat_axis, keywords) -> CoordinateSystem:
    lon_type = _get_str(header, f"CTYPE{lon_axis}")[:4]
    lat_type = _get_str(header, f"CTYPE{lat_axis}")[:4]

    if lon_type == "RA--" and lat_type == "DEC-":
        symbol = f"{_frame(header, keywords)}{_equinox(header, keywords):g}"
    else:
        if lon_type[0] != lat_type[0]:
            raise TransformationError(f"Inconsistent axes definitions: {lon_type},{lat_type}")
        if lon_type == "GLON":
            symbol = "G"
        elif lon_type == "ELON":
            symbol = f"E{_equinox(header, keywords):g}"
        else:
            symbol = f"H{_equinox(header, keywords):g}"

    try:
        return coordinates.factory(symbol)
    except ConfigurationError as err:
        raise TransformationError(f"Unsupported coordinate system in header: {symbol}") from err


def _equinox(header, keywords) -> float:
    equinox = _get_float(header, "EQUINOX")
    if math.isnan(equinox):
        equinox = _get_float(header, "EPOCH")
    if math.isnan(equinox):
        equinox = 2000.0
    keywords["EQUINOX"] = equinox
    return equinox


def _frame(header, keywords) -> str:
    system = _get_str(header, "RADESYS") or _get_str(header, "RADECSYS")
    if system is None:
        return "J" if _equinox(header, keywords) >= 1984 else "B"
    keywords["RADESYS"] = system
    return "B" if system.upper().startswith("FK4") else "J"


def _extract_projection(header, lon_axis, lat_axis, keywords) -> tuple[Projection, Scaler | None]:
    lon_ctype = _get_str(header, f"CTYPE{lon_axis}")
    lat_ctype = _get_str(header, f"CTYPE{lat_axis}")
    lon_type = lon_ctype[5:8].upper()
    lat_type = lat_ctype[5:8].upper()
    if lon_type != lat_type:
        raise TransformationError(f"Inconsistent projection in FITS header: {lon_type},{lat_type}")

    if lon_type in _FIXED:
        projection = Projection(_FIXED[lon_type])
        if lon_type == "CAR":
            lon = _get_float(header, f"CRVAL{lon_axis}")
            if not math.isnan(lon) and lon != 0:
                projection.set_reference(math.radians(lon), 0.0)
        return projection, None

    crval1 = _get_float(header, f"CRVAL{lon_axis}")
    crval2 = _get_float(header, f"CRVAL{lat_axis}")
    if math.isnan(crval1) or math.isnan(crval2):
        raise TransformationError("Unable to find reference coordinates in FITS header")
    keywords["CRVAL1"] = crval1
    keywords["CRVAL2"] = crval2

    if lon_type in _PARAMETRIZED:
        projection = Projection(lon_type.capitalize(), (math.radians(crval1), math.radians(crval2)))

        lonpole = _get_float(header, "LONPOLE")
        if not math.isnan(lonpole):
            keywords["LONPOLE"] = lonpole
            if lonpole != 180:
                extra = Rotater("Z", math.radians(lonpole - 180))
                rotater = projection.rotater
                projection.set_rotater(extra if rotater is None else rotater.add(extra))
        return projection, None

    if lon_type == "NCP":
        # Orthographic projection about the pole, with the Y axis stretched
        pole = math.copysign(math.pi / 2, crval2)
        reference = (math.radians(crval1), pole)
        pole_offset = math.sin(pole - math.radians(crval2))
        projection = Projection("Sin", reference)
        ncp = Scaler(0, pole_offset, 1, 0, 0, 1).add(Scaler(0, 0, 1, 0, 0, 1 / math.sin(math.radians(crval2))))
        return projection, ncp

    raise TransformationError(f"Unsupported projection type: {lon_type}")


def _extract_scaler(header, lon_axis, lat_axis, keywords) -> Scaler:
    crpix1 = _get_float(header, f"CRPIX{lon_axis}")
    crpix2 = _get_float(header, f"CRPIX{lat_axis}")
    keywords["CRPIX1"] = crpix1
    keywords["CRPIX2"] = crpix2
    if math.isnan(crpix1) or math.isnan(crpix2):
        raise TransformationError("CRPIXn not found in header")

    # The corner of the first FITS pixel is at (0.5, 0.5)
    crpix1 -= 0.5
    crpix2 -= 0.5

    s = _cdelt_scaler(header, lon_axis, lat_axis, crpix1, crpix2, keywords)
    if s is None:
        s = _cd_scaler(header, lon_axis, lat_axis, crpix1, crpix2, keywords)
    if s is None:
        raise TransformationError("No scaling information found in FITS header")

    # Header scalings run from pixels to the plane; the WCS needs the reverse
    s = s.inverse()
    if lon_axis > lat_axis:
        s = s.interchange_axes()
    return s


def _cdelt_scaler(header, lon_axis, lat_axis, crpix1, crpix2, keywords) -> Scaler | None:
    cdelt1 = _get_float(header, f"CDELT{lon_axis}")
    cdelt2 = _get_float(header, f"CDELT{lat_axis}")
    if math.isnan(cdelt1) or math.isnan(cdelt2):
        return None
    keywords["CDELT1"] = cdelt1
    keywords["CDELT2"] = cdelt2

    crota = _get_float(header, f"CROTA{lat_axis}")
    if not math.isnan(crota) and crota != 0:
        keywords["CROTA2"] = crota
        angle = math.radians(crota)
        m = (math.cos(angle), math.sin(angle), -math.sin(angle), math.cos(angle))
    else:
        m = (
            _get_float(header, f"PC{lon_axis}_{lon_axis}"),
            _get_float(header, f"PC{lon_axis}_{lat_axis}"),
            _get_float(header, f"PC{lat_axis}_{lon_axis}"),
            _get_float(header, f"PC{lat_axis}_{lat_axis}"),
        )
        if any(math.isnan(v) for v in m):
            m = None
        else:
            keywords.update({"PC1_1": m[0], "PC1_2": m[1], "PC2_1": m[2], "PC2_2": m[3]})

    cdelt1 = math.radians(cdelt1)
    cdelt2 = math.radians(cdelt2)
    if m is None:
        return Scaler(-cdelt1 * crpix1, -cdelt2 * crpix2, cdelt1, 0, 0, cdelt2)

    m11, m12, m21, m22 = m
    return Scaler(
        -cdelt1 * (m11 * crpix1 + m12 * crpix2),
        -cdelt2 * (m21 * crpix1 + m22 * crpix2),
        cdelt1 * m11,
        cdelt1 * m12,
        cdelt2 * m21,
        cdelt2 * m22,
    )


def _cd_scaler(header, lon_axis, lat_axis, crpix1, crpix2, keywords) -> Scaler | None:
    m = (
        _get_float(header, f"CD{lon_axis}_{lon_axis}"),
        _get_float(header, f"CD{lon_axis}_{lat_axis}"),
        _get_float(header, f"CD{lat_axis}_{lon_axis}"),
        _get_float(header, f"CD{lat_axis}_{lat_axis}"),
    )
    if any(math.isnan(v) for v in m):
        return None
    keywords.update({"CD1_1": m[0], "CD1_2": m[1], "CD2_1": m[2], "CD2_2": m[3]})

    m11, m12, m21, m22 = (math.radians(v) for v in m)
    return Scaler(-m11 * crpix1 - m12 * crpix2, -m21 * crpix1 - m22 * crpix2, m11, m12, m21, m22)


# === DSS plate solutions ==========================================================================

def _is_dss(header: Mapping) -> bool:
    origin = _get_str(header, "ORIGIN")
    if origin is None or _get_str(header, "CTYPE1") is not None:
        return False
    if math.isnan(_get_float(header, "XPIXELSZ")):
        return False
    return origin.startswith("CASB") or origin.startswith("STScI")


def _dss_wcs(header: Mapping) -> WCS:
    keywords: dict[str, object] = {"ORIGIN": _get_str(header, "ORIGIN")}

    for key in ("PLTRAH", "PLTRAM", "PLTRAS", "PLTDECD", "PLTDECM", "PLTDECS", "PLTSCALE", "XPIXELSZ", "YPIXELSZ"):
        keywords[key] = _require_float(header, key)

    plate_ra = math.radians(15 * (keywords["PLTRAH"] + keywords["PLTRAM"] / 60 + keywords["PLTRAS"] / 3600))
    plate_dec = math.radians(keywords["PLTDECD"] + keywords["PLTDECM"] / 60 + keywords["PLTDECS"] / 3600)
    sign = _get_str(header, "PLTDECSN") or "+"
    keywords["PLTDECSN"] = sign
    if sign.startswith("-"):
        plate_dec = -plate_dec

    plate_scale = keywords["PLTSCALE"]
    x_pixel_size = keywords["XPIXELSZ"]
    y_pixel_size = keywords["YPIXELSZ"]

    x_coeff = []
    y_coeff = []
    for i in range(1, 21):
        x_coeff.append(_get_float(header, f"AMDX{i}", 0.0))
        y_coeff.append(_get_float(header, f"AMDY{i}", 0.0))
        keywords[f"AMDX{i}"] = x_coeff[-1]
        keywords[f"AMDY{i}"] = y_coeff[-1]

    ppo = []
    for i in range(1, 7):
        ppo.append(_get_float(header, f"PPO{i}", 0.0))
        keywords[f"PPO{i}"] = ppo[-1]

    plate_center_x = ppo[2]
    plate_center_y = ppo[5]

    # Degrees per pixel
    cdelt1 = -plate_scale / 1000 * x_pixel_size / 3600
    cdelt2 = plate_scale / 1000 * y_pixel_size / 3600

    # CNPIX pixels start at 1, half a pixel off from FITS
    cnpix1 = _get_float(header, "CNPIX1", 0.0)
    cnpix2 = _get_float(header, "CNPIX2", 0.0)
    keywords["CNPIX1"] = cnpix1
    keywords["CNPIX2"] = cnpix2
    crpix1 = plate_center_x / x_pixel_size - cnpix1 - 0.5
    crpix2 = plate_center_y / y_pixel_size - cnpix2 - 0.5

    try:
        distorter = DSSDistorter.from_plate(
            plate_ra, plate_dec, x_pixel_size, y_pixel_size, plate_scale, ppo, x_coeff, y_coeff
        )
    except ValueError as err:
        raise TransformationError(f"Invalid DSS plate solution: {err}") from err

    projection = Projection("Tan", (plate_ra, plate_dec))
    projection.set_distorter(distorter)

    cdelt1 = math.radians(cdelt1)
    cdelt2 = math.radians(cdelt2)
    scaler = Scaler(-cdelt1 * crpix1, -cdelt2 * crpix2, cdelt1, 0, 0, cdelt2).inverse()

    return WCS(coordinates.factory("J2000"), projection, scaler, wcs_scale=abs(cdelt1), keywords=keywords)


# === NEAT headers =================================================================================

def _is_neat(header: Mapping) -> bool:
    return _get_str(header, "CTYPE1") == "RA---XTN"


def _neat_wcs(header: Mapping) -> WCS:
    keywords: dict[str, object] = {"CTYPE1": "RA---XTN", "CTYPE2": "DEC--XTN"}

    ra0 = _require_float(header, "RA0")
    dec0 = _require_float(header, "DEC0")
    keywords["CRVAL1"] = ra0
    keywords["CRVAL2"] = dec0
    projection = Projection("Tan", (math.radians(ra0), math.radians(dec0)))

    cdelt1 = _require_float(header, "CDELT1")
    cdelt2 = _require_float(header, "CDELT2")
    keywords["CDELT1"] = cdelt1
    keywords["CDELT2"] = cdelt2
    cd1 = math.radians(cdelt1)
    cd2 = math.radians(cdelt2)

    cp1 = _require_float(header, "CRPIX1")
    cp2 = _require_float(header, "CRPIX2")
    keywords["CRPIX1"] = cp1
    keywords["CRPIX2"] = cp2

    terms = {key: _get_float(header, key, 0.0) for key in ("X0", "Y0", "A0", "A1", "A2", "B0", "B1", "B2")}
    keywords.update({k: v for k, v in terms.items() if k not in ("X0", "Y0")})

    # Radial term solved iteratively in the sky to pixel direction
    distorter = NeatDistorter(
        -_get_float(header, "RADIAL", 0.0),
        _get_float(header, "XRADIAL", 0.0),
        _get_float(header, "YRADIAL", 0.0),
    ).inverse()

    # The reference pixel is defined in the distorted frame
    cout = distorter.transform(np.array([cp1, cp2]))
    x0, y0 = terms["X0"], terms["Y0"]
    a0, a1, a2 = terms["A0"], terms["A1"], terms["A2"]
    b0, b1, b2 = terms["B0"], terms["B1"], terms["B2"]

    s1 = Scaler(0, 0, -1 / cd1, 0, 0, -1 / cd2)
    s2 = Scaler(
        cout[0] - a0 - a1 * x0 - a2 * y0,
        cout[1] - b0 - b2 * x0 - b1 * y0,
        -(1 + a1), -a2, -b2, -(1 + b1),
    )
    scaler = s1.add(s2.inverse())

    return WCS(
        coordinates.factory("J2000"),
        projection,
        scaler,
        pixel_distorter=distorter,
        wcs_scale=abs(cd1),
        keywords=keywords,
    )


# === Utilities ====================================================================================

def _scaler_scale(scaler: Scaler) -> float:
    det = scaler.determinant
    if det == 0:
        raise TransformationError("Degenerate scaler: zero determinant")
    return 1 / math.sqrt(abs(det))


def _get_str(header: Mapping, key: str) -> str | None:
    value = header.get(key)
    if value is None or isinstance(value, bool):
        return None
    return str(value).strip()


def _get_float(header: Mapping, key: str, default: float = math.nan) -> float:
    value = header.get(key)
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as err:
        raise TransformationError(f"Header keyword {key} is not numeric: {value!r}") from err


def _require_float(header: Mapping, key: str) -> float:
    value = _get_float(header, key)
    if math.isnan(value):
        raise TransformationError(f"Header keyword {key} not found")
    return value


def _get_int(header: Mapping, key: str) -> int:
    value = _get_float(header, key, 0.0)
    return int(value) if not math.isnan(value) else 0
