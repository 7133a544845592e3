"""Geometry: transformers, coordinate systems, projections and world coordinate systems."""

from skymosaic.geometry.converter import Converter
from skymosaic.geometry.coordinates import (
    ICRS,
    Besselian,
    CoordinateSystem,
    Ecliptic,
    Galactic,
    Helioecliptic,
    Julian,
    factory,
    sun_longitude,
)
from skymosaic.geometry.distorters import DSSDistorter, DSSInverse, Distorter, NeatDistorter, NeatInverse, PlateModel
from skymosaic.geometry.position import Position
from skymosaic.geometry.projecters import Deprojecter, Projecter, available_projecters, get_projecter
from skymosaic.geometry.projection import Projection
from skymosaic.geometry.rotater import Rotater
from skymosaic.geometry.scaler import Scaler
from skymosaic.geometry.sphere_distorter import BesselianDistorter, BesselianInverse, SphereDistorter
from skymosaic.geometry.transformer import Transformer
from skymosaic.geometry.wcs import WCS

__all__ = [
    "Besselian",
    "BesselianDistorter",
    "BesselianInverse",
    "Converter",
    "CoordinateSystem",
    "DSSDistorter",
    "DSSInverse",
    "Deprojecter",
    "Distorter",
    "Ecliptic",
    "Galactic",
    "Helioecliptic",
    "ICRS",
    "Julian",
    "NeatDistorter",
    "NeatInverse",
    "PlateModel",
    "Position",
    "Projecter",
    "Projection",
    "Rotater",
    "Scaler",
    "SphereDistorter",
    "Transformer",
    "WCS",
    "available_projecters",
    "factory",
    "get_projecter",
    "sun_longitude",
]
