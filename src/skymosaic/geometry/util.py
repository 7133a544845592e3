"""
util.py

Conversions between spherical coordinates and unit vectors.
"""

# === Imports ======================================================================================

import numpy as np

# === Main =========================================================================================

def unit(lon, lat) -> np.ndarray:
    """
    Unit vector(s) for longitude/latitude in radians.

    Args:
        lon: Longitude, scalar or array.
        lat: Latitude, same shape as `lon`.

    Returns:
        Array of shape (3,) or (3, n).
    """
    lon = np.asarray(lon, dtype=np.float64)
    lat = np.asarray(lat, dtype=np.float64)
    cos_lat = np.cos(lat)
    return np.stack([np.cos(lon) * cos_lat, np.sin(lon) * cos_lat, np.sin(lat)])


def coord(vec) -> np.ndarray:
    """
    Longitude/latitude in radians for unit vector(s), with longitude in [0, 2*pi).
    """
    vec = np.asarray(vec, dtype=np.float64)
    lon = np.arctan2(vec[1], vec[0])
    lon = np.where(lon < 0, lon + 2 * np.pi, lon)
    lat = np.arcsin(np.clip(vec[2], -1.0, 1.0))
    return np.stack([lon, lat])


def sphdist(lon1, lat1, lon2, lat2):
    """Great-circle distance (haversine) between two positions, all in radians."""
    sin_dlat = np.sin((lat2 - lat1) / 2)
    sin_dlon = np.sin((lon2 - lon1) / 2)
    a = sin_dlat * sin_dlat + np.cos(lat1) * np.cos(lat2) * sin_dlon * sin_dlon
    a = np.clip(a, 0.0, 1.0)
    return 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def sphdist_deg(lon1, lat1, lon2, lat2):
    """Great-circle distance with all values in degrees."""
    return np.degrees(sphdist(np.radians(lon1), np.radians(lat1), np.radians(lon2), np.radians(lat2)))
