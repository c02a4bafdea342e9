"""
Great-circle geometry on a spherical Earth.

All distances use the haversine formula on a sphere of radius 6,371,000 m,
the same model for the anchor geofence, track spacing and peer proximity so
the three can be compared directly.
"""

import math
from typing import Iterable, Tuple
import numpy as np

EARTH_RADIUS_M = 6371000.0


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance between two points.

    Args:
        lat1, lng1: First point in decimal degrees
        lat2, lng2: Second point in decimal degrees

    Returns:
        Distance in meters (symmetric, 0 for identical points)
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2 +
        math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def haversine_many(lat: float, lng: float, lats, lngs) -> np.ndarray:
    """
    Distances from one point to many points.

    Args:
        lat, lng: Reference point in decimal degrees
        lats, lngs: Array-likes of target coordinates (same length)

    Returns:
        Array of distances in meters
    """
    lats = np.radians(np.asarray(lats, dtype=float))
    lngs = np.radians(np.asarray(lngs, dtype=float))
    phi = math.radians(lat)
    lam = math.radians(lng)

    a = (
        np.sin((lats - phi) / 2) ** 2 +
        math.cos(phi) * np.cos(lats) * np.sin((lngs - lam) / 2) ** 2
    )
    # Clamp rounding overshoot before sqrt(1 - a)
    a = np.clip(a, 0.0, 1.0)
    return EARTH_RADIUS_M * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def track_length_m(points: Iterable) -> float:
    """
    Total length of a polyline of objects with lat/lng attributes.

    Returns:
        Sum of haversine legs in meters (0 for fewer than 2 points)
    """
    coords = np.array([(p.lat, p.lng) for p in points], dtype=float)
    if len(coords) < 2:
        return 0.0

    phi = np.radians(coords[:, 0])
    lam = np.radians(coords[:, 1])
    d_phi = np.diff(phi)
    d_lam = np.diff(lam)

    a = np.sin(d_phi / 2) ** 2 + np.cos(phi[:-1]) * np.cos(phi[1:]) * np.sin(d_lam / 2) ** 2
    a = np.clip(a, 0.0, 1.0)
    legs = EARTH_RADIUS_M * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
    return float(legs.sum())


def offset_position(lat: float, lng: float, north_m: float, east_m: float) -> Tuple[float, float]:
    """
    Move a point by a small local north/east offset.

    Flat-earth approximation, good to well under a meter for offsets of a
    few hundred meters away from the poles.

    Returns:
        (lat, lng) in decimal degrees
    """
    d_lat = math.degrees(north_m / EARTH_RADIUS_M)
    d_lng = math.degrees(east_m / (EARTH_RADIUS_M * math.cos(math.radians(lat))))
    return lat + d_lat, lng + d_lng

