"""Great-circle distance and ArcGIS geometry helpers."""

import math

from plotmatch.core.types import GeoPoint

EARTH_RADIUS_M = 6_371_000


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters, rounded to the nearest meter."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return float(round(EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))))


def ring_centroid(ring: list[list[float]]) -> GeoPoint | None:
    """Vertex mean of an [x, y] ring. ArcGIS rings are [lng, lat] in outSR=4326."""
    if not ring:
        return None
    sum_x = sum(pt[0] for pt in ring)
    sum_y = sum(pt[1] for pt in ring)
    return GeoPoint(latitude=sum_y / len(ring), longitude=sum_x / len(ring))


def feature_location(geometry: dict | None, default: GeoPoint) -> GeoPoint:
    """Representative point for an ArcGIS geometry.

    Polygons use the centroid of the first ring, points use x/y. Features
    without usable geometry sit at the query center.
    """
    if not geometry:
        return default
    rings = geometry.get("rings")
    if rings and rings[0]:
        centroid = ring_centroid(rings[0])
        if centroid is not None:
            return centroid
    x = geometry.get("x")
    y = geometry.get("y")
    if x is not None and y is not None:
        return GeoPoint(latitude=float(y), longitude=float(x))
    return default
