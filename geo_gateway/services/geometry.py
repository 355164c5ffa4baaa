from __future__ import annotations

import math
from typing import List, Sequence, Tuple

from geo_gateway.models import BoundingBox

LatLon = Tuple[float, float]

METERS_PER_DEGREE = 111320.0
EARTH_RADIUS_M = 6371000.0

# Center-to-center spacing as a share of the radius, so neighbouring boxes overlap
DENSIFY_SPACING_FACTOR = 0.9


class DegenerateRectangle(ValueError):
    pass


def bbox_around_point(lat: float, lon: float, radius_m: float) -> BoundingBox:
    """Box of +/- radius around (lat, lon). Planar approximation, no antimeridian handling."""
    d_lat = radius_m / METERS_PER_DEGREE
    d_lon = radius_m / (METERS_PER_DEGREE * math.cos(math.radians(lat)))
    return BoundingBox(
        min_lat=lat - d_lat,
        min_lon=lon - d_lon,
        max_lat=lat + d_lat,
        max_lon=lon + d_lon,
    )


def rectangle_from_two_points(p1: LatLon, p2: LatLon) -> BoundingBox:
    min_lat, max_lat = min(p1[0], p2[0]), max(p1[0], p2[0])
    min_lon, max_lon = min(p1[1], p2[1]), max(p1[1], p2[1])
    if not (min_lat < max_lat) or not (min_lon < max_lon):
        raise DegenerateRectangle("Invalid rectangle: min < max must hold for lat & lon.")
    return BoundingBox(min_lat=min_lat, min_lon=min_lon, max_lat=max_lat, max_lon=max_lon)


def haversine_meters(a: LatLon, b: LatLon) -> float:
    """Great-circle distance in meters between two (lat, lon) pairs."""
    phi1 = math.radians(a[0])
    phi2 = math.radians(b[0])
    dphi = math.radians(b[0] - a[0])
    dlambda = math.radians(b[1] - a[1])

    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))


def interpolate(a: LatLon, b: LatLon, t: float) -> LatLon:
    return (a[0] + (b[0] - a[0]) * t, a[1] + (b[1] - a[1]) * t)


def densify_polyline_by_radius(points: Sequence[LatLon], radius_m: float, max_points: int = 200) -> List[LatLon]:
    """Insert sample points along a path so consecutive radius boxes overlap.

    Each segment gets ``ceil(distance / spacing) - 1`` evenly spaced points,
    with ``spacing = 0.9 * radius``. Generation stops once ``max_points - 1``
    samples exist; anything longer than ``max_points`` is thinned by a uniform
    stride. The first and last input points are always kept as-is.
    """
    if not (radius_m > 0) or len(points) < 2:
        return list(points)

    step = max(1.0, radius_m * DENSIFY_SPACING_FACTOR)
    out: List[LatLon] = []
    for a, b in zip(points, points[1:]):
        out.append(a)
        n_insert = max(0, math.ceil(haversine_meters(a, b) / step) - 1)
        for k in range(1, n_insert + 1):
            out.append(interpolate(a, b, k / (n_insert + 1)))
            if len(out) >= max_points - 1:
                break
        if len(out) >= max_points - 1:
            break
    out.append(points[-1])

    if len(out) <= max_points:
        return out

    stride = math.ceil(len(out) / max_points)
    thinned = out[::stride]
    if (len(out) - 1) % stride:
        thinned.append(out[-1])
    return thinned
