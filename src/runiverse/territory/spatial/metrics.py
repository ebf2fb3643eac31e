"""
Area and length measurements for rings and paths.

Area uses the shoelace formula over a local equirectangular projection
centred on the ring's mean latitude; lengths use the haversine great-circle
distance. Both are accurate enough for the walking-scale loops the engine
deals with and never raise on degenerate input.
"""

import math
from typing import Sequence

import numpy as np

from runiverse.territory.constants import (
    EARTH_RADIUS_M,
    METERS_PER_DEGREE_LAT,
    METERS_PER_DEGREE_LON,
)
from runiverse.territory.models import Position

from .spatial_utils import dedupe_consecutive, distinct_vertices


def haversine_m(a: Position, b: Position) -> float:
    """Great-circle distance in meters between two (lon, lat) positions."""
    a_lon, a_lat = a
    b_lon, b_lat = b
    phi1 = math.radians(a_lat)
    phi2 = math.radians(b_lat)
    dphi = math.radians(b_lat - a_lat)
    dlmb = math.radians(b_lon - a_lon)

    s = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(s)))


def path_length_m(points: Sequence[Position]) -> float:
    """Sum of haversine distances along an open path."""
    total = 0.0
    for i in range(1, len(points)):
        total += haversine_m(points[i - 1], points[i])
    return total


def ring_area_m2(ring: Sequence[Position]) -> float:
    """
    Planar area of a ring in square meters.

    Rings with fewer than 3 distinct vertices have zero area. The result is
    the same whichever vertex the ring starts at and whichever way it winds.
    """
    vertices = distinct_vertices(dedupe_consecutive(ring))
    if len(set(vertices)) < 3:
        return 0.0

    coords = np.asarray(vertices, dtype=float)
    mean_lat = coords[:, 1].mean()
    x = coords[:, 0] * METERS_PER_DEGREE_LON * math.cos(math.radians(mean_lat))
    y = coords[:, 1] * METERS_PER_DEGREE_LAT

    # Shoelace over the implicitly closed ring
    area = np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y)
    return float(abs(area) / 2.0)


def ring_perimeter_m(ring: Sequence[Position]) -> float:
    """
    Haversine perimeter of a ring, including the closing edge.

    An open ring is measured as if closed; fewer than two vertices gives 0.
    """
    vertices = list(ring)
    if len(vertices) < 2:
        return 0.0
    if vertices[0] != vertices[-1]:
        vertices.append(vertices[0])
    return path_length_m(vertices)


def bbox_diagonal_m(points: Sequence[Position]) -> float:
    """Haversine length of the diagonal of the bounding box of 'points'."""
    if len(points) == 0:
        return 0.0
    lons = [p[0] for p in points]
    lats = [p[1] for p in points]
    return haversine_m((min(lons), min(lats)), (max(lons), max(lats)))
