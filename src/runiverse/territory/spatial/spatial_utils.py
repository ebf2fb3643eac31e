"""
Utility functions for ring and path handling.

This module contains the shared helpers used by the metrics calculator, the
geometry capability and the session engine to keep rings closed, free of
repeated vertices, and made only of finite coordinates.
"""

import logging
import math
from typing import Iterable, List, Optional, Sequence

from shapely.geometry import GeometryCollection, MultiPolygon, Polygon
from shapely.geometry.polygon import orient

from runiverse.territory.models import Position, Ring

logger = logging.getLogger(__name__)


def is_finite_position(point) -> bool:
    """
    True when 'point' is a pair-like value whose first two entries are finite
    numbers.
    """
    try:
        lon, lat = float(point[0]), float(point[1])
    except (TypeError, ValueError, IndexError):
        return False
    return math.isfinite(lon) and math.isfinite(lat)


def close_ring(points: Sequence[Position]) -> List[Position]:
    """
    Return a copy of 'points' whose last vertex equals its first.

    Idempotent: closing an already closed ring returns an equal ring.
    """
    if len(points) == 0:
        return []
    ring = [(p[0], p[1]) for p in points]
    if ring[0] != ring[-1]:
        ring.append(ring[0])
    return ring


def dedupe_consecutive(points: Iterable[Position]) -> List[Position]:
    """
    Drop consecutive repeated vertices and any vertex that is not a finite
    coordinate pair.
    """
    deduped = []
    for point in points:
        if not is_finite_position(point):
            continue
        current = (float(point[0]), float(point[1]))
        if deduped and deduped[-1] == current:
            continue
        deduped.append(current)
    return deduped


def distinct_vertices(ring: Sequence[Position]) -> List[Position]:
    """
    The vertices of a ring without the closing vertex.
    """
    vertices = list(ring)
    if len(vertices) > 1 and vertices[0] == vertices[-1]:
        vertices = vertices[:-1]
    return vertices


def sanitize_ring(points) -> Optional[Ring]:
    """
    Clean a raw ring: drop malformed vertices, collapse repeats and close it.

    Returns None when fewer than 3 distinct vertices remain, since such a
    ring cannot enclose any area.
    """
    if points is None:
        return None
    deduped = dedupe_consecutive(points)
    if len(distinct_vertices(deduped)) < 3:
        return None
    closed = close_ring(deduped)
    return tuple(closed) if len(closed) >= 4 else None


def ring_to_polygon(ring: Sequence[Position]) -> Polygon:
    """
    Build a shapely Polygon from a ring; an unusable ring becomes an empty
    Polygon.
    """
    vertices = distinct_vertices(dedupe_consecutive(ring))
    if len(vertices) < 3:
        return Polygon()
    return Polygon(vertices)


def polygon_to_ring(polygon: Polygon) -> Ring:
    """
    The exterior of a Polygon as a closed ring of (lon, lat) tuples.
    """
    if polygon.is_empty:
        return tuple()
    return tuple(close_ring([(x, y) for x, y in polygon.exterior.coords]))


def ensure_counter_clockwise(polygon):
    """
    Ensure polygon has counter-clockwise winding order.

    Parameters:
    -----------
    polygon : shapely.geometry.Polygon
        Polygon to check and potentially reorient

    Returns:
    --------
    shapely.geometry.Polygon : Polygon with counter-clockwise exterior ring
    """
    if not isinstance(polygon, Polygon) or polygon.is_empty:
        return polygon

    # sign=1.0 ensures counter-clockwise exterior, clockwise holes
    return orient(polygon, sign=1.0)


def largest_polygon(geom) -> Polygon:
    """
    Reduce any geometry to its largest polygonal part; anything without
    area becomes an empty Polygon.
    """
    if isinstance(geom, Polygon):
        return geom
    if isinstance(geom, (MultiPolygon, GeometryCollection)):
        polygons = [largest_polygon(g) for g in geom.geoms]
        polygons = [p for p in polygons if not p.is_empty]
        if polygons:
            return max(polygons, key=lambda p: p.area)
    return Polygon()
