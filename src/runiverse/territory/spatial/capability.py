"""
Geometry capability used by the ownership resolver and session engine.

The engine only talks to geometry through the GeometryCapability interface,
so the planar shapely implementation below can be swapped for another
library without touching the capture logic. GeodesicGeometry keeps shapely
for the topology predicates but measures area and length on the WGS84
ellipsoid with pyproj.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from pyproj import Geod
from shapely.geometry import Polygon
from shapely.ops import unary_union
from shapely.validation import make_valid

from runiverse.territory.constants import DEFAULT_SIMPLIFY_TOLERANCE
from runiverse.territory.models import Position, Ring

from .metrics import ring_area_m2, ring_perimeter_m
from .simplification import simplify_ring
from .spatial_utils import ensure_counter_clockwise, largest_polygon, polygon_to_ring, ring_to_polygon

logger = logging.getLogger(__name__)


class GeometryCapability(ABC):
    """The geometry operations the capture engine relies on."""

    @abstractmethod
    def intersects(self, a: Sequence[Position], b: Sequence[Position]) -> bool:
        """True if the two rings share any point (touch, overlap or contain)."""

    @abstractmethod
    def contains(self, a: Sequence[Position], b: Sequence[Position]) -> bool:
        """True if ring 'a' covers ring 'b' entirely."""

    @abstractmethod
    def overlap_ratio(self, a: Sequence[Position], b: Sequence[Position]) -> float:
        """Area shared by 'a' and 'b' as a fraction of the smaller of the two."""

    @abstractmethod
    def union(self, a: Sequence[Position], b: Sequence[Position]) -> Ring:
        """The exterior ring of the union of 'a' and 'b'."""

    @abstractmethod
    def area(self, ring: Sequence[Position]) -> float:
        """Area in square meters."""

    @abstractmethod
    def length(self, ring: Sequence[Position]) -> float:
        """Perimeter in meters, including the closing edge."""

    @abstractmethod
    def simplify(self, ring: Sequence[Position], tolerance: float) -> Optional[Ring]:
        """Simplified ring, or None if it collapses."""


class ShapelyGeometry(GeometryCapability):
    """Planar geometry in lon/lat degrees, backed by shapely."""

    def _polygon(self, ring: Sequence[Position]) -> Polygon:
        polygon = ring_to_polygon(ring)
        if not polygon.is_empty and not polygon.is_valid:
            polygon = largest_polygon(make_valid(polygon))
        return polygon

    def intersects(self, a, b):
        pa, pb = self._polygon(a), self._polygon(b)
        if pa.is_empty or pb.is_empty:
            return False
        return pa.intersects(pb)

    def contains(self, a, b):
        pa, pb = self._polygon(a), self._polygon(b)
        if pa.is_empty or pb.is_empty:
            return False
        return pa.covers(pb)

    def overlap_ratio(self, a, b):
        pa, pb = self._polygon(a), self._polygon(b)
        if pa.is_empty or pb.is_empty:
            return 0.0
        smaller = min(pa.area, pb.area)
        if smaller <= 0:
            return 0.0
        return min(1.0, pa.intersection(pb).area / smaller)

    def union(self, a, b):
        pa, pb = self._polygon(a), self._polygon(b)
        merged = largest_polygon(unary_union([pa, pb]))
        if len(merged.interiors) > 0:
            logger.debug(f"Dropping {len(merged.interiors)} hole(s) from merged ring")
            merged = Polygon(merged.exterior)
        return polygon_to_ring(ensure_counter_clockwise(merged))

    def area(self, ring):
        return ring_area_m2(ring)

    def length(self, ring):
        return ring_perimeter_m(ring)

    def simplify(self, ring, tolerance=DEFAULT_SIMPLIFY_TOLERANCE):
        return simplify_ring(ring, tolerance)


class GeodesicGeometry(ShapelyGeometry):
    """
    Shapely topology with area and perimeter measured on an ellipsoid.
    """

    def __init__(self, ellps: str = "WGS84"):
        self.geod = Geod(ellps=ellps)

    def area(self, ring):
        polygon = self._polygon(ring)
        if polygon.is_empty:
            return 0.0
        area, _ = self.geod.geometry_area_perimeter(polygon)
        return abs(area)

    def length(self, ring):
        vertices = list(ring)
        if len(vertices) < 2:
            return 0.0
        if vertices[0] != vertices[-1]:
            vertices.append(vertices[0])
        lons = [p[0] for p in vertices]
        lats = [p[1] for p in vertices]
        return self.geod.line_length(lons, lats)
