"""
Vertex reduction for captured rings.
"""

import logging
from typing import Optional, Sequence

from shapely.geometry import Polygon
from shapely.validation import make_valid

from runiverse.territory.constants import DEFAULT_SIMPLIFY_TOLERANCE
from runiverse.territory.models import Position, Ring

from .spatial_utils import ensure_counter_clockwise, largest_polygon, polygon_to_ring, ring_to_polygon

logger = logging.getLogger(__name__)


def simplify_ring(
    ring: Sequence[Position], tolerance: float = DEFAULT_SIMPLIFY_TOLERANCE
) -> Optional[Ring]:
    """
    Simplify a ring with Douglas-Peucker at 'tolerance' degrees.

    The result is closed, counter-clockwise and has at least 4 vertices
    (including the closing vertex). Returns None when the ring collapses
    below that, in which case the candidate should be discarded.

    Args:
        ring: Closed or open sequence of (lon, lat) positions
        tolerance: Maximum allowed deviation in degrees

    Returns:
        The simplified ring, or None if it degenerated
    """
    polygon = ring_to_polygon(ring)
    if polygon.is_empty:
        logger.debug("Ring has fewer than 3 distinct vertices, nothing to simplify")
        return None

    if not polygon.is_valid:
        # Loops closed at a crossing end with a zero-width spur back to it
        polygon = largest_polygon(make_valid(polygon))
        if polygon.is_empty:
            return None

    simplified = polygon.simplify(tolerance, preserve_topology=False)

    if not isinstance(simplified, Polygon) or simplified.is_empty:
        logger.debug(f"Simplification at tolerance {tolerance} collapsed the ring")
        return None

    result = polygon_to_ring(ensure_counter_clockwise(simplified))
    if len(result) < 4:
        logger.debug(f"Simplified ring has only {len(result)} vertices")
        return None

    logger.debug(f"Simplified ring from {len(polygon.exterior.coords)} to {len(result)} vertices")
    return result
