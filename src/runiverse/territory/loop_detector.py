"""
Loop closure detection on a growing route.

Every time a point is appended, the newest segment of the route is tested
against all earlier, non-adjacent segments. The oldest crossing segment
closes a loop; the ring runs from the crossing point through the route
points after it, then back to the crossing point.
"""

import logging
import math
from typing import Iterator, List, Optional, Sequence

import numpy as np

from runiverse.territory.config import Config
from runiverse.territory.constants import METERS_PER_DEGREE_LAT, METERS_PER_DEGREE_LON
from runiverse.territory.models import CandidateRing, Position
from runiverse.territory.spatial.spatial_utils import dedupe_consecutive

logger = logging.getLogger(__name__)

# Proximity snapping never uses a radius below this many meters
MIN_SNAP_RADIUS_M = 10.0
SNAP_RADIUS_FACTOR = 1.4


def segment_crossings(a: np.ndarray, b: np.ndarray, starts: np.ndarray, ends: np.ndarray):
    """
    Test segment a-b against every segment starts[k]-ends[k] at once.

    Returns a boolean mask of the segments that intersect a-b and, for each,
    the parameter t along a-b of the intersection point. Parallel and
    collinear segments never intersect.
    """
    r = b - a
    s = ends - starts
    qp = starts - a

    denom = r[0] * s[:, 1] - r[1] * s[:, 0]
    with np.errstate(divide="ignore", invalid="ignore"):
        t = (qp[:, 0] * s[:, 1] - qp[:, 1] * s[:, 0]) / denom
        u = (qp[:, 0] * r[1] - qp[:, 1] * r[0]) / denom

    mask = (denom != 0) & (t >= 0) & (t <= 1) & (u >= 0) & (u <= 1)
    return mask, t


def build_ring(intersection: Position, route: Sequence[Position], start_index: int, end_index: int) -> List[Position]:
    """
    [intersection, route[start_index .. end_index], intersection] without
    repeated vertices.
    """
    loop = [intersection] + list(route[start_index:end_index + 1]) + [intersection]
    return dedupe_consecutive(loop)


def _local_xy(points: np.ndarray, origin: Position) -> np.ndarray:
    """Meters east/north of 'origin' on a local equirectangular plane."""
    scale_x = METERS_PER_DEGREE_LON * math.cos(math.radians(origin[1]))
    return np.column_stack(
        (
            (points[:, 0] - origin[0]) * scale_x,
            (points[:, 1] - origin[1]) * METERS_PER_DEGREE_LAT,
        )
    )


class LoopDetector:
    def __init__(self, configuration: Config):
        self.configuration = configuration

    def detect(self, route: Sequence[Position]) -> Optional[CandidateRing]:
        """
        Look for a loop closed by the newest point of 'route'.

        At most one candidate is returned: the one formed with the lowest
        index crossing segment that leaves at least 'min_segment_samples'
        route points inside the loop.
        """
        candidate = self._detect_crossing(route)
        if candidate is None and self.configuration.snap_closure:
            candidate = self._detect_proximity(route)
        return candidate

    def _detect_crossing(self, route: Sequence[Position]) -> Optional[CandidateRing]:
        n = len(route)
        if n < 4:
            return None

        points = np.asarray(route, dtype=float)
        a, b = points[n - 2], points[n - 1]
        # Segments (i, i + 1) for i < n - 3; segment n - 3 shares a vertex with a-b
        mask, t = segment_crossings(a, b, points[: n - 3], points[1 : n - 2])

        for i in np.flatnonzero(mask):
            i = int(i)
            inside = n - 1 - i
            if inside < self.configuration.min_segment_samples:
                logger.debug(f"Crossing at segment {i} encloses only {inside} points, skipping")
                continue
            hit = a + t[i] * (b - a)
            intersection = (float(hit[0]), float(hit[1]))
            ring = build_ring(intersection, route, i + 1, n - 1)
            if len(ring) < 4:
                continue
            logger.debug(f"Route crosses itself at segment {i}, loop of {len(ring)} vertices")
            return CandidateRing(tuple(ring), i + 1, intersection)

        return None

    def _detect_proximity(self, route: Sequence[Position]) -> Optional[CandidateRing]:
        """
        Close the loop when the newest point comes back near an earlier vertex
        or segment without actually crossing it.
        """
        n = len(route)
        guard = max(self.configuration.min_segment_samples, 4)
        if n - 1 - guard <= 0:
            return None

        radius = max(self.configuration.min_distance_m * SNAP_RADIUS_FACTOR, MIN_SNAP_RADIUS_M)
        last = route[n - 1]
        xy = _local_xy(np.asarray(route, dtype=float), last)

        for i in range(0, n - 1 - guard):
            p, q = xy[i], xy[i + 1]
            if math.hypot(p[0], p[1]) <= radius:
                ring = build_ring(route[i], route, i + 1, n - 1)
                if len(ring) >= 4:
                    return CandidateRing(tuple(ring), i + 1, route[i])
                continue

            d = q - p
            length_sq = float(d[0] ** 2 + d[1] ** 2)
            if length_sq == 0:
                continue
            # Projection of the newest point (the origin) onto segment p-q
            u = min(1.0, max(0.0, -float(p[0] * d[0] + p[1] * d[1]) / length_sq))
            nearest = p + u * d
            if math.hypot(nearest[0], nearest[1]) <= radius:
                lon = route[i][0] + u * (route[i + 1][0] - route[i][0])
                lat = route[i][1] + u * (route[i + 1][1] - route[i][1])
                snapped = (lon, lat)
                ring = build_ring(snapped, route, i + 1, n - 1)
                if len(ring) >= 4:
                    return CandidateRing(tuple(ring), i + 1, snapped)

        return None

    def scan_route(self, route: Sequence[Position]) -> Iterator[CandidateRing]:
        """
        Replay detection over a complete route, yielding every loop in the
        order it would have been found while the route was traced.
        """
        for end in range(3, len(route)):
            candidate = self.detect(route[: end + 1])
            if candidate is not None:
                yield candidate
