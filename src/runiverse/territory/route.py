"""
The growing path of the active capture session.
"""

import logging
from collections import deque
from typing import List, Optional, Sequence

from runiverse.territory.config import Config
from runiverse.territory.models import Position
from runiverse.territory.spatial.metrics import haversine_m
from runiverse.territory.spatial.spatial_utils import dedupe_consecutive

logger = logging.getLogger(__name__)


class RouteBuffer:
    """
    Bounded, ordered sequence of positions with their acceptance times.

    When more than 'max_route_points' positions are held the oldest are
    dropped, so a very long path that never closes can lose its start and
    with it the chance to close a loop against it.
    """

    def __init__(self, configuration: Config):
        self.configuration = configuration
        self._points = deque(maxlen=configuration.max_route_points)
        self._times = deque(maxlen=configuration.max_route_points)

    def __len__(self):
        return len(self._points)

    @property
    def last(self) -> Optional[Position]:
        return self._points[-1] if self._points else None

    @property
    def started_at(self) -> Optional[float]:
        """Acceptance time of the oldest point still in the buffer."""
        return self._times[0] if self._times else None

    def positions(self) -> List[Position]:
        return list(self._points)

    def should_append(self, position: Position, speed_mps: Optional[float] = None) -> bool:
        """
        A position is worth keeping if it moved far enough from the last point
        or the sensor reports real movement; never if it repeats the last one.
        """
        last = self.last
        if last is None:
            return True
        if position == last:
            return False
        if haversine_m(last, position) >= self.configuration.min_step_m:
            return True
        return speed_mps is not None and speed_mps >= self.configuration.min_speed_mps

    def append(self, position: Position, timestamp: Optional[float], speed_mps: Optional[float] = None) -> bool:
        """
        Append 'position' if it passes the stationary-noise check; returns
        whether the route changed.
        """
        if not self.should_append(position, speed_mps):
            return False
        if len(self._points) == self._points.maxlen:
            logger.debug(f"Route is full at {self._points.maxlen} points, dropping the oldest")
        self._points.append(position)
        self._times.append(timestamp)
        return True

    def clear(self):
        self._points.clear()
        self._times.clear()

    def seed(self, path: Sequence[Position], timestamp: Optional[float] = None):
        """
        Replace the route with 'path', keeping the most recent points if it
        is longer than the buffer. Every seeded point gets 'timestamp'.
        """
        self.clear()
        for position in dedupe_consecutive(path):
            self._points.append(position)
            self._times.append(timestamp)
