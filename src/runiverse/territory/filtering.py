"""
Sample filtering and smoothing.

Raw location samples are noisy: the filter rejects readings that are too
inaccurate, too frequent, or imply an impossible jump, and exponentially
smooths the ones it keeps.
"""

import logging
from typing import Callable, Optional

from returns.maybe import Maybe, Nothing, Some

from runiverse.territory.config import Config
from runiverse.territory.models import GeoSample, Position
from runiverse.territory.spatial.metrics import haversine_m
from runiverse.territory.spatial.spatial_utils import is_finite_position

logger = logging.getLogger(__name__)


def smooth(previous: Optional[Position], raw: Position, alpha: float) -> Position:
    """
    One exponential smoothing step per axis, seeded with the raw value.
    """
    if previous is None:
        return raw
    return (
        previous[0] + alpha * (raw[0] - previous[0]),
        previous[1] + alpha * (raw[1] - previous[1]),
    )


class SampleFilter:
    """
    Accepts or rejects samples and keeps the last accepted state.

    A rejected sample never changes the filter state.
    """

    def __init__(self, configuration: Config, clock: Callable[[], float]):
        self.configuration = configuration
        self.clock = clock
        self.last_position: Optional[Position] = None
        self.last_raw: Optional[Position] = None
        self.last_timestamp: Optional[float] = None

    def reset(self):
        self.last_position = None
        self.last_raw = None
        self.last_timestamp = None

    def timestamp_of(self, sample: GeoSample) -> float:
        return sample.timestamp if sample.timestamp is not None else self.clock()

    def rejection(self, sample: GeoSample, timestamp: float) -> Optional[str]:
        """
        The reason 'sample' should be dropped, or None if it is acceptable.
        """
        cfg = self.configuration
        if not is_finite_position(sample.position):
            return "non-finite coordinates"

        if sample.accuracy_m is not None and not sample.accuracy_m <= cfg.max_accuracy_m:
            return f"accuracy {sample.accuracy_m} m exceeds {cfg.max_accuracy_m} m"

        if self.last_timestamp is not None:
            elapsed = timestamp - self.last_timestamp
            if elapsed < cfg.min_sample_interval_s:
                return f"only {elapsed:.3f} s since the last accepted sample"

            distance = haversine_m(self.last_raw, sample.position)
            speed = distance / max(1.0, elapsed)
            if speed > cfg.max_reasonable_speed_mps:
                return f"implied speed {speed:.1f} m/s is a spike"

        return None

    def accept(self, sample: GeoSample) -> Maybe[Position]:
        """
        Smoothed position for an acceptable sample, Nothing otherwise.
        """
        timestamp = self.timestamp_of(sample)
        reason = self.rejection(sample, timestamp)
        if reason is not None:
            logger.debug(f"Rejected sample ({sample.longitude}, {sample.latitude}): {reason}")
            return Nothing

        raw = (float(sample.longitude), float(sample.latitude))
        smoothed = smooth(self.last_position, raw, self.configuration.smoothing_alpha)

        self.last_position = smoothed
        self.last_raw = raw
        self.last_timestamp = timestamp
        return Some(smoothed)
