"""
Acceptance rules for candidate loops.

The validator is independent of incremental loop detection: it can be
applied to any path that is supposed to enclose ground. Each rule inspects
an immutable RingContext and returns an error message when the candidate
fails it; the first failing rule rejects the candidate.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from runiverse.territory.config import Config
from runiverse.territory.models import Position
from runiverse.territory.spatial.metrics import (
    bbox_diagonal_m,
    haversine_m,
    path_length_m,
    ring_area_m2,
)
from runiverse.territory.spatial.spatial_utils import close_ring

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RingContext:
    """Measurements of a candidate path needed by the validation rules."""

    closing_distance_m: float
    path_length_m: float
    area_m2: float
    bbox_diagonal_m: float
    duration_s: Optional[float]


@dataclass(frozen=True)
class RingValidation:
    context: RingContext
    error: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.error is None


ValidationRule = Callable[[RingContext, Config], Optional[str]]


def rule_closing_distance(context: RingContext, cfg: Config) -> Optional[str]:
    """Rule: the path must end close to where it started."""
    if context.closing_distance_m > cfg.max_closing_distance_m:
        return (
            f"Path ends {context.closing_distance_m:.1f} m from its start, "
            f"more than {cfg.max_closing_distance_m} m"
        )
    return None


def rule_path_length(context: RingContext, cfg: Config) -> Optional[str]:
    """Rule: the path must be long enough."""
    if context.path_length_m < cfg.min_path_length_m:
        return f"Path length {context.path_length_m:.1f} m is below {cfg.min_path_length_m} m"
    return None


def rule_area(context: RingContext, cfg: Config) -> Optional[str]:
    """Rule: the loop must enclose enough ground."""
    if context.area_m2 < cfg.min_area_m2:
        return f"Enclosed area {context.area_m2:.1f} m2 is below {cfg.min_area_m2} m2"
    return None


def rule_bbox_diagonal(context: RingContext, cfg: Config) -> Optional[str]:
    """Rule: the loop must not be a thin sliver or a tiny knot."""
    if context.bbox_diagonal_m < cfg.min_bbox_diagonal_m:
        return (
            f"Bounding box diagonal {context.bbox_diagonal_m:.1f} m "
            f"is below {cfg.min_bbox_diagonal_m} m"
        )
    return None


def rule_duration(context: RingContext, cfg: Config) -> Optional[str]:
    """Rule: the session must have lasted long enough."""
    if context.duration_s is None:
        return "Session duration is unknown"
    if context.duration_s < cfg.min_duration_s:
        return f"Session lasted {context.duration_s:.1f} s, less than {cfg.min_duration_s} s"
    return None


# Ordered list of rules to apply
VALIDATION_RULES: List[ValidationRule] = [
    rule_closing_distance,
    rule_path_length,
    rule_area,
    rule_bbox_diagonal,
    rule_duration,
]


def ring_context(path: Sequence[Position], duration_s: Optional[float]) -> RingContext:
    """
    Measure a candidate path. An open path is measured as it was traced;
    its area is that of the ring formed by closing it.
    """
    points = list(path)
    if len(points) == 0:
        return RingContext(0.0, 0.0, 0.0, 0.0, duration_s)

    return RingContext(
        closing_distance_m=haversine_m(points[0], points[-1]),
        path_length_m=path_length_m(points),
        area_m2=ring_area_m2(close_ring(points)),
        bbox_diagonal_m=bbox_diagonal_m(points),
        duration_s=duration_s,
    )


def validate_ring(path: Sequence[Position], duration_s: Optional[float], configuration: Config) -> RingValidation:
    """
    Apply every acceptance rule to 'path'.

    Args:
        path: Candidate loop, closed or open, as (lon, lat) positions
        duration_s: Seconds the session has been tracing, None if unknown
        configuration: Thresholds to apply

    Returns:
        A RingValidation carrying the measurements and the first error, if any
    """
    context = ring_context(path, duration_s)
    for rule in VALIDATION_RULES:
        error = rule(context, configuration)
        if error is not None:
            logger.debug(f"Candidate rejected: {error}")
            return RingValidation(context, error)
    return RingValidation(context)
