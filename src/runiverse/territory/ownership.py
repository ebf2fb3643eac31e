"""
Resolve a new claim against the territories already on the map.

Existing territories are examined in stored order and the first one that
matches decides the outcome:

- near-equal area and one ring (almost) contains the other: IGNORE (duplicate)
- the rings touch, overlap or one contains the other: MERGE (union)
- no territory matches: ADD

Only the first match is acted on; a claim that overlaps several
territories is merged with the first of them only.
"""

import dataclasses
import logging
from typing import Sequence

from runiverse.territory.constants import DEFAULT_DUPLICATE_AREA_RATIO, DUPLICATE_MIN_OVERLAP
from runiverse.territory.models import ClaimAction, Resolution, Territory
from runiverse.territory.spatial.capability import GeometryCapability

logger = logging.getLogger(__name__)


def relative_area_difference(a: float, b: float) -> float:
    """|a - b| / max(a, b); two empty areas are identical."""
    largest = max(a, b)
    if largest <= 0:
        return 0.0
    return abs(a - b) / largest


def is_duplicate(
    candidate: Territory,
    existing: Territory,
    geometry: GeometryCapability,
    duplicate_area_ratio: float = DEFAULT_DUPLICATE_AREA_RATIO,
) -> bool:
    """
    True if 'candidate' claims the same ground as 'existing': near-equal area
    with nearly all of the smaller ring inside the other. A retraced loop
    never lands exactly on the first one.
    """
    if relative_area_difference(existing.area_m2, candidate.area_m2) >= duplicate_area_ratio:
        return False
    return geometry.overlap_ratio(existing.ring, candidate.ring) >= DUPLICATE_MIN_OVERLAP


def overlaps(candidate: Territory, existing: Territory, geometry: GeometryCapability) -> bool:
    return (
        geometry.intersects(existing.ring, candidate.ring)
        or geometry.contains(existing.ring, candidate.ring)
        or geometry.contains(candidate.ring, existing.ring)
    )


def merge(candidate: Territory, existing: Territory, geometry: GeometryCapability) -> Territory:
    """
    Union of two territories. The result keeps the candidate's identity and
    the existing territory's owner.
    """
    ring = geometry.union(existing.ring, candidate.ring)
    return dataclasses.replace(
        candidate,
        ring=ring,
        area_m2=max(0.0, geometry.area(ring)),
        perimeter_m=max(0.0, geometry.length(ring)),
        owner_id=existing.owner_id if existing.owner_id is not None else candidate.owner_id,
    )


def resolve_claim(
    candidate: Territory,
    territories: Sequence[Territory],
    geometry: GeometryCapability,
    duplicate_area_ratio: float = DEFAULT_DUPLICATE_AREA_RATIO,
) -> Resolution:
    """
    Decide what to do with 'candidate' given the existing 'territories'.

    Args:
        candidate: Newly captured territory
        territories: Existing territories in stored order
        geometry: Geometry capability used for predicates and union
        duplicate_area_ratio: Relative area difference under which a
            containing pair is considered the same claim

    Returns:
        A Resolution; for MERGE it carries the merged territory, the index of
        the territory it replaces and the replaced territory itself
    """
    for index, existing in enumerate(territories):
        if is_duplicate(candidate, existing, geometry, duplicate_area_ratio):
            logger.info(f"Claim duplicates territory {existing.id}, ignoring")
            return Resolution(ClaimAction.IGNORE, None, index, None)

        if overlaps(candidate, existing, geometry):
            merged = merge(candidate, existing, geometry)
            logger.info(
                f"Claim overlaps territory {existing.id}, merged area "
                f"{merged.area_m2:.0f} m2 (was {existing.area_m2:.0f} m2)"
            )
            return Resolution(ClaimAction.MERGE, merged, index, existing)

    logger.info(f"Claim of {candidate.area_m2:.0f} m2 added as a new territory")
    return Resolution(ClaimAction.ADD, candidate)


def collapse_duplicates(
    territories: Sequence[Territory],
    geometry: GeometryCapability,
    duplicate_area_ratio: float = DEFAULT_DUPLICATE_AREA_RATIO,
) -> list:
    """
    Drop every territory that duplicates an earlier one, keeping stored order.
    """
    kept = []
    for territory in territories:
        if any(is_duplicate(territory, k, geometry, duplicate_area_ratio) for k in kept):
            logger.debug(f"Dropping duplicate territory {territory.id}")
            continue
        kept.append(territory)
    return kept
