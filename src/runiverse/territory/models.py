"""
Data models for the territory capture engine.

This module contains the dataclasses and enums passed between the filter,
route buffer, loop detector, resolver and session engine.
"""

import dataclasses
import datetime as dt
from enum import Enum
from typing import List, Optional, Tuple

# (longitude, latitude) in degrees
Position = Tuple[float, float]
Ring = Tuple[Position, ...]


@dataclasses.dataclass(frozen=True)
class GeoSample:
    """
    A single reading from the location provider.

    Only longitude and latitude are required; the filter uses accuracy,
    speed and timestamp when they are present.
    """

    longitude: float
    latitude: float
    accuracy_m: Optional[float] = None
    speed_mps: Optional[float] = None
    timestamp: Optional[float] = None  # POSIX seconds

    @property
    def position(self) -> Position:
        return (self.longitude, self.latitude)


@dataclasses.dataclass(frozen=True)
class CandidateRing:
    """A closed ring produced by loop detection, not yet validated."""

    ring: Ring
    start_index: int
    intersection: Position


@dataclasses.dataclass(frozen=True)
class Territory:
    """
    A claimed polygon.

    Territories that have been resolved locally but not yet confirmed by the
    persistence gateway are marked 'provisional' and carry a local
    correlation id.
    """

    id: str
    ring: Ring
    area_m2: float
    perimeter_m: float
    claimed_at: dt.datetime
    owner_id: Optional[str] = None
    name: Optional[str] = None
    provisional: bool = False


class ClaimAction(Enum):
    """What the ownership resolver decided to do with a candidate."""

    IGNORE = "ignore"  # Duplicate of existing ground
    MERGE = "merge"  # Unioned with an existing territory
    ADD = "add"  # New territory


@dataclasses.dataclass(frozen=True)
class Resolution:
    """
    Result of resolving a candidate territory against the existing set.

    'index' is the position of the matched existing territory (None on add);
    'replaced' is the territory a merge replaced.
    """

    action: ClaimAction
    territory: Optional[Territory]
    index: Optional[int] = None
    replaced: Optional[Territory] = None


@dataclasses.dataclass
class HandleResult:
    route_changed: bool
    route: List[Position]
    territories: List[Territory]
    created_territory: Optional[Territory] = None
    merged_territory: Optional[Territory] = None
    action: Optional[ClaimAction] = None
    rejection: Optional[str] = None
