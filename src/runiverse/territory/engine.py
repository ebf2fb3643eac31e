"""
Capture session engine.

A CaptureSession owns the route and the local view of the territory set for
one tracking session. Each incoming sample is processed completely before
the next one:

    filter/smooth -> route buffer -> loop detection -> validation
    -> simplification -> metrics -> ownership resolution -> route reset

Resolved claims are persisted through an optional gateway. They appear in
the territory set immediately as provisional entries and are reconciled
with the gateway's answer at the start of the next sample (or on
reconcile_claims()).

The territory list is never mutated in place: every change swaps in a new
list, and the accessors return copies, so readers on other threads always
see a complete snapshot.
"""

import datetime as dt
import logging
import time
from collections import deque
from typing import Callable, Deque, List, Optional, Sequence

from runiverse.territory.claims import ClaimReconciler, apply_outcome, correlation_id, provisional
from runiverse.territory.config import Config
from runiverse.territory.filtering import SampleFilter
from runiverse.territory.gateway import TerritoryGateway, encode_path
from runiverse.territory.loop_detector import LoopDetector
from runiverse.territory.models import (
    CandidateRing,
    ClaimAction,
    GeoSample,
    HandleResult,
    Position,
    Territory,
)
from runiverse.territory.ownership import collapse_duplicates, resolve_claim
from runiverse.territory.ring_validator import validate_ring
from runiverse.territory.route import RouteBuffer
from runiverse.territory.spatial.capability import GeometryCapability, ShapelyGeometry
from runiverse.territory.spatial.spatial_utils import dedupe_consecutive, sanitize_ring

logger = logging.getLogger(__name__)


class CaptureSession:
    def __init__(
        self,
        configuration: Optional[Config] = None,
        geometry: Optional[GeometryCapability] = None,
        gateway: Optional[TerritoryGateway] = None,
        clock: Callable[[], float] = time.time,
        reconciler: Optional[ClaimReconciler] = None,
    ):
        self.configuration = configuration or Config()
        self.geometry = geometry or ShapelyGeometry()
        self.gateway = gateway
        self.clock = clock
        self.reconciler = reconciler or (ClaimReconciler(gateway) if gateway is not None else None)

        self.filter = SampleFilter(self.configuration, clock)
        self.route = RouteBuffer(self.configuration)
        self.detector = LoopDetector(self.configuration)

        self._territories: List[Territory] = []
        self._raw_path: Deque[Position] = deque(maxlen=self.configuration.max_route_points)
        self._started_at: Optional[float] = None
        self._last_at: Optional[float] = None

    # ---------------------------------------------------------------
    # Accessors

    def get_route(self) -> List[Position]:
        return self.route.positions()

    def get_territories(self) -> List[Territory]:
        return list(self._territories)

    @property
    def pending_claims(self) -> int:
        return len(self.reconciler.pending) if self.reconciler else 0

    def duration(self) -> Optional[float]:
        """Seconds between the first and latest point of the current route."""
        if self._started_at is None or self._last_at is None:
            return None
        return self._last_at - self._started_at

    def _result(self, route_changed: bool, **kwargs) -> HandleResult:
        return HandleResult(route_changed, self.get_route(), self.get_territories(), **kwargs)

    # ---------------------------------------------------------------
    # Route and territory state

    def reset_route(self):
        self.route.clear()
        self._raw_path.clear()
        self._started_at = None
        self._last_at = None

    def seed_route(self, path: Sequence[Position], started_at: Optional[float] = None):
        """
        Replace the route with 'path', e.g. to resume an interrupted session.
        Malformed and repeated points are dropped.
        """
        now = self.clock()
        points = dedupe_consecutive(path)
        self.route.seed(points, now)
        self._raw_path.clear()
        self._raw_path.extend(points)
        self._started_at = started_at if started_at is not None else now
        self._last_at = now
        logger.debug(f"Seeded route with {len(self.route)} points")

    def hydrate_territories(self, territories: Sequence[Territory]):
        """
        Replace the visible territory set. Rings are sanitized, unusable
        territories dropped, missing metrics recomputed and duplicates
        collapsed to their first occurrence.
        """
        cleaned = []
        for territory in territories:
            ring = sanitize_ring(territory.ring)
            if ring is None:
                logger.debug(f"Dropping territory {territory.id} with an unusable ring")
                continue
            area = territory.area_m2 if territory.area_m2 is not None and territory.area_m2 >= 0 else None
            perimeter = (
                territory.perimeter_m
                if territory.perimeter_m is not None and territory.perimeter_m >= 0
                else None
            )
            cleaned.append(
                Territory(
                    id=territory.id,
                    ring=ring,
                    area_m2=area if area is not None else self.geometry.area(ring),
                    perimeter_m=perimeter if perimeter is not None else self.geometry.length(ring),
                    claimed_at=territory.claimed_at,
                    owner_id=territory.owner_id,
                    name=territory.name,
                    provisional=territory.provisional,
                )
            )
        self._territories = collapse_duplicates(cleaned, self.geometry, self.configuration.duplicate_area_ratio)
        logger.info(f"Hydrated {len(self._territories)} territories")

    def load_territories(self, scope: Optional[str] = None) -> List[Territory]:
        """Fetch territories from the gateway and make them the visible set."""
        if self.gateway is None:
            raise ValueError("No territory gateway configured for this session")
        self.hydrate_territories(self.gateway.fetch_territories(scope or self.configuration.territory_scope))
        return self.get_territories()

    def reconcile_claims(self, wait: bool = False, timeout: Optional[float] = None) -> bool:
        """
        Apply the outcome of every finished claim. Returns whether the
        territory set changed.
        """
        if self.reconciler is None:
            return False
        outcomes = self.reconciler.collect(wait_for_all=wait, timeout=timeout)
        territories = self._territories
        for outcome in outcomes:
            territories = apply_outcome(territories, outcome)
        self._territories = territories
        return len(outcomes) > 0

    def close(self):
        """Wait for in-flight claims, apply them and stop the worker."""
        if self.reconciler is not None:
            self.reconcile_claims(wait=True)
            self.reconciler.shutdown()

    # ---------------------------------------------------------------
    # Sample processing

    def handle_new_coordinate(self, sample: GeoSample) -> HandleResult:
        """
        Process one location sample.

        Returns the route and territory snapshots after processing, with
        'created_territory' or 'merged_territory' set when the sample closed
        a loop that was added or merged.
        """
        self.reconcile_claims()

        position = self.filter.accept(sample).value_or(None)
        if position is None:
            return self._result(False)

        timestamp = self.filter.last_timestamp
        if not self.route.append(position, timestamp, sample.speed_mps):
            return self._result(False)

        if self._started_at is None:
            self._started_at = timestamp
        self._last_at = timestamp
        self._raw_path.append((float(sample.longitude), float(sample.latitude)))

        candidate = self.detector.detect(self.route.positions())
        if candidate is None:
            return self._result(True)

        return self._process_candidate(candidate)

    def _process_candidate(self, candidate: CandidateRing) -> HandleResult:
        cfg = self.configuration

        validation = validate_ring(candidate.ring, self.duration(), cfg)
        if not validation.is_valid:
            return self._result(True, rejection=validation.error)

        ring = self.geometry.simplify(candidate.ring, cfg.simplify_tolerance)
        if ring is None:
            return self._result(True, rejection="Ring collapsed during simplification")

        area = self.geometry.area(ring)
        if area < cfg.min_loop_area_m2:
            return self._result(
                True, rejection=f"Simplified area {area:.1f} m2 is below {cfg.min_loop_area_m2} m2"
            )

        candidate_territory = Territory(
            id=correlation_id(),
            ring=ring,
            area_m2=area,
            perimeter_m=self.geometry.length(ring),
            claimed_at=dt.datetime.fromtimestamp(self.clock(), dt.timezone.utc),
        )
        if self.reconciler is not None:
            candidate_territory = provisional(candidate_territory)
        resolution = resolve_claim(candidate_territory, self._territories, self.geometry, cfg.duplicate_area_ratio)

        raw_path = list(self._raw_path)
        encoded = encode_path(self.route.positions())
        self.reset_route()

        created = merged = None
        if resolution.action is ClaimAction.ADD:
            created = resolution.territory
            self._territories = self._territories + [created]
        elif resolution.action is ClaimAction.MERGE:
            merged = resolution.territory
            territories = list(self._territories)
            territories[resolution.index] = merged
            self._territories = territories

        if self.reconciler is not None and resolution.territory is not None:
            self.reconciler.submit(resolution.territory, raw_path, encoded, replaced=resolution.replaced)

        return self._result(
            True,
            created_territory=created,
            merged_territory=merged,
            action=resolution.action,
        )

    def finalize_session(self) -> HandleResult:
        """
        End the session: look for any loop in the whole route that was not
        claimed while tracing, claim the first acceptable one, then clear the
        route and the filter state.
        """
        self.reconcile_claims()
        positions = self.route.positions()
        result = None
        rejection = None

        for candidate in self.detector.scan_route(positions):
            outcome = self._process_candidate(candidate)
            if outcome.action is not None:
                result = outcome
                break
            rejection = outcome.rejection

        self.reset_route()
        self.filter.reset()

        if result is not None:
            result.route = self.get_route()
            return result
        return self._result(len(positions) > 0, rejection=rejection)
