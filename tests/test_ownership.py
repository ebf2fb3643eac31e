import datetime as dt

import pytest

from runiverse.territory.models import ClaimAction, Territory
from runiverse.territory.ownership import (
    collapse_duplicates,
    is_duplicate,
    merge,
    relative_area_difference,
    resolve_claim,
)
from runiverse.territory.spatial import ShapelyGeometry

# Unit tests for resolving new claims against existing territories.

CLAIMED_AT = dt.datetime(2024, 5, 1, 10, 0, tzinfo=dt.timezone.utc)


@pytest.fixture
def geometry():
    return ShapelyGeometry()


def territory(geometry, x0, y0, x1, y1, id="candidate", owner_id=None):
    ring = ((x0, y0), (x1, y0), (x1, y1), (x0, y1), (x0, y0))
    return Territory(
        id=id,
        ring=ring,
        area_m2=geometry.area(ring),
        perimeter_m=geometry.length(ring),
        claimed_at=CLAIMED_AT,
        owner_id=owner_id,
    )


@pytest.fixture
def existing(geometry):
    return territory(geometry, 0.0, 0.0, 0.001, 0.001, id="t-1", owner_id="alice")


def test_relative_area_difference():
    assert relative_area_difference(100.0, 95.0) == pytest.approx(0.05)
    assert relative_area_difference(95.0, 100.0) == pytest.approx(0.05)
    assert relative_area_difference(0.0, 0.0) == 0.0


def test_first_claim_is_added(geometry):
    candidate = territory(geometry, 0.0, 0.0, 0.001, 0.001)
    resolution = resolve_claim(candidate, [], geometry)
    assert resolution.action is ClaimAction.ADD
    assert resolution.territory is candidate
    assert resolution.index is None


def test_disjoint_claim_is_added(geometry, existing):
    candidate = territory(geometry, 0.01, 0.01, 0.011, 0.011)
    resolution = resolve_claim(candidate, [existing], geometry)
    assert resolution.action is ClaimAction.ADD


def test_near_identical_claim_is_ignored(geometry, existing):
    candidate = territory(geometry, 0.00001, 0.00001, 0.00099, 0.00099)
    resolution = resolve_claim(candidate, [existing], geometry)
    assert resolution.action is ClaimAction.IGNORE
    assert resolution.territory is None
    assert resolution.index == 0


def test_identical_claim_is_ignored(geometry, existing):
    candidate = territory(geometry, 0.0, 0.0, 0.001, 0.001)
    assert is_duplicate(candidate, existing, geometry)
    assert resolve_claim(candidate, [existing], geometry).action is ClaimAction.IGNORE


def test_shifted_retrace_is_ignored(geometry, existing):
    # Same size, shifted 2% east: no exact containment either way
    candidate = territory(geometry, 0.00002, 0.0, 0.00102, 0.001)
    assert not geometry.contains(existing.ring, candidate.ring)
    assert is_duplicate(candidate, existing, geometry)
    assert resolve_claim(candidate, [existing], geometry).action is ClaimAction.IGNORE


def test_same_size_claim_shifted_by_a_fifth_is_merged(geometry, existing):
    candidate = territory(geometry, 0.0002, 0.0, 0.0012, 0.001)
    assert not is_duplicate(candidate, existing, geometry)
    assert resolve_claim(candidate, [existing], geometry).action is ClaimAction.MERGE


def test_overlapping_claim_is_merged(geometry, existing):
    candidate = territory(geometry, 0.0005, 0.0, 0.0015, 0.001)
    resolution = resolve_claim(candidate, [existing], geometry)

    assert resolution.action is ClaimAction.MERGE
    assert resolution.index == 0
    assert resolution.replaced is existing
    merged = resolution.territory
    assert max(existing.area_m2, candidate.area_m2) <= merged.area_m2 <= existing.area_m2 + candidate.area_m2
    assert merged.area_m2 == pytest.approx(1.5 * existing.area_m2, rel=0.01)


def test_merge_keeps_candidate_id_and_existing_owner(geometry, existing):
    candidate = territory(geometry, 0.0005, 0.0, 0.0015, 0.001, id="local-1", owner_id="bob")
    merged = merge(candidate, existing, geometry)
    assert merged.id == "local-1"
    assert merged.owner_id == "alice"
    assert merged.ring[0] == merged.ring[-1]


def test_claim_inside_a_much_larger_territory_is_merged(geometry, existing):
    candidate = territory(geometry, 0.0002, 0.0002, 0.0004, 0.0004)
    resolution = resolve_claim(candidate, [existing], geometry)
    assert resolution.action is ClaimAction.MERGE
    assert resolution.territory.area_m2 == pytest.approx(existing.area_m2)


def test_touching_claim_is_merged(geometry, existing):
    candidate = territory(geometry, 0.001, 0.0, 0.002, 0.001)
    resolution = resolve_claim(candidate, [existing], geometry)
    assert resolution.action is ClaimAction.MERGE
    assert resolution.territory.area_m2 == pytest.approx(2 * existing.area_m2, rel=0.01)


def test_only_the_first_match_is_used(geometry, existing):
    other = territory(geometry, 0.001, 0.0, 0.002, 0.001, id="t-2")
    candidate = territory(geometry, 0.0005, 0.0, 0.0015, 0.001)
    resolution = resolve_claim(candidate, [existing, other], geometry)
    assert resolution.action is ClaimAction.MERGE
    assert resolution.index == 0
    assert resolution.replaced is existing


def test_collapse_duplicates_keeps_first(geometry, existing):
    copy = territory(geometry, 0.0, 0.0, 0.001, 0.001, id="t-copy")
    other = territory(geometry, 0.01, 0.01, 0.011, 0.011, id="t-2")
    kept = collapse_duplicates([existing, copy, other], geometry)
    assert [t.id for t in kept] == ["t-1", "t-2"]
