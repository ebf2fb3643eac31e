import pytest

from runiverse.territory.config import Config
from runiverse.territory.route import RouteBuffer

# Unit tests for the route buffer.

# 0.00005 degrees of longitude at the equator is about 5.6 m
STEP = 0.00005


@pytest.fixture
def route():
    return RouteBuffer(Config())


def test_empty_route(route):
    assert len(route) == 0
    assert route.last is None
    assert route.started_at is None
    assert route.positions() == []


def test_first_point_is_always_appended(route):
    assert route.append((0.0, 0.0), 10.0)
    assert route.positions() == [(0.0, 0.0)]
    assert route.started_at == 10.0


def test_small_step_without_speed_is_dropped(route):
    route.append((0.0, 0.0), 10.0)
    assert not route.append((0.00001, 0.0), 11.0)
    assert len(route) == 1


def test_small_step_while_moving_is_kept(route):
    route.append((0.0, 0.0), 10.0)
    assert route.append((0.00001, 0.0), 11.0, speed_mps=0.5)
    assert len(route) == 2


def test_slow_small_step_is_dropped(route):
    route.append((0.0, 0.0), 10.0)
    assert not route.append((0.00001, 0.0), 11.0, speed_mps=0.1)


def test_repeated_point_is_never_appended(route):
    route.append((0.0, 0.0), 10.0)
    assert not route.append((0.0, 0.0), 11.0, speed_mps=5.0)


def test_large_step_is_kept(route):
    route.append((0.0, 0.0), 10.0)
    assert route.append((STEP, 0.0), 11.0)
    assert route.last == (STEP, 0.0)


def test_oldest_points_are_dropped_when_full():
    route = RouteBuffer(Config(max_route_points=5))
    for i in range(7):
        route.append((i * STEP, 0.0), float(i))
    assert len(route) == 5
    assert route.positions()[0] == (2 * STEP, 0.0)
    assert route.started_at == 2.0


def test_positions_is_a_copy(route):
    route.append((0.0, 0.0), 10.0)
    route.positions().append((1.0, 1.0))
    assert len(route) == 1


def test_clear(route):
    route.append((0.0, 0.0), 10.0)
    route.clear()
    assert len(route) == 0
    assert route.started_at is None


def test_seed_dedupes(route):
    route.seed([(0.0, 0.0), (0.0, 0.0), (STEP, 0.0), (float("nan"), 1.0)], timestamp=5.0)
    assert route.positions() == [(0.0, 0.0), (STEP, 0.0)]
    assert route.started_at == 5.0
