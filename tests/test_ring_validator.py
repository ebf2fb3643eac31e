import pytest

from runiverse.territory import ring_validator
from runiverse.territory.config import Config
from runiverse.territory.ring_validator import RingContext, ring_context, validate_ring

# Unit tests for candidate loop validation.


def square(side):
    return [(0.0, 0.0), (side, 0.0), (side, side), (0.0, side), (0.0, 0.0)]


@pytest.fixture
def cfg():
    return Config()


@pytest.fixture
def good_context():
    return RingContext(
        closing_distance_m=0.0,
        path_length_m=400.0,
        area_m2=10000.0,
        bbox_diagonal_m=140.0,
        duration_s=60.0,
    )


def test_rules_are_applied_in_order():
    assert ring_validator.VALIDATION_RULES == [
        ring_validator.rule_closing_distance,
        ring_validator.rule_path_length,
        ring_validator.rule_area,
        ring_validator.rule_bbox_diagonal,
        ring_validator.rule_duration,
    ]


def test_large_square_is_valid(cfg):
    result = validate_ring(square(0.001), 60.0, cfg)
    assert result.is_valid
    assert result.error is None
    assert result.context.area_m2 == pytest.approx(12321, rel=0.1)


def test_small_loop_is_too_short(cfg):
    # About 20 m on a side, 80 m around
    result = validate_ring(square(0.00018), 60.0, cfg)
    assert not result.is_valid
    assert "Path length" in result.error


def test_open_path_far_from_start(cfg):
    path = [(0.0, 0.0), (0.001, 0.0), (0.001, 0.001), (0.0, 0.001)]
    result = validate_ring(path, 60.0, cfg)
    assert not result.is_valid
    assert "from its start" in result.error


def test_open_path_near_start_is_measured_closed(cfg):
    path = [(0.0, 0.0), (0.001, 0.0), (0.001, 0.001), (0.0, 0.001), (0.0, 0.0001)]
    result = validate_ring(path, 60.0, cfg)
    assert result.is_valid
    assert result.context.closing_distance_m == pytest.approx(11.1, rel=0.01)


def test_thin_loop_encloses_too_little(cfg):
    # Long enough, but only a few meters wide
    sliver = [(0.0, 0.0), (0.001, 0.0), (0.001, 0.00002), (0.0, 0.00002), (0.0, 0.0)]
    result = validate_ring(sliver, 60.0, cfg)
    assert "Enclosed area" in result.error


@pytest.mark.parametrize("duration", [None, 0.0, 19.9])
def test_session_too_short(cfg, duration):
    result = validate_ring(square(0.001), duration, cfg)
    assert not result.is_valid
    assert "Session" in result.error


def test_empty_path(cfg):
    result = validate_ring([], 60.0, cfg)
    assert not result.is_valid
    assert result.context.path_length_m == 0.0


def test_ring_context_measurements():
    context = ring_context(square(0.001), 42.0)
    assert context.closing_distance_m == 0.0
    assert context.path_length_m == pytest.approx(444.8, rel=0.01)
    assert context.bbox_diagonal_m == pytest.approx(157.3, rel=0.01)
    assert context.duration_s == 42.0


class TestRules:
    """Each rule in isolation."""

    def test_good_context_passes_every_rule(self, good_context, cfg):
        for rule in ring_validator.VALIDATION_RULES:
            assert rule(good_context, cfg) is None

    def test_closing_distance(self, good_context, cfg):
        context = RingContext(31.0, 400.0, 10000.0, 140.0, 60.0)
        assert ring_validator.rule_closing_distance(context, cfg) is not None
        assert ring_validator.rule_closing_distance(good_context, cfg) is None

    def test_path_length(self, cfg):
        context = RingContext(0.0, 119.0, 10000.0, 140.0, 60.0)
        assert ring_validator.rule_path_length(context, cfg) is not None

    def test_area(self, cfg):
        context = RingContext(0.0, 400.0, 499.0, 140.0, 60.0)
        assert ring_validator.rule_area(context, cfg) is not None

    def test_bbox_diagonal(self, cfg):
        context = RingContext(0.0, 400.0, 10000.0, 29.0, 60.0)
        assert ring_validator.rule_bbox_diagonal(context, cfg) is not None

    def test_duration_at_the_limit(self, cfg):
        context = RingContext(0.0, 400.0, 10000.0, 140.0, 20.0)
        assert ring_validator.rule_duration(context, cfg) is None
