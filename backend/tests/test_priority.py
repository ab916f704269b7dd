from datetime import datetime

from barberqueue.schemas import QueueConfig
from barberqueue.services.priority import (
    normalize_eta,
    normalize_position,
    normalize_wait,
    ranking_key,
    score_entry,
    wait_minutes_since,
)


def test_components_are_bounded():
    for value in (normalize_eta(180, 0), normalize_eta(10, 10), normalize_position(1),
                  normalize_position(50), normalize_wait(0), normalize_wait(500)):
        assert 0.0 <= value <= 1.0


def test_exact_eta_match_is_best():
    assert normalize_eta(20, 20) == 1.0
    assert normalize_eta(20, 30) > normalize_eta(20, 60)


def test_earlier_position_scores_higher():
    assert normalize_position(1) > normalize_position(2) > normalize_position(10)


def test_wait_bonus_saturates():
    assert normalize_wait(30) == 0.5
    assert normalize_wait(60) == normalize_wait(240) == 1.0
    assert normalize_wait(-5) == 0.0


def test_score_is_bounded_by_weights():
    config = QueueConfig()
    breakdown = score_entry(config, 10, 1, 600, 10)
    assert breakdown.score == config.eta_weight + config.position_weight + config.wait_time_bonus


def test_score_monotonic_in_wait():
    config = QueueConfig()
    shorter = score_entry(config, 10, 3, 5, 30).score
    longer = score_entry(config, 10, 3, 25, 30).score
    assert longer > shorter


def test_zero_weights_give_zero():
    config = QueueConfig(eta_weight=0, position_weight=0, wait_time_bonus=0)
    assert score_entry(config, 10, 1, 30, 20).score == 0


def test_ranking_ties_broken_by_arrival():
    early = ranking_key(0.8, datetime(2026, 10, 19, 13, 0), "b")
    late = ranking_key(0.8, datetime(2026, 10, 19, 13, 5), "a")
    best = ranking_key(0.9, datetime(2026, 10, 19, 13, 30), "c")
    assert sorted([late, early, best]) == [best, early, late]


def test_wait_minutes():
    assert wait_minutes_since(datetime(2026, 10, 19, 13, 30), datetime(2026, 10, 19, 14, 0)) == 30
