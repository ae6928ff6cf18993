import pytest

from pedibus.application.utils.time_estimator import TimeEstimator
from pedibus.domain.enums.activity import ActivityMode


@pytest.mark.parametrize("distance, mode, minutes", [
    (0, ActivityMode.WALK, 0),
    (-10, ActivityMode.BIKE, 0),
    (480, ActivityMode.WALK, 10),   # 480 m / 0.8 m/s = 600 s
    (1320, ActivityMode.BIKE, 10),  # 1320 m / 2.2 m/s = 600 s
    (100, ActivityMode.WALK, 2),    # 125 s rounds to 2 min
])
def test_estimate_minutes(distance, mode, minutes):
    assert TimeEstimator.estimate_minutes(distance, mode) == minutes


def test_calories_burned_uses_activity_met():
    # MET 2.5 x 35 kg x 1 h
    assert TimeEstimator.calories_burned(2000, 3600, ActivityMode.WALK) == 88
    assert TimeEstimator.calories_burned(2000, 3600, ActivityMode.BIKE) == 140


def test_calories_burned_is_zero_without_movement():
    assert TimeEstimator.calories_burned(0, 3600, ActivityMode.WALK) == 0
    assert TimeEstimator.calories_burned(500, 0, ActivityMode.WALK) == 0


def test_co2_saved():
    assert TimeEstimator.co2_saved(1500) == 180
    assert TimeEstimator.co2_saved(0) == 0
