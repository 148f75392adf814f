"""
Tests for anti-cheat verdicts.
"""

import pytest

from fitrelay.features.workout_leaderboard.domain import ActivityRecord, ActivityType
from fitrelay.features.workout_leaderboard.pipeline.fraud import (
    AntiCheatLimits,
    FraudFilter,
    limits_from_settings,
)


def _record(activity_type=ActivityType.RUNNING, distance_km=5.0, duration_seconds=1500):
    return ActivityRecord(
        source_event_id="evt",
        author_pubkey="alice",
        activity_type=activity_type,
        distance_km=distance_km,
        duration_seconds=duration_seconds,
        charity_id="als-foundation",
    )


@pytest.fixture
def fraud():
    return FraudFilter()


def test_plausible_run_is_accepted(fraud):
    verdict = fraud.validate(_record(distance_km=5, duration_seconds=600))

    assert verdict.accepted is True
    assert verdict.reason is None


def test_impossibly_fast_run_is_rejected(fraud):
    verdict = fraud.validate(_record(distance_km=5, duration_seconds=10))

    assert verdict.accepted is False
    assert verdict.reason == "Pace 0:02/km too fast (min: 2:00/km)"


def test_too_slow_walk_is_rejected(fraud):
    verdict = fraud.validate(_record(ActivityType.WALKING, distance_km=1, duration_seconds=4000))

    assert verdict.accepted is False
    assert verdict.reason.startswith("Pace 66:40/km too slow")


def test_zero_distance_long_duration_is_rejected(fraud):
    verdict = fraud.validate(_record(ActivityType.WALKING, distance_km=0, duration_seconds=3600))

    assert verdict.accepted is False
    assert verdict.reason == "Zero distance with 60 min duration"


def test_zero_distance_short_duration_is_accepted(fraud):
    verdict = fraud.validate(_record(distance_km=0, duration_seconds=60))

    assert verdict.accepted is True


def test_distance_without_duration_is_rejected(fraud):
    verdict = fraud.validate(_record(distance_km=3.5, duration_seconds=0))

    assert verdict.accepted is False
    assert verdict.reason == "3.50 km with 0 duration"


def test_distance_over_max_is_rejected(fraud):
    verdict = fraud.validate(_record(ActivityType.CYCLING, distance_km=600, duration_seconds=72000))

    assert verdict.accepted is False
    assert verdict.reason == "Distance 600.00 km exceeds max 500 km"


def test_duration_over_max_is_rejected(fraud):
    verdict = fraud.validate(_record(ActivityType.WALKING, distance_km=90, duration_seconds=90000))

    assert verdict.accepted is False
    assert verdict.reason == "Duration 25 hours exceeds max 24 hours"


def test_pace_bounds_are_inclusive(fraud):
    fastest = fraud.validate(_record(distance_km=10, duration_seconds=1200))
    slowest = fraud.validate(_record(distance_km=1, duration_seconds=1800))

    assert fastest.accepted is True
    assert slowest.accepted is True


def test_unscored_activity_is_not_flagged(fraud):
    verdict = fraud.validate(_record(ActivityType.OTHER))

    assert verdict.accepted is False
    assert verdict.reason is None


def test_limits_from_settings_builds_table():
    limits = limits_from_settings({"running": (100, 2000, 50, 3600)})

    assert limits == {ActivityType.RUNNING: AntiCheatLimits(100, 2000, 50, 3600)}

    custom = FraudFilter(limits)
    assert custom.validate(_record(distance_km=60, duration_seconds=3000)).reason == (
        "Distance 60.00 km exceeds max 50 km"
    )
    assert custom.validate(_record(ActivityType.WALKING)).reason is None
