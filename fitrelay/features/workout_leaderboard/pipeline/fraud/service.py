"""
Anti-cheat fraud filter.

Applies per-activity plausibility limits to self-reported workouts. The
limits are hand-tuned policy; a rejection is a normal verdict carrying a
reason for the moderation queue, never an exception.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from fitrelay.features.workout_leaderboard.domain.models import (
    ActivityRecord,
    ActivityType,
    ValidationVerdict,
)

ZERO_DISTANCE_MAX_DURATION_SECONDS = 1800


@dataclass(frozen=True, slots=True)
class AntiCheatLimits:
    min_pace_sec_per_km: float  # fastest allowed pace
    max_pace_sec_per_km: float  # slowest allowed pace
    max_distance_km: float
    max_duration_seconds: int


DEFAULT_ANTICHEAT_LIMITS: dict[ActivityType, AntiCheatLimits] = {
    ActivityType.RUNNING: AntiCheatLimits(120, 1800, 200, 172800),
    ActivityType.WALKING: AntiCheatLimits(180, 3600, 100, 86400),
    ActivityType.CYCLING: AntiCheatLimits(30, 600, 500, 172800),
}


def limits_from_settings(rows: Mapping[str, tuple]) -> dict[ActivityType, AntiCheatLimits]:
    """Build a limits table from settings rows keyed by activity type value."""
    return {ActivityType(name): AntiCheatLimits(*row) for name, row in rows.items()}


def format_pace(pace_sec_per_km: float) -> str:
    minutes = int(pace_sec_per_km // 60)
    seconds = round(pace_sec_per_km % 60)
    if seconds == 60:
        minutes, seconds = minutes + 1, 0
    return f"{minutes}:{seconds:02d}/km"


class FraudFilter:
    """Accept or reject normalized workouts against the anti-cheat limits."""

    def __init__(self, limits: Mapping[ActivityType, AntiCheatLimits] | None = None):
        self.limits = dict(limits or DEFAULT_ANTICHEAT_LIMITS)

    def validate(self, record: ActivityRecord) -> ValidationVerdict:
        limits = self.limits.get(record.activity_type)
        if limits is None:
            # Unscored activity types are dropped without a moderation reason
            return ValidationVerdict(accepted=False)

        distance = record.distance_km
        duration = record.duration_seconds

        if distance == 0 and duration > ZERO_DISTANCE_MAX_DURATION_SECONDS:
            return ValidationVerdict(
                accepted=False,
                reason=f"Zero distance with {round(duration / 60)} min duration",
            )

        if distance > 0 and duration == 0:
            return ValidationVerdict(
                accepted=False, reason=f"{distance:.2f} km with 0 duration"
            )

        if distance > limits.max_distance_km:
            return ValidationVerdict(
                accepted=False,
                reason=f"Distance {distance:.2f} km exceeds max {limits.max_distance_km:g} km",
            )

        if duration > limits.max_duration_seconds:
            return ValidationVerdict(
                accepted=False,
                reason=(
                    f"Duration {round(duration / 3600)} hours exceeds max "
                    f"{limits.max_duration_seconds / 3600:g} hours"
                ),
            )

        pace = record.pace_sec_per_km
        if pace > 0:
            if pace < limits.min_pace_sec_per_km:
                return ValidationVerdict(
                    accepted=False,
                    reason=(
                        f"Pace {format_pace(pace)} too fast "
                        f"(min: {format_pace(limits.min_pace_sec_per_km)})"
                    ),
                )
            if pace > limits.max_pace_sec_per_km:
                return ValidationVerdict(
                    accepted=False,
                    reason=(
                        f"Pace {format_pace(pace)} too slow "
                        f"(max: {format_pace(limits.max_pace_sec_per_km)})"
                    ),
                )

        return ValidationVerdict(accepted=True)


fraud_filter = FraudFilter()
