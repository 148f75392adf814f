"""
Workout record normalizer.

Decodes the free-form tag set of a kind 1301 workout event into a typed
ActivityRecord once, at the boundary, so later stages never rescan tags.
Malformed values degrade to zero instead of raising.
"""

from __future__ import annotations

import math

from fitrelay.config import settings
from fitrelay.features.workout_leaderboard.domain.models import (
    ActivityRecord,
    ActivityType,
    RawEvent,
)

DEFAULT_CHARITY_ID = settings.DEFAULT_CHARITY_ID

KM_PER_MILE = 1.60934

EXERCISE_SYNONYMS: dict[str, ActivityType] = {
    "run": ActivityType.RUNNING,
    "running": ActivityType.RUNNING,
    "walk": ActivityType.WALKING,
    "walking": ActivityType.WALKING,
    "hike": ActivityType.WALKING,
    "hiking": ActivityType.WALKING,
    "cycle": ActivityType.CYCLING,
    "cycling": ActivityType.CYCLING,
    "bike": ActivityType.CYCLING,
    "biking": ActivityType.CYCLING,
}

MILE_UNITS = {"mi", "mile", "miles"}
METER_UNITS = {"m", "meter", "meters", "metre", "metres"}


def map_activity_type(value: str | None) -> ActivityType:
    if not value:
        return ActivityType.OTHER
    return EXERCISE_SYNONYMS.get(value.strip().lower(), ActivityType.OTHER)


def parse_distance_km(value: str | None, unit: str | None = None) -> float:
    """Parse a distance tag value into kilometers (km when no unit is given)."""
    if value is None:
        return 0.0
    try:
        distance = float(value.strip())
    except (AttributeError, ValueError):
        return 0.0
    if not math.isfinite(distance) or distance < 0:
        return 0.0

    unit_name = (unit or "km").strip().lower()
    if unit_name in MILE_UNITS:
        return distance * KM_PER_MILE
    if unit_name in METER_UNITS:
        return distance / 1000
    return distance


def parse_duration(value: str | None) -> int:
    """
    Parse a duration tag value into whole seconds.

    Accepts HH:MM:SS, MM:SS or a bare seconds string. Anything else
    (including negative components) yields 0.
    """
    if not value:
        return 0
    text = value.strip()

    if ":" in text:
        parts = text.split(":")
        if len(parts) not in (2, 3):
            return 0
        try:
            numbers = [int(part) for part in parts]
        except ValueError:
            return 0
        if any(number < 0 for number in numbers):
            return 0
        if len(numbers) == 3:
            hours, minutes, seconds = numbers
            return hours * 3600 + minutes * 60 + seconds
        minutes, seconds = numbers
        return minutes * 60 + seconds

    try:
        seconds = float(text)
    except ValueError:
        return 0
    if not math.isfinite(seconds) or seconds < 0:
        return 0
    return int(seconds)


def normalize(
    raw_event: RawEvent, default_charity_id: str = DEFAULT_CHARITY_ID
) -> ActivityRecord | None:
    """Convert a raw workout event into an ActivityRecord, or None if it has no identity."""
    if not raw_event.id or not raw_event.pubkey:
        return None

    exercise = raw_event.first_tag("exercise")
    activity_type = map_activity_type(exercise[0] if exercise else None)

    distance_km = 0.0
    distance = raw_event.first_tag("distance")
    if distance:
        unit = distance[1] if len(distance) > 1 else None
        distance_km = parse_distance_km(distance[0], unit)

    duration_seconds = 0
    duration = raw_event.first_tag("duration")
    if duration:
        duration_seconds = parse_duration(duration[0])

    charity_id = default_charity_id
    charity = raw_event.first_tag("charity")
    if charity and charity[0].strip():
        charity_id = charity[0].strip()

    return ActivityRecord(
        source_event_id=raw_event.id,
        author_pubkey=raw_event.pubkey,
        activity_type=activity_type,
        distance_km=distance_km,
        duration_seconds=duration_seconds,
        charity_id=charity_id,
        created_at=raw_event.created_at,
    )
