"""
Workout aggregation service.

Transforms a deduplicated set of raw workout events into per-author and
per-charity totals for every scored activity type. The pass is a pure
full recompute: no state survives between calls, and events are processed
in id order so the result does not depend on relay arrival order.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from fitrelay.config import settings
from fitrelay.features.workout_leaderboard.domain.models import (
    SCORED_ACTIVITY_TYPES,
    ActivityRecord,
    ActivityType,
    AggregateTotals,
    AggregationResult,
    AggregationStats,
    CharityAggregate,
    CharityKey,
    FlaggedWorkout,
    RawEvent,
    TotalsKey,
)
from fitrelay.features.workout_leaderboard.pipeline.fraud.service import FraudFilter, fraud_filter
from fitrelay.features.workout_leaderboard.pipeline.normalization.service import normalize
from fitrelay.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def _validate_roster(known_authors: Sequence[str]) -> list[str]:
    roster: list[str] = []
    seen: set[str] = set()
    for pubkey in known_authors:
        if not isinstance(pubkey, str) or not pubkey.strip():
            raise ValueError(f"Roster contains an invalid pubkey: {pubkey!r}")
        if pubkey not in seen:
            seen.add(pubkey)
            roster.append(pubkey)
    return roster


def aggregate(
    raw_events: Iterable[RawEvent],
    known_authors: Sequence[str],
    fraud: FraudFilter | None = None,
    default_charity_id: str | None = None,
) -> AggregationResult:
    """
    Aggregate workout events for a closed roster.

    Args:
        raw_events: Events from any number of relays, duplicates allowed
        known_authors: Roster pubkeys in display order
        fraud: Filter to apply (module default when omitted)
        default_charity_id: Charity for workouts without a charity tag

    Returns:
        AggregationResult with totals pre-seeded for every roster author

    Raises:
        ValueError: If the roster contains a non-string or blank pubkey
    """
    roster = _validate_roster(known_authors)
    fraud = fraud or fraud_filter
    charity_default = default_charity_id or settings.DEFAULT_CHARITY_ID

    totals: dict[TotalsKey, AggregateTotals] = {
        (pubkey, activity_type): AggregateTotals()
        for pubkey in roster
        for activity_type in SCORED_ACTIVITY_TYPES
    }
    charity_totals: dict[CharityKey, CharityAggregate] = {}
    flagged: list[FlaggedWorkout] = []
    stats = AggregationStats()
    roster_set = set(roster)
    seen_ids: set[str] = set()

    for event in sorted(raw_events, key=lambda e: e.id):
        if event.id in seen_ids:
            stats.duplicates_skipped += 1
            continue
        seen_ids.add(event.id)
        stats.unique_events += 1

        record = normalize(event, charity_default)
        if record is None:
            stats.unparseable += 1
            continue

        if record.author_pubkey not in roster_set:
            stats.unknown_author += 1
            continue

        if record.activity_type not in SCORED_ACTIVITY_TYPES:
            stats.unscored += 1
            continue

        verdict = fraud.validate(record)
        if not verdict.accepted:
            stats.rejected += 1
            if verdict.reason:
                flagged.append(_to_flagged(record, verdict.reason))
            continue

        stats.accepted += 1
        _accumulate(totals[(record.author_pubkey, record.activity_type)], record)

        charity_key = (record.charity_id, record.activity_type)
        charity = charity_totals.get(charity_key)
        if charity is None:
            charity = charity_totals[charity_key] = CharityAggregate()
        charity.distance_km += record.distance_km
        charity.contributing_authors.add(record.author_pubkey)
        charity.author_distance_km[record.author_pubkey] = (
            charity.author_distance_km.get(record.author_pubkey, 0.0) + record.distance_km
        )

    logger.info(
        "Workout aggregation completed",
        roster_size=len(roster),
        unique_events=stats.unique_events,
        duplicates_skipped=stats.duplicates_skipped,
        unparseable=stats.unparseable,
        unknown_author=stats.unknown_author,
        unscored=stats.unscored,
        accepted=stats.accepted,
        rejected=stats.rejected,
        flagged=len(flagged),
    )

    return AggregationResult(
        totals=totals, charity_totals=charity_totals, flagged=flagged, stats=stats
    )


def _accumulate(bucket: AggregateTotals, record: ActivityRecord) -> None:
    bucket.distance_km += record.distance_km
    bucket.duration_seconds += record.duration_seconds
    bucket.workout_count += 1

    # Latest workout decides which charity the author is shown under
    latest = (record.created_at, record.source_event_id)
    current = (bucket.last_workout_at or 0, bucket.last_workout_id or "")
    if bucket.last_workout_id is None or latest > current:
        bucket.last_workout_at = record.created_at
        bucket.last_workout_id = record.source_event_id
        bucket.charity_id = record.charity_id


def _to_flagged(record: ActivityRecord, reason: str) -> FlaggedWorkout:
    return FlaggedWorkout(
        source_event_id=record.source_event_id,
        author_pubkey=record.author_pubkey,
        activity_type=record.activity_type,
        reason=reason,
        distance_km=record.distance_km,
        duration_seconds=record.duration_seconds,
        pace_sec_per_km=record.pace_sec_per_km,
    )


def totals_for(result: AggregationResult, activity_type: ActivityType) -> dict[str, AggregateTotals]:
    """Per-author totals for one activity type, in roster order."""
    return {
        pubkey: bucket
        for (pubkey, bucket_type), bucket in result.totals.items()
        if bucket_type == activity_type
    }
