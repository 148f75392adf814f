"""
Domain subpackage for the workout leaderboard feature.
"""

from .models import (
    SCORED_ACTIVITY_TYPES,
    ActivityRecord,
    ActivityType,
    AggregateTotals,
    AggregationResult,
    AggregationStats,
    CharityAggregate,
    CharityRanking,
    CollectionResult,
    FlaggedWorkout,
    LeaderboardEntry,
    LeaderboardSnapshot,
    LeaderboardView,
    Participant,
    QueryOutcome,
    QueryStatus,
    RawEvent,
    TimeWindow,
    ValidationVerdict,
)

__all__ = [
    "SCORED_ACTIVITY_TYPES",
    "ActivityRecord",
    "ActivityType",
    "AggregateTotals",
    "AggregationResult",
    "AggregationStats",
    "CharityAggregate",
    "CharityRanking",
    "CollectionResult",
    "FlaggedWorkout",
    "LeaderboardEntry",
    "LeaderboardSnapshot",
    "LeaderboardView",
    "Participant",
    "QueryOutcome",
    "QueryStatus",
    "RawEvent",
    "TimeWindow",
    "ValidationVerdict",
]
