"""
Domain models for the workout leaderboard feature.

These dataclasses describe the shapes flowing through the pipeline
(collection -> normalization -> fraud filter -> aggregation -> ranking).
They carry no I/O so they can be shared by the pipeline, the services,
the jobs and the API layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ActivityType(str, Enum):
    RUNNING = "running"
    WALKING = "walking"
    CYCLING = "cycling"
    OTHER = "other"


SCORED_ACTIVITY_TYPES: tuple[ActivityType, ...] = (
    ActivityType.RUNNING,
    ActivityType.WALKING,
    ActivityType.CYCLING,
)


@dataclass(frozen=True, slots=True)
class RawEvent:
    """A signed event exactly as a relay delivered it."""

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: tuple[tuple[str, ...], ...]
    content: str = ""

    @classmethod
    def from_wire(cls, data: Any) -> RawEvent:
        """
        Decode a relay JSON event object.

        Raises:
            ValueError: If the object does not have the shape of a Nostr event
        """
        if not isinstance(data, dict):
            raise ValueError("event must be a JSON object")

        event_id = data.get("id")
        pubkey = data.get("pubkey")
        if not isinstance(event_id, str) or not event_id:
            raise ValueError("event id missing")
        if not isinstance(pubkey, str) or not pubkey:
            raise ValueError("event pubkey missing")

        created_at = data.get("created_at", 0)
        kind = data.get("kind", 0)
        if isinstance(created_at, bool) or not isinstance(created_at, int):
            raise ValueError("created_at must be an integer")
        if isinstance(kind, bool) or not isinstance(kind, int):
            raise ValueError("kind must be an integer")

        raw_tags = data.get("tags") or []
        if not isinstance(raw_tags, list):
            raise ValueError("tags must be a list")
        tags = []
        for tag in raw_tags:
            if not isinstance(tag, list) or not tag:
                raise ValueError("tag must be a non-empty list")
            tags.append(tuple(str(part) for part in tag))

        content = data.get("content") or ""
        if not isinstance(content, str):
            raise ValueError("content must be a string")

        return cls(
            id=event_id,
            pubkey=pubkey,
            created_at=created_at,
            kind=kind,
            tags=tuple(tags),
            content=content,
        )

    def first_tag(self, key: str) -> tuple[str, ...] | None:
        """Return the values of the first tag named ``key``."""
        for tag in self.tags:
            if tag and tag[0] == key:
                return tag[1:]
        return None


@dataclass(slots=True)
class ActivityRecord:
    """Typed workout produced by the normalizer."""

    source_event_id: str
    author_pubkey: str
    activity_type: ActivityType
    distance_km: float
    duration_seconds: int
    charity_id: str
    created_at: int = 0

    @property
    def pace_sec_per_km(self) -> float:
        if self.distance_km > 0 and self.duration_seconds > 0:
            return self.duration_seconds / self.distance_km
        return 0.0


@dataclass(frozen=True, slots=True)
class ValidationVerdict:
    accepted: bool
    reason: str | None = None


@dataclass(slots=True)
class FlaggedWorkout:
    """A rejected workout kept for manual moderation review."""

    source_event_id: str
    author_pubkey: str
    activity_type: ActivityType
    reason: str
    distance_km: float
    duration_seconds: int
    pace_sec_per_km: float


@dataclass(slots=True)
class AggregateTotals:
    distance_km: float = 0.0
    duration_seconds: int = 0
    workout_count: int = 0
    charity_id: str | None = None  # charity of the latest accepted workout
    last_workout_at: int | None = None
    last_workout_id: str | None = None


@dataclass(slots=True)
class CharityAggregate:
    distance_km: float = 0.0
    contributing_authors: set[str] = field(default_factory=set)
    author_distance_km: dict[str, float] = field(default_factory=dict)


@dataclass(slots=True)
class AggregationStats:
    unique_events: int = 0
    duplicates_skipped: int = 0
    unparseable: int = 0
    unknown_author: int = 0
    unscored: int = 0
    accepted: int = 0
    rejected: int = 0


TotalsKey = tuple[str, ActivityType]
CharityKey = tuple[str, ActivityType]


@dataclass(slots=True)
class AggregationResult:
    totals: dict[TotalsKey, AggregateTotals]
    charity_totals: dict[CharityKey, CharityAggregate]
    flagged: list[FlaggedWorkout]
    stats: AggregationStats


@dataclass(slots=True)
class Participant:
    """Roster entry: a pubkey the aggregator is allowed to score."""

    pubkey: str
    display_name: str | None = None
    picture_url: str | None = None
    is_local_join: bool = False


@dataclass(slots=True)
class LeaderboardEntry:
    rank: int
    author_pubkey: str
    total_distance_km: float
    total_duration_seconds: int
    workout_count: int
    display_name: str | None = None
    picture_url: str | None = None
    charity_id: str | None = None
    charity_name: str | None = None
    is_local_join: bool = False
    is_current_user: bool = False


@dataclass(slots=True)
class CharityRanking:
    rank: int
    charity_id: str
    charity_name: str
    total_distance_km: float
    participant_count: int


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """A created_at slice queried as one relay subscription per relay."""

    name: str
    since: int | None
    until: int | None
    limit: int


class QueryStatus(str, Enum):
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass(slots=True)
class QueryOutcome:
    label: str
    relay_url: str
    status: QueryStatus
    event_count: int = 0
    error: str | None = None


@dataclass(slots=True)
class CollectionResult:
    events: list[RawEvent] = field(default_factory=list)
    outcomes: list[QueryOutcome] = field(default_factory=list)
    duplicates_dropped: int = 0
    fallback_used: bool = False

    @property
    def queries_total(self) -> int:
        return len(self.outcomes)

    @property
    def queries_succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.status == QueryStatus.COMPLETED)

    @property
    def queries_timed_out(self) -> int:
        return sum(1 for o in self.outcomes if o.status == QueryStatus.TIMED_OUT)

    @property
    def queries_failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == QueryStatus.FAILED)

    @property
    def is_complete(self) -> bool:
        return self.queries_total > 0 and self.queries_succeeded == self.queries_total


@dataclass(slots=True)
class LeaderboardSnapshot:
    """Result of one full refresh, shared by every activity type view."""

    participants: list[Participant]
    aggregation: AggregationResult
    refreshed_at: float
    queries_total: int
    queries_succeeded: int
    queries_timed_out: int
    queries_failed: int
    events_collected: int

    @property
    def is_partial(self) -> bool:
        return self.queries_succeeded < self.queries_total


@dataclass(slots=True)
class LeaderboardView:
    activity_type: ActivityType
    entries: list[LeaderboardEntry]
    charity_rankings: list[CharityRanking]
    last_updated: float
    is_partial: bool
    queries_succeeded: int
    queries_total: int
