"""
Leaderboard API response models.
Converted from domain dataclasses by the router.
"""

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from fitrelay.features.workout_leaderboard.domain import (
    CharityRanking,
    FlaggedWorkout,
    LeaderboardEntry,
    LeaderboardSnapshot,
    LeaderboardView,
)


class LeaderboardEntryResponse(BaseModel):
    rank: int = Field(..., ge=1, description="Position on the leaderboard, starting at 1")
    author_pubkey: str = Field(..., description="Hex pubkey of the athlete")
    display_name: str | None = Field(None, description="Roster display name")
    picture_url: str | None = Field(None, description="Roster avatar URL")
    total_distance_km: float = Field(..., description="Accepted distance in kilometres")
    total_duration_seconds: int = Field(..., description="Accepted duration in seconds")
    workout_count: int = Field(..., description="Number of accepted workouts")
    charity_id: str | None = Field(None, description="Charity of the latest accepted workout")
    charity_name: str | None = Field(None, description="Display name of that charity")
    is_local_join: bool = Field(default=False, description="Joined locally rather than on the official roster")
    is_current_user: bool = Field(default=False, description="Entry belongs to the viewer")

    @classmethod
    def from_domain(cls, entry: LeaderboardEntry) -> "LeaderboardEntryResponse":
        return cls(
            rank=entry.rank,
            author_pubkey=entry.author_pubkey,
            display_name=entry.display_name,
            picture_url=entry.picture_url,
            total_distance_km=round(entry.total_distance_km, 3),
            total_duration_seconds=entry.total_duration_seconds,
            workout_count=entry.workout_count,
            charity_id=entry.charity_id,
            charity_name=entry.charity_name,
            is_local_join=entry.is_local_join,
            is_current_user=entry.is_current_user,
        )


class CharityRankingResponse(BaseModel):
    rank: int = Field(..., ge=1, description="Position among charities")
    charity_id: str = Field(..., description="Charity identifier")
    charity_name: str = Field(..., description="Charity display name")
    total_distance_km: float = Field(..., description="Distance credited by visible participants")
    participant_count: int = Field(..., description="Visible participants contributing")

    @classmethod
    def from_domain(cls, ranking: CharityRanking) -> "CharityRankingResponse":
        return cls(
            rank=ranking.rank,
            charity_id=ranking.charity_id,
            charity_name=ranking.charity_name,
            total_distance_km=round(ranking.total_distance_km, 3),
            participant_count=ranking.participant_count,
        )


class LeaderboardResponse(BaseModel):
    """Ranked leaderboard for one activity type."""

    activity_type: str = Field(..., description="running, walking or cycling")
    entries: list[LeaderboardEntryResponse] = Field(default_factory=list)
    charity_rankings: list[CharityRankingResponse] = Field(default_factory=list)
    last_updated: datetime = Field(..., description="When the underlying snapshot was built")
    is_partial: bool = Field(..., description="Some relay queries did not complete")
    queries_succeeded: int = Field(..., description="Relay queries that reached end of stored events")
    queries_total: int = Field(..., description="Relay queries issued for the snapshot")

    @classmethod
    def from_domain(cls, view: LeaderboardView) -> "LeaderboardResponse":
        return cls(
            activity_type=view.activity_type.value,
            entries=[LeaderboardEntryResponse.from_domain(entry) for entry in view.entries],
            charity_rankings=[
                CharityRankingResponse.from_domain(ranking) for ranking in view.charity_rankings
            ],
            last_updated=datetime.fromtimestamp(view.last_updated, tz=UTC),
            is_partial=view.is_partial,
            queries_succeeded=view.queries_succeeded,
            queries_total=view.queries_total,
        )


class FlaggedWorkoutResponse(BaseModel):
    """A rejected workout awaiting moderation."""

    source_event_id: str = Field(..., description="Event id of the rejected workout")
    author_pubkey: str = Field(..., description="Hex pubkey of the author")
    activity_type: str = Field(..., description="Activity type of the workout")
    reason: str = Field(..., description="Human-readable anti-cheat reason")
    distance_km: float = Field(..., description="Reported distance in kilometres")
    duration_seconds: int = Field(..., description="Reported duration in seconds")

    @classmethod
    def from_domain(cls, workout: FlaggedWorkout) -> "FlaggedWorkoutResponse":
        return cls(
            source_event_id=workout.source_event_id,
            author_pubkey=workout.author_pubkey,
            activity_type=workout.activity_type.value,
            reason=workout.reason,
            distance_km=workout.distance_km,
            duration_seconds=workout.duration_seconds,
        )


class FlaggedWorkoutsResponse(BaseModel):
    workouts: list[FlaggedWorkoutResponse] = Field(default_factory=list)
    total_count: int = Field(..., description="Number of flagged workouts")


class RefreshResponse(BaseModel):
    """Summary of a forced refresh."""

    refreshed_at: datetime = Field(..., description="When the snapshot was built")
    participants: int = Field(..., description="Roster size")
    events_collected: int = Field(..., description="Unique events returned by relays")
    accepted: int = Field(..., description="Workouts that passed anti-cheat")
    flagged: int = Field(..., description="Workouts rejected with a reason")
    queries_total: int
    queries_succeeded: int
    queries_timed_out: int
    queries_failed: int
    is_partial: bool

    @classmethod
    def from_domain(cls, snapshot: LeaderboardSnapshot) -> "RefreshResponse":
        return cls(
            refreshed_at=datetime.fromtimestamp(snapshot.refreshed_at, tz=UTC),
            participants=len(snapshot.participants),
            events_collected=snapshot.events_collected,
            accepted=snapshot.aggregation.stats.accepted,
            flagged=len(snapshot.aggregation.flagged),
            queries_total=snapshot.queries_total,
            queries_succeeded=snapshot.queries_succeeded,
            queries_timed_out=snapshot.queries_timed_out,
            queries_failed=snapshot.queries_failed,
            is_partial=snapshot.is_partial,
        )
