"""
One-time baseline report job.

Runs a full refresh against the live relays and logs the top of every
leaderboard along with each workout anti-cheat rejected, so moderators can
review a season's starting point.
"""

from fitrelay.features.workout_leaderboard.domain import SCORED_ACTIVITY_TYPES
from fitrelay.features.workout_leaderboard.services.leaderboard_service import (
    LeaderboardService,
    leaderboard_service,
)
from fitrelay.infrastructure.observability.logging import get_logger
from fitrelay.services.nostr.relay_client import relay_pool

logger = get_logger(__name__)

TOP_N = 10


async def build_baseline_report(service: LeaderboardService | None = None, top_n: int = TOP_N) -> dict:
    """
    Refresh once and summarize the result.

    Raises:
        LeaderboardUnavailableError: If the roster cannot be loaded
    """
    service = service or leaderboard_service
    snapshot = await service.refresh(force=True)

    leaderboards: dict[str, list[dict]] = {}
    for activity_type in SCORED_ACTIVITY_TYPES:
        view = service.build_view(snapshot, activity_type)
        leaderboards[activity_type.value] = [
            {
                "rank": entry.rank,
                "author_pubkey": entry.author_pubkey,
                "display_name": entry.display_name,
                "distance_km": round(entry.total_distance_km, 2),
                "workouts": entry.workout_count,
            }
            for entry in view.entries[:top_n]
            if entry.workout_count > 0
        ]

    flagged = [
        {
            "source_event_id": workout.source_event_id,
            "author_pubkey": workout.author_pubkey,
            "activity_type": workout.activity_type.value,
            "reason": workout.reason,
        }
        for workout in snapshot.aggregation.flagged
    ]

    return {
        "participants": len(snapshot.participants),
        "events_collected": snapshot.events_collected,
        "accepted": snapshot.aggregation.stats.accepted,
        "is_partial": snapshot.is_partial,
        "leaderboards": leaderboards,
        "flagged": flagged,
    }


async def run_leaderboard_baseline() -> None:
    try:
        report = await build_baseline_report(leaderboard_service)
    finally:
        await relay_pool.close()

    for activity_type, rows in report["leaderboards"].items():
        logger.info("Baseline leaderboard", activity_type=activity_type, top=rows)

    for workout in report["flagged"]:
        logger.warning("Baseline flagged workout", **workout)

    logger.info(
        "Leaderboard baseline completed",
        participants=report["participants"],
        events_collected=report["events_collected"],
        accepted=report["accepted"],
        flagged=len(report["flagged"]),
        is_partial=report["is_partial"],
    )
