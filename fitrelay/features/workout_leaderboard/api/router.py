"""
Workout leaderboard routes.

Read endpoints are public; moderation and refresh endpoints require the
admin key when one is configured.
"""

import hmac

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from fitrelay.config import settings
from fitrelay.features.workout_leaderboard.api.schemas import (
    FlaggedWorkoutResponse,
    FlaggedWorkoutsResponse,
    LeaderboardResponse,
    RefreshResponse,
)
from fitrelay.features.workout_leaderboard.services.leaderboard_service import (
    LeaderboardUnavailableError,
    leaderboard_service,
)
from fitrelay.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/leaderboards", tags=["leaderboards"])


def admin_dependency(x_admin_key: str | None = Header(default=None)) -> None:
    """Reject the request unless it carries the configured admin key."""
    expected = settings.ADMIN_API_KEY
    if not expected:
        return
    if not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin key")


@router.get("/flagged", response_model=FlaggedWorkoutsResponse)
async def list_flagged_workouts(_: None = Depends(admin_dependency)):
    """Workouts rejected by anti-cheat in the current snapshot."""
    try:
        flagged = await leaderboard_service.get_flagged_workouts()
    except LeaderboardUnavailableError as e:
        logger.warning("Flagged workouts unavailable", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Leaderboard not available yet"
        )

    return FlaggedWorkoutsResponse(
        workouts=[FlaggedWorkoutResponse.from_domain(workout) for workout in flagged],
        total_count=len(flagged),
    )


@router.post("/refresh", response_model=RefreshResponse)
async def force_refresh(_: None = Depends(admin_dependency)):
    try:
        snapshot = await leaderboard_service.refresh(force=True)
    except LeaderboardUnavailableError as e:
        logger.error("Forced leaderboard refresh failed", error=str(e))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return RefreshResponse.from_domain(snapshot)


@router.get("/{activity_type}", response_model=LeaderboardResponse)
async def get_leaderboard(
    activity_type: str,
    viewer: str | None = Query(default=None, description="Pubkey of the viewing user"),
    include_zero: bool = Query(default=True, description="Include participants without workouts"),
):
    """Ranked leaderboard and charity rankings for one activity type."""
    try:
        view = await leaderboard_service.get_leaderboard(
            activity_type, viewer_pubkey=viewer, include_zero=include_zero
        )
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No leaderboard for activity type '{activity_type}'",
        )
    except LeaderboardUnavailableError as e:
        logger.warning("Leaderboard unavailable", activity_type=activity_type, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Leaderboard not available yet"
        )

    return LeaderboardResponse.from_domain(view)
