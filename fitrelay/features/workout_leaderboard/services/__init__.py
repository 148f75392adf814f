"""
Service layer for the workout leaderboard feature.
"""

from .leaderboard_service import (
    LeaderboardService,
    LeaderboardUnavailableError,
    parse_activity_type,
)

__all__ = [
    "LeaderboardService",
    "LeaderboardUnavailableError",
    "parse_activity_type",
]
