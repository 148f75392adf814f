"""
Workout leaderboard feature package.

This vertical slice keeps every layer of the leaderboard pipeline
co-located (domain models, pipeline stages, roster repository, services,
jobs and API router) so contributors can navigate the feature without
hunting through global folders.

Only the domain models are re-exported here: the relay client imports
them, so pulling in services or routers at package import would cycle.
"""

from .domain.models import ActivityType, LeaderboardEntry, LeaderboardView  # noqa: F401
