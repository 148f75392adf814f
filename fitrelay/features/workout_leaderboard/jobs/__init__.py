"""
Job runners for the workout leaderboard feature.
"""

from .baseline_job import run_leaderboard_baseline
from .refresh_job import start_leaderboard_refresh_scheduler

__all__ = ["run_leaderboard_baseline", "start_leaderboard_refresh_scheduler"]
