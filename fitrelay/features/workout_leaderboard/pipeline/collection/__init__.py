"""
Collection package for the workout leaderboard.

Gathers workout events from multiple relays across time windows.
"""

from .service import EventCollector, build_filter, default_time_windows

__all__ = ["EventCollector", "build_filter", "default_time_windows"]
