"""
Aggregation package for the workout leaderboard.

Turns collected raw events into per-author and per-charity totals.
"""

from .service import aggregate, totals_for

__all__ = ["aggregate", "totals_for"]
