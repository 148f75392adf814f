"""
Ranking package for the workout leaderboard.

Projects aggregated totals into ranked leaderboard and charity views.
"""

from .service import project, visible_authors

__all__ = ["project", "visible_authors"]
