"""
Pipeline components for the workout leaderboard.

Stages run leaf-first: collection, normalization, fraud filtering,
aggregation and ranking. Subpackages expose each stage's entry points.
"""

__all__ = ["collection", "normalization", "fraud", "aggregation", "ranking"]
