"""
Normalization package for the workout leaderboard.

Turns raw relay events into typed activity records.
"""

from .service import map_activity_type, normalize, parse_distance_km, parse_duration

__all__ = ["map_activity_type", "normalize", "parse_distance_km", "parse_duration"]
