"""
Fraud filter package for the workout leaderboard.

Holds the anti-cheat limits and the filter that applies them.
"""

from .service import (
    DEFAULT_ANTICHEAT_LIMITS,
    AntiCheatLimits,
    FraudFilter,
    fraud_filter,
    limits_from_settings,
)

__all__ = [
    "DEFAULT_ANTICHEAT_LIMITS",
    "AntiCheatLimits",
    "FraudFilter",
    "fraud_filter",
    "limits_from_settings",
]
