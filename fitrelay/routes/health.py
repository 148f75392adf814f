# fitrelay/routes/health.py
"""
Health check endpoints: liveness plus readiness of Redis, relays and roster.
"""

import time

from fastapi import APIRouter

from fitrelay.config import settings
from fitrelay.features.workout_leaderboard.services.leaderboard_service import leaderboard_service
from fitrelay.features.workout_leaderboard.repository.roster_repository import RosterRepositoryError
from fitrelay.infrastructure.observability.logging import log_health_check
from fitrelay.services.redis_store import ping

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "fitrelay"}


@router.get("/readyz")
async def readyz():
    """
    Readiness check across the leaderboard's dependencies.

    Redis only backs the shared view cache, so a Redis outage is reported
    but does not make the service unready.
    """
    checks = {}
    overall_ok = True

    # 1) Redis
    t0 = time.time()
    redis_ok = await ping()
    latency_ms = round((time.time() - t0) * 1000, 1)
    checks["redis"] = {"ok": redis_ok, "latency_ms": latency_ms, "required": False}
    log_health_check("redis", redis_ok, latency_ms)

    # 2) Relay configuration
    relay_count = len(settings.NOSTR_RELAYS)
    relays_ok = relay_count > 0
    checks["relays"] = {"ok": relays_ok, "configured": relay_count}
    overall_ok = overall_ok and relays_ok

    # 3) Roster
    t0 = time.time()
    try:
        participants = await leaderboard_service.roster.list_participants()
        checks["roster"] = {
            "ok": True,
            "participants": sum(1 for p in participants if not p.is_local_join),
            "local_joins": sum(1 for p in participants if p.is_local_join),
        }
    except RosterRepositoryError as e:
        checks["roster"] = {"ok": False, "error": str(e)}
        overall_ok = False
    log_health_check(
        "roster", checks["roster"]["ok"], round((time.time() - t0) * 1000, 1), checks["roster"].get("error")
    )

    # 4) Snapshot age
    snapshot = leaderboard_service.latest_snapshot
    checks["snapshot"] = {
        "available": snapshot is not None,
        "age_seconds": round(time.time() - snapshot.refreshed_at, 1) if snapshot else None,
        "is_partial": snapshot.is_partial if snapshot else None,
    }

    return {
        "overall_ok": overall_ok,
        "checks": checks,
        "environment": settings.environment,
        "timestamp": time.time(),
    }
