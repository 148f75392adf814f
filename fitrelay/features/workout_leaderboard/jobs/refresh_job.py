"""
Leaderboard refresh job.
Runs in the worker process and republishes every leaderboard on an interval
so API processes can serve from the shared cache.
"""

import asyncio
from datetime import UTC, datetime, timedelta

from fitrelay.config import settings
from fitrelay.features.workout_leaderboard.domain import LeaderboardSnapshot
from fitrelay.features.workout_leaderboard.services.leaderboard_service import (
    LeaderboardService,
    LeaderboardUnavailableError,
    leaderboard_service,
)
from fitrelay.infrastructure.observability.logging import get_logger
from fitrelay.services.nostr.relay_client import relay_pool
from fitrelay.services.redis_client import fast_redis

logger = get_logger(__name__)

ERROR_RETRY_SECONDS = 60


class LeaderboardRefreshJobError(Exception):
    """Custom exception for leaderboard refresh job operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class LeaderboardRefreshMetrics:
    """Metrics tracking for leaderboard refresh runs."""

    def __init__(self):
        self.reset()

    def reset(self):
        """Reset all metrics for new job run."""
        self.start_time = datetime.now(UTC)
        self.participants = 0
        self.events_collected = 0
        self.accepted = 0
        self.flagged = 0
        self.queries_total = 0
        self.queries_succeeded = 0
        self.queries_timed_out = 0
        self.queries_failed = 0
        self.total_duration_seconds = 0.0
        self.error: str | None = None

    def record_snapshot(self, snapshot: LeaderboardSnapshot):
        self.participants = len(snapshot.participants)
        self.events_collected = snapshot.events_collected
        self.accepted = snapshot.aggregation.stats.accepted
        self.flagged = len(snapshot.aggregation.flagged)
        self.queries_total = snapshot.queries_total
        self.queries_succeeded = snapshot.queries_succeeded
        self.queries_timed_out = snapshot.queries_timed_out
        self.queries_failed = snapshot.queries_failed

    def record_error(self, error: str):
        self.error = error
        logger.warning("Leaderboard refresh failed", error=error, job_run="leaderboard_refresh")

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        """Convert metrics to dictionary for logging."""
        return {
            "job_run": "leaderboard_refresh",
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "participants": self.participants,
            "events_collected": self.events_collected,
            "accepted": self.accepted,
            "flagged": self.flagged,
            "queries_total": self.queries_total,
            "queries_succeeded": self.queries_succeeded,
            "queries_timed_out": self.queries_timed_out,
            "queries_failed": self.queries_failed,
            "query_success_rate_percent": round(
                (self.queries_succeeded / self.queries_total * 100) if self.queries_total else 0,
                2,
            ),
            "error": self.error,
        }


class LeaderboardRefreshJob:
    """
    Periodic refresh of every leaderboard.

    One run is a single forced refresh: one collection pass feeds all
    activity types.
    """

    def __init__(self, service: LeaderboardService | None = None, interval_minutes: int | None = None):
        self.service = service or leaderboard_service
        self.interval_minutes = (
            interval_minutes if interval_minutes is not None else settings.REFRESH_INTERVAL_MINUTES
        )
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.job_metrics = LeaderboardRefreshMetrics()

        if self.interval_minutes < 1:
            raise LeaderboardRefreshJobError(
                "Refresh interval must be at least one minute", operation="configure", recoverable=False
            )
        if self.interval_minutes * 60 > self.service.snapshot_ttl:
            logger.warning(
                "Refresh interval longer than cache TTL, cached views expire between runs",
                interval_minutes=self.interval_minutes,
                cache_ttl_seconds=self.service.snapshot_ttl,
            )

    async def run_once(self) -> dict:
        """
        Run a single refresh.

        Returns:
            Dict: Job execution metrics
        """
        if self.is_running:
            logger.warning("Leaderboard refresh already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            self.job_metrics.reset()

            try:
                snapshot = await self.service.refresh(force=True)
                self.job_metrics.record_snapshot(snapshot)
                self.last_run_time = datetime.now(UTC)
            except LeaderboardUnavailableError as e:
                self.job_metrics.record_error(str(e))

            self.job_metrics.finalize()
            metrics = self.job_metrics.to_dict()
            logger.info("Leaderboard refresh job completed", **metrics)
            return metrics

        finally:
            self.is_running = False

    def get_job_status(self) -> dict:
        return {
            "job_name": "leaderboard_refresh",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "interval_minutes": self.interval_minutes,
            "last_run_metrics": self.job_metrics.to_dict() if self.last_run_time else None,
        }

    def health_check(self) -> dict:
        """Healthy unless the job has missed two intervals in a row."""
        now = datetime.now(UTC)
        overdue_threshold = timedelta(minutes=self.interval_minutes * 2)
        is_overdue = self.last_run_time is not None and (now - self.last_run_time) > overdue_threshold

        health_status = {
            "healthy": not is_overdue,
            "service": "leaderboard_refresh_job",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "is_overdue": is_overdue,
        }
        if is_overdue:
            health_status["warning"] = (
                f"Job overdue by {(now - self.last_run_time).total_seconds() / 60:.1f} minutes"
            )
        return health_status


async def start_leaderboard_refresh_scheduler() -> None:
    """Worker entry point: refresh forever on the configured interval."""
    job = LeaderboardRefreshJob()
    logger.info("Starting leaderboard refresh scheduler", interval_minutes=job.interval_minutes)

    try:
        await fast_redis.initialize()
    except RuntimeError as e:
        logger.warning("Redis unavailable, refreshed leaderboards stay in this process", error=str(e))

    try:
        while True:
            try:
                await job.run_once()
                await asyncio.sleep(job.interval_minutes * 60)
            except (OSError, RuntimeError) as e:
                logger.error(
                    "Error in leaderboard refresh scheduler", error=str(e), error_type=type(e).__name__
                )
                await asyncio.sleep(ERROR_RETRY_SECONDS)
    finally:
        await relay_pool.close()
        await fast_redis.close()


if __name__ == "__main__":
    asyncio.run(start_leaderboard_refresh_scheduler())
