"""
Multi-source workout event collector.

Queries every relay across a ladder of created_at windows in small
concurrent batches, then falls back to unbounded queries when the windows
return suspiciously little. Each query races its own timeout; a timed-out
or failing query never aborts the collection.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Any

from fitrelay.features.workout_leaderboard.domain.models import (
    CollectionResult,
    QueryOutcome,
    QueryStatus,
    RawEvent,
    TimeWindow,
)
from fitrelay.infrastructure.observability.logging import get_logger
from fitrelay.services.nostr.relay_client import RelayClient, RelayError

logger = get_logger(__name__)

DAY_SECONDS = 24 * 60 * 60

SleepFunc = Callable[[float], Awaitable[Any]]


def default_time_windows(now: int | None = None) -> list[TimeWindow]:
    """
    Recent windows are dense, so they get smaller limits than older ones.
    """
    now = int(now if now is not None else time.time())
    day = DAY_SECONDS
    return [
        TimeWindow("Recent (0-7 days)", now - 7 * day, now, 50),
        TimeWindow("Week old (7-14 days)", now - 14 * day, now - 7 * day, 50),
        TimeWindow("Month old (14-30 days)", now - 30 * day, now - 14 * day, 50),
        TimeWindow("Older (30-90 days)", now - 90 * day, now - 30 * day, 75),
        TimeWindow("Historical (90-365 days)", now - 365 * day, now - 90 * day, 100),
        TimeWindow("Deep historical (1+ years)", 0, now - 365 * day, 50),
    ]


def build_filter(
    authors: Sequence[str], kind: int, limit: int, since: int | None = None, until: int | None = None
) -> dict[str, Any]:
    relay_filter: dict[str, Any] = {"kinds": [kind], "authors": list(authors), "limit": limit}
    if since is not None:
        relay_filter["since"] = since
    if until is not None:
        relay_filter["until"] = until
    return relay_filter


class EventCollector:
    """Collect and deduplicate workout events from a set of relays."""

    def __init__(
        self,
        relays: Sequence[RelayClient],
        query_timeout: float = 8.0,
        batch_size: int = 2,
        batch_pause: float = 0.1,
        fallback_threshold: int = 100,
        fallback_limits: Sequence[int] = (100, 200, 500),
        fallback_pause: float = 0.3,
        sleep: SleepFunc = asyncio.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.relays = list(relays)
        self.query_timeout = query_timeout
        self.batch_size = batch_size
        self.batch_pause = batch_pause
        self.fallback_threshold = fallback_threshold
        self.fallback_limits = tuple(fallback_limits)
        self.fallback_pause = fallback_pause
        self._sleep = sleep

    async def collect(
        self,
        authors: Sequence[str],
        kind: int,
        time_windows: Sequence[TimeWindow] | None = None,
        now: int | None = None,
    ) -> CollectionResult:
        result = CollectionResult()
        if not authors or not self.relays:
            logger.info(
                "Skipping event collection", authors=len(authors), relays=len(self.relays)
            )
            return result

        windows = list(time_windows) if time_windows is not None else default_time_windows(now)
        seen_ids: set[str] = set()
        started = time.monotonic()

        batches = [
            windows[i : i + self.batch_size] for i in range(0, len(windows), self.batch_size)
        ]
        for batch_index, batch in enumerate(batches):
            queries = [
                (window.name, relay, build_filter(authors, kind, window.limit, window.since, window.until))
                for window in batch
                for relay in self.relays
            ]
            await self._run_batch(queries, result, seen_ids)
            logger.info(
                "Collection batch settled",
                batch=batch_index + 1,
                batches=len(batches),
                windows=[window.name for window in batch],
                unique_events=len(result.events),
            )
            if batch_index < len(batches) - 1:
                await self._sleep(self.batch_pause)

        if len(result.events) < self.fallback_threshold:
            result.fallback_used = True
            logger.info(
                "Running unbounded fallback queries",
                unique_events=len(result.events),
                threshold=self.fallback_threshold,
            )
            for attempt, limit in enumerate(self.fallback_limits):
                queries = [
                    (f"fallback-{limit}", relay, build_filter(authors, kind, limit))
                    for relay in self.relays
                ]
                await self._run_batch(queries, result, seen_ids)
                if attempt < len(self.fallback_limits) - 1:
                    await self._sleep(self.fallback_pause)

        logger.info(
            "Event collection completed",
            unique_events=len(result.events),
            duplicates_dropped=result.duplicates_dropped,
            queries_total=result.queries_total,
            queries_succeeded=result.queries_succeeded,
            queries_timed_out=result.queries_timed_out,
            queries_failed=result.queries_failed,
            fallback_used=result.fallback_used,
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return result

    async def _run_batch(
        self,
        queries: Iterable[tuple[str, RelayClient, dict[str, Any]]],
        result: CollectionResult,
        seen_ids: set[str],
    ) -> None:
        """Start every query together and merge once all of them have settled."""
        settled = await asyncio.gather(
            *(self._run_query(label, relay, relay_filter) for label, relay, relay_filter in queries)
        )
        for outcome, events in settled:
            result.outcomes.append(outcome)
            for event in events:
                if event.id in seen_ids:
                    result.duplicates_dropped += 1
                    continue
                seen_ids.add(event.id)
                result.events.append(event)

    async def _run_query(
        self, label: str, relay: RelayClient, relay_filter: dict[str, Any]
    ) -> tuple[QueryOutcome, list[RawEvent]]:
        events: list[RawEvent] = []
        subscription = None
        try:
            async with asyncio.timeout(self.query_timeout):
                subscription = await relay.query(relay_filter)
                async for event in subscription:
                    events.append(event)
        except TimeoutError:
            logger.info(
                "Relay query timed out, keeping partial results",
                relay=relay.url,
                query=label,
                events=len(events),
            )
            return QueryOutcome(label, relay.url, QueryStatus.TIMED_OUT, len(events)), events
        except (RelayError, OSError) as e:
            logger.warning("Relay query failed", relay=relay.url, query=label, error=str(e))
            return QueryOutcome(label, relay.url, QueryStatus.FAILED, 0, str(e)), []
        except Exception as e:
            logger.exception(
                "Unexpected relay query error", relay=relay.url, query=label, error_type=type(e).__name__
            )
            return QueryOutcome(label, relay.url, QueryStatus.FAILED, 0, str(e)), []
        finally:
            if subscription is not None:
                await self._stop(relay, subscription)

        return QueryOutcome(label, relay.url, QueryStatus.COMPLETED, len(events)), events

    async def _stop(self, relay: RelayClient, subscription: Any) -> None:
        try:
            await relay.stop_query(subscription)
        except Exception as e:
            logger.debug("Failed to stop relay subscription", relay=relay.url, error=str(e))
