"""
Leaderboard orchestration service.

Runs roster -> collection -> aggregation for the whole roster in one pass,
keeps the latest snapshot in memory, and publishes the public view of every
scored activity type to Redis so API workers that did not run the refresh
can serve it.
"""

import asyncio
import hashlib
import json
import time
from collections.abc import Callable
from dataclasses import asdict, replace

from fitrelay.config import settings
from fitrelay.features.workout_leaderboard.domain import (
    SCORED_ACTIVITY_TYPES,
    ActivityType,
    CharityRanking,
    FlaggedWorkout,
    LeaderboardEntry,
    LeaderboardSnapshot,
    LeaderboardView,
    Participant,
)
from fitrelay.features.workout_leaderboard.pipeline.aggregation import aggregate
from fitrelay.features.workout_leaderboard.pipeline.collection import EventCollector
from fitrelay.features.workout_leaderboard.pipeline.fraud import FraudFilter, limits_from_settings
from fitrelay.features.workout_leaderboard.pipeline.ranking import project
from fitrelay.features.workout_leaderboard.repository.roster_repository import (
    FileRosterRepository,
    RosterProvider,
    RosterRepositoryError,
)
from fitrelay.infrastructure.observability.logging import get_logger
from fitrelay.services import redis_store
from fitrelay.services.nostr.relay_client import relay_pool

logger = get_logger(__name__)

CACHE_KEY_PREFIX = "fitrelay:leaderboard"


class LeaderboardUnavailableError(Exception):
    """No snapshot could be produced and none is cached."""

    def __init__(self, message: str, activity_type: str | None = None):
        super().__init__(message)
        self.activity_type = activity_type


def parse_activity_type(value: ActivityType | str) -> ActivityType:
    """
    Raises:
        ValueError: If the value is not a scored activity type
    """
    activity_type = ActivityType(value)
    if activity_type not in SCORED_ACTIVITY_TYPES:
        raise ValueError(f"Activity type {activity_type.value!r} has no leaderboard")
    return activity_type


def roster_fingerprint(participants: list[Participant]) -> str:
    digest = hashlib.sha256()
    for participant in sorted(participants, key=lambda p: p.pubkey):
        digest.update(f"{participant.pubkey}:{int(participant.is_local_join)}\n".encode())
    return digest.hexdigest()[:16]


def view_to_json(view: LeaderboardView) -> str:
    data = asdict(view)
    data["activity_type"] = view.activity_type.value
    return json.dumps(data)


def view_from_json(raw: str) -> LeaderboardView:
    """
    Raises:
        ValueError: If the cached payload does not decode to a view
    """
    try:
        data = json.loads(raw)
        return LeaderboardView(
            activity_type=ActivityType(data["activity_type"]),
            entries=[LeaderboardEntry(**entry) for entry in data["entries"]],
            charity_rankings=[CharityRanking(**row) for row in data["charity_rankings"]],
            last_updated=data["last_updated"],
            is_partial=data["is_partial"],
            queries_succeeded=data["queries_succeeded"],
            queries_total=data["queries_total"],
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed cached leaderboard: {e}") from e


def hide_zero_entries(view: LeaderboardView) -> LeaderboardView:
    """Drop authors without an accepted workout and renumber ranks."""
    entries = [entry for entry in view.entries if entry.workout_count > 0]
    for index, entry in enumerate(entries):
        entry.rank = index + 1
    return replace(view, entries=entries)


class LeaderboardService:
    """Owns leaderboard refreshes and the snapshot they produce."""

    def __init__(
        self,
        roster: RosterProvider | None = None,
        collector_factory: Callable[[], EventCollector] | None = None,
        fraud: FraudFilter | None = None,
        event_kind: int | None = None,
        snapshot_ttl: int | None = None,
        use_cache: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.roster = roster or FileRosterRepository()
        self._collector_factory = collector_factory or self._default_collector
        self.fraud = fraud or FraudFilter(limits_from_settings(settings.get_anticheat_limits()))
        self.event_kind = event_kind or settings.WORKOUT_EVENT_KIND
        self.snapshot_ttl = snapshot_ttl if snapshot_ttl is not None else settings.LEADERBOARD_CACHE_TTL_SECONDS
        self.use_cache = use_cache
        self._clock = clock

        self._locks: dict[tuple[str, int], asyncio.Lock] = {}
        self._generations: dict[tuple[str, int], int] = {}
        self._snapshots: dict[tuple[str, int], LeaderboardSnapshot] = {}
        self._latest: LeaderboardSnapshot | None = None

    @staticmethod
    def _default_collector() -> EventCollector:
        return EventCollector(relay_pool.clients, **settings.get_collector_config())

    @property
    def latest_snapshot(self) -> LeaderboardSnapshot | None:
        return self._latest

    def _is_fresh(self, snapshot: LeaderboardSnapshot | None) -> bool:
        return snapshot is not None and self._clock() - snapshot.refreshed_at < self.snapshot_ttl

    async def refresh(self, force: bool = False) -> LeaderboardSnapshot:
        """
        Recompute the snapshot for the current roster.

        Refreshes for the same roster and event kind run one at a time. A
        caller that had to wait reuses the snapshot the other caller built.

        Raises:
            LeaderboardUnavailableError: If the roster cannot be loaded
        """
        try:
            participants = await self.roster.list_participants()
        except RosterRepositoryError as e:
            logger.error("Roster unavailable, cannot refresh leaderboard", error=str(e), path=e.path)
            raise LeaderboardUnavailableError("Roster unavailable") from e

        key = (roster_fingerprint(participants), self.event_kind)
        lock = self._locks.setdefault(key, asyncio.Lock())
        generation = self._generations.get(key, 0)

        async with lock:
            existing = self._snapshots.get(key)
            if existing is not None and self._generations.get(key, 0) != generation:
                logger.debug("Reusing snapshot built while waiting", roster_key=key[0])
                return existing
            if not force and self._is_fresh(existing):
                return existing

            snapshot = await self._build_snapshot(participants)
            self._snapshots = {key: snapshot}
            self._generations[key] = generation + 1
            self._latest = snapshot
            self._prune_refresh_state(key)

        if self.use_cache:
            await self._publish(snapshot)
        return snapshot

    def _prune_refresh_state(self, current: tuple[str, int]) -> None:
        """Forget lock and generation state of older rosters. Locks still held stay."""
        self._locks = {
            key: lock for key, lock in self._locks.items() if key == current or lock.locked()
        }
        self._generations = {
            key: value for key, value in self._generations.items() if key in self._locks
        }

    async def _build_snapshot(self, participants: list[Participant]) -> LeaderboardSnapshot:
        started = time.monotonic()
        pubkeys = [participant.pubkey for participant in participants]

        collection = await self._collector_factory().collect(pubkeys, self.event_kind)
        aggregation = aggregate(collection.events, pubkeys, fraud=self.fraud)

        snapshot = LeaderboardSnapshot(
            participants=participants,
            aggregation=aggregation,
            refreshed_at=self._clock(),
            queries_total=collection.queries_total,
            queries_succeeded=collection.queries_succeeded,
            queries_timed_out=collection.queries_timed_out,
            queries_failed=collection.queries_failed,
            events_collected=len(collection.events),
        )

        logger.info(
            "Leaderboard snapshot refreshed",
            participants=len(participants),
            events_collected=snapshot.events_collected,
            accepted=aggregation.stats.accepted,
            flagged=len(aggregation.flagged),
            queries_succeeded=snapshot.queries_succeeded,
            queries_total=snapshot.queries_total,
            is_partial=snapshot.is_partial,
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return snapshot

    async def _ensure_snapshot(self) -> LeaderboardSnapshot:
        snapshot = self._latest
        if self._is_fresh(snapshot):
            return snapshot

        try:
            return await self.refresh()
        except LeaderboardUnavailableError:
            if snapshot is None:
                raise
            logger.warning(
                "Serving stale leaderboard snapshot",
                age_seconds=round(self._clock() - snapshot.refreshed_at, 1),
            )
            return snapshot

    def build_view(
        self,
        snapshot: LeaderboardSnapshot,
        activity_type: ActivityType,
        viewer_pubkey: str | None = None,
    ) -> LeaderboardView:
        entries, charity_rankings = project(
            snapshot.aggregation.totals,
            snapshot.aggregation.charity_totals,
            activity_type,
            participants=snapshot.participants,
            viewer_pubkey=viewer_pubkey,
            charity_names=settings.CHARITY_NAMES,
        )
        return LeaderboardView(
            activity_type=activity_type,
            entries=entries,
            charity_rankings=charity_rankings,
            last_updated=snapshot.refreshed_at,
            is_partial=snapshot.is_partial,
            queries_succeeded=snapshot.queries_succeeded,
            queries_total=snapshot.queries_total,
        )

    async def get_leaderboard(
        self,
        activity_type: ActivityType | str,
        viewer_pubkey: str | None = None,
        include_zero: bool = True,
    ) -> LeaderboardView:
        """
        Ranked view for one activity type.

        Anonymous views come from the shared Redis cache when present. A
        viewer's own view is always projected from the local snapshot since
        local joins are only visible to themselves.

        Raises:
            ValueError: If the activity type has no leaderboard
            LeaderboardUnavailableError: If no snapshot exists or can be built
        """
        activity = parse_activity_type(activity_type)

        view = None
        if viewer_pubkey is None and self.use_cache and not self._is_fresh(self._latest):
            view = await self._cached_view(activity)

        if view is None:
            try:
                snapshot = await self._ensure_snapshot()
            except LeaderboardUnavailableError as e:
                raise LeaderboardUnavailableError(str(e), activity_type=activity.value) from e
            view = self.build_view(snapshot, activity, viewer_pubkey)

        return view if include_zero else hide_zero_entries(view)

    async def get_flagged_workouts(self) -> list[FlaggedWorkout]:
        """
        Raises:
            LeaderboardUnavailableError: If no snapshot exists or can be built
        """
        snapshot = await self._ensure_snapshot()
        return list(snapshot.aggregation.flagged)

    def cache_key(self, activity_type: ActivityType) -> str:
        return f"{CACHE_KEY_PREFIX}:{self.event_kind}:{activity_type.value}"

    async def _cached_view(self, activity_type: ActivityType) -> LeaderboardView | None:
        raw = await redis_store.get(self.cache_key(activity_type))
        if not raw:
            return None
        try:
            return view_from_json(raw)
        except ValueError as e:
            logger.warning("Discarding malformed cached leaderboard", activity_type=activity_type.value, error=str(e))
            await redis_store.delete(self.cache_key(activity_type))
            return None

    async def _publish(self, snapshot: LeaderboardSnapshot) -> None:
        published = 0
        for activity_type in SCORED_ACTIVITY_TYPES:
            view = self.build_view(snapshot, activity_type)
            if await redis_store.set_with_ttl(
                self.cache_key(activity_type), view_to_json(view), self.snapshot_ttl
            ):
                published += 1

        if published < len(SCORED_ACTIVITY_TYPES):
            logger.warning(
                "Leaderboard cache publish incomplete, serving from memory",
                published=published,
                expected=len(SCORED_ACTIVITY_TYPES),
            )


# Global instance
leaderboard_service = LeaderboardService()
