"""
Tests for leaderboard refresh orchestration and caching.
"""

import asyncio

import pytest

from fitrelay.features.workout_leaderboard.domain import (
    ActivityType,
    CollectionResult,
    Participant,
    QueryOutcome,
    QueryStatus,
)
from fitrelay.features.workout_leaderboard.repository.roster_repository import (
    RosterRepositoryError,
    StaticRosterProvider,
)
from fitrelay.features.workout_leaderboard.services import leaderboard_service as service_module
from fitrelay.features.workout_leaderboard.services.leaderboard_service import (
    LeaderboardService,
    LeaderboardUnavailableError,
    parse_activity_type,
)


class FakeCollector:
    def __init__(self, events, outcomes=None, delay: float = 0):
        self.events = events
        self.outcomes = outcomes or [QueryOutcome("w", "wss://one", QueryStatus.COMPLETED, len(events))]
        self.delay = delay
        self.calls = 0

    async def collect(self, authors, kind):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return CollectionResult(events=list(self.events), outcomes=list(self.outcomes))


class BrokenRoster:
    async def list_participants(self):
        raise RosterRepositoryError("Cannot read roster", path="/missing.json")


class Clock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def cache(monkeypatch, fake_redis):
    monkeypatch.setattr(service_module, "redis_store", fake_redis)
    return fake_redis


@pytest.fixture
def roster():
    return StaticRosterProvider(
        [
            Participant("A", display_name="Alex"),
            Participant("B", display_name="Blair"),
            Participant("L", is_local_join=True),
        ]
    )


@pytest.fixture
def events(make_event):
    return [
        make_event("e1", "A", distance="10", duration="3000", charity="red-cross"),
        make_event("e2", "B", distance="12", duration="3600"),
        make_event("e2", "B", distance="12", duration="3600"),
        make_event("e3", "L", distance="20", duration="6000"),
        make_event("e4", "B", exercise="walking", distance="0", duration="7200"),
    ]


def _service(roster, collector, clock=None, **kwargs):
    return LeaderboardService(
        roster=roster,
        collector_factory=lambda: collector,
        snapshot_ttl=300,
        clock=clock or Clock(),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_get_leaderboard_ranks_visible_participants(cache, roster, events):
    service = _service(roster, FakeCollector(events))

    view = await service.get_leaderboard("running")

    assert view.activity_type is ActivityType.RUNNING
    assert [(e.rank, e.author_pubkey) for e in view.entries] == [(1, "B"), (2, "A")]
    assert view.entries[1].charity_name == "red-cross"
    assert view.entries[0].charity_id == "als-foundation"
    assert view.entries[0].charity_name == "ALS Foundation"
    assert view.is_partial is False
    assert view.last_updated == 1_000.0


@pytest.mark.asyncio
async def test_viewer_sees_own_local_join(cache, roster, events):
    service = _service(roster, FakeCollector(events))

    view = await service.get_leaderboard(ActivityType.RUNNING, viewer_pubkey="L")

    assert [e.author_pubkey for e in view.entries] == ["L", "B", "A"]
    assert view.entries[0].is_current_user is True


@pytest.mark.asyncio
async def test_include_zero_false_hides_idle_participants(cache, roster, events):
    service = _service(roster, FakeCollector(events))

    full = await service.get_leaderboard("cycling")
    active = await service.get_leaderboard("cycling", include_zero=False)

    assert [e.author_pubkey for e in full.entries] == ["A", "B"]
    assert active.entries == []


@pytest.mark.asyncio
async def test_flagged_workouts_come_from_snapshot(cache, roster, events):
    service = _service(roster, FakeCollector(events))

    flagged = await service.get_flagged_workouts()

    assert [(f.source_event_id, f.reason) for f in flagged] == [
        ("e4", "Zero distance with 120 min duration")
    ]


@pytest.mark.asyncio
async def test_concurrent_refreshes_share_one_pass(cache, roster, events):
    collector = FakeCollector(events, delay=0.01)
    service = _service(roster, collector)

    first, second = await asyncio.gather(service.refresh(force=True), service.refresh(force=True))

    assert collector.calls == 1
    assert first is second


@pytest.mark.asyncio
async def test_fresh_snapshot_is_reused_until_ttl(cache, roster, events):
    collector = FakeCollector(events)
    clock = Clock()
    service = _service(roster, collector, clock=clock, use_cache=False)

    await service.get_leaderboard("running")
    clock.now += 299
    await service.get_leaderboard("walking")
    assert collector.calls == 1

    clock.now += 2
    await service.get_leaderboard("running")
    assert collector.calls == 2


@pytest.mark.asyncio
async def test_partial_collection_marks_view_partial(cache, roster, events):
    outcomes = [
        QueryOutcome("w1", "wss://one", QueryStatus.COMPLETED, 4),
        QueryOutcome("w2", "wss://one", QueryStatus.TIMED_OUT, 0),
    ]
    service = _service(roster, FakeCollector(events, outcomes))

    view = await service.get_leaderboard("running")

    assert view.is_partial is True
    assert (view.queries_succeeded, view.queries_total) == (1, 2)


@pytest.mark.asyncio
async def test_refresh_publishes_public_views(cache, roster, events):
    await _service(roster, FakeCollector(events)).refresh()

    assert set(cache.store) == {
        "fitrelay:leaderboard:1301:running",
        "fitrelay:leaderboard:1301:walking",
        "fitrelay:leaderboard:1301:cycling",
    }
    assert set(cache.ttls.values()) == {300}


@pytest.mark.asyncio
async def test_cached_view_served_without_refresh(cache, roster, events):
    await _service(roster, FakeCollector(events)).refresh()

    idle_collector = FakeCollector([])
    reader = _service(roster, idle_collector)
    view = await reader.get_leaderboard("running")

    assert idle_collector.calls == 0
    assert [e.author_pubkey for e in view.entries] == ["B", "A"]
    assert view.entries[0].display_name == "Blair"


@pytest.mark.asyncio
async def test_malformed_cache_entry_is_discarded(cache, roster, events):
    cache.store["fitrelay:leaderboard:1301:running"] = '{"activity_type": "running"}'
    collector = FakeCollector(events)

    view = await _service(roster, collector).get_leaderboard("running")

    assert collector.calls == 1
    assert len(view.entries) == 2


@pytest.mark.asyncio
async def test_roster_failure_without_snapshot_is_unavailable(cache):
    service = _service(BrokenRoster(), FakeCollector([]))

    with pytest.raises(LeaderboardUnavailableError) as exc_info:
        await service.get_leaderboard("running", viewer_pubkey="A")

    assert exc_info.value.activity_type == "running"


@pytest.mark.asyncio
async def test_roster_failure_serves_stale_snapshot(cache, roster, events):
    clock = Clock()
    service = _service(roster, FakeCollector(events), clock=clock)
    await service.refresh()

    service.roster = BrokenRoster()
    clock.now += 3_600

    view = await service.get_leaderboard("running", viewer_pubkey="A")

    assert [e.author_pubkey for e in view.entries] == ["B", "A"]
    assert view.last_updated == 1_000.0


@pytest.mark.asyncio
async def test_unknown_activity_type_is_rejected(cache, roster):
    service = _service(roster, FakeCollector([]))

    with pytest.raises(ValueError):
        await service.get_leaderboard("swimming")


@pytest.mark.parametrize("value", ["other", "swimming", ""])
def test_parse_activity_type_rejects_unscored(value):
    with pytest.raises(ValueError):
        parse_activity_type(value)


@pytest.mark.asyncio
async def test_roster_change_drops_refresh_state_of_old_roster(cache, events):
    roster = StaticRosterProvider([Participant("A"), Participant("B")])
    service = _service(roster, FakeCollector(events), use_cache=False)

    await service.refresh(force=True)
    old_keys = set(service._locks)

    roster._participants.append(Participant("C"))
    await service.refresh(force=True)

    assert len(service._locks) == 1
    assert set(service._generations) == set(service._locks)
    assert set(service._snapshots) == set(service._locks)
    assert not old_keys & set(service._locks)
