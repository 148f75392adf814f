import pytest

from fitrelay.features.workout_leaderboard.domain import RawEvent


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl_s
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def delete(self, *keys: str) -> bool:
        removed = [self.store.pop(key, None) for key in keys]
        return any(value is not None for value in removed)


@pytest.fixture
def fake_redis():
    return FakeRedis()


def build_event(
    event_id: str,
    pubkey: str,
    exercise: str | None = "running",
    distance: str | None = "5",
    unit: str | None = "km",
    duration: str | None = "00:25:00",
    charity: str | None = None,
    created_at: int = 1_700_000_000,
    kind: int = 1301,
) -> RawEvent:
    tags: list[tuple[str, ...]] = []
    if exercise is not None:
        tags.append(("exercise", exercise))
    if distance is not None:
        tags.append(("distance", distance, unit) if unit else ("distance", distance))
    if duration is not None:
        tags.append(("duration", duration))
    if charity is not None:
        tags.append(("charity", charity))
    return RawEvent(
        id=event_id,
        pubkey=pubkey,
        created_at=created_at,
        kind=kind,
        tags=tuple(tags),
        content="",
    )


@pytest.fixture
def make_event():
    return build_event
