"""
Tests for the JSON roster repository.
"""

import json

import pytest

from fitrelay.features.workout_leaderboard.repository.roster_repository import (
    FileRosterRepository,
    RosterRepositoryError,
)


def _write(tmp_path, payload) -> str:
    path = tmp_path / "roster.json"
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")
    return str(path)


@pytest.mark.asyncio
async def test_lists_participants_then_local_joins(tmp_path):
    path = _write(
        tmp_path,
        {
            "participants": [
                {"pubkey": "aaa", "display_name": "Alex", "picture_url": "https://img/a.png"},
                {"pubkey": "bbb"},
            ],
            "local_joins": [{"pubkey": "ccc"}, {"pubkey": "aaa"}],
        },
    )

    participants = await FileRosterRepository(path).list_participants()

    assert [(p.pubkey, p.is_local_join) for p in participants] == [
        ("aaa", False),
        ("bbb", False),
        ("ccc", True),
    ]
    assert participants[0].display_name == "Alex"
    assert participants[0].picture_url == "https://img/a.png"


@pytest.mark.asyncio
async def test_missing_sections_default_to_empty(tmp_path):
    path = _write(tmp_path, {"participants": [{"pubkey": "aaa"}]})

    participants = await FileRosterRepository(path).list_participants()

    assert [p.pubkey for p in participants] == ["aaa"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        "{not json",
        {"participants": [{"pubkey": "   "}]},
        {"participants": [{"display_name": "no key"}]},
        {"participants": "aaa"},
    ],
)
async def test_invalid_roster_raises(tmp_path, payload):
    path = _write(tmp_path, payload)

    with pytest.raises(RosterRepositoryError) as exc_info:
        await FileRosterRepository(path).list_participants()

    assert exc_info.value.path == path


@pytest.mark.asyncio
async def test_missing_file_raises(tmp_path):
    with pytest.raises(RosterRepositoryError):
        await FileRosterRepository(tmp_path / "absent.json").list_participants()


@pytest.mark.asyncio
async def test_bundled_roster_loads():
    participants = await FileRosterRepository().list_participants()

    assert participants
    assert all(not p.is_local_join for p in participants)
