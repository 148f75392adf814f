"""
Roster persistence for the workout leaderboard.

The roster is the closed set of pubkeys the aggregator scores: official
participants, shown to everyone, and local joins, shown only to themselves.
"""

import asyncio
import json
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field, ValidationError, field_validator

from fitrelay.config import settings
from fitrelay.features.workout_leaderboard.domain import Participant
from fitrelay.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RosterRepositoryError(Exception):
    """Roster file missing or malformed."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class RosterEntry(BaseModel):
    pubkey: str = Field(..., min_length=1)
    display_name: str | None = None
    picture_url: str | None = None

    @field_validator("pubkey")
    @classmethod
    def pubkey_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("pubkey must not be blank")
        return value


class RosterDocument(BaseModel):
    participants: list[RosterEntry] = Field(default_factory=list)
    local_joins: list[RosterEntry] = Field(default_factory=list)


class RosterProvider(Protocol):
    async def list_participants(self) -> list[Participant]: ...


class FileRosterRepository:
    """Reads the roster from a JSON file on every call so edits apply on the next refresh."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path or settings.ROSTER_PATH)

    async def list_participants(self) -> list[Participant]:
        """
        Official participants first, then local joins, each pubkey once.

        Raises:
            RosterRepositoryError: If the file cannot be read or validated
        """
        document = await asyncio.to_thread(self._load)
        return self._to_participants(document)

    def _load(self) -> RosterDocument:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise RosterRepositoryError(f"Cannot read roster: {e}", path=str(self.path)) from e

        try:
            return RosterDocument.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            raise RosterRepositoryError(f"Invalid roster: {e}", path=str(self.path)) from e

    @staticmethod
    def _to_participants(document: RosterDocument) -> list[Participant]:
        participants: list[Participant] = []
        seen: set[str] = set()

        for entries, is_local_join in ((document.participants, False), (document.local_joins, True)):
            for entry in entries:
                if entry.pubkey in seen:
                    logger.debug("Skipping duplicate roster entry", pubkey=entry.pubkey[:16])
                    continue
                seen.add(entry.pubkey)
                participants.append(
                    Participant(
                        pubkey=entry.pubkey,
                        display_name=entry.display_name,
                        picture_url=entry.picture_url,
                        is_local_join=is_local_join,
                    )
                )

        return participants


class StaticRosterProvider:
    """In-memory roster, used by tests and one-off scripts."""

    def __init__(self, participants: list[Participant]):
        self._participants = list(participants)

    async def list_participants(self) -> list[Participant]:
        return list(self._participants)
