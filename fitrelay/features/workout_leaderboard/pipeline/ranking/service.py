"""
Leaderboard ranking projector - ranks aggregated totals per activity type.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from fitrelay.features.workout_leaderboard.domain.models import (
    ActivityType,
    AggregateTotals,
    CharityAggregate,
    CharityKey,
    CharityRanking,
    LeaderboardEntry,
    Participant,
    TotalsKey,
)


def visible_authors(
    participants: Sequence[Participant], viewer_pubkey: str | None = None
) -> list[Participant]:
    """
    Official participants are visible to everyone; a local join is only
    visible to the viewer who joined.
    """
    return [
        participant
        for participant in participants
        if not participant.is_local_join or participant.pubkey == viewer_pubkey
    ]


def project(
    totals: Mapping[TotalsKey, AggregateTotals],
    charity_totals: Mapping[CharityKey, CharityAggregate],
    activity_type: ActivityType,
    participants: Sequence[Participant] | None = None,
    viewer_pubkey: str | None = None,
    charity_names: Mapping[str, str] | None = None,
) -> tuple[list[LeaderboardEntry], list[CharityRanking]]:
    """
    Rank authors and charities for one activity type.

    Ties on distance keep roster order (the order of ``participants``, or
    the insertion order of ``totals`` when no participants are given), so
    the output is deterministic for identical totals.
    """
    names = charity_names or {}

    if participants is None:
        roster = [
            Participant(pubkey=pubkey)
            for (pubkey, bucket_type) in totals
            if bucket_type == activity_type
        ]
    else:
        roster = visible_authors(participants, viewer_pubkey)

    entries: list[LeaderboardEntry] = []
    for participant in roster:
        bucket = totals.get((participant.pubkey, activity_type)) or AggregateTotals()
        entries.append(
            LeaderboardEntry(
                rank=0,
                author_pubkey=participant.pubkey,
                total_distance_km=bucket.distance_km,
                total_duration_seconds=bucket.duration_seconds,
                workout_count=bucket.workout_count,
                display_name=participant.display_name,
                picture_url=participant.picture_url,
                charity_id=bucket.charity_id,
                charity_name=names.get(bucket.charity_id, bucket.charity_id)
                if bucket.charity_id
                else None,
                is_local_join=participant.is_local_join,
                is_current_user=viewer_pubkey is not None
                and participant.pubkey == viewer_pubkey,
            )
        )

    # list.sort is stable: equal distances keep roster order
    entries.sort(key=lambda entry: entry.total_distance_km, reverse=True)
    for index, entry in enumerate(entries):
        entry.rank = index + 1

    visible = {participant.pubkey for participant in roster}
    charity_rows: list[tuple[str, float, int]] = []
    for (charity_id, bucket_type), charity in charity_totals.items():
        if bucket_type != activity_type:
            continue
        contributors = sorted(author for author in charity.contributing_authors if author in visible)
        if not contributors:
            continue
        distance = sum(charity.author_distance_km.get(author, 0.0) for author in contributors)
        charity_rows.append((charity_id, distance, len(contributors)))

    charity_rows.sort(key=lambda row: (-row[1], row[0]))
    charity_rankings = [
        CharityRanking(
            rank=index + 1,
            charity_id=charity_id,
            charity_name=names.get(charity_id, charity_id),
            total_distance_km=distance,
            participant_count=participant_count,
        )
        for index, (charity_id, distance, participant_count) in enumerate(charity_rows)
    ]

    return entries, charity_rankings
