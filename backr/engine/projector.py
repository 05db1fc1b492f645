"""
Leaderboard Projector.

Pure and synchronous: no I/O, no suspension, no state. Every upstream
change recomputes the whole board from the current snapshots.

Ordering: score descending; ties keep the order of the input snapshot
(registration order for the roster, insertion order for managed
participants). ``sorted`` is stable, so identical inputs always produce an
identical board, tie order included.
"""

from typing import Iterable, List, Sequence, Union

from .ledger import backer_count_by_target
from .models import (
    Backing,
    Event,
    LeaderboardEntry,
    ManagedParticipant,
    Participation,
    RankTier,
)

ANONYMOUS_NAME = "anon"

Scored = Union[Sequence[Backing], Sequence[ManagedParticipant]]


def _ranked(rows: Iterable[tuple]) -> List[LeaderboardEntry]:
    ordered = sorted(rows, key=lambda row: -row[2])
    return [
        LeaderboardEntry(
            position=index,
            subject_id=subject_id,
            display_name=name,
            score=score,
            tier=RankTier.for_position(index),
        )
        for index, (subject_id, name, score) in enumerate(ordered, start=1)
    ]


def project_backed(
    roster: Sequence[Participation],
    backings: Sequence[Backing],
) -> List[LeaderboardEntry]:
    """One entry per participant, scored by backer count (0 when unbacked).

    Backings whose target is not on the roster yet are ignored until the
    participation arrives.
    """
    counts = backer_count_by_target(backings)
    seen = set()
    rows = []
    for participation in roster:
        if participation.user_id in seen:
            continue
        seen.add(participation.user_id)
        rows.append(
            (
                participation.user_id,
                participation.display_name or ANONYMOUS_NAME,
                counts.get(participation.user_id, 0),
            )
        )
    return _ranked(rows)


def project_managed(managed: Sequence[ManagedParticipant]) -> List[LeaderboardEntry]:
    """One entry per managed participant, scored by points."""
    return _ranked((mp.participant_id, mp.name, mp.points) for mp in managed)


def project(
    event: Event,
    roster: Sequence[Participation],
    ledger_or_managed: Scored,
) -> List[LeaderboardEntry]:
    """Variant chosen by ``event.is_admin_only``."""
    if event.is_admin_only:
        managed = [
            mp for mp in ledger_or_managed
            if isinstance(mp, ManagedParticipant) and mp.event_id == event.event_id
        ]
        return project_managed(managed)

    backings = [
        b for b in ledger_or_managed
        if isinstance(b, Backing) and b.event_id == event.event_id
    ]
    participants = [p for p in roster if p.event_id == event.event_id]
    return project_backed(participants, backings)
