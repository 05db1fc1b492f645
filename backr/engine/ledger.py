"""
Backing Ledger.

Enforces, per event:
- at most one backing per (backer, target)
- the target is a registered participant
- a backer holds at most ``max_backings_per_user`` backings
- backing is enabled at write time

Counting uses only the snapshot the ledger already holds plus its own
in-flight reservations, never a separately fetched aggregate. The
check-and-reserve step has no suspension point, so attempts through one
ledger cannot overshoot the quota. Writers that do not share a ledger
(separate requests, separate processes) are held to the quota by the
store itself: the backing is created with ``create_within_limit`` scoped
to (event, backer), and the composite identity deduplicates.
"""

from collections import Counter
from typing import Dict, Iterable, List, Optional, Set, Tuple

from backr.logging_config import get_logger
from backr.store.base import CreateOutcome
from backr.store.records import RecordStore
from backr.utils.errors import (
    BackrError,
    DisabledError,
    DuplicateError,
    QuotaExceededError,
    TransportError,
    UnknownTargetError,
)

from .models import Backing, Event, backing_id
from .result import OperationResult

logger = get_logger(__name__)

BackingKey = Tuple[str, str]  # (backer_id, target_user_id)


def backer_count_by_target(backings: Iterable[Backing]) -> Dict[str, int]:
    """Pure fold: target user id -> number of distinct backers."""
    seen: Set[str] = set()
    counts: Counter = Counter()
    for backing in backings:
        if backing.record_id in seen:
            continue
        seen.add(backing.record_id)
        counts[backing.target_user_id] += 1
    return dict(counts)


def check_backing(
    event: Event,
    backer_id: str,
    target_user_id: str,
    participant_ids: Iterable[str],
    existing_backings: Iterable[Backing],
) -> Optional[BackrError]:
    """First failing precondition, in contract order, or None."""
    if event.is_admin_only or not event.backing_enabled:
        return DisabledError("backing", event.event_id)

    if target_user_id not in set(participant_ids):
        return UnknownTargetError(event.event_id, target_user_id)

    mine = [
        b for b in existing_backings
        if b.event_id == event.event_id and b.backer_id == backer_id
    ]
    if any(b.target_user_id == target_user_id for b in mine):
        return DuplicateError(
            "You already backed this participant",
            backing_id(event.event_id, backer_id, target_user_id),
        )

    used = len({b.target_user_id for b in mine})
    if used >= event.max_backings_per_user:
        return QuotaExceededError(limit=event.max_backings_per_user, used=used)

    return None


class BackingLedger:
    """Backing set of one event plus in-flight reservations."""

    def __init__(self, event_id: str, records: RecordStore):
        self.event_id = event_id
        self.records = records
        self._backings: Dict[str, Backing] = {}
        self._pending: Dict[str, Backing] = {}

    @property
    def backings(self) -> List[Backing]:
        """Current snapshot in store order."""
        return list(self._backings.values())

    def apply_snapshot(self, backings: Iterable[Backing]) -> None:
        """Replace the held set with a fresh store snapshot."""
        self._backings = {
            b.record_id: b for b in backings if b.event_id == self.event_id
        }

    def counts(self) -> Dict[str, int]:
        return backer_count_by_target(self._backings.values())

    def targets_backed_by(self, backer_id: str) -> List[str]:
        return [
            b.target_user_id for b in self._effective() if b.backer_id == backer_id
        ]

    def remaining_quota(self, event: Event, backer_id: str) -> int:
        return max(0, event.max_backings_per_user - len(self.targets_backed_by(backer_id)))

    def has_reached_quota(self, event: Event, backer_id: str) -> bool:
        return self.remaining_quota(event, backer_id) == 0

    def _effective(self) -> List[Backing]:
        merged = dict(self._backings)
        for key, backing in self._pending.items():
            merged.setdefault(key, backing)
        return list(merged.values())

    async def attempt_back(
        self,
        event: Event,
        backer_id: str,
        target_user_id: str,
        participant_ids: Iterable[str],
    ) -> OperationResult[Backing]:
        """Check, reserve, then write the backing under its composite key."""
        error = check_backing(
            event, backer_id, target_user_id, participant_ids, self._effective()
        )
        if error is not None:
            logger.info(
                "backing_rejected",
                event_id=event.event_id,
                backer_id=backer_id,
                target_user_id=target_user_id,
                code=error.code,
            )
            return OperationResult.fail(error)

        backing = Backing(
            event_id=event.event_id,
            backer_id=backer_id,
            target_user_id=target_user_id,
        )
        self._pending[backing.record_id] = backing
        try:
            outcome = await self.records.create_backing(
                backing, event.max_backings_per_user
            )
        except TransportError as e:
            return OperationResult.fail(e)
        finally:
            self._pending.pop(backing.record_id, None)

        if outcome is CreateOutcome.EXISTS:
            # Lost a race against an identical write from another client.
            return OperationResult.fail(
                DuplicateError("You already backed this participant", backing.record_id)
            )
        if outcome is CreateOutcome.LIMIT_REACHED:
            # Another writer used the last slot after our snapshot was taken.
            error = QuotaExceededError(
                limit=event.max_backings_per_user,
                used=event.max_backings_per_user,
            )
            logger.info(
                "backing_rejected",
                event_id=event.event_id,
                backer_id=backer_id,
                target_user_id=target_user_id,
                code=error.code,
            )
            return OperationResult.fail(error)

        self._backings.setdefault(backing.record_id, backing)
        logger.info(
            "backing_recorded",
            event_id=event.event_id,
            backer_id=backer_id,
            target_user_id=target_user_id,
        )
        return OperationResult.ok(backing)
