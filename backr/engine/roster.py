"""Roster Manager: who has registered for an event."""

from typing import Dict, Iterable, List, Optional

from backr.logging_config import get_logger
from backr.store.records import RecordStore
from backr.utils.errors import BackrError, DisabledError, DuplicateError, TransportError

from .models import Event, Participation, participation_id
from .result import OperationResult

logger = get_logger(__name__)


def check_registration(
    event: Event,
    user_id: str,
    existing_participations: Iterable[Participation],
) -> Optional[BackrError]:
    """First failing precondition, or None."""
    if event.is_admin_only or not event.registration_enabled:
        return DisabledError("registration", event.event_id)

    if any(
        p.event_id == event.event_id and p.user_id == user_id
        for p in existing_participations
    ):
        return DuplicateError(
            "You are already registered for this event",
            participation_id(event.event_id, user_id),
        )
    return None


class RosterManager:
    """Participation set of one event, in registration order."""

    def __init__(self, event_id: str, records: RecordStore):
        self.event_id = event_id
        self.records = records
        self._participations: Dict[str, Participation] = {}
        self._pending: Dict[str, Participation] = {}

    @property
    def participants(self) -> List[Participation]:
        return list(self._participations.values())

    @property
    def participant_ids(self) -> List[str]:
        return [p.user_id for p in self._participations.values()]

    def is_participant(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and participation_id(self.event_id, user_id) in self._participations

    def contains(self, user_id: Optional[str]) -> bool:
        """Registered, or a registration from this manager is in flight."""
        if not user_id:
            return False
        key = participation_id(self.event_id, user_id)
        return key in self._participations or key in self._pending

    def apply_snapshot(self, participations: Iterable[Participation]) -> None:
        self._participations = {
            p.record_id: p for p in participations if p.event_id == self.event_id
        }

    async def register(
        self,
        event: Event,
        user_id: str,
        display_name: str = "",
    ) -> OperationResult[Participation]:
        known = list(self._participations.values()) + list(self._pending.values())
        error = check_registration(event, user_id, known)
        if error is not None:
            return OperationResult.fail(error)

        participation = Participation(
            event_id=event.event_id,
            user_id=user_id,
            display_name=display_name,
        )
        self._pending[participation.record_id] = participation
        try:
            created = await self.records.create_participation(participation)
        except TransportError as e:
            return OperationResult.fail(e)
        finally:
            self._pending.pop(participation.record_id, None)

        if not created:
            return OperationResult.fail(
                DuplicateError(
                    "You are already registered for this event",
                    participation.record_id,
                )
            )

        self._participations.setdefault(participation.record_id, participation)
        logger.info("participant_registered", event_id=event.event_id, user_id=user_id)
        return OperationResult.ok(participation)
