"""Record Store Adapter.

Typed get/put/subscribe over the four engine collections. Participations and
backings are written under their composite identity, so a repeated or racing
write resolves to one stored record. Backings additionally go through
``create_within_limit`` scoped to (event, backer), which holds the per-backer
quota across concurrent writers. Documents that fail to decode are logged and
left out of snapshots.
"""

from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    TypeVar,
    Union,
)

from backr.engine.models import (
    Backing,
    Collection,
    Event,
    ManagedParticipant,
    Participation,
    ToggleField,
)
from backr.logging_config import get_logger

from .base import CreateOutcome, Document, DocumentStore

logger = get_logger(__name__)

T = TypeVar("T")

# Fields each collection is filtered by. A tuple is one composite index.
INDEXES: Dict[str, Sequence[Union[str, Sequence[str]]]] = {
    Collection.EVENTS.value: ("creatorId", "isPublic"),
    Collection.PARTICIPATIONS.value: ("eventId", "userId"),
    Collection.BACKINGS.value: (
        "eventId",
        "backerId",
        "targetUserId",
        ("eventId", "backerId"),
    ),
    Collection.MANAGED_PARTICIPANTS.value: ("eventId",),
    Collection.USERS.value: (),
}

_TOGGLE_DOC_FIELDS = {
    ToggleField.REGISTRATION_ENABLED: "registrationEnabled",
    ToggleField.BACKING_ENABLED: "backingEnabled",
}

def _decode(
    collection: Collection,
    docs: Iterable[Document],
    convert: Callable[[Document], T],
) -> List[T]:
    """Convert every document, skipping the ones that do not decode."""
    decoded: List[T] = []
    for doc in docs:
        try:
            decoded.append(convert(doc))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                "record_skipped",
                collection=collection.value,
                record_id=doc.get("id"),
                error=repr(e),
            )
    return decoded


class RecordStore:
    """Collection-aware facade over a DocumentStore."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def _watch(
        self,
        collection: Collection,
        filters: Dict[str, Any],
        convert: Callable[[List[T]], Any],
        decode: Callable[[Document], T],
    ) -> AsyncIterator[Any]:
        stream = self.store.subscribe(collection.value, filters)
        try:
            async for docs in stream:
                yield convert(_decode(collection, docs, decode))
        finally:
            await stream.aclose()

    # =========================================================================
    # Events
    # =========================================================================

    async def get_event(self, event_id: str) -> Optional[Event]:
        doc = await self.store.get(Collection.EVENTS.value, event_id)
        return Event.from_dict(doc) if doc else None

    async def create_event(self, event: Event) -> bool:
        return await self.store.create(
            Collection.EVENTS.value, event.event_id, event.to_dict()
        )

    async def write_toggle(self, event_id: str, toggle: ToggleField, value: bool) -> None:
        await self.store.put(
            Collection.EVENTS.value, event_id, {_TOGGLE_DOC_FIELDS[toggle]: value}
        )

    async def list_events(self, public_only: bool = True, limit: Optional[int] = None) -> List[Event]:
        """Newest first."""
        filters = {"isPublic": True} if public_only else None
        docs = await self.store.query(Collection.EVENTS.value, filters)
        events = _decode(Collection.EVENTS, reversed(docs), Event.from_dict)
        return events[:limit] if limit else events

    def watch_event(self, event_id: str) -> AsyncIterator[Optional[Event]]:
        return self._watch(
            Collection.EVENTS,
            {"id": event_id},
            lambda events: events[0] if events else None,
            Event.from_dict,
        )

    # =========================================================================
    # Participations
    # =========================================================================

    async def participations(self, event_id: str) -> List[Participation]:
        docs = await self.store.query(Collection.PARTICIPATIONS.value, {"eventId": event_id})
        return _decode(Collection.PARTICIPATIONS, docs, Participation.from_dict)

    async def create_participation(self, participation: Participation) -> bool:
        return await self.store.create(
            Collection.PARTICIPATIONS.value,
            participation.record_id,
            participation.to_dict(),
        )

    def watch_participations(self, event_id: str) -> AsyncIterator[List[Participation]]:
        return self._watch(
            Collection.PARTICIPATIONS,
            {"eventId": event_id},
            list,
            Participation.from_dict,
        )

    # =========================================================================
    # Backings
    # =========================================================================

    async def backings(self, event_id: str) -> List[Backing]:
        docs = await self.store.query(Collection.BACKINGS.value, {"eventId": event_id})
        return _decode(Collection.BACKINGS, docs, Backing.from_dict)

    async def create_backing(self, backing: Backing, limit: int) -> CreateOutcome:
        """Create the backing unless it exists or the backer already holds
        ``limit`` backings in the event."""
        return await self.store.create_within_limit(
            Collection.BACKINGS.value,
            backing.record_id,
            backing.to_dict(),
            ("eventId", "backerId"),
            limit,
        )

    def watch_backings(self, event_id: str) -> AsyncIterator[List[Backing]]:
        return self._watch(
            Collection.BACKINGS,
            {"eventId": event_id},
            list,
            Backing.from_dict,
        )

    # =========================================================================
    # Managed participants
    # =========================================================================

    async def managed_participants(self, event_id: str) -> List[ManagedParticipant]:
        docs = await self.store.query(
            Collection.MANAGED_PARTICIPANTS.value, {"eventId": event_id}
        )
        return _decode(Collection.MANAGED_PARTICIPANTS, docs, ManagedParticipant.from_dict)

    async def get_managed_participant(self, participant_id: str) -> Optional[ManagedParticipant]:
        doc = await self.store.get(Collection.MANAGED_PARTICIPANTS.value, participant_id)
        return ManagedParticipant.from_dict(doc) if doc else None

    async def create_managed_participant(self, participant: ManagedParticipant) -> bool:
        return await self.store.create(
            Collection.MANAGED_PARTICIPANTS.value,
            participant.participant_id,
            participant.to_dict(),
        )

    async def write_points(self, participant_id: str, points: int) -> None:
        await self.store.put(
            Collection.MANAGED_PARTICIPANTS.value, participant_id, {"points": points}
        )

    def watch_managed_participants(
        self, event_id: str
    ) -> AsyncIterator[List[ManagedParticipant]]:
        return self._watch(
            Collection.MANAGED_PARTICIPANTS,
            {"eventId": event_id},
            list,
            ManagedParticipant.from_dict,
        )

    # =========================================================================
    # Users / statistics
    # =========================================================================

    async def get_user(self, user_id: str) -> Optional[dict]:
        return await self.store.get(Collection.USERS.value, user_id)

    async def count(self, collection: Collection, **filters) -> int:
        return await self.store.count(collection.value, filters or None)
