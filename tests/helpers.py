"""Factories shared by the test modules."""

import asyncio
from typing import Any, AsyncIterator, Mapping, Optional, Sequence

from backr.engine.models import Backing, Event, ManagedParticipant, Participation
from backr.store.base import CreateOutcome, Document, DocumentStore, Filters, Snapshot
from backr.store.records import RecordStore


class SuspendingStore(DocumentStore):
    """Wraps a store so every call yields to the event loop before and after
    it runs, the way a network round trip would. Lets ``asyncio.gather``
    interleave calls that an in-process store would otherwise run back to
    back."""

    def __init__(self, inner: DocumentStore):
        self.inner = inner

    async def _round_trip(self, call):
        await asyncio.sleep(0)
        result = await call
        await asyncio.sleep(0)
        return result

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        return await self._round_trip(self.inner.get(collection, doc_id))

    async def put(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        await self._round_trip(self.inner.put(collection, doc_id, fields))

    async def create(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> bool:
        return await self._round_trip(self.inner.create(collection, doc_id, fields))

    async def create_within_limit(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        scope: Sequence[str],
        limit: int,
    ) -> CreateOutcome:
        return await self._round_trip(
            self.inner.create_within_limit(collection, doc_id, fields, scope, limit)
        )

    async def query(self, collection: str, filters: Optional[Filters] = None) -> Snapshot:
        return await self._round_trip(self.inner.query(collection, filters))

    def subscribe(
        self, collection: str, filters: Optional[Filters] = None
    ) -> AsyncIterator[Snapshot]:
        return self.inner.subscribe(collection, filters)

    async def count(self, collection: str, filters: Optional[Filters] = None) -> int:
        return await self._round_trip(self.inner.count(collection, filters))


def make_event(
    event_id: str = "ev1",
    creator_id: str = "creator",
    *,
    admin_only: bool = False,
    registration_enabled: bool = True,
    backing_enabled: bool = True,
    max_backings_per_user: int = 1,
    title: str = "Cup Final",
    tag: str = "sports",
    creator_name: str = "",
    is_public: bool = True,
) -> Event:
    """Build an event without going through the controller."""
    return Event(
        event_id=event_id,
        title=title,
        description="Who takes the cup?",
        tag=tag,
        creator_id=creator_id,
        creator_name=creator_name,
        is_admin_only=admin_only,
        registration_enabled=False if admin_only else registration_enabled,
        backing_enabled=False if admin_only else backing_enabled,
        max_backings_per_user=0 if admin_only else max_backings_per_user,
        is_public=is_public,
    )


def participation(event_id: str, user_id: str, name: str = "") -> Participation:
    return Participation(event_id=event_id, user_id=user_id, display_name=name)


async def seed_participants(records: RecordStore, event_id: str, *user_ids: str) -> None:
    for user_id in user_ids:
        await records.create_participation(
            Participation(event_id=event_id, user_id=user_id, display_name=user_id.upper())
        )


async def seed_managed(records: RecordStore, event_id: str, *rows) -> None:
    """rows: (participant_id, name, points)."""
    for participant_id, name, points in rows:
        await records.create_managed_participant(
            ManagedParticipant(
                participant_id=participant_id,
                event_id=event_id,
                name=name,
                points=points,
            )
        )


async def seed_backing(records: RecordStore, event_id: str, backer_id: str, target_user_id: str) -> None:
    """Store a backing directly, with a quota high enough to never interfere."""
    await records.create_backing(
        Backing(event_id=event_id, backer_id=backer_id, target_user_id=target_user_id),
        limit=100,
    )
