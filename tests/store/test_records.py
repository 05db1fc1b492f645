"""Record store adapter tests."""

import asyncio

import pytest

from backr.engine.models import Backing, Collection, ToggleField
from backr.store.base import CreateOutcome

from helpers import make_event, seed_backing, seed_participants


class TestEvents:
    @pytest.mark.asyncio
    async def test_list_events_newest_first_public_only(self, records):
        await records.create_event(make_event("old"))
        await records.create_event(make_event("hidden", is_public=False))
        await records.create_event(make_event("new"))

        assert [e.event_id for e in await records.list_events()] == ["new", "old"]
        assert [e.event_id for e in await records.list_events(limit=1)] == ["new"]
        assert len(await records.list_events(public_only=False)) == 3

    @pytest.mark.asyncio
    async def test_write_toggle_uses_document_field(self, records, memory_store, stored_event):
        await records.write_toggle("ev1", ToggleField.REGISTRATION_ENABLED, False)

        doc = await memory_store.get(Collection.EVENTS.value, "ev1")
        assert doc["registrationEnabled"] is False
        assert doc["backingEnabled"] is True

    @pytest.mark.asyncio
    async def test_watch_event(self, records, stored_event):
        stream = records.watch_event("ev1")

        first = await stream.__anext__()
        await records.write_toggle("ev1", ToggleField.BACKING_ENABLED, False)
        second = await asyncio.wait_for(stream.__anext__(), 1)

        assert first.backing_enabled
        assert not second.backing_enabled
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_watch_missing_event_yields_none(self, records):
        stream = records.watch_event("missing")
        assert await stream.__anext__() is None
        await stream.aclose()


class TestParticipations:
    @pytest.mark.asyncio
    async def test_watch_closes_store_subscription(self, records, memory_store):
        await seed_participants(records, "ev1", "a")
        stream = records.watch_participations("ev1")

        snapshot = await stream.__anext__()
        assert [p.user_id for p in snapshot] == ["a"]
        assert memory_store.subscriber_count(Collection.PARTICIPATIONS.value) == 1

        await stream.aclose()
        assert memory_store.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_count_by_field(self, records):
        await seed_participants(records, "ev1", "a", "b")
        await seed_participants(records, "ev2", "a")

        assert await records.count(Collection.PARTICIPATIONS, userId="a") == 2
        assert await records.count(Collection.PARTICIPATIONS, eventId="ev1") == 2
        assert await records.count(Collection.PARTICIPATIONS) == 3


def _backing(target: str, event_id: str) -> Backing:
    return Backing(event_id=event_id, backer_id="u", target_user_id=target)


class TestBackings:
    @pytest.mark.asyncio
    async def test_create_backing_holds_backer_quota(self, records):
        first = await records.create_backing(_backing("a", "ev1"), 1)
        repeat = await records.create_backing(_backing("a", "ev1"), 1)
        second = await records.create_backing(_backing("b", "ev1"), 1)
        elsewhere = await records.create_backing(_backing("b", "ev2"), 1)

        assert first is CreateOutcome.CREATED
        assert repeat is CreateOutcome.EXISTS
        assert second is CreateOutcome.LIMIT_REACHED
        assert elsewhere is CreateOutcome.CREATED

    @pytest.mark.asyncio
    async def test_undecodable_documents_are_skipped(self, records, memory_store):
        await seed_backing(records, "ev1", "u", "a")
        await memory_store.create(Collection.BACKINGS.value, "junk", {"eventId": "ev1"})
        stream = records.watch_backings("ev1")

        snapshot = await stream.__anext__()

        assert [b.target_user_id for b in snapshot] == ["a"]
        assert [b.target_user_id for b in await records.backings("ev1")] == ["a"]
        await stream.aclose()
