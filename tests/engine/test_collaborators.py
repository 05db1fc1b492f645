"""Session provider and directory tests."""

import asyncio

import pytest

from backr.engine.collaborators import LocalSessionProvider, StaticSessionProvider, StoreDirectory
from backr.engine.models import Collection
from backr.engine.projector import ANONYMOUS_NAME


class TestSessions:
    def test_static_session(self):
        assert StaticSessionProvider("u1").current_user_id() == "u1"
        assert StaticSessionProvider(None).current_user_id() is None

    @pytest.mark.asyncio
    async def test_local_session_streams_changes(self):
        session = LocalSessionProvider()
        changes = session.identity_changes()
        next_change = asyncio.ensure_future(changes.__anext__())
        await asyncio.sleep(0)

        session.sign_in("u1")
        assert await asyncio.wait_for(next_change, 1) == "u1"
        assert session.current_user_id() == "u1"

        session.sign_in("u1")  # unchanged identity is not re-announced
        session.sign_out()
        assert await asyncio.wait_for(changes.__anext__(), 1) is None

        await changes.aclose()
        assert session._listeners == []


class TestStoreDirectory:
    @pytest.mark.asyncio
    async def test_prefers_username(self, records, memory_store):
        await memory_store.put(
            Collection.USERS.value, "u1", {"username": "alice", "displayName": "Alice A."}
        )
        await memory_store.put(Collection.USERS.value, "u2", {"displayName": "Bob"})
        directory = StoreDirectory(records)

        assert await directory.resolve_display_name("u1") == "alice"
        assert await directory.resolve_display_name("u2") == "Bob"

    @pytest.mark.asyncio
    async def test_unknown_user_is_anonymous(self, records):
        assert await StoreDirectory(records).resolve_display_name("ghost") == ANONYMOUS_NAME

    @pytest.mark.asyncio
    async def test_cached(self, records, memory_store):
        await memory_store.put(Collection.USERS.value, "u1", {"username": "alice"})
        directory = StoreDirectory(records)
        await directory.resolve_display_name("u1")

        await memory_store.put(Collection.USERS.value, "u1", {"username": "renamed"})

        assert await directory.resolve_display_name("u1") == "alice"
