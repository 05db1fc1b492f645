"""Shared fixtures: an in-process store and a stored event."""

import pytest
import pytest_asyncio

from backr.engine.models import Event
from backr.store.memory import MemoryDocumentStore
from backr.store.records import RecordStore

from helpers import SuspendingStore, make_event


@pytest.fixture
def memory_store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def records(memory_store) -> RecordStore:
    return RecordStore(memory_store)


@pytest.fixture
def suspending_records(memory_store) -> RecordStore:
    """Same data as ``records``, but every store call suspends."""
    return RecordStore(SuspendingStore(memory_store))


@pytest_asyncio.fixture
async def stored_event(records) -> Event:
    """Public event with quota 1, already in the store."""
    event = make_event()
    await records.create_event(event)
    return event
