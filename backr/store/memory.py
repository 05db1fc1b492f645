"""In-process document store.

Holds every collection in insertion-ordered dicts and fans change
notifications out to subscribers through per-subscriber queues. One instance
is created per app (or per test); nothing here is module-global.
"""

import asyncio
import copy
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

from backr.logging_config import get_logger
from backr.utils.errors import TransportError

from .base import CreateOutcome, Document, DocumentStore, Filters, Snapshot, matches

logger = get_logger(__name__)


@dataclass
class _Watcher:
    filters: Optional[Filters]
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)


class MemoryDocumentStore(DocumentStore):
    """Dict-backed store with subscribe support and fault injection."""

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Document]] = defaultdict(dict)
        self._watchers: Dict[str, List[_Watcher]] = defaultdict(list)
        self._offline = False

    # =========================================================================
    # Fault injection
    # =========================================================================

    def disconnect(self, cause: str = "connection lost") -> None:
        """Go offline: break every open stream and fail every call."""
        self._offline = True
        for watchers in self._watchers.values():
            for watcher in watchers:
                watcher.queue.put_nowait(TransportError(cause=cause))
        logger.warning("memory_store_disconnected", cause=cause)

    def reconnect(self) -> None:
        self._offline = False
        logger.info("memory_store_reconnected")

    def subscriber_count(self, collection: Optional[str] = None) -> int:
        if collection is not None:
            return len(self._watchers.get(collection, []))
        return sum(len(w) for w in self._watchers.values())

    def _check_online(self) -> None:
        if self._offline:
            raise TransportError(cause="store offline")

    # =========================================================================
    # DocumentStore
    # =========================================================================

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        self._check_online()
        doc = self._collections[collection].get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def put(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        self._check_online()
        docs = self._collections[collection]
        merged = dict(docs.get(doc_id, {}))
        merged.update(copy.deepcopy(dict(fields)))
        merged["id"] = doc_id
        docs[doc_id] = merged
        self._notify(collection, merged)

    async def create(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> bool:
        self._check_online()
        docs = self._collections[collection]
        if doc_id in docs:
            return False
        self._insert(collection, doc_id, fields)
        return True

    async def create_within_limit(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        scope: Sequence[str],
        limit: int,
    ) -> CreateOutcome:
        self._check_online()
        docs = self._collections[collection]
        if doc_id in docs:
            return CreateOutcome.EXISTS
        scope_filter = {name: fields.get(name) for name in scope}
        if sum(1 for doc in docs.values() if matches(doc, scope_filter)) >= limit:
            return CreateOutcome.LIMIT_REACHED
        self._insert(collection, doc_id, fields)
        return CreateOutcome.CREATED

    def _insert(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        doc = copy.deepcopy(dict(fields))
        doc["id"] = doc_id
        self._collections[collection][doc_id] = doc
        self._notify(collection, doc)

    async def query(self, collection: str, filters: Optional[Filters] = None) -> Snapshot:
        self._check_online()
        return [
            copy.deepcopy(doc)
            for doc in self._collections[collection].values()
            if matches(doc, filters)
        ]

    async def subscribe(
        self, collection: str, filters: Optional[Filters] = None
    ) -> AsyncIterator[Snapshot]:
        self._check_online()
        watcher = _Watcher(filters=dict(filters) if filters else None)
        self._watchers[collection].append(watcher)
        try:
            yield await self.query(collection, filters)
            while True:
                item = await watcher.queue.get()
                if isinstance(item, TransportError):
                    raise item
                yield await self.query(collection, filters)
        finally:
            self._watchers[collection].remove(watcher)

    async def count(self, collection: str, filters: Optional[Filters] = None) -> int:
        self._check_online()
        return sum(
            1 for doc in self._collections[collection].values() if matches(doc, filters)
        )

    def _notify(self, collection: str, doc: Document) -> None:
        for watcher in self._watchers.get(collection, []):
            if matches(doc, watcher.filters):
                watcher.queue.put_nowait(doc["id"])
