"""Document store interface.

Every call may suspend. Implementations raise ``TransportError`` when the
backing service is unreachable; nothing else escapes.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

Document = Dict[str, Any]
Snapshot = List[Document]
Filters = Mapping[str, Any]


class CreateOutcome(str, Enum):
    CREATED = "created"
    EXISTS = "exists"
    LIMIT_REACHED = "limit_reached"


def matches(doc: Mapping[str, Any], filters: Optional[Filters]) -> bool:
    """Equality match on every filter field. ``id`` addresses the document id."""
    if not filters:
        return True
    return all(doc.get(key) == value for key, value in filters.items())


class DocumentStore(ABC):
    """Durable records plus change notifications."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Fetch one document, or None."""

    @abstractmethod
    async def put(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        """Create-or-merge in one step. Fields not named in ``fields`` are left
        untouched, even under concurrent merges of other fields."""

    @abstractmethod
    async def create(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> bool:
        """Create only if absent.

        Returns False, without touching the stored document, when ``doc_id``
        already exists.
        """

    @abstractmethod
    async def create_within_limit(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        scope: Sequence[str],
        limit: int,
    ) -> CreateOutcome:
        """Create only if absent and fewer than ``limit`` documents share the
        values ``fields`` holds for every field in ``scope``.

        The existence check comes first, so a repeat of a stored document
        reports EXISTS even when the scope is full. Check and write happen as
        one step: concurrent callers can never push a scope past ``limit``.
        """

    @abstractmethod
    async def query(self, collection: str, filters: Optional[Filters] = None) -> Snapshot:
        """All matching documents in insertion order."""

    @abstractmethod
    def subscribe(
        self, collection: str, filters: Optional[Filters] = None
    ) -> AsyncIterator[Snapshot]:
        """Yield the current matching snapshot, then a fresh one after every
        change that touches a matching document. Closing the iterator
        unsubscribes."""

    @abstractmethod
    async def count(self, collection: str, filters: Optional[Filters] = None) -> int:
        """Server-side aggregate for display statistics."""

    async def close(self) -> None:
        """Release connections."""
