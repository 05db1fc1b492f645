"""Document store adapters."""

from backr.store.base import CreateOutcome, DocumentStore
from backr.store.memory import MemoryDocumentStore
from backr.store.redis_store import RedisDocumentStore

__all__ = ["CreateOutcome", "DocumentStore", "MemoryDocumentStore", "RedisDocumentStore"]
