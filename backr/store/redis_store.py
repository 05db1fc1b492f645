"""
Redis Document Store.

Key layout (prefix defaults to ``backr``):

    {prefix}:doc:{collection}:{id}                JSON document (string)
    {prefix}:idx:{collection}                     ZSET of every id
    {prefix}:idx:{collection}:{field}:{value}     ZSET of ids per indexed field
    {prefix}:idx:{collection}:{f1}:{v1}:{f2}:{v2} ZSET of ids per composite index
    {prefix}:seq                                  global insertion counter
    {prefix}:changes:{collection}                 pub/sub change channel

Index scores come from the insertion counter, so ``ZRANGE`` returns
documents in creation order. Every write (create, limited create, merge)
is a single Lua script: the document, its indexes and the change
notification land together or not at all, and no other client can run
between the existence/limit check and the write.
"""

from contextlib import contextmanager
from typing import (
    Any,
    AsyncIterator,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import redis.asyncio as redis
from redis.commands.core import AsyncScript
from redis.exceptions import RedisError

from backr.logging_config import get_logger
from backr.utils.errors import TransportError
from backr.utils.json_utils import json_dumps, json_loads

from .base import CreateOutcome, Document, DocumentStore, Filters, Snapshot, matches

logger = get_logger(__name__)

IndexSpec = Union[str, Sequence[str]]

_CREATE_OUTCOMES = {
    1: CreateOutcome.CREATED,
    0: CreateOutcome.EXISTS,
    -1: CreateOutcome.LIMIT_REACHED,
}


@contextmanager
def _transport_guard(operation: str) -> Iterator[None]:
    """Surface Redis failures as TransportError."""
    try:
        yield
    except RedisError as e:
        logger.warning("redis_store_error", operation=operation, error=str(e))
        raise TransportError(cause=str(e)) from e


class RedisDocumentStore(DocumentStore):
    """Document store on Redis strings, sorted-set indexes and pub/sub."""

    # Seconds to block on pub/sub before re-checking
    POLL_TIMEOUT = 1.0

    # KEYS: document, sequence, limit index, then every index of the document
    # ARGV: document JSON, document id, change channel, limit (-1 for none)
    # Returns 1 created, 0 already exists, -1 limit reached
    CREATE_SCRIPT = """
    if redis.call("exists", KEYS[1]) == 1 then
        return 0
    end
    local limit = tonumber(ARGV[4])
    if limit >= 0 and redis.call("zcard", KEYS[3]) >= limit then
        return -1
    end
    redis.call("set", KEYS[1], ARGV[1])
    local seq = redis.call("incr", KEYS[2])
    for i = 4, #KEYS do
        redis.call("zadd", KEYS[i], "NX", seq, ARGV[2])
    end
    redis.call("publish", ARGV[3], ARGV[1])
    return 1
    """

    # KEYS: document, sequence, then the indexes used if the document is new
    # ARGV: fields JSON, document id, change channel
    # Returns 1 when the document was created, 0 when merged
    MERGE_SCRIPT = """
    local raw = redis.call("get", KEYS[1])
    local doc = {}
    if raw then
        doc = cjson.decode(raw)
    end
    for name, value in pairs(cjson.decode(ARGV[1])) do
        doc[name] = value
    end
    doc["id"] = ARGV[2]
    local encoded = cjson.encode(doc)
    redis.call("set", KEYS[1], encoded)
    if not raw then
        local seq = redis.call("incr", KEYS[2])
        for i = 3, #KEYS do
            redis.call("zadd", KEYS[i], "NX", seq, ARGV[2])
        end
    end
    redis.call("publish", ARGV[3], encoded)
    if raw then
        return 0
    end
    return 1
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        indexes: Mapping[str, Sequence[IndexSpec]],
        prefix: str = "backr",
    ):
        self.redis = redis_client
        self.prefix = prefix
        self._indexes = {
            name: tuple(
                (index,) if isinstance(index, str) else tuple(index) for index in specs
            )
            for name, specs in indexes.items()
        }
        self._create_script: Optional[AsyncScript] = None
        self._merge_script: Optional[AsyncScript] = None

    def _ensure_scripts(self) -> None:
        if self._create_script is None:
            self._create_script = self.redis.register_script(self.CREATE_SCRIPT)
        if self._merge_script is None:
            self._merge_script = self.redis.register_script(self.MERGE_SCRIPT)

    # =========================================================================
    # Keys
    # =========================================================================

    def _doc_key(self, collection: str, doc_id: str) -> str:
        return f"{self.prefix}:doc:{collection}:{doc_id}"

    def _all_key(self, collection: str) -> str:
        return f"{self.prefix}:idx:{collection}"

    def _index_key(self, collection: str, fields: Tuple[str, ...], values: Mapping[str, Any]) -> str:
        parts = ":".join(f"{name}:{values[name]}" for name in fields)
        return f"{self.prefix}:idx:{collection}:{parts}"

    def _index_keys(self, collection: str, doc: Mapping[str, Any]) -> List[str]:
        """Every index key the document belongs to, starting with the full index."""
        keys = [self._all_key(collection)]
        for fields in self._indexes.get(collection, ()):
            if all(doc.get(name) is not None for name in fields):
                keys.append(self._index_key(collection, fields, doc))
        return keys

    def _seq_key(self) -> str:
        return f"{self.prefix}:seq"

    def channel(self, collection: str) -> str:
        return f"{self.prefix}:changes:{collection}"

    # =========================================================================
    # Writes
    # =========================================================================

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with _transport_guard("get"):
            raw = await self.redis.get(self._doc_key(collection, doc_id))
        return json_loads(raw) if raw else None

    async def put(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        self._ensure_scripts()
        changes = dict(fields)
        changes["id"] = doc_id

        with _transport_guard("put"):
            await self._merge_script(
                keys=[self._doc_key(collection, doc_id), self._seq_key()]
                + self._index_keys(collection, changes),
                args=[json_dumps(changes), doc_id, self.channel(collection)],
            )

    async def create(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> bool:
        outcome = await self._create(collection, doc_id, fields, self._all_key(collection), -1)
        return outcome is CreateOutcome.CREATED

    async def create_within_limit(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        scope: Sequence[str],
        limit: int,
    ) -> CreateOutcome:
        scope = tuple(scope)
        if scope not in self._indexes.get(collection, ()):
            raise ValueError(f"No index on {collection} for {scope}")
        limit_key = self._index_key(collection, scope, fields)
        return await self._create(collection, doc_id, fields, limit_key, limit)

    async def _create(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        limit_key: str,
        limit: int,
    ) -> CreateOutcome:
        self._ensure_scripts()
        doc = dict(fields)
        doc["id"] = doc_id

        with _transport_guard("create"):
            result = await self._create_script(
                keys=[self._doc_key(collection, doc_id), self._seq_key(), limit_key]
                + self._index_keys(collection, doc),
                args=[json_dumps(doc), doc_id, self.channel(collection), limit],
            )
        return _CREATE_OUTCOMES[int(result)]

    # =========================================================================
    # Reads
    # =========================================================================

    def _candidate_key(self, collection: str, filters: Optional[Filters]) -> str:
        """Narrowest index usable for the filter."""
        if not filters:
            return self._all_key(collection)
        usable = [
            fields
            for fields in self._indexes.get(collection, ())
            if all(name in filters for name in fields)
        ]
        if not usable:
            return self._all_key(collection)
        return self._index_key(collection, max(usable, key=len), filters)

    async def query(self, collection: str, filters: Optional[Filters] = None) -> Snapshot:
        with _transport_guard("query"):
            if filters and "id" in filters:
                ids: List[str] = [filters["id"]]
            else:
                ids = await self.redis.zrange(self._candidate_key(collection, filters), 0, -1)
            if not ids:
                return []
            raws = await self.redis.mget([self._doc_key(collection, i) for i in ids])

        docs = [json_loads(raw) for raw in raws if raw]
        return [doc for doc in docs if matches(doc, filters)]

    async def count(self, collection: str, filters: Optional[Filters] = None) -> int:
        indexed = self._indexes.get(collection, ())
        if not filters or tuple(filters) in indexed:
            with _transport_guard("count"):
                return await self.redis.zcard(self._candidate_key(collection, filters))
        return len(await self.query(collection, filters))

    async def subscribe(
        self, collection: str, filters: Optional[Filters] = None
    ) -> AsyncIterator[Snapshot]:
        channel = self.channel(collection)
        pubsub = self.redis.pubsub()
        try:
            with _transport_guard("subscribe"):
                await pubsub.subscribe(channel)
            # Subscribe before the first read so no change falls in between.
            yield await self.query(collection, filters)

            while True:
                with _transport_guard("subscribe"):
                    message = await pubsub.get_message(
                        ignore_subscribe_messages=True,
                        timeout=self.POLL_TIMEOUT,
                    )
                if not message or message.get("type") != "message":
                    continue
                doc = json_loads(message["data"])
                if matches(doc, filters):
                    yield await self.query(collection, filters)
        finally:
            try:
                await pubsub.unsubscribe(channel)
                await pubsub.aclose()
            except RedisError as e:
                logger.warning("redis_unsubscribe_failed", channel=channel, error=str(e))
