"""
External collaborators: Session Provider and Directory Service.

The engine only needs "who is acting" and "what is this user called".
Display names are presentation only; no invariant reads them.
"""

import asyncio
from typing import AsyncIterator, Dict, List, Optional, Protocol

from backr.logging_config import get_logger
from backr.store.records import RecordStore

from .projector import ANONYMOUS_NAME

logger = get_logger(__name__)


class SessionProvider(Protocol):
    """Who is currently authenticated."""

    def current_user_id(self) -> Optional[str]:
        ...

    def identity_changes(self) -> AsyncIterator[Optional[str]]:
        ...


class DirectoryService(Protocol):
    """User identity lookup for presentation."""

    async def resolve_display_name(self, user_id: str) -> str:
        ...


class StaticSessionProvider:
    """Identity fixed for the lifetime of one request."""

    def __init__(self, user_id: Optional[str]):
        self._user_id = user_id

    def current_user_id(self) -> Optional[str]:
        return self._user_id

    async def identity_changes(self) -> AsyncIterator[Optional[str]]:
        # Never changes; park until the consumer cancels.
        await asyncio.Event().wait()
        yield self._user_id


class LocalSessionProvider:
    """Mutable session with a change stream, for long-lived views."""

    def __init__(self, user_id: Optional[str] = None):
        self._user_id = user_id
        self._listeners: List[asyncio.Queue] = []

    def current_user_id(self) -> Optional[str]:
        return self._user_id

    def sign_in(self, user_id: str) -> None:
        self._set(user_id)

    def sign_out(self) -> None:
        self._set(None)

    def _set(self, user_id: Optional[str]) -> None:
        if user_id == self._user_id:
            return
        self._user_id = user_id
        logger.debug("session_identity_changed", user_id=user_id)
        for queue in self._listeners:
            queue.put_nowait(user_id)

    async def identity_changes(self) -> AsyncIterator[Optional[str]]:
        queue: asyncio.Queue = asyncio.Queue()
        self._listeners.append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._listeners.remove(queue)


class StoreDirectory:
    """Display names from the ``users`` collection, cached per instance."""

    def __init__(self, records: RecordStore):
        self.records = records
        self._cache: Dict[str, str] = {}

    async def resolve_display_name(self, user_id: str) -> str:
        cached = self._cache.get(user_id)
        if cached is not None:
            return cached

        user = await self.records.get_user(user_id)
        if not user:
            return ANONYMOUS_NAME
        name = user.get("username") or user.get("displayName") or ANONYMOUS_NAME
        self._cache[user_id] = name
        return name
