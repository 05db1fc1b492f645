"""
Subscription Coordinator.

One ``EventView`` per open event. A view owns its four store streams
(event, participations, backings, managed participants), feeds each
snapshot into the roster/ledger state, re-projects the leaderboard and
publishes a ``LeaderboardView`` to its listeners.

State machine::

    IDLE -> LOADING -> LIVE
               ^         |
               |         v
               +------ ERROR   (reconnect with exponential backoff)

Once ``close()`` returns no listener is called again.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Set,
    Tuple,
)
from uuid import uuid4

from backr.config import Settings, get_settings
from backr.logging_config import get_logger
from backr.store.records import RecordStore
from backr.utils.errors import NotFoundError, TransportError

from .collaborators import SessionProvider
from .ledger import BackingLedger
from .models import Backing, Event, LeaderboardEntry, ManagedParticipant, Participation
from .projector import project
from .result import OperationResult
from .roster import RosterManager

logger = get_logger(__name__)

STREAM_EVENT = "event"
STREAM_ROSTER = "roster"
STREAM_LEDGER = "ledger"
STREAM_MANAGED = "managed"


class ViewState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LIVE = "live"
    ERROR = "error"


@dataclass(frozen=True)
class ViewerSummary:
    """What the signed-in user may do on this event."""

    user_id: str
    is_creator: bool
    is_participant: bool
    backed_targets: Tuple[str, ...] = ()
    remaining_quota: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "isCreator": self.is_creator,
            "isParticipant": self.is_participant,
            "backedTargets": list(self.backed_targets),
            "remainingQuota": self.remaining_quota,
        }


@dataclass(frozen=True)
class LeaderboardView:
    """One published frame of an event view."""

    event_id: str
    state: ViewState
    stale: bool = False
    event: Optional[Event] = None
    entries: Tuple[LeaderboardEntry, ...] = ()
    viewer: Optional[ViewerSummary] = None
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventId": self.event_id,
            "state": self.state.value,
            "stale": self.stale,
            "event": self.event.to_dict() if self.event else None,
            "entries": [entry.to_dict() for entry in self.entries],
            "viewer": self.viewer.to_dict() if self.viewer else None,
            "version": self.version,
        }


ViewListener = Callable[[LeaderboardView], Awaitable[None]]


def build_viewer_summary(
    event: Event,
    roster: RosterManager,
    ledger: BackingLedger,
    user_id: Optional[str],
) -> Optional[ViewerSummary]:
    if not user_id:
        return None
    backed = tuple(ledger.targets_backed_by(user_id))
    return ViewerSummary(
        user_id=user_id,
        is_creator=event.is_creator(user_id),
        is_participant=roster.is_participant(user_id),
        backed_targets=backed,
        remaining_quota=0 if event.is_admin_only else ledger.remaining_quota(event, user_id),
    )


@dataclass
class _Streams:
    generation: int
    tasks: Dict[str, asyncio.Task] = field(default_factory=dict)
    received: Set[str] = field(default_factory=set)


class EventView:
    """Live, self-healing leaderboard of one event."""

    def __init__(
        self,
        event_id: str,
        records: RecordStore,
        *,
        debounce_ms: int = 50,
        reconnect_initial_delay: float = 0.5,
        reconnect_max_delay: float = 30.0,
        session: Optional[SessionProvider] = None,
    ):
        self.event_id = event_id
        self.records = records
        self.debounce_ms = debounce_ms
        self.reconnect_initial_delay = reconnect_initial_delay
        self.reconnect_max_delay = reconnect_max_delay
        self.session = session

        self.roster = RosterManager(event_id, records)
        self.ledger = BackingLedger(event_id, records)
        self._managed: List[ManagedParticipant] = []
        self._event: Optional[Event] = None

        self._state = ViewState.IDLE
        self._entries: Tuple[LeaderboardEntry, ...] = ()
        self._stale = False
        self._version = 0
        self._attempts = 0
        self._generation = 0
        self._closed = False

        self._streams: Optional[_Streams] = None
        self._projection_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._session_task: Optional[asyncio.Task] = None
        self._listeners: Dict[str, ViewListener] = {}
        self._live = asyncio.Event()

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def state(self) -> ViewState:
        return self._state

    @property
    def event(self) -> Optional[Event]:
        return self._event

    @property
    def entries(self) -> Tuple[LeaderboardEntry, ...]:
        return self._entries

    @property
    def stale(self) -> bool:
        return self._stale

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def managed(self) -> List[ManagedParticipant]:
        return list(self._managed)

    def snapshot(self) -> LeaderboardView:
        viewer = None
        if self._event is not None and self.session is not None:
            viewer = build_viewer_summary(
                self._event, self.roster, self.ledger, self.session.current_user_id()
            )
        return LeaderboardView(
            event_id=self.event_id,
            state=self._state,
            stale=self._stale,
            event=self._event,
            entries=self._entries,
            viewer=viewer,
            version=self._version,
        )

    def add_listener(self, listener: ViewListener) -> str:
        listener_id = str(uuid4())
        self._listeners[listener_id] = listener
        return listener_id

    def remove_listener(self, listener_id: str) -> bool:
        return self._listeners.pop(listener_id, None) is not None

    async def wait_live(self, timeout: Optional[float] = None) -> None:
        await asyncio.wait_for(self._live.wait(), timeout)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        if self._closed:
            raise RuntimeError("EventView is closed")
        if self._streams is not None or self._reconnect_task is not None:
            return
        await self._subscribe_all()
        if self.session is not None and self._session_task is None:
            self._session_task = asyncio.create_task(self._follow_session())

    async def close(self) -> None:
        """Tear down every stream and pending timer."""
        if self._closed:
            return
        self._closed = True
        self._listeners.clear()

        tasks = [self._projection_task, self._reconnect_task, self._session_task]
        if self._streams is not None:
            tasks.extend(self._streams.tasks.values())
        self._streams = None
        self._projection_task = None
        self._reconnect_task = None
        self._session_task = None

        current = asyncio.current_task()
        pending = [t for t in tasks if t is not None and t is not current and not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self._state = ViewState.IDLE
        self._live.clear()
        logger.info("event_view_closed", event_id=self.event_id)

    async def _subscribe_all(self) -> None:
        self._generation += 1
        streams = _Streams(generation=self._generation)
        self._streams = streams
        await self._set_state(ViewState.LOADING)
        if self._closed or self._streams is not streams:
            return

        sources = {
            STREAM_EVENT: self.records.watch_event(self.event_id),
            STREAM_ROSTER: self.records.watch_participations(self.event_id),
            STREAM_LEDGER: self.records.watch_backings(self.event_id),
            STREAM_MANAGED: self.records.watch_managed_participants(self.event_id),
        }
        for name, source in sources.items():
            streams.tasks[name] = asyncio.create_task(
                self._consume(name, source, streams.generation)
            )

    async def _consume(self, name: str, source: AsyncIterator, generation: int) -> None:
        try:
            async for payload in source:
                if self._closed or generation != self._generation:
                    return
                self._on_snapshot(name, payload)
                self._check_ready()
        except TransportError as e:
            await self._on_stream_failure(name, e.message, generation)
        except Exception as e:
            logger.exception("event_view_stream_crashed", event_id=self.event_id, stream=name)
            await self._on_stream_failure(name, repr(e), generation)
        finally:
            await source.aclose()

    def _on_snapshot(self, name: str, payload: Any) -> None:
        streams = self._streams
        if name == STREAM_EVENT:
            self._event = payload
            if payload is None:
                return
        elif name == STREAM_ROSTER:
            self.roster.apply_snapshot(payload)
        elif name == STREAM_LEDGER:
            self.ledger.apply_snapshot(payload)
        elif name == STREAM_MANAGED:
            self._managed = [mp for mp in payload if mp.event_id == self.event_id]

        if streams is not None:
            streams.received.add(name)
        if self._state == ViewState.LIVE:
            self._schedule_projection()

    def _is_ready(self) -> bool:
        if self._streams is None or self._event is None:
            return False
        received = self._streams.received
        if STREAM_EVENT not in received:
            return False
        if self._event.is_admin_only:
            return STREAM_MANAGED in received
        return STREAM_ROSTER in received and STREAM_LEDGER in received

    def _check_ready(self) -> None:
        if self._state != ViewState.LOADING or not self._is_ready():
            return
        self._attempts = 0
        self._state = ViewState.LIVE
        self._live.set()
        logger.info("view_state_changed", event_id=self.event_id, state=ViewState.LIVE.value)
        self._schedule_projection()

    async def _set_state(self, state: ViewState) -> None:
        if state == self._state:
            return
        self._state = state
        if state == ViewState.LIVE:
            self._live.set()
        else:
            self._live.clear()
        logger.info("view_state_changed", event_id=self.event_id, state=state.value)
        await self._emit()

    # =========================================================================
    # Failure and reconnect
    # =========================================================================

    def _backoff_delay(self) -> float:
        delay = self.reconnect_initial_delay * (2 ** self._attempts)
        return min(delay, self.reconnect_max_delay)

    async def _on_stream_failure(self, name: str, error: str, generation: int) -> None:
        if self._closed or generation != self._generation or self._streams is None:
            return

        streams = self._streams
        self._streams = None
        current = asyncio.current_task()
        for task in streams.tasks.values():
            if task is not current:
                task.cancel()

        if self._projection_task is not None:
            self._projection_task.cancel()
            self._projection_task = None

        self._stale = self._version > 0
        delay = self._backoff_delay()
        logger.warning(
            "event_view_stream_failed",
            event_id=self.event_id,
            stream=name,
            error=error,
            retry_in=delay,
            attempt=self._attempts + 1,
        )
        await self._set_state(ViewState.ERROR)
        if not self._closed:
            self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._closed:
            return
        self._attempts += 1
        self._reconnect_task = None
        logger.info("event_view_reconnecting", event_id=self.event_id, attempt=self._attempts)
        await self._subscribe_all()

    # =========================================================================
    # Projection and publishing
    # =========================================================================

    def _schedule_projection(self) -> None:
        if self._closed:
            return
        if self._projection_task is not None and not self._projection_task.done():
            return
        self._projection_task = asyncio.create_task(self._debounced_projection())

    async def _debounced_projection(self) -> None:
        await asyncio.sleep(self.debounce_ms / 1000)
        self._projection_task = None
        if self._closed or self._state != ViewState.LIVE:
            return
        self._reproject()
        await self._emit()

    def _reproject(self) -> None:
        if self._event is None:
            self._entries = ()
        elif self._event.is_admin_only:
            self._entries = tuple(project(self._event, [], self._managed))
        else:
            self._entries = tuple(
                project(self._event, self.roster.participants, self.ledger.backings)
            )
        self._stale = False
        self._version += 1

    async def _emit(self) -> None:
        if self._closed or not self._listeners:
            return
        frame = self.snapshot()
        for listener_id, listener in list(self._listeners.items()):
            if self._closed:
                return
            if listener_id not in self._listeners:
                continue
            await self._safe_listener_call(listener, frame)

    async def _safe_listener_call(self, listener: ViewListener, frame: LeaderboardView) -> None:
        try:
            await listener(frame)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("view_listener_failed", event_id=self.event_id)

    async def _follow_session(self) -> None:
        async for user_id in self.session.identity_changes():
            if self._closed:
                return
            logger.debug("view_identity_changed", event_id=self.event_id, user_id=user_id)
            await self._emit()

    # =========================================================================
    # Actions against the live snapshots
    # =========================================================================

    async def register(self, user_id: str, display_name: str = "") -> OperationResult[Participation]:
        if self._event is None:
            return OperationResult.fail(NotFoundError(self.event_id))
        result = await self.roster.register(self._event, user_id, display_name)
        if result.success:
            self._schedule_projection()
        return result

    async def back(self, backer_id: str, target_user_id: str) -> OperationResult[Backing]:
        if self._event is None:
            return OperationResult.fail(NotFoundError(self.event_id))
        if not self.roster.contains(target_user_id):
            # The roster stream may lag a registration that already landed.
            await self.resync_roster()
        result = await self.ledger.attempt_back(
            self._event, backer_id, target_user_id, self.roster.participant_ids
        )
        if result.success:
            self._schedule_projection()
        return result

    async def resync_roster(self) -> None:
        """Re-read the roster once, for when a target looked unknown."""
        try:
            participations = await self.records.participations(self.event_id)
        except TransportError as e:
            logger.warning("roster_resync_failed", event_id=self.event_id, error=e.message)
            return
        self.roster.apply_snapshot(participations)
        if self._state == ViewState.LIVE:
            self._schedule_projection()


class SubscriptionCoordinator:
    """Registry of open event views; each view is its own scope."""

    def __init__(
        self,
        records: RecordStore,
        settings: Optional[Settings] = None,
        session: Optional[SessionProvider] = None,
    ):
        self.records = records
        self.settings = settings or get_settings()
        self.session = session
        self._views: Dict[str, EventView] = {}

    @property
    def open_event_ids(self) -> List[str]:
        return list(self._views.keys())

    def get_view(self, event_id: str) -> Optional[EventView]:
        return self._views.get(event_id)

    async def open_view(
        self,
        event_id: str,
        listener: Optional[ViewListener] = None,
    ) -> EventView:
        view = self._views.get(event_id)
        if view is None:
            view = EventView(
                event_id,
                self.records,
                debounce_ms=self.settings.projection_debounce_ms,
                reconnect_initial_delay=self.settings.reconnect_initial_delay,
                reconnect_max_delay=self.settings.reconnect_max_delay,
                session=self.session,
            )
            self._views[event_id] = view
            logger.info("event_view_opened", event_id=event_id)
        if listener is not None:
            view.add_listener(listener)
        await view.start()
        return view

    async def close_view(self, event_id: str) -> bool:
        view = self._views.pop(event_id, None)
        if view is None:
            return False
        await view.close()
        return True

    async def close_all(self) -> None:
        for event_id in list(self._views.keys()):
            await self.close_view(event_id)
