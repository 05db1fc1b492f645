"""Event service: request-scoped entry point over the engine components.

Each call loads fresh snapshots from the store, runs one component contract
against them and returns an ``OperationResult``. Long-lived views go through
``SubscriptionCoordinator`` instead.
"""

from typing import List, Optional, Sequence

from backr.engine.collaborators import DirectoryService
from backr.engine.controller import EventConfigController, EventDraft, search_events
from backr.engine.coordinator import LeaderboardView, ViewState, build_viewer_summary
from backr.engine.ledger import BackingLedger
from backr.engine.models import Backing, Event, ManagedParticipant, Participation
from backr.engine.projector import project
from backr.engine.result import OperationResult
from backr.engine.roster import RosterManager
from backr.logging_config import get_logger
from backr.store.records import RecordStore
from backr.utils.errors import TransportError

logger = get_logger(__name__)


class EventService:
    """Service for event, roster and backing operations."""

    def __init__(self, records: RecordStore, directory: DirectoryService):
        self.records = records
        self.directory = directory
        self.controller = EventConfigController(records)

    async def _display_name(self, user_id: Optional[str]) -> str:
        if not user_id:
            return ""
        return await self.directory.resolve_display_name(user_id)

    # =========================================================================
    # Events
    # =========================================================================

    async def create_event(
        self,
        draft: EventDraft,
        creator_id: Optional[str],
    ) -> OperationResult[Event]:
        """Create a public (backing-scored) event.

        Args:
            draft: Caller input
            creator_id: Signed-in user, or None

        Returns:
            The stored event, or the first validation failure
        """
        try:
            creator_name = await self._display_name(creator_id)
        except TransportError as e:
            return OperationResult.fail(e)
        return await self.controller.create_event(draft, creator_id, creator_name)

    async def create_admin_event(
        self,
        draft: EventDraft,
        creator_id: Optional[str],
        participant_names: Sequence[str] = (),
    ) -> OperationResult[Event]:
        try:
            creator_name = await self._display_name(creator_id)
        except TransportError as e:
            return OperationResult.fail(e)
        return await self.controller.create_admin_event(
            draft, creator_id, creator_name, participant_names
        )

    async def get_event(self, event_id: str) -> OperationResult[Event]:
        return await self.controller.load(event_id)

    async def list_events(
        self,
        term: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> OperationResult[List[Event]]:
        """Public events, newest first, optionally filtered by a search term."""
        try:
            events = await self.records.list_events(public_only=True)
        except TransportError as e:
            return OperationResult.fail(e)
        found = search_events(events, term or "")
        return OperationResult.ok(found[:limit] if limit else found)

    async def set_toggle(
        self,
        event_id: str,
        field: str,
        value: bool,
        caller_id: Optional[str],
    ) -> OperationResult[Event]:
        return await self.controller.set_toggle(event_id, field, value, caller_id)

    # =========================================================================
    # Roster / ledger
    # =========================================================================

    async def register(self, event_id: str, user_id: str) -> OperationResult[Participation]:
        """Register the caller as a participant. A repeat is a no-op."""
        loaded = await self.controller.load(event_id)
        if not loaded.success:
            return loaded
        event = loaded.value

        roster = RosterManager(event_id, self.records)
        try:
            roster.apply_snapshot(await self.records.participations(event_id))
            display_name = await self._display_name(user_id)
        except TransportError as e:
            return OperationResult.fail(e)
        return await roster.register(event, user_id, display_name)

    async def back(
        self,
        event_id: str,
        backer_id: str,
        target_user_id: str,
    ) -> OperationResult[Backing]:
        """Back a participant, subject to the event's quota."""
        loaded = await self.controller.load(event_id)
        if not loaded.success:
            return loaded
        event = loaded.value

        roster = RosterManager(event_id, self.records)
        ledger = BackingLedger(event_id, self.records)
        try:
            roster.apply_snapshot(await self.records.participations(event_id))
            ledger.apply_snapshot(await self.records.backings(event_id))
        except TransportError as e:
            return OperationResult.fail(e)
        return await ledger.attempt_back(
            event, backer_id, target_user_id, roster.participant_ids
        )

    # =========================================================================
    # Managed participants
    # =========================================================================

    async def add_managed_participant(
        self,
        event_id: str,
        name: str,
        caller_id: Optional[str],
    ) -> OperationResult[ManagedParticipant]:
        loaded = await self.controller.load(event_id)
        if not loaded.success:
            return loaded
        return await self.controller.add_managed_participant(loaded.value, name, caller_id)

    async def set_points(
        self,
        event_id: str,
        participant_id: str,
        points: int,
        caller_id: Optional[str],
    ) -> OperationResult[ManagedParticipant]:
        loaded = await self.controller.load(event_id)
        if not loaded.success:
            return loaded
        return await self.controller.set_points(
            loaded.value, participant_id, points, caller_id
        )

    # =========================================================================
    # Leaderboard
    # =========================================================================

    async def leaderboard(
        self,
        event_id: str,
        viewer_id: Optional[str] = None,
    ) -> OperationResult[LeaderboardView]:
        """One-shot projection of the current snapshots."""
        loaded = await self.controller.load(event_id)
        if not loaded.success:
            return loaded
        event = loaded.value

        roster = RosterManager(event_id, self.records)
        ledger = BackingLedger(event_id, self.records)
        try:
            if event.is_admin_only:
                managed = await self.records.managed_participants(event_id)
                entries = project(event, [], managed)
            else:
                roster.apply_snapshot(await self.records.participations(event_id))
                ledger.apply_snapshot(await self.records.backings(event_id))
                entries = project(event, roster.participants, ledger.backings)
        except TransportError as e:
            return OperationResult.fail(e)

        return OperationResult.ok(
            LeaderboardView(
                event_id=event_id,
                state=ViewState.LIVE,
                event=event,
                entries=tuple(entries),
                viewer=build_viewer_summary(event, roster, ledger, viewer_id),
            )
        )
