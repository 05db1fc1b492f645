"""
Event Configuration Controller.

Owns event creation, the two creator-only toggles and the creator-only
score sheet of admin-only events. Admin-only is a structural mode: creation
forces every toggle off and the quota to zero whatever the caller sent.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union
from uuid import uuid4

from backr.logging_config import get_logger
from backr.store.records import RecordStore
from backr.utils.errors import (
    AuthorizationError,
    BackrError,
    NotFoundError,
    TransportError,
    ValidationError,
)

from .models import Event, ManagedParticipant, ToggleField, normalize_tag
from .result import OperationResult

logger = get_logger(__name__)

_TOGGLE_ALIASES = {
    "registration_enabled": ToggleField.REGISTRATION_ENABLED,
    "registrationEnabled": ToggleField.REGISTRATION_ENABLED,
    "backing_enabled": ToggleField.BACKING_ENABLED,
    "backingEnabled": ToggleField.BACKING_ENABLED,
}


@dataclass(frozen=True)
class EventDraft:
    """Caller input for a new event."""

    title: str
    description: str
    tag: str
    max_backings_per_user: int = 1
    registration_enabled: bool = True
    backing_enabled: bool = True
    is_public: bool = True


def _validate_common(draft: EventDraft, creator_id: Optional[str]) -> Optional[BackrError]:
    if not creator_id:
        return AuthorizationError("You must be signed in to create an event")
    if not (draft.title or "").strip():
        return ValidationError("Title is required", field="title")
    if not (draft.description or "").strip():
        return ValidationError("Description is required", field="description")
    if not normalize_tag(draft.tag):
        return ValidationError("Please add a tag (e.g., #sports)", field="tag")
    return None


def build_event(
    draft: EventDraft,
    creator_id: Optional[str],
    creator_name: str = "",
) -> OperationResult[Event]:
    """Validate a public event draft. No I/O."""
    error = _validate_common(draft, creator_id)
    if error is not None:
        return OperationResult.fail(error)

    quota = draft.max_backings_per_user
    if isinstance(quota, bool) or not isinstance(quota, int) or quota < 1:
        return OperationResult.fail(
            ValidationError(
                "Max backings per user must be at least 1",
                field="max_backings_per_user",
            )
        )

    return OperationResult.ok(
        Event(
            event_id=str(uuid4()),
            title=draft.title.strip(),
            description=draft.description.strip(),
            tag=normalize_tag(draft.tag),
            creator_id=creator_id,
            creator_name=creator_name,
            is_admin_only=False,
            registration_enabled=bool(draft.registration_enabled),
            backing_enabled=bool(draft.backing_enabled),
            max_backings_per_user=quota,
            is_public=bool(draft.is_public),
        )
    )


def build_admin_event(
    draft: EventDraft,
    creator_id: Optional[str],
    creator_name: str = "",
) -> OperationResult[Event]:
    """Validate an admin-only draft; toggles and quota are overridden."""
    error = _validate_common(draft, creator_id)
    if error is not None:
        return OperationResult.fail(error)

    return OperationResult.ok(
        Event(
            event_id=str(uuid4()),
            title=draft.title.strip(),
            description=draft.description.strip(),
            tag=normalize_tag(draft.tag),
            creator_id=creator_id,
            creator_name=creator_name,
            is_admin_only=True,
            registration_enabled=False,
            backing_enabled=False,
            max_backings_per_user=0,
            is_public=bool(draft.is_public),
        )
    )


def resolve_toggle(field: Union[str, ToggleField]) -> Optional[ToggleField]:
    if isinstance(field, ToggleField):
        return field
    return _TOGGLE_ALIASES.get(field)


def search_events(events: Iterable[Event], term: str) -> List[Event]:
    """Case-insensitive match on title, creator name or tag."""
    needle = (term or "").strip().lower()
    if needle.startswith("#"):
        needle = needle[1:]
    events = list(events)
    if not needle:
        return events
    return [
        e for e in events
        if needle in e.title.lower()
        or needle in e.creator_name.lower()
        or needle in e.tag_lower
    ]


class EventConfigController:
    """Creator-side mutations of events and their managed participants."""

    def __init__(self, records: RecordStore):
        self.records = records

    async def load(self, event_id: str) -> OperationResult[Event]:
        try:
            event = await self.records.get_event(event_id)
        except TransportError as e:
            return OperationResult.fail(e)
        if event is None:
            return OperationResult.fail(NotFoundError(event_id))
        return OperationResult.ok(event)

    async def create_event(
        self,
        draft: EventDraft,
        creator_id: Optional[str],
        creator_name: str = "",
    ) -> OperationResult[Event]:
        result = build_event(draft, creator_id, creator_name)
        if not result.success:
            return result
        return await self._store_event(result.value)

    async def create_admin_event(
        self,
        draft: EventDraft,
        creator_id: Optional[str],
        creator_name: str = "",
        participant_names: Sequence[str] = (),
    ) -> OperationResult[Event]:
        """Create the event, then seed one zero-point entry per name."""
        result = build_admin_event(draft, creator_id, creator_name)
        if not result.success:
            return result

        stored = await self._store_event(result.value)
        if not stored.success:
            return stored

        event = stored.value
        for name in participant_names:
            if not (name or "").strip():
                continue
            seeded = await self._add_participant(event, name.strip())
            if not seeded.success:
                return OperationResult.fail(seeded.error)
        return stored

    async def _store_event(self, event: Event) -> OperationResult[Event]:
        try:
            await self.records.create_event(event)
        except TransportError as e:
            return OperationResult.fail(e)
        logger.info(
            "event_created",
            event_id=event.event_id,
            creator_id=event.creator_id,
            admin_only=event.is_admin_only,
        )
        return OperationResult.ok(event)

    async def set_toggle(
        self,
        event_id: str,
        field: Union[str, ToggleField],
        value: bool,
        caller_id: Optional[str],
    ) -> OperationResult[Event]:
        """Creator-only direct write; no cross-field validation."""
        loaded = await self.load(event_id)
        if not loaded.success:
            return loaded
        event = loaded.value

        if not event.is_creator(caller_id):
            return OperationResult.fail(AuthorizationError())

        toggle = resolve_toggle(field)
        if toggle is None or not isinstance(value, bool):
            return OperationResult.fail(
                ValidationError(f"Unknown or invalid toggle: {field}", field=str(field))
            )

        try:
            await self.records.write_toggle(event_id, toggle, value)
        except TransportError as e:
            return OperationResult.fail(e)

        logger.info(
            "event_toggle_set",
            event_id=event_id,
            toggle=toggle.value,
            value=value,
        )
        return OperationResult.ok(event.with_toggle(toggle, value))

    async def add_managed_participant(
        self,
        event: Event,
        name: str,
        caller_id: Optional[str],
    ) -> OperationResult[ManagedParticipant]:
        if not event.is_creator(caller_id):
            return OperationResult.fail(AuthorizationError())
        if not event.is_admin_only:
            return OperationResult.fail(
                ValidationError("Only admin-only events have managed participants")
            )
        if not (name or "").strip():
            return OperationResult.fail(
                ValidationError("Participant name cannot be empty", field="name")
            )
        return await self._add_participant(event, name.strip())

    async def _add_participant(self, event: Event, name: str) -> OperationResult[ManagedParticipant]:
        participant = ManagedParticipant(
            participant_id=str(uuid4()),
            event_id=event.event_id,
            name=name,
            points=0,
        )
        try:
            await self.records.create_managed_participant(participant)
        except TransportError as e:
            return OperationResult.fail(e)
        return OperationResult.ok(participant)

    async def set_points(
        self,
        event: Event,
        participant_id: str,
        points: int,
        caller_id: Optional[str],
    ) -> OperationResult[ManagedParticipant]:
        """Points may be any integer, negative included."""
        if not event.is_creator(caller_id):
            return OperationResult.fail(AuthorizationError())
        if isinstance(points, bool) or not isinstance(points, int):
            return OperationResult.fail(
                ValidationError("Please enter a valid number for points", field="points")
            )

        try:
            participant = await self.records.get_managed_participant(participant_id)
            if participant is None or participant.event_id != event.event_id:
                return OperationResult.fail(
                    ValidationError("Unknown participant", field="participant_id")
                )
            await self.records.write_points(participant_id, points)
        except TransportError as e:
            return OperationResult.fail(e)

        logger.info(
            "managed_points_set",
            event_id=event.event_id,
            participant_id=participant_id,
            points=points,
        )
        return OperationResult.ok(participant.with_points(points))
