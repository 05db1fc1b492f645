"""Event, roster, backing and leaderboard endpoints."""

from typing import Optional

from fastapi import APIRouter, Query

from backr.api.deps import CallerId, Events, RequiredCallerId, unwrap_result
from backr.config import get_settings
from backr.engine.result import OperationResult
from backr.schemas import (
    ActionResponse,
    BackRequest,
    CreateAdminEventRequest,
    CreateEventRequest,
    ErrorResponse,
    EventListResponse,
    EventResponse,
    LeaderboardResponse,
    ManagedParticipantRequest,
    ManagedParticipantResponse,
    PointsRequest,
    ToggleRequest,
)

router = APIRouter(prefix="/events", tags=["Events"])

settings = get_settings()


def _action_response(result: OperationResult) -> ActionResponse:
    unwrap_result(result)
    if result.is_duplicate:
        return ActionResponse(
            created=False,
            record_id=result.error.details.get("recordId", ""),
            notice=result.notice,
        )
    return ActionResponse(created=True, record_id=result.value.record_id)


@router.post(
    "",
    response_model=EventResponse,
    status_code=201,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid event"},
        403: {"model": ErrorResponse, "description": "Not signed in"},
    },
)
async def create_event(body: CreateEventRequest, caller_id: CallerId, events: Events):
    """Create a public event scored by backer count."""
    result = await events.create_event(body.to_draft(), caller_id)
    return EventResponse.from_event(unwrap_result(result))


@router.post(
    "/admin",
    response_model=EventResponse,
    status_code=201,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid event"},
        403: {"model": ErrorResponse, "description": "Not signed in"},
    },
)
async def create_admin_event(
    body: CreateAdminEventRequest,
    caller_id: CallerId,
    events: Events,
):
    """Create an admin-only event scored by creator-assigned points.

    Registration and backing are always off for these events.
    """
    result = await events.create_admin_event(
        body.to_draft(), caller_id, body.participant_names
    )
    return EventResponse.from_event(unwrap_result(result))


@router.get("", response_model=EventListResponse)
async def list_events(
    events: Events,
    q: Optional[str] = Query(default=None, description="Search title, creator or tag"),
    limit: Optional[int] = Query(default=None, ge=1, le=500),
):
    """List public events, newest first."""
    result = await events.list_events(q, limit or settings.event_list_limit)
    return EventListResponse(
        events=[EventResponse.from_event(e) for e in unwrap_result(result)]
    )


@router.get(
    "/{event_id}",
    response_model=EventResponse,
    responses={404: {"model": ErrorResponse, "description": "Event not found"}},
)
async def get_event(event_id: str, events: Events):
    result = await events.get_event(event_id)
    return EventResponse.from_event(unwrap_result(result))


@router.patch(
    "/{event_id}/toggles",
    response_model=EventResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Unknown toggle"},
        403: {"model": ErrorResponse, "description": "Not the creator"},
        404: {"model": ErrorResponse, "description": "Event not found"},
    },
)
async def set_toggle(
    event_id: str,
    body: ToggleRequest,
    caller_id: CallerId,
    events: Events,
):
    """Creator-only: flip registration or backing."""
    result = await events.set_toggle(event_id, body.field, body.value, caller_id)
    return EventResponse.from_event(unwrap_result(result))


@router.post(
    "/{event_id}/participations",
    response_model=ActionResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Not signed in"},
        404: {"model": ErrorResponse, "description": "Event not found"},
        409: {"model": ErrorResponse, "description": "Registration disabled"},
    },
)
async def register(event_id: str, caller_id: RequiredCallerId, events: Events):
    """Register the caller for the event. Registering twice is a no-op."""
    result = await events.register(event_id, caller_id)
    return _action_response(result)


@router.post(
    "/{event_id}/backings",
    response_model=ActionResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Not signed in"},
        404: {"model": ErrorResponse, "description": "Event not found"},
        409: {"model": ErrorResponse, "description": "Disabled, quota reached or unknown target"},
    },
)
async def back(
    event_id: str,
    body: BackRequest,
    caller_id: RequiredCallerId,
    events: Events,
):
    """Back a registered participant. Backing the same one twice is a no-op."""
    result = await events.back(event_id, caller_id, body.target_user_id)
    return _action_response(result)


@router.post(
    "/{event_id}/managed-participants",
    response_model=ManagedParticipantResponse,
    status_code=201,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid name or event mode"},
        403: {"model": ErrorResponse, "description": "Not the creator"},
    },
)
async def add_managed_participant(
    event_id: str,
    body: ManagedParticipantRequest,
    caller_id: CallerId,
    events: Events,
):
    result = await events.add_managed_participant(event_id, body.name, caller_id)
    return ManagedParticipantResponse.from_participant(unwrap_result(result))


@router.put(
    "/{event_id}/managed-participants/{participant_id}/points",
    response_model=ManagedParticipantResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Unknown participant"},
        403: {"model": ErrorResponse, "description": "Not the creator"},
    },
)
async def set_points(
    event_id: str,
    participant_id: str,
    body: PointsRequest,
    caller_id: CallerId,
    events: Events,
):
    """Creator-only: overwrite a managed participant's points."""
    result = await events.set_points(event_id, participant_id, body.points, caller_id)
    return ManagedParticipantResponse.from_participant(unwrap_result(result))


@router.get(
    "/{event_id}/leaderboard",
    response_model=LeaderboardResponse,
    responses={404: {"model": ErrorResponse, "description": "Event not found"}},
)
async def get_leaderboard(event_id: str, caller_id: CallerId, events: Events):
    """Current ranking, plus what the caller may do when signed in."""
    result = await events.leaderboard(event_id, caller_id)
    return LeaderboardResponse.from_view(unwrap_result(result))
