"""Pydantic schemas for API requests and responses."""

from backr.schemas.common import BaseSchema, ErrorDetail, ErrorResponse
from backr.schemas.requests import (
    BackRequest,
    CreateAdminEventRequest,
    CreateEventRequest,
    ManagedParticipantRequest,
    PointsRequest,
    ToggleRequest,
)
from backr.schemas.responses import (
    ActionResponse,
    EventListResponse,
    EventResponse,
    LeaderboardEntryResponse,
    LeaderboardResponse,
    ManagedParticipantResponse,
    UserStatsResponse,
    ViewerSummaryResponse,
)

__all__ = [
    # Common
    "BaseSchema",
    "ErrorDetail",
    "ErrorResponse",
    # Requests
    "BackRequest",
    "CreateAdminEventRequest",
    "CreateEventRequest",
    "ManagedParticipantRequest",
    "PointsRequest",
    "ToggleRequest",
    # Responses
    "ActionResponse",
    "EventListResponse",
    "EventResponse",
    "LeaderboardEntryResponse",
    "LeaderboardResponse",
    "ManagedParticipantResponse",
    "UserStatsResponse",
    "ViewerSummaryResponse",
]
