"""API response schemas."""

from datetime import datetime
from typing import Optional

from pydantic import Field

from backr.engine.coordinator import LeaderboardView, ViewerSummary
from backr.engine.models import Event, LeaderboardEntry, ManagedParticipant
from backr.schemas.common import BaseSchema
from backr.services.stats import UserStats


# =============================================================================
# Event Responses
# =============================================================================


class EventResponse(BaseSchema):
    """Event configuration."""

    id: str
    title: str
    description: str
    tag: str
    creator_id: str = Field(..., alias="creatorId")
    creator_name: str = Field(default="", alias="creatorName")
    is_admin_only: bool = Field(..., alias="isAdminOnly")
    registration_enabled: bool = Field(..., alias="registrationEnabled")
    backing_enabled: bool = Field(..., alias="backingEnabled")
    max_backings_per_user: int = Field(..., alias="maxBackingsPerUser")
    is_public: bool = Field(..., alias="isPublic")
    created_at: datetime = Field(..., alias="createdAt")

    @classmethod
    def from_event(cls, event: Event) -> "EventResponse":
        return cls(
            id=event.event_id,
            title=event.title,
            description=event.description,
            tag=event.tag,
            creator_id=event.creator_id,
            creator_name=event.creator_name,
            is_admin_only=event.is_admin_only,
            registration_enabled=event.registration_enabled,
            backing_enabled=event.backing_enabled,
            max_backings_per_user=event.max_backings_per_user,
            is_public=event.is_public,
            created_at=event.created_at,
        )


class EventListResponse(BaseSchema):
    events: list[EventResponse]


# =============================================================================
# Action Responses
# =============================================================================


class ActionResponse(BaseSchema):
    """Outcome of a registration or backing.

    A repeat of an action already recorded is not an error: ``created`` is
    false and ``notice`` carries a neutral message.
    """

    created: bool
    record_id: str = Field(..., alias="recordId")
    notice: Optional[str] = None


class ManagedParticipantResponse(BaseSchema):
    id: str
    event_id: str = Field(..., alias="eventId")
    name: str
    points: int

    @classmethod
    def from_participant(cls, participant: ManagedParticipant) -> "ManagedParticipantResponse":
        return cls(
            id=participant.participant_id,
            event_id=participant.event_id,
            name=participant.name,
            points=participant.points,
        )


# =============================================================================
# Leaderboard Responses
# =============================================================================


class LeaderboardEntryResponse(BaseSchema):
    position: int
    subject_id: str = Field(..., alias="subjectId")
    display_name: str = Field(..., alias="displayName")
    score: int
    tier: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: LeaderboardEntry) -> "LeaderboardEntryResponse":
        return cls(
            position=entry.position,
            subject_id=entry.subject_id,
            display_name=entry.display_name,
            score=entry.score,
            tier=entry.tier.value if entry.tier else None,
        )


class ViewerSummaryResponse(BaseSchema):
    user_id: str = Field(..., alias="userId")
    is_creator: bool = Field(..., alias="isCreator")
    is_participant: bool = Field(..., alias="isParticipant")
    backed_targets: list[str] = Field(default_factory=list, alias="backedTargets")
    remaining_quota: int = Field(..., alias="remainingQuota")

    @classmethod
    def from_summary(cls, summary: ViewerSummary) -> "ViewerSummaryResponse":
        return cls(
            user_id=summary.user_id,
            is_creator=summary.is_creator,
            is_participant=summary.is_participant,
            backed_targets=list(summary.backed_targets),
            remaining_quota=summary.remaining_quota,
        )


class LeaderboardResponse(BaseSchema):
    event_id: str = Field(..., alias="eventId")
    state: str
    stale: bool = False
    event: Optional[EventResponse] = None
    entries: list[LeaderboardEntryResponse] = Field(default_factory=list)
    viewer: Optional[ViewerSummaryResponse] = None

    @classmethod
    def from_view(cls, view: LeaderboardView) -> "LeaderboardResponse":
        return cls(
            event_id=view.event_id,
            state=view.state.value,
            stale=view.stale,
            event=EventResponse.from_event(view.event) if view.event else None,
            entries=[LeaderboardEntryResponse.from_entry(e) for e in view.entries],
            viewer=ViewerSummaryResponse.from_summary(view.viewer) if view.viewer else None,
        )


# =============================================================================
# User Responses
# =============================================================================


class UserStatsResponse(BaseSchema):
    user_id: str = Field(..., alias="userId")
    events_created: int = Field(..., alias="eventsCreated")
    participations: int
    backings_given: int = Field(..., alias="backingsGiven")
    backers_received: int = Field(..., alias="backersReceived")

    @classmethod
    def from_stats(cls, stats: UserStats) -> "UserStatsResponse":
        return cls(
            user_id=stats.user_id,
            events_created=stats.events_created,
            participations=stats.participations,
            backings_given=stats.backings_given,
            backers_received=stats.backers_received,
        )
