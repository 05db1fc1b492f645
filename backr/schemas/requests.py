"""API request schemas.

Shape checks only. Content rules (blank title, quota below one, unknown
toggle) are enforced by the engine so that every entry point reports them
the same way.
"""

from pydantic import Field, StrictBool, StrictInt

from backr.engine.controller import EventDraft
from backr.schemas.common import BaseSchema


class CreateEventRequest(BaseSchema):
    """Public event creation request."""

    title: str = ""
    description: str = ""
    tag: str = Field(default="", description="Single tag, leading '#' optional")
    max_backings_per_user: int = Field(default=1, alias="maxBackingsPerUser")
    registration_enabled: bool = Field(default=True, alias="registrationEnabled")
    backing_enabled: bool = Field(default=True, alias="backingEnabled")
    is_public: bool = Field(default=True, alias="isPublic")

    def to_draft(self) -> EventDraft:
        return EventDraft(
            title=self.title,
            description=self.description,
            tag=self.tag,
            max_backings_per_user=self.max_backings_per_user,
            registration_enabled=self.registration_enabled,
            backing_enabled=self.backing_enabled,
            is_public=self.is_public,
        )


class CreateAdminEventRequest(BaseSchema):
    """Admin-only event creation request with optional seeded participants."""

    title: str = ""
    description: str = ""
    tag: str = ""
    is_public: bool = Field(default=True, alias="isPublic")
    participant_names: list[str] = Field(default_factory=list, alias="participantNames")

    def to_draft(self) -> EventDraft:
        return EventDraft(
            title=self.title,
            description=self.description,
            tag=self.tag,
            is_public=self.is_public,
        )


class ToggleRequest(BaseSchema):
    """Flip one creator toggle."""

    field: str = Field(..., description="registrationEnabled or backingEnabled")
    value: StrictBool


class BackRequest(BaseSchema):
    target_user_id: str = Field(..., alias="targetUserId", min_length=1)


class ManagedParticipantRequest(BaseSchema):
    name: str = ""


class PointsRequest(BaseSchema):
    points: StrictInt
