"""
Engine Data Models.

Immutable record types for the four stored collections plus the derived
leaderboard entry. Documents are stored with camelCase field names; every
record type converts to and from that shape.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        return datetime.fromisoformat(str(value))
    return utcnow()


class Collection(str, Enum):
    """Logical collections held by the document store."""

    EVENTS = "events"
    PARTICIPATIONS = "participations"
    BACKINGS = "backings"
    MANAGED_PARTICIPANTS = "managed_participants"
    USERS = "users"


def participation_id(event_id: str, user_id: str) -> str:
    """Document id of a participation: its composite identity."""
    return f"{event_id}_{user_id}"


def backing_id(event_id: str, backer_id: str, target_user_id: str) -> str:
    """Document id of a backing: its composite identity."""
    return f"{event_id}_{backer_id}_{target_user_id}"


def normalize_tag(raw: str) -> str:
    """'  #Sports ' -> 'Sports'."""
    tag = (raw or "").strip()
    if tag.startswith("#"):
        tag = tag[1:]
    return tag.strip()


class ToggleField(str, Enum):
    """Event fields the creator may flip after creation."""

    REGISTRATION_ENABLED = "registration_enabled"
    BACKING_ENABLED = "backing_enabled"


@dataclass(frozen=True)
class Event:
    """
    Event configuration.

    ``creator_id``, ``is_admin_only`` and ``max_backings_per_user`` are fixed
    at creation. The two toggles are the only mutable fields.
    """

    event_id: str
    title: str
    description: str
    tag: str
    creator_id: str
    creator_name: str = ""
    is_admin_only: bool = False
    registration_enabled: bool = True
    backing_enabled: bool = True
    max_backings_per_user: int = 1
    is_public: bool = True
    created_at: datetime = field(default_factory=utcnow)

    @property
    def tag_lower(self) -> str:
        return self.tag.lower()

    def is_creator(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and user_id == self.creator_id

    def with_toggle(self, toggle: ToggleField, value: bool) -> "Event":
        """Return new instance with one toggle changed."""
        return replace(self, **{toggle.value: value})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.event_id,
            "title": self.title,
            "description": self.description,
            "tag": self.tag,
            "tagLower": self.tag_lower,
            "creatorId": self.creator_id,
            "creatorName": self.creator_name,
            "isAdminOnly": self.is_admin_only,
            "registrationEnabled": self.registration_enabled,
            "backingEnabled": self.backing_enabled,
            "maxBackingsPerUser": self.max_backings_per_user,
            "isPublic": self.is_public,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "Event":
        return cls(
            event_id=doc["id"],
            title=doc.get("title", ""),
            description=doc.get("description", ""),
            tag=doc.get("tag", ""),
            creator_id=doc.get("creatorId", ""),
            creator_name=doc.get("creatorName", ""),
            is_admin_only=bool(doc.get("isAdminOnly", False)),
            registration_enabled=bool(doc.get("registrationEnabled", False)),
            backing_enabled=bool(doc.get("backingEnabled", False)),
            max_backings_per_user=int(doc.get("maxBackingsPerUser", 0)),
            is_public=bool(doc.get("isPublic", True)),
            created_at=_parse_ts(doc.get("createdAt")),
        )


@dataclass(frozen=True)
class Participation:
    """A user's registration for an event. Identity: (event_id, user_id)."""

    event_id: str
    user_id: str
    display_name: str = ""
    created_at: datetime = field(default_factory=utcnow)

    @property
    def record_id(self) -> str:
        return participation_id(self.event_id, self.user_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.record_id,
            "eventId": self.event_id,
            "userId": self.user_id,
            "displayName": self.display_name,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "Participation":
        return cls(
            event_id=doc["eventId"],
            user_id=doc["userId"],
            display_name=doc.get("displayName", ""),
            created_at=_parse_ts(doc.get("createdAt")),
        )


@dataclass(frozen=True)
class Backing:
    """Directed support record. Identity: (event_id, backer_id, target_user_id)."""

    event_id: str
    backer_id: str
    target_user_id: str
    created_at: datetime = field(default_factory=utcnow)

    @property
    def record_id(self) -> str:
        return backing_id(self.event_id, self.backer_id, self.target_user_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.record_id,
            "eventId": self.event_id,
            "backerId": self.backer_id,
            "targetUserId": self.target_user_id,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "Backing":
        return cls(
            event_id=doc["eventId"],
            backer_id=doc["backerId"],
            target_user_id=doc["targetUserId"],
            created_at=_parse_ts(doc.get("createdAt")),
        )


@dataclass(frozen=True)
class ManagedParticipant:
    """Creator-scored entry of an admin-only event."""

    participant_id: str
    event_id: str
    name: str
    points: int = 0
    created_at: datetime = field(default_factory=utcnow)

    def with_points(self, points: int) -> "ManagedParticipant":
        return replace(self, points=points)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.participant_id,
            "eventId": self.event_id,
            "name": self.name,
            "points": self.points,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "ManagedParticipant":
        return cls(
            participant_id=doc["id"],
            event_id=doc["eventId"],
            name=doc.get("name", ""),
            points=int(doc.get("points", 0)),
            created_at=_parse_ts(doc.get("createdAt")),
        )


class RankTier(Enum):
    """Podium tag for the top three positions."""

    FIRST = "1st"
    SECOND = "2nd"
    THIRD = "3rd"

    @classmethod
    def for_position(cls, position: int) -> Optional["RankTier"]:
        return {1: cls.FIRST, 2: cls.SECOND, 3: cls.THIRD}.get(position)


@dataclass(frozen=True)
class LeaderboardEntry:
    """Derived, never stored."""

    position: int
    subject_id: str
    display_name: str
    score: int
    tier: Optional[RankTier] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position,
            "subjectId": self.subject_id,
            "displayName": self.display_name,
            "score": self.score,
            "tier": self.tier.value if self.tier else None,
        }
