"""Error types for the consistency engine.

Every structural failure is a typed value. Engine components return these
inside an ``OperationResult``; only ``TransportError`` is raised, by the
store adapters, and caught by the subscription coordinator.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes."""

    INTERNAL_ERROR = "INTERNAL_ERROR"

    VALIDATION_FAILED = "VALIDATION_FAILED"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    FEATURE_DISABLED = "FEATURE_DISABLED"
    DUPLICATE = "DUPLICATE"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    UNKNOWN_TARGET = "UNKNOWN_TARGET"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    TRANSPORT_FAILED = "TRANSPORT_FAILED"


class BackrError(Exception):
    """Base error.

    Attributes:
        code: Error code for programmatic handling
        message: User-facing message
        details: Additional error details
        recoverable: Whether retrying the same call can succeed later
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
        recoverable: bool = True,
    ):
        self.code = code.value if isinstance(code, ErrorCode) else code
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Body of the HTTP error envelope."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class ValidationError(BackrError):
    """Bad input shape. The form stays editable."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(
            code=ErrorCode.VALIDATION_FAILED,
            message=message,
            details={"field": field} if field else {},
            recoverable=True,
        )


class AuthorizationError(BackrError):
    """Caller lacks the role required for the action."""

    def __init__(self, message: str = "Only the event creator can do this"):
        super().__init__(
            code=ErrorCode.NOT_AUTHORIZED,
            message=message,
            recoverable=False,
        )


class DisabledError(BackrError):
    """A feature toggle is off for the event."""

    def __init__(self, feature: str, event_id: str):
        super().__init__(
            code=ErrorCode.FEATURE_DISABLED,
            message=f"{feature.capitalize()} is disabled for this event",
            details={"feature": feature, "eventId": event_id},
            recoverable=False,
        )


class DuplicateError(BackrError):
    """The record already exists. Callers treat this as a neutral no-op."""

    def __init__(self, message: str, record_id: str):
        super().__init__(
            code=ErrorCode.DUPLICATE,
            message=message,
            details={"recordId": record_id},
            recoverable=True,
        )


class QuotaExceededError(BackrError):
    """Backer already used every backing the event allows."""

    def __init__(self, limit: int, used: int):
        super().__init__(
            code=ErrorCode.QUOTA_EXCEEDED,
            message="You have reached the max backings for this event",
            details={"limit": limit, "used": used},
            recoverable=False,
        )


class UnknownTargetError(BackrError):
    """Backing target is not a registered participant of the event."""

    def __init__(self, event_id: str, target_user_id: str):
        super().__init__(
            code=ErrorCode.UNKNOWN_TARGET,
            message="That participant is not registered for this event",
            details={"eventId": event_id, "targetUserId": target_user_id},
            recoverable=True,
        )


class NotFoundError(BackrError):
    """Event does not exist."""

    def __init__(self, event_id: str):
        super().__init__(
            code=ErrorCode.EVENT_NOT_FOUND,
            message=f"Event not found: {event_id}",
            details={"eventId": event_id},
            recoverable=False,
        )


class TransportError(BackrError):
    """Document store unreachable or the stream broke."""

    def __init__(self, message: str = "Document store unavailable", cause: str | None = None):
        super().__init__(
            code=ErrorCode.TRANSPORT_FAILED,
            message=message,
            details={"cause": cause} if cause else {},
            recoverable=True,
        )
