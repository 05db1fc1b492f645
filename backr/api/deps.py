"""API dependencies: caller identity and services."""

from typing import Annotated, Optional

from fastapi import Depends, Header, Request

from backr.engine.collaborators import StaticSessionProvider, StoreDirectory
from backr.engine.result import OperationResult
from backr.services.events import EventService
from backr.services.stats import UserStatsService
from backr.store.records import RecordStore
from backr.utils.errors import AuthorizationError


def get_session(
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> StaticSessionProvider:
    """Caller identity as asserted by the upstream gateway.

    Args:
        x_user_id: Authenticated user id, absent for anonymous callers

    Returns:
        Request-scoped session provider
    """
    user_id = (x_user_id or "").strip() or None
    return StaticSessionProvider(user_id)


def get_caller_id(
    session: Annotated[StaticSessionProvider, Depends(get_session)],
) -> Optional[str]:
    return session.current_user_id()


def require_caller_id(
    caller_id: Annotated[Optional[str], Depends(get_caller_id)],
) -> str:
    if not caller_id:
        raise AuthorizationError("You must be signed in to do this")
    return caller_id


def get_records(request: Request) -> RecordStore:
    return request.app.state.records


def get_event_service(
    records: Annotated[RecordStore, Depends(get_records)],
) -> EventService:
    return EventService(records, StoreDirectory(records))


def get_stats_service(
    records: Annotated[RecordStore, Depends(get_records)],
) -> UserStatsService:
    return UserStatsService(records)


def unwrap_result(result: OperationResult):
    """Value of a successful result; the carried error is raised otherwise.

    Duplicates are not raised: the caller turns them into a neutral notice.
    """
    if result.success or result.is_duplicate:
        return result.value
    raise result.error


# Type aliases for dependency injection
CallerId = Annotated[Optional[str], Depends(get_caller_id)]
RequiredCallerId = Annotated[str, Depends(require_caller_id)]
Events = Annotated[EventService, Depends(get_event_service)]
Stats = Annotated[UserStatsService, Depends(get_stats_service)]
