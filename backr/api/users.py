"""User statistics endpoints."""

from fastapi import APIRouter

from backr.api.deps import Stats, unwrap_result
from backr.schemas import ErrorResponse, UserStatsResponse

router = APIRouter(prefix="/users", tags=["Users"])


@router.get(
    "/{user_id}/stats",
    response_model=UserStatsResponse,
    responses={503: {"model": ErrorResponse, "description": "Store unavailable"}},
)
async def get_user_stats(user_id: str, stats: Stats):
    """Display counters for a profile page."""
    result = await stats.get_stats(user_id)
    return UserStatsResponse.from_stats(unwrap_result(result))
