"""User statistics for profile display.

Counts come from the store's ``count`` and are never used to enforce
anything.
"""

from dataclasses import dataclass
from typing import Any, Dict

from backr.engine.models import Collection
from backr.engine.result import OperationResult
from backr.logging_config import get_logger
from backr.store.records import RecordStore
from backr.utils.errors import TransportError

logger = get_logger(__name__)


@dataclass(frozen=True)
class UserStats:
    user_id: str
    events_created: int = 0
    participations: int = 0
    backings_given: int = 0
    backers_received: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "eventsCreated": self.events_created,
            "participations": self.participations,
            "backingsGiven": self.backings_given,
            "backersReceived": self.backers_received,
        }


class UserStatsService:
    """Service for per-user display counters."""

    def __init__(self, records: RecordStore):
        self.records = records

    async def get_stats(self, user_id: str) -> OperationResult[UserStats]:
        try:
            stats = UserStats(
                user_id=user_id,
                events_created=await self.records.count(
                    Collection.EVENTS, creatorId=user_id
                ),
                participations=await self.records.count(
                    Collection.PARTICIPATIONS, userId=user_id
                ),
                backings_given=await self.records.count(
                    Collection.BACKINGS, backerId=user_id
                ),
                backers_received=await self.records.count(
                    Collection.BACKINGS, targetUserId=user_id
                ),
            )
        except TransportError as e:
            logger.warning("user_stats_unavailable", user_id=user_id, error=e.message)
            return OperationResult.fail(e)

        logger.debug("user_stats_loaded", **stats.to_dict())
        return OperationResult.ok(stats)
