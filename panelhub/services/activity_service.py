"""
Activity Service - best-effort activity feed
"""
import logging
from typing import Any, Dict, List, Optional

from panelhub.database.repository import PanelRepository
from panelhub.models.panel import ActivityRecord

logger = logging.getLogger(__name__)


class ActivityService:

    def __init__(self, repository: PanelRepository):
        self.repository = repository

    async def log(
        self, user_id: str, activity_type: str, description: str, metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Never raises; a failed write is logged and the caller carries on"""
        try:
            await self.repository.log_activity(user_id, activity_type, description, metadata)
        except Exception as e:
            logger.warning(f"Activity log write failed ({activity_type}) for user {user_id}: {e}")

    async def list_for_user(self, user_id: str, limit: int = 20) -> List[ActivityRecord]:
        return await self.repository.list_activity(user_id, limit)
