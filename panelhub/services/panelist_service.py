"""
Panelist Service - profiles and account state
"""
import logging
from uuid import UUID

from panelhub.core.exceptions import NotFoundError
from panelhub.database.repository import PanelRepository
from panelhub.models.panel import PanelistProfileRecord, ProfileUpdate
from panelhub.services.activity_service import ActivityService
from panelhub.services.audience_qualifier import AudienceQualifierService

logger = logging.getLogger(__name__)


class PanelistService:

    def __init__(self, repository: PanelRepository):
        self.repository = repository
        self.activity = ActivityService(repository)

    async def get_or_create(self, user_id: str) -> PanelistProfileRecord:
        profile = await self.repository.get_panelist_by_user(user_id)
        if profile is None:
            profile = await self.repository.create_panelist(user_id)
            logger.info(f"Created panelist profile {profile.id} for user {user_id}")
        return profile

    async def get_profile(self, panelist_id: UUID) -> PanelistProfileRecord:
        profile = await self.repository.get_panelist(panelist_id)
        if profile is None:
            raise NotFoundError("Panelist profile not found")
        return profile

    async def update_profile(self, user_id: str, update: ProfileUpdate) -> PanelistProfileRecord:
        """Merge attributes into profile_data, then requalify if anything changed"""
        profile = await self.get_or_create(user_id)

        merged = dict(profile.profile_data)
        for key, value in update.profile_data.items():
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = value

        if merged == profile.profile_data:
            return profile

        updated = await self.repository.update_profile_data(profile.id, merged)
        if updated is None:
            raise NotFoundError("Panelist profile not found")

        await AudienceQualifierService(self.repository).requalify_panelist(updated.id)
        await self.activity.log(
            user_id, "profile_updated", "Updated panelist profile",
            {"changed_keys": sorted(update.profile_data.keys())}
        )
        return updated

    async def set_active(self, panelist_id: UUID, is_active: bool, admin_id: str) -> PanelistProfileRecord:
        profile = await self.repository.set_panelist_active(panelist_id, is_active)
        if profile is None:
            raise NotFoundError("Panelist profile not found")

        state = "activated" if is_active else "deactivated"
        logger.info(f"Admin {admin_id} {state} panelist {panelist_id}")
        await self.activity.log(
            admin_id, f"panelist_{state}", f"Panelist {panelist_id} {state}",
            {"panelist_id": str(panelist_id)}
        )
        return profile
