"""
Redemption Service - merchant offers and point redemptions
"""
import logging
from typing import Optional
from uuid import UUID

from panelhub.core.exceptions import NotFoundError, ValidationException
from panelhub.database.repository import PanelRepository
from panelhub.models.panel import (
    MerchantOfferRecord, OfferCreate, OfferList, OfferUpdate, PanelistProfileRecord,
    RedemptionList, RedemptionRequest, RedemptionResult
)
from panelhub.services.activity_service import ActivityService

logger = logging.getLogger(__name__)


class RedemptionService:

    def __init__(self, repository: PanelRepository):
        self.repository = repository
        self.activity = ActivityService(repository)

    # =========================================================================
    # OFFERS
    # =========================================================================

    async def list_offers(
        self,
        min_points: Optional[int] = None,
        max_points: Optional[int] = None,
        limit: int = 20,
        offset: int = 0,
        include_inactive: bool = False,
    ) -> OfferList:
        offers = await self.repository.list_offers(
            None if include_inactive else True, min_points, max_points, limit, offset
        )
        return OfferList(offers=offers, total=len(offers))

    async def get_offer(self, offer_id: UUID) -> MerchantOfferRecord:
        offer = await self.repository.get_offer(offer_id)
        if offer is None:
            raise NotFoundError("Offer not found")
        return offer

    async def create_offer(self, request: OfferCreate, admin_id: str) -> MerchantOfferRecord:
        offer = await self.repository.create_offer(request.model_dump())
        logger.info(f"Created offer {offer.id} ({offer.title}, {offer.points_required} points)")
        await self.activity.log(admin_id, "offer_created", f"Created offer: {offer.title}", {"offer_id": str(offer.id)})
        return offer

    async def update_offer(self, offer_id: UUID, update: OfferUpdate, admin_id: str) -> MerchantOfferRecord:
        fields = {
            key: value for key, value in update.model_dump(exclude_unset=True).items()
            if value is not None or key == "description"
        }
        if not fields:
            return await self.get_offer(offer_id)

        offer = await self.repository.update_offer(offer_id, fields)
        if offer is None:
            raise NotFoundError("Offer not found")
        logger.info(f"Admin {admin_id} updated offer {offer_id}: {sorted(fields)}")
        return offer

    # =========================================================================
    # REDEMPTIONS
    # =========================================================================

    def _insufficient(self, required: int, available: int) -> ValidationException:
        return ValidationException({
            "message": "Insufficient points",
            "required": required,
            "available": available,
        })

    async def redeem(self, panelist: PanelistProfileRecord, request: RedemptionRequest) -> RedemptionResult:
        """Debit the offer's cost exactly once; never overdraws"""
        offer = await self.get_offer(request.offer_id)
        if not offer.is_active:
            raise ValidationException("Offer is not active")
        if panelist.points_balance < offer.points_required:
            raise self._insufficient(offer.points_required, panelist.points_balance)

        redemption = await self.repository.redeem_offer(panelist.id, offer, created_by=panelist.user_id)
        profile = await self.repository.get_panelist(panelist.id)
        if redemption is None:
            # Balance moved under us between the read and the conditional debit
            available = profile.points_balance if profile else 0
            raise self._insufficient(offer.points_required, available)

        logger.info(f"Panelist {panelist.id} redeemed offer {offer.id} for {offer.points_required} points")
        await self.activity.log(
            panelist.user_id, "points_redeemed", f"Redeemed {offer.points_required} points for {offer.title}",
            {"offer_id": str(offer.id), "redemption_id": str(redemption.id)}
        )
        return RedemptionResult(
            redemption_id=redemption.id,
            points_spent=redemption.points_spent,
            new_balance=profile.points_balance,
            total_redeemed=profile.total_points_redeemed
        )

    async def list_redemptions(
        self, panelist: PanelistProfileRecord, status: Optional[str] = None, limit: int = 10, offset: int = 0
    ) -> RedemptionList:
        redemptions = await self.repository.list_redemptions(panelist.id, status, limit, offset)
        return RedemptionList(redemptions=redemptions, total=len(redemptions))
