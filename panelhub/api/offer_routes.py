"""
Offer Routes - public offer catalogue and offer administration
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query
from typing import Optional
from uuid import UUID
import logging

from panelhub.database.panel_repository import get_repository
from panelhub.database.repository import PanelRepository
from panelhub.middleware.role_based_auth import require_permission
from panelhub.models.auth import Principal
from panelhub.models.panel import MerchantOfferRecord, OfferCreate, OfferList, OfferUpdate
from panelhub.services.redemption_service import RedemptionService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/offers", tags=["Offers"])


def get_redemption_service(repository: PanelRepository = Depends(get_repository)) -> RedemptionService:
    return RedemptionService(repository)


@router.get("", response_model=OfferList)
async def list_offers(
    min_points: Optional[int] = Query(None, ge=0),
    max_points: Optional[int] = Query(None, ge=0),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: RedemptionService = Depends(get_redemption_service)
):
    """
    Active merchant offers, cheapest first (public)
    """
    try:
        return await service.list_offers(min_points, max_points, limit, offset)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing offers: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch offers"
        )


@router.get("/{offer_id}", response_model=MerchantOfferRecord)
async def get_offer(
    offer_id: UUID,
    service: RedemptionService = Depends(get_redemption_service)
):
    try:
        return await service.get_offer(offer_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching offer {offer_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch offer"
        )


@router.post("", response_model=MerchantOfferRecord, status_code=status.HTTP_201_CREATED)
async def create_offer(
    request: OfferCreate,
    current_user: Principal = Depends(require_permission("manage_offers")),
    service: RedemptionService = Depends(get_redemption_service)
):
    try:
        return await service.create_offer(request, current_user.id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating offer: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create offer"
        )


@router.patch("/{offer_id}", response_model=MerchantOfferRecord)
async def update_offer(
    offer_id: UUID,
    request: OfferUpdate,
    current_user: Principal = Depends(require_permission("manage_offers")),
    service: RedemptionService = Depends(get_redemption_service)
):
    try:
        return await service.update_offer(offer_id, request, current_user.id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating offer {offer_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update offer"
        )
