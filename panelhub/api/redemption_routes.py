"""
Redemption Routes - spending points on merchant offers
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query
from typing import Optional
import logging

from panelhub.database.panel_repository import get_repository
from panelhub.database.repository import PanelRepository
from panelhub.middleware.auth_middleware import get_current_panelist
from panelhub.middleware.role_based_auth import require_permission
from panelhub.models.auth import Principal
from panelhub.models.panel import (
    PanelistProfileRecord, RedemptionList, RedemptionRequest, RedemptionResult, RedemptionStatus
)
from panelhub.services.redemption_service import RedemptionService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/redemptions", tags=["Redemptions"])


def get_redemption_service(repository: PanelRepository = Depends(get_repository)) -> RedemptionService:
    return RedemptionService(repository)


@router.get("", response_model=RedemptionList)
async def list_redemptions(
    status_filter: Optional[RedemptionStatus] = Query(None, alias="status"),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: Principal = Depends(require_permission("view_own_profile")),
    panelist: PanelistProfileRecord = Depends(get_current_panelist),
    service: RedemptionService = Depends(get_redemption_service)
):
    try:
        return await service.list_redemptions(panelist, status_filter, limit, offset)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing redemptions for {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch redemptions"
        )


@router.post("", response_model=RedemptionResult, status_code=status.HTTP_201_CREATED)
async def redeem_offer(
    request: RedemptionRequest,
    current_user: Principal = Depends(require_permission("redeem_points")),
    panelist: PanelistProfileRecord = Depends(get_current_panelist),
    service: RedemptionService = Depends(get_redemption_service)
):
    """
    Redeem an offer; 400 with required/available points when the balance is short
    """
    try:
        return await service.redeem(panelist, request)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error redeeming offer {request.offer_id} for {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process redemption"
        )
