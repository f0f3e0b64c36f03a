"""
Panelist Routes - own profile, balance, point ledger and activity
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query
from typing import List, Optional
import logging

from panelhub.database.panel_repository import get_repository
from panelhub.database.repository import PanelRepository
from panelhub.middleware.auth_middleware import get_current_panelist
from panelhub.middleware.role_based_auth import require_permission
from panelhub.models.auth import Principal
from panelhub.models.panel import (
    ActivityRecord, PanelistProfileRecord, PointLedgerList, PointsBalance,
    ProfileUpdate, TransactionType
)
from panelhub.services.activity_service import ActivityService
from panelhub.services.panelist_service import PanelistService
from panelhub.services.points_service import PointsService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Panelist"])

# =============================================================================
# PROFILE
# =============================================================================

@router.get("/panelist/profile", response_model=PanelistProfileRecord)
async def get_profile(
    current_user: Principal = Depends(require_permission("view_own_profile")),
    panelist: PanelistProfileRecord = Depends(get_current_panelist)
):
    return panelist


@router.patch("/panelist/profile", response_model=PanelistProfileRecord)
async def update_profile(
    request: ProfileUpdate,
    current_user: Principal = Depends(require_permission("view_own_profile")),
    panelist: PanelistProfileRecord = Depends(get_current_panelist),
    repository: PanelRepository = Depends(get_repository)
):
    """
    Merge attributes into profile_data (null removes one) and requalify
    """
    try:
        return await PanelistService(repository).update_profile(current_user.id, request)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating profile for {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update profile"
        )

# =============================================================================
# POINTS
# =============================================================================

@router.get("/points/balance", response_model=PointsBalance)
async def get_balance(
    current_user: Principal = Depends(require_permission("view_own_profile")),
    panelist: PanelistProfileRecord = Depends(get_current_panelist)
):
    return PointsService.balance_of(panelist)


@router.get("/panelist/point-ledger", response_model=PointLedgerList)
async def get_point_ledger(
    transaction_type: Optional[TransactionType] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: Principal = Depends(require_permission("view_own_profile")),
    panelist: PanelistProfileRecord = Depends(get_current_panelist),
    repository: PanelRepository = Depends(get_repository)
):
    try:
        return await PointsService(repository).list_ledger(panelist.id, transaction_type, limit, offset)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching point ledger for {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch point ledger"
        )

# =============================================================================
# ACTIVITY
# =============================================================================

@router.get("/activity", response_model=List[ActivityRecord])
async def get_activity(
    limit: int = Query(20, ge=1, le=100),
    current_user: Principal = Depends(require_permission("view_own_activity")),
    repository: PanelRepository = Depends(get_repository)
):
    try:
        return await ActivityService(repository).list_for_user(current_user.id, limit)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching activity for {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch activity"
        )
