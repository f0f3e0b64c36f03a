"""
Admin Panel Routes - point ledger and panelist account management
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query
from typing import Optional
from uuid import UUID
import logging

from panelhub.database.panel_repository import get_repository
from panelhub.database.repository import PanelRepository
from panelhub.middleware.role_based_auth import require_permission
from panelhub.models.auth import Principal
from panelhub.models.panel import (
    PanelistProfileRecord, PointAdjustmentRequest, PointLedgerEntryRecord,
    PointLedgerList, TransactionType
)
from panelhub.services.panelist_service import PanelistService
from panelhub.services.points_service import PointsService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Admin - Panel"])

# =============================================================================
# POINT LEDGER
# =============================================================================

@router.get("/point-ledger", response_model=PointLedgerList)
async def list_point_ledger(
    panelist_id: Optional[UUID] = Query(None),
    transaction_type: Optional[TransactionType] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: Principal = Depends(require_permission("manage_points")),
    repository: PanelRepository = Depends(get_repository)
):
    try:
        return await PointsService(repository).list_ledger(panelist_id, transaction_type, limit, offset)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing point ledger: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch point ledger"
        )


@router.post("/point-ledger", response_model=PointLedgerEntryRecord, status_code=status.HTTP_201_CREATED)
async def adjust_points(
    request: PointAdjustmentRequest,
    current_user: Principal = Depends(require_permission("manage_points")),
    repository: PanelRepository = Depends(get_repository)
):
    """
    Manual point award (positive) or deduction (negative)
    """
    try:
        return await PointsService(repository).adjust_points(request, current_user.id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error adjusting points for panelist {request.panelist_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to adjust points"
        )

# =============================================================================
# PANELIST ACCOUNTS
# =============================================================================

@router.get("/panelists/{panelist_id}", response_model=PanelistProfileRecord)
async def get_panelist(
    panelist_id: UUID,
    current_user: Principal = Depends(require_permission("manage_panelists")),
    repository: PanelRepository = Depends(get_repository)
):
    try:
        return await PanelistService(repository).get_profile(panelist_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching panelist {panelist_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch profile"
        )


@router.post("/panelists/{panelist_id}/deactivate", response_model=PanelistProfileRecord)
async def deactivate_panelist(
    panelist_id: UUID,
    current_user: Principal = Depends(require_permission("manage_panelists")),
    repository: PanelRepository = Depends(get_repository)
):
    """
    Soft-deactivate a panelist; profiles are never deleted
    """
    try:
        return await PanelistService(repository).set_active(panelist_id, False, current_user.id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deactivating panelist {panelist_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to deactivate panelist"
        )


@router.post("/panelists/{panelist_id}/activate", response_model=PanelistProfileRecord)
async def activate_panelist(
    panelist_id: UUID,
    current_user: Principal = Depends(require_permission("manage_panelists")),
    repository: PanelRepository = Depends(get_repository)
):
    try:
        return await PanelistService(repository).set_active(panelist_id, True, current_user.id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error activating panelist {panelist_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to activate panelist"
        )
