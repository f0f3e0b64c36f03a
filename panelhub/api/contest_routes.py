"""
Contest Routes - panelist view of contests, joining and leaderboards
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query
from typing import List, Optional
from uuid import UUID
import logging

from panelhub.core.config import settings
from panelhub.database.panel_repository import get_repository
from panelhub.database.repository import PanelRepository
from panelhub.middleware.auth_middleware import get_current_panelist
from panelhub.middleware.role_based_auth import require_permission
from panelhub.models.auth import Principal
from panelhub.models.contests import (
    ContestSummary, JoinContestResponse, LeaderboardResponse, MyContestEntry
)
from panelhub.models.panel import PanelistProfileRecord
from panelhub.services.contest_service import ContestService
from panelhub.services.panelist_service import PanelistService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/contests", tags=["Contests"])


def get_contest_service(repository: PanelRepository = Depends(get_repository)) -> ContestService:
    return ContestService(repository)


@router.get("", response_model=List[ContestSummary])
async def list_contests(
    current_user: Principal = Depends(require_permission("view_own_profile")),
    panelist: PanelistProfileRecord = Depends(get_current_panelist),
    service: ContestService = Depends(get_contest_service)
):
    """
    Active and ended contests open to the caller
    """
    try:
        return await service.list_visible_contests(panelist)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing contests for {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch contests"
        )


@router.get("/my-active", response_model=List[MyContestEntry])
async def my_active_contests(
    current_user: Principal = Depends(require_permission("view_own_profile")),
    panelist: PanelistProfileRecord = Depends(get_current_panelist),
    service: ContestService = Depends(get_contest_service)
):
    try:
        return await service.my_active_contests(panelist)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing active contests for {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch active contests"
        )


@router.get("/{contest_id}/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    contest_id: UUID,
    limit: int = Query(settings.LEADERBOARD_DEFAULT_LIMIT, ge=1),
    current_user: Principal = Depends(require_permission("view_own_profile")),
    repository: PanelRepository = Depends(get_repository)
):
    """
    Ranked participants, refreshed first while the contest is active

    Administrators see any contest; panelists only contests open to them.
    """
    try:
        viewer: Optional[PanelistProfileRecord] = None
        if not current_user.is_admin:
            viewer = await PanelistService(repository).get_or_create(current_user.id)
        return await ContestService(repository).get_leaderboard(
            contest_id, viewer, min(limit, settings.LEADERBOARD_MAX_LIMIT)
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching leaderboard for contest {contest_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch leaderboard"
        )


@router.post("/{contest_id}/join", response_model=JoinContestResponse, status_code=status.HTTP_201_CREATED)
async def join_contest(
    contest_id: UUID,
    current_user: Principal = Depends(require_permission("join_contests")),
    panelist: PanelistProfileRecord = Depends(get_current_panelist),
    service: ContestService = Depends(get_contest_service)
):
    try:
        return await service.join_contest(contest_id, panelist)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error joining contest {contest_id} for {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to join contest"
        )
