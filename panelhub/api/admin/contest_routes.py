"""
Admin Contest Routes - contest lifecycle, invitations, leaderboard and prizes
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query
from typing import List, Optional
from uuid import UUID
import logging

from panelhub.database.panel_repository import get_repository
from panelhub.database.repository import PanelRepository
from panelhub.middleware.role_based_auth import require_permission
from panelhub.models.auth import Principal
from panelhub.models.contests import (
    AwardPrizeRequest, ContestCreate, ContestList, ContestParticipantRecord,
    ContestResponse, ContestStatus, ContestSummary, ContestUpdate,
    InvitePanelistsRequest, InvitePanelistsResponse, PrizeAwardResult
)
from panelhub.services.contest_service import ContestService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/contests", tags=["Admin - Contests"])


def get_contest_service(repository: PanelRepository = Depends(get_repository)) -> ContestService:
    return ContestService(repository)

# =============================================================================
# CONTEST MANAGEMENT
# =============================================================================

@router.get("", response_model=ContestList)
async def list_contests(
    status_filter: Optional[ContestStatus] = Query(None, alias="status"),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: Principal = Depends(require_permission("manage_contests")),
    service: ContestService = Depends(get_contest_service)
):
    try:
        return await service.list_contests(status_filter, limit, offset)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing contests: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch contests"
        )


@router.post("", response_model=ContestResponse, status_code=status.HTTP_201_CREATED)
async def create_contest(
    request: ContestCreate,
    current_user: Principal = Depends(require_permission("manage_contests")),
    service: ContestService = Depends(get_contest_service)
):
    """
    Create a contest in draft status

    selected_panelists contests take the invite list in panelist_ids.
    """
    try:
        contest = await service.create_contest(request, current_user.id)
        return ContestResponse(contest=contest, message="Contest created successfully")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating contest: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create contest"
        )


@router.get("/{contest_id}", response_model=ContestSummary)
async def get_contest(
    contest_id: UUID,
    current_user: Principal = Depends(require_permission("manage_contests")),
    service: ContestService = Depends(get_contest_service)
):
    try:
        return await service.get_contest(contest_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching contest {contest_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch contest"
        )


@router.patch("/{contest_id}", response_model=ContestResponse)
async def update_contest(
    contest_id: UUID,
    request: ContestUpdate,
    current_user: Principal = Depends(require_permission("manage_contests")),
    service: ContestService = Depends(get_contest_service)
):
    try:
        contest = await service.update_contest(contest_id, request)
        return ContestResponse(contest=contest, message="Contest updated successfully")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating contest {contest_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update contest"
        )

# =============================================================================
# LIFECYCLE
# =============================================================================

@router.post("/{contest_id}/start", response_model=ContestResponse)
async def start_contest(
    contest_id: UUID,
    current_user: Principal = Depends(require_permission("manage_contests")),
    service: ContestService = Depends(get_contest_service)
):
    try:
        contest = await service.start_contest(contest_id, current_user.id)
        return ContestResponse(contest=contest, message="Contest started successfully")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error starting contest {contest_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start contest"
        )


@router.post("/{contest_id}/end", response_model=ContestResponse)
async def end_contest(
    contest_id: UUID,
    current_user: Principal = Depends(require_permission("manage_contests")),
    service: ContestService = Depends(get_contest_service)
):
    try:
        contest = await service.end_contest(contest_id, current_user.id)
        return ContestResponse(contest=contest, message="Contest ended successfully")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error ending contest {contest_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to end contest"
        )


@router.post("/{contest_id}/cancel", response_model=ContestResponse)
async def cancel_contest(
    contest_id: UUID,
    current_user: Principal = Depends(require_permission("manage_contests")),
    service: ContestService = Depends(get_contest_service)
):
    try:
        contest = await service.cancel_contest(contest_id, current_user.id)
        return ContestResponse(contest=contest, message="Contest cancelled successfully")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error cancelling contest {contest_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel contest"
        )


@router.post("/{contest_id}/invite-panelists", response_model=InvitePanelistsResponse)
async def invite_panelists(
    contest_id: UUID,
    request: InvitePanelistsRequest,
    current_user: Principal = Depends(require_permission("manage_contests")),
    service: ContestService = Depends(get_contest_service)
):
    try:
        return await service.invite_panelists(contest_id, request, current_user.id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error inviting panelists to contest {contest_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create invitations"
        )

# =============================================================================
# RANKING & PRIZES
# =============================================================================

@router.post("/{contest_id}/update-leaderboard", response_model=List[ContestParticipantRecord])
async def update_leaderboard(
    contest_id: UUID,
    current_user: Principal = Depends(require_permission("manage_contests")),
    service: ContestService = Depends(get_contest_service)
):
    """
    Recompute points and competition ranks for every participant
    """
    try:
        return await service.update_leaderboard(contest_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating leaderboard for contest {contest_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update leaderboard"
        )


@router.post("/{contest_id}/award-prize", response_model=PrizeAwardResult)
async def award_prize(
    contest_id: UUID,
    request: AwardPrizeRequest,
    current_user: Principal = Depends(require_permission("manage_contests")),
    service: ContestService = Depends(get_contest_service)
):
    """
    Award the contest prize to one participant of an ended contest

    400 before the contest has ended, 409 when already awarded.
    """
    try:
        return await service.award_prize(contest_id, request.panelist_id, current_user.id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error awarding prize in contest {contest_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to award prize"
        )
