"""
Survey Routes - survey administration, availability and completion
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query
from typing import List, Optional
from uuid import UUID
import logging

from panelhub.database.panel_repository import get_repository
from panelhub.database.repository import PanelRepository
from panelhub.middleware.auth_middleware import get_current_panelist
from panelhub.middleware.role_based_auth import require_permission
from panelhub.models.audience import RecalculationResult
from panelhub.models.auth import Principal
from panelhub.models.panel import (
    PanelistProfileRecord, SurveyCompletionRequest, SurveyCompletionResult,
    SurveyCreate, SurveyRecord, SurveyStatus, SurveyStatusUpdate, SurveyUpdate
)
from panelhub.services.activity_service import ActivityService
from panelhub.services.audience_qualifier import AudienceQualifierService
from panelhub.services.survey_service import SurveyService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/surveys", tags=["Surveys"])


def get_survey_service(repository: PanelRepository = Depends(get_repository)) -> SurveyService:
    return SurveyService(repository)

# =============================================================================
# PANELIST ENDPOINTS
# =============================================================================

@router.get("/available", response_model=List[SurveyRecord])
async def available_surveys(
    current_user: Principal = Depends(require_permission("view_own_profile")),
    panelist: PanelistProfileRecord = Depends(get_current_panelist),
    service: SurveyService = Depends(get_survey_service)
):
    """
    Active surveys the caller qualifies for and has not completed
    """
    try:
        return await service.available_surveys(panelist)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching available surveys for {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch surveys"
        )


@router.post("/complete", response_model=SurveyCompletionResult, status_code=status.HTTP_201_CREATED)
async def complete_survey(
    request: SurveyCompletionRequest,
    current_user: Principal = Depends(require_permission("complete_surveys")),
    panelist: PanelistProfileRecord = Depends(get_current_panelist),
    service: SurveyService = Depends(get_survey_service)
):
    try:
        return await service.complete_survey(panelist, request)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error completing survey {request.survey_id} for {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to record survey completion"
        )

# =============================================================================
# ADMIN ENDPOINTS
# =============================================================================

@router.get("", response_model=List[SurveyRecord])
async def list_surveys(
    status_filter: Optional[SurveyStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: Principal = Depends(require_permission("create_surveys")),
    service: SurveyService = Depends(get_survey_service)
):
    try:
        return await service.list_surveys(status_filter, limit, offset)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing surveys: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch surveys"
        )


@router.post("", response_model=SurveyRecord, status_code=status.HTTP_201_CREATED)
async def create_survey(
    request: SurveyCreate,
    current_user: Principal = Depends(require_permission("create_surveys")),
    service: SurveyService = Depends(get_survey_service)
):
    try:
        return await service.create_survey(request, current_user.id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating survey: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create survey"
        )


@router.get("/{survey_id}", response_model=SurveyRecord)
async def get_survey(
    survey_id: UUID,
    current_user: Principal = Depends(require_permission("create_surveys")),
    service: SurveyService = Depends(get_survey_service)
):
    try:
        return await service.get_survey(survey_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching survey {survey_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch survey"
        )


@router.patch("/{survey_id}", response_model=SurveyRecord)
async def update_survey(
    survey_id: UUID,
    request: SurveyUpdate,
    current_user: Principal = Depends(require_permission("create_surveys")),
    service: SurveyService = Depends(get_survey_service)
):
    try:
        return await service.update_survey(survey_id, request)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating survey {survey_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update survey"
        )


@router.post("/{survey_id}/status", response_model=SurveyRecord)
async def set_survey_status(
    survey_id: UUID,
    request: SurveyStatusUpdate,
    current_user: Principal = Depends(require_permission("create_surveys")),
    service: SurveyService = Depends(get_survey_service)
):
    """
    Move a survey forward: draft -> active -> inactive
    """
    try:
        return await service.set_status(survey_id, request.status, current_user.id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error changing status of survey {survey_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update survey status"
        )


@router.post("/{survey_id}/recalculate-audience", response_model=RecalculationResult)
async def recalculate_audience(
    survey_id: UUID,
    current_user: Principal = Depends(require_permission("create_surveys")),
    repository: PanelRepository = Depends(get_repository)
):
    """
    Re-evaluate the survey's qualification criteria against every active panelist
    """
    try:
        result = await AudienceQualifierService(repository).recalculate_survey_audience(survey_id)
        await ActivityService(repository).log(
            current_user.id,
            "audience_recalculated",
            f"Recalculated audience for survey {survey_id}: {result.eligible_count} eligible panelists",
            {"survey_id": str(survey_id), "eligible_count": result.eligible_count}
        )
        return result
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error recalculating audience for survey {survey_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to recalculate audience"
        )
