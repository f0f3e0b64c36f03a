"""
Admin Audience Routes - audience previews, presets and survey audience assignment
"""
from fastapi import APIRouter, HTTPException, status, Depends
from typing import List
from uuid import UUID
import logging

from panelhub.database.panel_repository import get_repository
from panelhub.database.repository import PanelRepository
from panelhub.middleware.role_based_auth import require_permission
from panelhub.models.auth import Principal
from panelhub.models.audience import (
    AssignAudienceRequest, AssignPresetRequest, AssignmentResult,
    AudienceFilterRequest, AudiencePresetCreate, AudiencePresetRecord, AudienceResult
)
from panelhub.services.audience_qualifier import AudienceQualifierService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Admin - Audiences"])


def get_audience_service(repository: PanelRepository = Depends(get_repository)) -> AudienceQualifierService:
    return AudienceQualifierService(repository)

# =============================================================================
# AUDIENCE PREVIEW & PRESETS
# =============================================================================

@router.post("/audiences/filter", response_model=AudienceResult)
async def filter_audience(
    request: AudienceFilterRequest,
    current_user: Principal = Depends(require_permission("manage_panelists")),
    service: AudienceQualifierService = Depends(get_audience_service)
):
    """
    Preview the panelists a filter selects

    Returns the matching count, their ids and a summary of the pool.
    """
    try:
        return await service.calculate_audience(request.filters)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error filtering audience for {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to filter panelists"
        )


@router.get("/audiences/presets", response_model=List[AudiencePresetRecord])
async def list_presets(
    current_user: Principal = Depends(require_permission("manage_panelists")),
    service: AudienceQualifierService = Depends(get_audience_service)
):
    try:
        return await service.list_presets()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing audience presets: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list audience presets"
        )


@router.post("/audiences/presets", response_model=AudiencePresetRecord, status_code=status.HTTP_201_CREATED)
async def create_preset(
    request: AudiencePresetCreate,
    current_user: Principal = Depends(require_permission("manage_panelists")),
    service: AudienceQualifierService = Depends(get_audience_service)
):
    try:
        return await service.create_preset(request, current_user.id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating audience preset: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create audience preset"
        )

# =============================================================================
# SURVEY AUDIENCE ASSIGNMENT
# =============================================================================

@router.post("/surveys/{survey_id}/assign-temporary-audience", response_model=AssignmentResult)
async def assign_temporary_audience(
    survey_id: UUID,
    request: AssignAudienceRequest,
    current_user: Principal = Depends(require_permission("manage_qualifications")),
    service: AudienceQualifierService = Depends(get_audience_service)
):
    """
    Qualify every panelist matching the filters for this survey
    """
    try:
        filters = request.filters
        if request.program and not filters.program:
            filters = filters.model_copy(update={"program": request.program})
        return await service.assign_temporary_audience(
            survey_id, filters, current_user.id, request.qualification_reason
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error assigning audience to survey {survey_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to assign survey audience"
        )


@router.post("/surveys/{survey_id}/assign-audience", response_model=AssignmentResult)
async def assign_preset_audience(
    survey_id: UUID,
    request: AssignPresetRequest,
    current_user: Principal = Depends(require_permission("manage_qualifications")),
    service: AudienceQualifierService = Depends(get_audience_service)
):
    """
    Qualify the audience of a saved preset for this survey
    """
    try:
        return await service.assign_preset_audience(
            survey_id, request.preset_id, current_user.id, request.qualification_reason
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error assigning preset {request.preset_id} to survey {survey_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to assign survey audience"
        )
