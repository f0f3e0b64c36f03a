"""
Qualification Routes - manual survey qualification management
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query
from typing import Optional, Union
from uuid import UUID
import logging

from panelhub.database.panel_repository import get_repository
from panelhub.database.repository import PanelRepository
from panelhub.middleware.role_based_auth import require_permission
from panelhub.models.audience import (
    BulkQualificationUpdate, QualificationList, QualificationRow, QualificationUpdate
)
from panelhub.models.auth import Principal
from panelhub.services.audience_qualifier import AudienceQualifierService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/qualifications", tags=["Qualifications"])


@router.get("", response_model=QualificationList)
async def list_qualifications(
    survey_id: UUID = Query(...),
    panelist_id: Optional[UUID] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: Principal = Depends(require_permission("manage_qualifications")),
    repository: PanelRepository = Depends(get_repository)
):
    try:
        return await AudienceQualifierService(repository).list_qualifications(survey_id, panelist_id, limit, offset)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing qualifications for survey {survey_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch qualifications"
        )


@router.post("")
async def set_qualifications(
    request: Union[BulkQualificationUpdate, QualificationUpdate],
    current_user: Principal = Depends(require_permission("manage_qualifications")),
    repository: PanelRepository = Depends(get_repository)
):
    """
    Set one qualification, or many for one survey with a shared reason
    """
    try:
        service = AudienceQualifierService(repository)
        if isinstance(request, BulkQualificationUpdate):
            updated = await service.bulk_set_qualifications(request)
            return {"success": True, "survey_id": request.survey_id, "updated_count": updated}

        row: QualificationRow = await service.set_qualification(request)
        return {"success": True, "qualification": row}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating qualifications: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update qualifications"
        )
