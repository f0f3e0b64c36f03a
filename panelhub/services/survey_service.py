"""
Survey Service - survey administration, availability and completion
"""
import logging
from typing import List, Optional
from uuid import UUID

from panelhub.core.exceptions import (
    AuthorizationError, NotFoundError, StateConflictError, ValidationException
)
from panelhub.database.repository import PanelRepository
from panelhub.models.panel import (
    PanelistProfileRecord, SurveyCompletionRequest, SurveyCompletionResult,
    SurveyCreate, SurveyRecord, SurveyStatus, SurveyUpdate
)
from panelhub.services.activity_service import ActivityService
from panelhub.services.audience_qualifier import AudienceQualifierService, parse_criteria

logger = logging.getLogger(__name__)

# Forward-only lifecycle: draft -> active -> inactive
ALLOWED_SOURCES = {
    SurveyStatus.DRAFT: [],
    SurveyStatus.ACTIVE: [SurveyStatus.DRAFT],
    SurveyStatus.INACTIVE: [SurveyStatus.DRAFT, SurveyStatus.ACTIVE],
}
EDITABLE_STATUSES = (SurveyStatus.DRAFT, SurveyStatus.ACTIVE)
PAGE_SIZE = 200


class SurveyService:

    def __init__(self, repository: PanelRepository):
        self.repository = repository
        self.activity = ActivityService(repository)
        self.qualifier = AudienceQualifierService(repository)

    async def get_survey(self, survey_id: UUID) -> SurveyRecord:
        survey = await self.repository.get_survey(survey_id)
        if survey is None:
            raise NotFoundError("Survey not found")
        return survey

    # =========================================================================
    # ADMINISTRATION
    # =========================================================================

    async def create_survey(self, request: SurveyCreate, created_by: str) -> SurveyRecord:
        fields = request.model_dump()
        fields["qualification_criteria"] = parse_criteria(request.qualification_criteria).model_dump(exclude_none=True)

        survey = await self.repository.create_survey(created_by, fields)
        logger.info(f"Created survey {survey.id} ({survey.title})")
        await self.activity.log(
            created_by, "survey_created", f"Created survey: {survey.title}", {"survey_id": str(survey.id)}
        )
        return survey

    async def list_surveys(
        self, status: Optional[SurveyStatus] = None, limit: int = 50, offset: int = 0
    ) -> List[SurveyRecord]:
        return await self.repository.list_surveys([status] if status else None, limit, offset)

    async def update_survey(self, survey_id: UUID, update: SurveyUpdate) -> SurveyRecord:
        survey = await self.get_survey(survey_id)
        if survey.status not in EDITABLE_STATUSES:
            raise StateConflictError(f"Surveys with status '{survey.status.value}' cannot be edited")

        fields = {
            key: value for key, value in update.model_dump(exclude_unset=True).items()
            if value is not None or key == "description"
        }
        if not fields:
            return survey
        if "qualification_criteria" in fields:
            fields["qualification_criteria"] = parse_criteria(fields["qualification_criteria"]).model_dump(exclude_none=True)

        updated = await self.repository.update_survey(survey_id, fields)
        if updated is None:
            raise NotFoundError("Survey not found")
        logger.info(f"Updated survey {survey_id}: {sorted(fields)}")

        if "qualification_criteria" in fields and fields["qualification_criteria"] != (survey.qualification_criteria or {}):
            await self.qualifier.recalculate_survey_audience(survey_id)
            updated = await self.get_survey(survey_id)
        return updated

    async def set_status(self, survey_id: UUID, status: SurveyStatus, admin_id: str) -> SurveyRecord:
        survey = await self.get_survey(survey_id)
        updated = await self.repository.transition_survey(survey_id, ALLOWED_SOURCES[status], status)
        if updated is None:
            current = await self.repository.get_survey(survey_id) or survey
            raise StateConflictError(
                f"Cannot move survey from '{current.status.value}' to '{status.value}'"
            )

        logger.info(f"Survey {survey_id}: {survey.status.value} -> {status.value}")
        await self.activity.log(
            admin_id, "survey_status_changed", f"Survey {updated.title} is now {status.value}",
            {"survey_id": str(survey_id), "status": status.value}
        )
        return updated

    # =========================================================================
    # PANELIST SIDE
    # =========================================================================

    async def _is_qualified(
        self, survey: SurveyRecord, panelist: PanelistProfileRecord, qualifications: dict, memberships: dict
    ) -> bool:
        """A qualification row decides; without one the survey's criteria are evaluated live.
        Surveys with neither criteria nor rows are open to everyone."""
        if survey.id in qualifications:
            return qualifications[survey.id]
        if survey.qualification_criteria:
            try:
                return await self.qualifier.evaluate_criteria(panelist, survey, memberships)
            except (ValidationException, NotFoundError) as e:
                logger.warning(f"Survey {survey.id} criteria cannot be evaluated: {e.detail}")
                return False
        return not await self.repository.survey_has_qualifications(survey.id)

    async def available_surveys(self, panelist: PanelistProfileRecord) -> List[SurveyRecord]:
        """Active surveys the panelist qualifies for and has not completed"""
        completed = set(await self.repository.completed_survey_ids(panelist.id))
        qualifications = await self.repository.qualification_map(panelist.id)
        memberships = {}

        available = []
        offset = 0
        while True:
            surveys = await self.repository.list_surveys([SurveyStatus.ACTIVE], PAGE_SIZE, offset)
            for survey in surveys:
                if survey.id in completed:
                    continue
                if await self._is_qualified(survey, panelist, qualifications, memberships):
                    available.append(survey)
            if len(surveys) < PAGE_SIZE:
                break
            offset += PAGE_SIZE
        return available

    async def complete_survey(
        self, panelist: PanelistProfileRecord, request: SurveyCompletionRequest
    ) -> SurveyCompletionResult:
        survey = await self.get_survey(request.survey_id)
        if survey.status != SurveyStatus.ACTIVE:
            raise ValidationException("Survey is not active")

        qualifications = await self.repository.qualification_map(panelist.id)
        if not await self._is_qualified(survey, panelist, qualifications, {}):
            raise AuthorizationError("You are not qualified for this survey")

        if await self.repository.get_completion(survey.id, panelist.id) is not None:
            raise StateConflictError("Survey already completed")

        response_data = {"responses": [item.model_dump() for item in request.responses]}
        recorded = await self.repository.record_survey_completion(survey, panelist.id, response_data)
        if recorded is None:
            raise StateConflictError("Survey already completed")
        completion, _ = recorded

        profile = await self.repository.get_panelist(panelist.id)
        new_balance = profile.points_balance if profile else panelist.points_balance + survey.points_reward

        logger.info(f"Panelist {panelist.id} completed survey {survey.id} (+{survey.points_reward})")
        await self.activity.log(
            panelist.user_id, "survey_completed", f"Completed survey: {survey.title}",
            {"survey_id": str(survey.id), "points_earned": survey.points_reward}
        )
        return SurveyCompletionResult(
            completion_id=completion.id,
            points_earned=survey.points_reward,
            new_balance=new_balance
        )
