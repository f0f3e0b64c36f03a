"""
Audience Qualifier
Intersects demographic filter predicates against the active panelist pool,
for audience-size previews and for assigning surveys to the matched population
"""
import logging
from typing import Any, Dict, List, Optional, Set, Tuple
from uuid import UUID

from pydantic import ValidationError

from panelhub.core.config import settings
from panelhub.core.exceptions import NotFoundError, ValidationException
from panelhub.database.repository import PanelRepository
from panelhub.models.audience import (
    AssignmentResult, AudienceFilter, AudiencePresetCreate, AudiencePresetRecord,
    AudienceResult, BulkQualificationUpdate, FilterSummary, QualificationList,
    QualificationRow, QualificationUpdate, RANGE_BOUNDS, RecalculationResult
)
from panelhub.models.panel import PanelistProfileRecord, SurveyRecord, SurveyStatus

logger = logging.getLogger(__name__)

CATEGORICAL_KEYS = ("gender", "education_level", "employment_status")
RECALCULATION_REASON = "Audience recalculation"
PROFILE_CHANGE_REASON = "Profile update requalification"
SURVEY_PAGE_SIZE = 200


# =============================================================================
# PREDICATES
# =============================================================================

def _normalize(value: Any) -> str:
    return str(value).strip().casefold()


def _numeric(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _location_code(profile_data: Dict[str, Any]) -> Optional[str]:
    location = profile_data.get("location")
    if isinstance(location, dict):
        location = location.get("country")
    if location is None or isinstance(location, (dict, list)):
        return None
    return str(location)


def matches_filter(profile_data: Optional[Dict[str, Any]], filters: AudienceFilter) -> bool:
    """
    True when the profile satisfies every predicate the filter sets.
    A missing or null attribute never satisfies a predicate on it.
    """
    data = profile_data or {}

    for key in CATEGORICAL_KEYS:
        expected = getattr(filters, key)
        if expected is None:
            continue
        actual = data.get(key)
        if actual is None or _normalize(actual) != _normalize(expected):
            return False

    if filters.location is not None:
        codes = [filters.location] if isinstance(filters.location, str) else filters.location
        actual = _location_code(data)
        if actual is None or _normalize(actual) not in {_normalize(code) for code in codes}:
            return False

    if filters.children_under_18 is not None:
        actual = data.get("children_under_18")
        if not isinstance(actual, bool) or actual != filters.children_under_18:
            return False

    if filters.interests:
        actual = data.get("interests")
        if not isinstance(actual, list):
            return False
        held = {_normalize(interest) for interest in actual if interest is not None}
        if any(_normalize(interest) not in held for interest in filters.interests):
            return False

    for attribute, (min_key, max_key) in RANGE_BOUNDS.items():
        low, high = getattr(filters, min_key), getattr(filters, max_key)
        if low is None and high is None:
            continue
        value = _numeric(data.get(attribute))
        if value is None:
            return False
        if low is not None and value < low:
            return False
        if high is not None and value > high:
            return False

    return True


def parse_criteria(criteria: Optional[Dict[str, Any]]) -> AudienceFilter:
    """Stored qualification criteria as a filter; malformed criteria are a validation failure"""
    try:
        return AudienceFilter.model_validate(criteria or {})
    except ValidationError as e:
        messages = "; ".join(error["msg"] for error in e.errors())
        raise ValidationException(f"Invalid audience filter: {messages}")


# =============================================================================
# SERVICE
# =============================================================================

class AudienceQualifierService:
    """Audience previews, assignment and qualification maintenance"""

    def __init__(self, repository: PanelRepository):
        self.repository = repository

    async def _program_id(self, program: Optional[str]) -> Optional[UUID]:
        if program is None:
            return None
        record = await self.repository.get_active_program_by_name(program)
        if record is None:
            raise NotFoundError("Program not found")
        return record.id

    async def _match(self, filters: AudienceFilter) -> Tuple[List[UUID], Optional[UUID]]:
        program_id = await self._program_id(filters.program)
        candidates = await self.repository.list_active_panelists(program_id)
        matched = [
            panelist.id for panelist in candidates
            if panelist.is_active and matches_filter(panelist.profile_data, filters)
        ]
        return matched, program_id

    async def _get_survey(self, survey_id: UUID) -> SurveyRecord:
        survey = await self.repository.get_survey(survey_id)
        if survey is None:
            raise NotFoundError("Survey not found")
        return survey

    # =========================================================================
    # PREVIEW & ASSIGNMENT
    # =========================================================================

    async def calculate_audience(self, filters: AudienceFilter) -> AudienceResult:
        """Count-only preview of the population a filter selects"""
        matched, program_id = await self._match(filters)

        total_panelists = await self.repository.count_active_panelists()
        program_panelists = None
        if program_id is not None:
            program_panelists = await self.repository.count_program_panelists(program_id)

        logger.info(
            f"Audience filter matched {len(matched)} of {total_panelists} panelists "
            f"(filters: {filters.applied_filters()})"
        )
        return AudienceResult(
            audience_count=len(matched),
            panelist_ids=matched,
            filter_summary=FilterSummary(
                total_panelists=total_panelists,
                program_panelists=program_panelists,
                filtered_count=len(matched),
                filter_criteria=filters.model_dump(exclude_none=True),
                applied_filters=filters.applied_filters()
            )
        )

    async def assign_temporary_audience(
        self,
        survey_id: UUID,
        filters: AudienceFilter,
        assigned_by: str,
        qualification_reason: Optional[str] = None,
        preset_id: Optional[UUID] = None,
    ) -> AssignmentResult:
        """Replace the survey's audience with exactly the panelists the filter matches

        Every other active panelist, and anyone qualified by an earlier
        assignment, is written as not qualified in the same batch.
        """
        await self._get_survey(survey_id)

        matched, _ = await self._match(filters)
        if not matched:
            raise ValidationException("No panelists match the selected filters")

        matched_set = set(matched)
        excluded = dict.fromkeys(await self.repository.qualified_panelist_ids(survey_id))
        excluded.update(dict.fromkeys(p.id for p in await self.repository.list_active_panelists()))

        reason = qualification_reason or settings.DEFAULT_QUALIFICATION_REASON
        rows = [
            QualificationRow(survey_id=survey_id, panelist_id=panelist_id, is_qualified=True, qualification_reason=reason)
            for panelist_id in matched
        ]
        rows.extend(
            QualificationRow(survey_id=survey_id, panelist_id=panelist_id, is_qualified=False, qualification_reason=reason)
            for panelist_id in excluded if panelist_id not in matched_set
        )
        await self.repository.upsert_qualifications(rows)
        panelist_count = len(matched)
        logger.info(f"Qualified {panelist_count} panelists for survey {survey_id} ({len(rows) - panelist_count} excluded)")

        # Tracking writes; the qualification rows above are the assignment
        try:
            await self.repository.set_survey_audience_count(survey_id, panelist_count)
        except Exception as e:
            logger.warning(f"Failed to update audience_count for survey {survey_id}: {e}")

        try:
            await self.repository.create_audience_assignment(
                survey_id,
                assigned_by,
                {
                    "filters": filters.model_dump(exclude_none=True),
                    "panelist_count": panelist_count,
                    "qualification_reason": reason,
                },
                preset_id=preset_id,
            )
        except Exception as e:
            logger.warning(f"Failed to record audience assignment for survey {survey_id}: {e}")

        return AssignmentResult(
            survey_id=survey_id,
            panelist_count=panelist_count,
            message=f"Survey assigned to {panelist_count} panelists"
        )

    async def assign_preset_audience(
        self,
        survey_id: UUID,
        preset_id: UUID,
        assigned_by: str,
        qualification_reason: Optional[str] = None,
    ) -> AssignmentResult:
        preset = await self.repository.get_preset(preset_id)
        if preset is None:
            raise NotFoundError("Audience preset not found")
        filters = parse_criteria(preset.filters)
        return await self.assign_temporary_audience(
            survey_id,
            filters,
            assigned_by,
            qualification_reason or f"Audience preset: {preset.name}",
            preset_id=preset.id,
        )

    async def recalculate_survey_audience(self, survey_id: UUID) -> RecalculationResult:
        """Evaluate the survey's criteria against every active panelist, writing true and false rows"""
        survey = await self._get_survey(survey_id)
        filters = parse_criteria(survey.qualification_criteria)

        panelists = await self.repository.list_active_panelists()
        program_members = await self._program_members(filters.program, {})

        rows = [
            QualificationRow(
                survey_id=survey_id,
                panelist_id=panelist.id,
                is_qualified=self._qualifies(panelist, filters, program_members),
                qualification_reason=RECALCULATION_REASON
            )
            for panelist in panelists
        ]
        await self.repository.upsert_qualifications(rows)
        eligible_count = sum(1 for row in rows if row.is_qualified)

        try:
            await self.repository.set_survey_audience_count(survey_id, eligible_count)
        except Exception as e:
            logger.warning(f"Failed to update audience_count for survey {survey_id}: {e}")

        logger.info(f"Recalculated audience for survey {survey_id}: {eligible_count}/{len(rows)} eligible")
        return RecalculationResult(
            survey_id=survey_id,
            eligible_count=eligible_count,
            total_panelists=len(rows)
        )

    async def requalify_panelist(self, panelist_id: UUID) -> int:
        """Re-evaluate one panelist against every open survey that has criteria"""
        panelist = await self.repository.get_panelist(panelist_id)
        if panelist is None:
            raise NotFoundError("Panelist profile not found")

        memberships: Dict[str, Optional[Set[UUID]]] = {}
        rows: List[QualificationRow] = []
        offset = 0
        while True:
            surveys = await self.repository.list_surveys(
                statuses=[SurveyStatus.DRAFT, SurveyStatus.ACTIVE],
                limit=SURVEY_PAGE_SIZE,
                offset=offset
            )
            for survey in surveys:
                if not survey.qualification_criteria:
                    continue
                try:
                    filters = parse_criteria(survey.qualification_criteria)
                    program_members = await self._program_members(filters.program, memberships)
                except (ValidationException, NotFoundError) as e:
                    logger.warning(f"Skipping survey {survey.id} during requalification: {e.detail}")
                    continue
                rows.append(QualificationRow(
                    survey_id=survey.id,
                    panelist_id=panelist.id,
                    is_qualified=self._qualifies(panelist, filters, program_members),
                    qualification_reason=PROFILE_CHANGE_REASON
                ))
            if len(surveys) < SURVEY_PAGE_SIZE:
                break
            offset += SURVEY_PAGE_SIZE

        written = await self.repository.upsert_qualifications(rows)
        logger.info(f"Requalified panelist {panelist_id} against {written} surveys")
        return written

    async def _program_members(
        self, program: Optional[str], cache: Dict[str, Optional[Set[UUID]]]
    ) -> Optional[Set[UUID]]:
        """None when the filter names no program"""
        if program is None:
            return None
        if program not in cache:
            program_id = await self._program_id(program)
            members = await self.repository.list_active_panelists(program_id)
            cache[program] = {member.id for member in members}
        return cache[program]

    async def evaluate_criteria(
        self,
        panelist: PanelistProfileRecord,
        survey: SurveyRecord,
        memberships: Optional[Dict[str, Optional[Set[UUID]]]] = None,
    ) -> bool:
        """Live check of one panelist against a survey's stored criteria"""
        filters = parse_criteria(survey.qualification_criteria)
        program_members = await self._program_members(filters.program, {} if memberships is None else memberships)
        return self._qualifies(panelist, filters, program_members)

    @staticmethod
    def _qualifies(
        panelist: PanelistProfileRecord, filters: AudienceFilter, program_members: Optional[Set[UUID]]
    ) -> bool:
        if not panelist.is_active:
            return False
        if program_members is not None and panelist.id not in program_members:
            return False
        return matches_filter(panelist.profile_data, filters)

    # =========================================================================
    # PRESETS
    # =========================================================================

    async def create_preset(self, request: AudiencePresetCreate, created_by: str) -> AudiencePresetRecord:
        preset = await self.repository.create_preset(
            request.name,
            request.description,
            request.filters.model_dump(exclude_none=True),
            created_by
        )
        logger.info(f"Created audience preset {preset.id} ({preset.name})")
        return preset

    async def list_presets(self) -> List[AudiencePresetRecord]:
        return await self.repository.list_presets()

    # =========================================================================
    # QUALIFICATION ADMIN
    # =========================================================================

    async def list_qualifications(
        self, survey_id: UUID, panelist_id: Optional[UUID] = None, limit: int = 50, offset: int = 0
    ) -> QualificationList:
        await self._get_survey(survey_id)
        rows = await self.repository.list_qualifications(survey_id, panelist_id, limit, offset)
        total = await self.repository.count_qualifications(survey_id, panelist_id)
        return QualificationList(survey_id=survey_id, qualifications=rows, total=total)

    async def set_qualification(self, update: QualificationUpdate) -> QualificationRow:
        await self._get_survey(update.survey_id)
        if await self.repository.get_panelist(update.panelist_id) is None:
            raise NotFoundError("Panelist profile not found")

        row = QualificationRow(
            survey_id=update.survey_id,
            panelist_id=update.panelist_id,
            is_qualified=update.is_qualified,
            qualification_reason=update.qualification_reason or "Manual qualification"
        )
        await self.repository.upsert_qualifications([row])
        logger.info(
            f"Set qualification for panelist {update.panelist_id} on survey {update.survey_id}: {update.is_qualified}"
        )
        return row

    async def bulk_set_qualifications(self, update: BulkQualificationUpdate) -> int:
        await self._get_survey(update.survey_id)
        reason = update.qualification_reason or "Manual qualification"
        latest = {decision.panelist_id: decision.is_qualified for decision in update.qualifications}
        rows = [
            QualificationRow(
                survey_id=update.survey_id,
                panelist_id=panelist_id,
                is_qualified=is_qualified,
                qualification_reason=reason
            )
            for panelist_id, is_qualified in latest.items()
        ]
        written = await self.repository.upsert_qualifications(rows)
        logger.info(f"Bulk-set {written} qualifications on survey {update.survey_id}")
        return written
