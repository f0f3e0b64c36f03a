"""
Panel Repository - the data-store primitives the panel services are written against

The production implementation talks to Supabase Postgres through async
SQLAlchemy (see panel_repository.py). Every method that mutates more than one
row is a single transaction on the store side.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from panelhub.models.auth import UserRecord, UserRole
from panelhub.models.audience import AudiencePresetRecord, QualificationRow
from panelhub.models.contests import (
    ContestInvitationRecord, ContestParticipantRecord, ContestRecord,
    ContestStatus, RankAssignment
)
from panelhub.models.panel import (
    ActivityRecord, MerchantOfferRecord, PanelistProfileRecord,
    PointLedgerEntryRecord, ProgramRecord, RedemptionRecord,
    SurveyCompletionRecord, SurveyRecord, SurveyStatus
)


class PanelRepository(ABC):

    # =========================================================================
    # USERS & PANELISTS
    # =========================================================================

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserRecord]: ...

    @abstractmethod
    async def create_user(self, user_id: str, email: str, role: UserRole = UserRole.PANELIST) -> UserRecord: ...

    @abstractmethod
    async def get_panelist(self, panelist_id: UUID) -> Optional[PanelistProfileRecord]: ...

    @abstractmethod
    async def get_panelist_by_user(self, user_id: str) -> Optional[PanelistProfileRecord]: ...

    @abstractmethod
    async def create_panelist(self, user_id: str) -> PanelistProfileRecord: ...

    @abstractmethod
    async def update_profile_data(self, panelist_id: UUID, profile_data: Dict[str, Any]) -> Optional[PanelistProfileRecord]: ...

    @abstractmethod
    async def set_panelist_active(self, panelist_id: UUID, is_active: bool) -> Optional[PanelistProfileRecord]: ...

    @abstractmethod
    async def list_active_panelists(self, program_id: Optional[UUID] = None) -> List[PanelistProfileRecord]:
        """Active profiles; with program_id only those holding an active opt-in to it"""

    @abstractmethod
    async def count_active_panelists(self) -> int: ...

    @abstractmethod
    async def count_program_panelists(self, program_id: UUID) -> int: ...

    @abstractmethod
    async def get_active_program_by_name(self, name: str) -> Optional[ProgramRecord]: ...

    @abstractmethod
    async def panelist_ids_for_users(self, user_ids: Sequence[str]) -> List[UUID]: ...

    # =========================================================================
    # SURVEYS & QUALIFICATIONS
    # =========================================================================

    @abstractmethod
    async def create_survey(self, created_by: str, fields: Dict[str, Any]) -> SurveyRecord: ...

    @abstractmethod
    async def get_survey(self, survey_id: UUID) -> Optional[SurveyRecord]: ...

    @abstractmethod
    async def list_surveys(
        self, statuses: Optional[Iterable[SurveyStatus]] = None, limit: int = 50, offset: int = 0
    ) -> List[SurveyRecord]: ...

    @abstractmethod
    async def update_survey(self, survey_id: UUID, fields: Dict[str, Any]) -> Optional[SurveyRecord]: ...

    @abstractmethod
    async def transition_survey(
        self, survey_id: UUID, from_statuses: Iterable[SurveyStatus], to_status: SurveyStatus
    ) -> Optional[SurveyRecord]:
        """Conditional status update; None when the survey is not in one of from_statuses"""

    @abstractmethod
    async def set_survey_audience_count(self, survey_id: UUID, audience_count: int) -> None: ...

    @abstractmethod
    async def upsert_qualifications(self, rows: Sequence[QualificationRow]) -> int:
        """One batch upsert keyed on (survey_id, panelist_id); all rows or none"""

    @abstractmethod
    async def list_qualifications(
        self, survey_id: UUID, panelist_id: Optional[UUID] = None, limit: int = 50, offset: int = 0
    ) -> List[QualificationRow]: ...

    @abstractmethod
    async def count_qualifications(self, survey_id: UUID, panelist_id: Optional[UUID] = None) -> int: ...

    @abstractmethod
    async def qualified_panelist_ids(self, survey_id: UUID) -> List[UUID]:
        """Panelists currently holding an is_qualified=true row for the survey"""

    @abstractmethod
    async def qualification_map(self, panelist_id: UUID) -> Dict[UUID, bool]:
        """survey_id -> is_qualified for every row of one panelist"""

    @abstractmethod
    async def survey_has_qualifications(self, survey_id: UUID) -> bool: ...

    @abstractmethod
    async def create_audience_assignment(
        self, survey_id: UUID, assigned_by: str, metadata: Dict[str, Any], preset_id: Optional[UUID] = None
    ) -> None: ...

    @abstractmethod
    async def create_preset(self, name: str, description: Optional[str], filters: Dict[str, Any], created_by: str) -> AudiencePresetRecord: ...

    @abstractmethod
    async def get_preset(self, preset_id: UUID) -> Optional[AudiencePresetRecord]: ...

    @abstractmethod
    async def list_presets(self) -> List[AudiencePresetRecord]: ...

    @abstractmethod
    async def get_completion(self, survey_id: UUID, panelist_id: UUID) -> Optional[SurveyCompletionRecord]: ...

    @abstractmethod
    async def completed_survey_ids(self, panelist_id: UUID) -> List[UUID]: ...

    @abstractmethod
    async def record_survey_completion(
        self, survey: SurveyRecord, panelist_id: UUID, response_data: Dict[str, Any]
    ) -> Optional[Tuple[SurveyCompletionRecord, PointLedgerEntryRecord]]:
        """Insert the completion and credit the reward together; None if already completed"""

    # =========================================================================
    # POINTS
    # =========================================================================

    @abstractmethod
    async def credit_points(
        self,
        panelist_id: UUID,
        points: int,
        transaction_type: str,
        title: str,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        created_by: Optional[str] = None,
    ) -> PointLedgerEntryRecord:
        """Store-side increment of points_balance and total_points_earned plus one ledger entry"""

    @abstractmethod
    async def debit_points(
        self,
        panelist_id: UUID,
        points: int,
        transaction_type: str,
        title: str,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        created_by: Optional[str] = None,
    ) -> Optional[PointLedgerEntryRecord]:
        """Conditional decrement (balance >= points); None when the balance is insufficient"""

    @abstractmethod
    async def list_ledger(
        self,
        panelist_id: Optional[UUID] = None,
        transaction_type: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[PointLedgerEntryRecord]: ...

    @abstractmethod
    async def sum_points_in_window(
        self,
        panelist_ids: Sequence[UUID],
        window_start: datetime,
        window_end: datetime,
        transaction_types: Sequence[str],
    ) -> Dict[UUID, int]:
        """Sum of positive ledger entries per panelist created inside [window_start, window_end]"""

    # =========================================================================
    # OFFERS & REDEMPTIONS
    # =========================================================================

    @abstractmethod
    async def list_offers(
        self,
        is_active: Optional[bool] = True,
        min_points: Optional[int] = None,
        max_points: Optional[int] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[MerchantOfferRecord]: ...

    @abstractmethod
    async def get_offer(self, offer_id: UUID) -> Optional[MerchantOfferRecord]: ...

    @abstractmethod
    async def create_offer(self, fields: Dict[str, Any]) -> MerchantOfferRecord: ...

    @abstractmethod
    async def update_offer(self, offer_id: UUID, fields: Dict[str, Any]) -> Optional[MerchantOfferRecord]: ...

    @abstractmethod
    async def redeem_offer(
        self, panelist_id: UUID, offer: MerchantOfferRecord, created_by: Optional[str] = None
    ) -> Optional[RedemptionRecord]:
        """Redemption row, conditional debit and ledger entry in one transaction; None when balance is short"""

    @abstractmethod
    async def list_redemptions(
        self, panelist_id: UUID, status: Optional[str] = None, limit: int = 10, offset: int = 0
    ) -> List[RedemptionRecord]: ...

    # =========================================================================
    # CONTESTS
    # =========================================================================

    @abstractmethod
    async def create_contest(
        self, created_by: str, fields: Dict[str, Any], invited_panelist_ids: Sequence[UUID] = ()
    ) -> ContestRecord: ...

    @abstractmethod
    async def get_contest(self, contest_id: UUID) -> Optional[ContestRecord]: ...

    @abstractmethod
    async def list_contests(
        self, status: Optional[ContestStatus] = None, limit: int = 10, offset: int = 0
    ) -> List[ContestRecord]: ...

    @abstractmethod
    async def count_contests(self, status: Optional[ContestStatus] = None) -> int: ...

    @abstractmethod
    async def count_participants(self, contest_id: UUID) -> int: ...

    @abstractmethod
    async def update_contest(self, contest_id: UUID, fields: Dict[str, Any]) -> Optional[ContestRecord]: ...

    @abstractmethod
    async def transition_contest(
        self,
        contest_id: UUID,
        from_statuses: Iterable[ContestStatus],
        to_status: ContestStatus,
        ended_at: Optional[datetime] = None,
    ) -> Optional[ContestRecord]:
        """Conditional status update; None when the contest is not in one of from_statuses"""

    @abstractmethod
    async def add_invitations(
        self, contest_id: UUID, panelist_ids: Sequence[UUID], invited_by: str
    ) -> List[ContestInvitationRecord]:
        """Insert invitations, ignoring ones that already exist; returns the new rows"""

    @abstractmethod
    async def is_invited(self, contest_id: UUID, panelist_id: UUID) -> bool: ...

    @abstractmethod
    async def get_participant(self, contest_id: UUID, panelist_id: UUID) -> Optional[ContestParticipantRecord]: ...

    @abstractmethod
    async def create_participant(self, contest_id: UUID, panelist_id: UUID) -> Optional[ContestParticipantRecord]:
        """None when the panelist already joined"""

    @abstractmethod
    async def list_participants(self, contest_id: UUID, limit: Optional[int] = None) -> List[ContestParticipantRecord]:
        """Ordered by rank ascending, unranked last"""

    @abstractmethod
    async def write_rankings(self, contest_id: UUID, assignments: Sequence[RankAssignment]) -> None:
        """Write the whole rank set in one batch"""

    @abstractmethod
    async def award_prize(
        self, contest_id: UUID, panelist_id: UUID, prize_points: int, awarded_by: str, title: str
    ) -> Optional[PointLedgerEntryRecord]:
        """
        Flip prize_awarded false -> true with a conditional update and, only if
        that hit a row, credit the prize and record the award. None when the
        participation was already awarded.
        """

    @abstractmethod
    async def list_visible_contests(
        self, panelist_id: UUID, statuses: Iterable[ContestStatus]
    ) -> List[ContestRecord]:
        """Contests open to all panelists plus those the panelist is invited to"""

    @abstractmethod
    async def list_joined_contests(
        self, panelist_id: UUID, statuses: Iterable[ContestStatus]
    ) -> List[Tuple[ContestRecord, ContestParticipantRecord]]: ...

    # =========================================================================
    # ACTIVITY
    # =========================================================================

    @abstractmethod
    async def log_activity(
        self, user_id: str, activity_type: str, description: str, metadata: Optional[Dict[str, Any]] = None
    ) -> None: ...

    @abstractmethod
    async def list_activity(self, user_id: str, limit: int = 20) -> List[ActivityRecord]: ...
