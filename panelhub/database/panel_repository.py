"""
Supabase Postgres implementation of the panel repository
Async SQLAlchemy; multi-row writes are one transaction each
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from fastapi import Depends
from sqlalchemy import select, update, func, and_, or_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from panelhub.core.exceptions import NotFoundError, UpstreamError
from panelhub.database.connection import get_db
from panelhub.database.repository import PanelRepository
from panelhub.database.unified_models import (
    ActivityLog, AudiencePreset, Contest, ContestInvitation, ContestParticipant,
    ContestPrizeAward, MerchantOffer, PanelistProfile, PanelistProgram,
    PanelistProgramOptIn, PointLedgerEntry, Redemption, Survey,
    SurveyAudienceAssignment, SurveyCompletion, SurveyQualification, User
)
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

logger = logging.getLogger(__name__)

# asyncpg caps bind parameters per statement
UPSERT_CHUNK_SIZE = 1000


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _values(statuses: Iterable) -> List[str]:
    return [getattr(s, "value", s) for s in statuses]


class SqlPanelRepository(PanelRepository):
    """Panel repository bound to one request-scoped AsyncSession"""

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def _transaction(self):
        try:
            yield self.session
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Database write failed: {e}")
            raise UpstreamError("Database operation failed") from e
        except Exception:
            await self.session.rollback()
            raise

    async def _scalar(self, stmt):
        try:
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Database read failed: {e}")
            raise UpstreamError("Database operation failed") from e

    async def _scalars(self, stmt) -> list:
        try:
            result = await self.session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Database read failed: {e}")
            raise UpstreamError("Database operation failed") from e

    async def _rows(self, stmt) -> list:
        try:
            result = await self.session.execute(stmt)
            return list(result.all())
        except SQLAlchemyError as e:
            logger.error(f"Database read failed: {e}")
            raise UpstreamError("Database operation failed") from e

    # =========================================================================
    # USERS & PANELISTS
    # =========================================================================

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        user = await self._scalar(select(User).where(User.id == user_id))
        return UserRecord.model_validate(user) if user else None

    async def create_user(self, user_id: str, email: str, role: UserRole = UserRole.PANELIST) -> UserRecord:
        async with self._transaction() as session:
            await session.execute(
                pg_insert(User)
                .values(id=user_id, email=email, role=role.value, created_at=_now(), updated_at=_now())
                .on_conflict_do_nothing(index_elements=[User.id])
            )
        logger.info(f"Created user record {user_id} with role {role.value}")
        return await self.get_user(user_id)

    async def get_panelist(self, panelist_id: UUID) -> Optional[PanelistProfileRecord]:
        profile = await self._scalar(select(PanelistProfile).where(PanelistProfile.id == panelist_id))
        return PanelistProfileRecord.model_validate(profile) if profile else None

    async def get_panelist_by_user(self, user_id: str) -> Optional[PanelistProfileRecord]:
        profile = await self._scalar(select(PanelistProfile).where(PanelistProfile.user_id == user_id))
        return PanelistProfileRecord.model_validate(profile) if profile else None

    async def create_panelist(self, user_id: str) -> PanelistProfileRecord:
        async with self._transaction() as session:
            await session.execute(
                pg_insert(PanelistProfile)
                .values(
                    id=uuid4(), user_id=user_id, points_balance=0, total_points_earned=0,
                    total_points_redeemed=0, surveys_completed=0, profile_data={},
                    is_active=True, created_at=_now(), updated_at=_now()
                )
                .on_conflict_do_nothing(index_elements=[PanelistProfile.user_id])
            )
        return await self.get_panelist_by_user(user_id)

    async def update_profile_data(self, panelist_id: UUID, profile_data: Dict[str, Any]) -> Optional[PanelistProfileRecord]:
        async with self._transaction() as session:
            result = await session.execute(
                update(PanelistProfile)
                .where(PanelistProfile.id == panelist_id)
                .values(profile_data=profile_data, updated_at=_now())
                .returning(PanelistProfile)
            )
            profile = result.scalar_one_or_none()
        return PanelistProfileRecord.model_validate(profile) if profile else None

    async def set_panelist_active(self, panelist_id: UUID, is_active: bool) -> Optional[PanelistProfileRecord]:
        async with self._transaction() as session:
            result = await session.execute(
                update(PanelistProfile)
                .where(PanelistProfile.id == panelist_id)
                .values(is_active=is_active, updated_at=_now())
                .returning(PanelistProfile)
            )
            profile = result.scalar_one_or_none()
        return PanelistProfileRecord.model_validate(profile) if profile else None

    async def list_active_panelists(self, program_id: Optional[UUID] = None) -> List[PanelistProfileRecord]:
        query = select(PanelistProfile).where(PanelistProfile.is_active == True)
        if program_id is not None:
            query = query.join(
                PanelistProgramOptIn, PanelistProgramOptIn.panelist_id == PanelistProfile.id
            ).where(
                and_(
                    PanelistProgramOptIn.program_id == program_id,
                    PanelistProgramOptIn.is_active == True
                )
            )
        query = query.order_by(PanelistProfile.created_at, PanelistProfile.id)
        return [PanelistProfileRecord.model_validate(p) for p in await self._scalars(query)]

    async def count_active_panelists(self) -> int:
        return await self._scalar(
            select(func.count()).select_from(PanelistProfile).where(PanelistProfile.is_active == True)
        ) or 0

    async def count_program_panelists(self, program_id: UUID) -> int:
        return await self._scalar(
            select(func.count()).select_from(PanelistProgramOptIn).where(
                and_(
                    PanelistProgramOptIn.program_id == program_id,
                    PanelistProgramOptIn.is_active == True
                )
            )
        ) or 0

    async def get_active_program_by_name(self, name: str) -> Optional[ProgramRecord]:
        program = await self._scalar(
            select(PanelistProgram).where(
                and_(PanelistProgram.name == name, PanelistProgram.is_active == True)
            )
        )
        return ProgramRecord.model_validate(program) if program else None

    async def panelist_ids_for_users(self, user_ids: Sequence[str]) -> List[UUID]:
        if not user_ids:
            return []
        return await self._scalars(
            select(PanelistProfile.id).where(PanelistProfile.user_id.in_(list(user_ids)))
        )

    # =========================================================================
    # SURVEYS & QUALIFICATIONS
    # =========================================================================

    async def create_survey(self, created_by: str, fields: Dict[str, Any]) -> SurveyRecord:
        survey = Survey(
            id=uuid4(), created_by=created_by, status=SurveyStatus.DRAFT.value,
            audience_count=0, created_at=_now(), updated_at=_now(), **fields
        )
        async with self._transaction() as session:
            session.add(survey)
        return SurveyRecord.model_validate(survey)

    async def get_survey(self, survey_id: UUID) -> Optional[SurveyRecord]:
        survey = await self._scalar(select(Survey).where(Survey.id == survey_id))
        return SurveyRecord.model_validate(survey) if survey else None

    async def list_surveys(
        self, statuses: Optional[Iterable[SurveyStatus]] = None, limit: int = 50, offset: int = 0
    ) -> List[SurveyRecord]:
        query = select(Survey)
        if statuses is not None:
            query = query.where(Survey.status.in_(_values(statuses)))
        query = query.order_by(Survey.created_at.desc()).limit(limit).offset(offset)
        return [SurveyRecord.model_validate(s) for s in await self._scalars(query)]

    async def update_survey(self, survey_id: UUID, fields: Dict[str, Any]) -> Optional[SurveyRecord]:
        async with self._transaction() as session:
            result = await session.execute(
                update(Survey)
                .where(Survey.id == survey_id)
                .values(**fields, updated_at=_now())
                .returning(Survey)
            )
            survey = result.scalar_one_or_none()
        return SurveyRecord.model_validate(survey) if survey else None

    async def transition_survey(
        self, survey_id: UUID, from_statuses: Iterable[SurveyStatus], to_status: SurveyStatus
    ) -> Optional[SurveyRecord]:
        async with self._transaction() as session:
            result = await session.execute(
                update(Survey)
                .where(and_(Survey.id == survey_id, Survey.status.in_(_values(from_statuses))))
                .values(status=to_status.value, updated_at=_now())
                .returning(Survey)
            )
            survey = result.scalar_one_or_none()
        return SurveyRecord.model_validate(survey) if survey else None

    async def set_survey_audience_count(self, survey_id: UUID, audience_count: int) -> None:
        async with self._transaction() as session:
            await session.execute(
                update(Survey)
                .where(Survey.id == survey_id)
                .values(audience_count=audience_count, updated_at=_now())
            )

    async def upsert_qualifications(self, rows: Sequence[QualificationRow]) -> int:
        if not rows:
            return 0
        now = _now()
        values = [
            {
                "id": uuid4(),
                "survey_id": row.survey_id,
                "panelist_id": row.panelist_id,
                "is_qualified": row.is_qualified,
                "qualification_reason": row.qualification_reason,
                "created_at": now,
                "updated_at": now,
            }
            for row in rows
        ]
        async with self._transaction() as session:
            for start in range(0, len(values), UPSERT_CHUNK_SIZE):
                stmt = pg_insert(SurveyQualification).values(values[start:start + UPSERT_CHUNK_SIZE])
                stmt = stmt.on_conflict_do_update(
                    index_elements=[SurveyQualification.survey_id, SurveyQualification.panelist_id],
                    set_={
                        "is_qualified": stmt.excluded.is_qualified,
                        "qualification_reason": stmt.excluded.qualification_reason,
                        "updated_at": stmt.excluded.updated_at,
                    }
                )
                await session.execute(stmt)
        return len(values)

    async def list_qualifications(
        self, survey_id: UUID, panelist_id: Optional[UUID] = None, limit: int = 50, offset: int = 0
    ) -> List[QualificationRow]:
        query = select(SurveyQualification).where(SurveyQualification.survey_id == survey_id)
        if panelist_id is not None:
            query = query.where(SurveyQualification.panelist_id == panelist_id)
        query = query.order_by(SurveyQualification.created_at.desc()).limit(limit).offset(offset)
        return [QualificationRow.model_validate(q) for q in await self._scalars(query)]

    async def count_qualifications(self, survey_id: UUID, panelist_id: Optional[UUID] = None) -> int:
        query = (
            select(func.count()).select_from(SurveyQualification)
            .where(SurveyQualification.survey_id == survey_id)
        )
        if panelist_id is not None:
            query = query.where(SurveyQualification.panelist_id == panelist_id)
        return await self._scalar(query) or 0

    async def qualified_panelist_ids(self, survey_id: UUID) -> List[UUID]:
        return await self._scalars(
            select(SurveyQualification.panelist_id).where(
                and_(SurveyQualification.survey_id == survey_id, SurveyQualification.is_qualified == True)
            )
        )

    async def qualification_map(self, panelist_id: UUID) -> Dict[UUID, bool]:
        rows = await self._rows(
            select(SurveyQualification.survey_id, SurveyQualification.is_qualified)
            .where(SurveyQualification.panelist_id == panelist_id)
        )
        return {survey_id: is_qualified for survey_id, is_qualified in rows}

    async def survey_has_qualifications(self, survey_id: UUID) -> bool:
        found = await self._scalar(
            select(SurveyQualification.id).where(SurveyQualification.survey_id == survey_id).limit(1)
        )
        return found is not None

    async def create_audience_assignment(
        self, survey_id: UUID, assigned_by: str, metadata: Dict[str, Any], preset_id: Optional[UUID] = None
    ) -> None:
        async with self._transaction() as session:
            session.add(SurveyAudienceAssignment(
                id=uuid4(),
                survey_id=survey_id,
                audience_preset_id=preset_id,
                assigned_by=assigned_by,
                assignment_metadata=metadata,
                created_at=_now()
            ))

    async def create_preset(self, name: str, description: Optional[str], filters: Dict[str, Any], created_by: str) -> AudiencePresetRecord:
        preset = AudiencePreset(
            id=uuid4(), name=name, description=description, filters=filters,
            created_by=created_by, created_at=_now()
        )
        async with self._transaction() as session:
            session.add(preset)
        return AudiencePresetRecord.model_validate(preset)

    async def get_preset(self, preset_id: UUID) -> Optional[AudiencePresetRecord]:
        preset = await self._scalar(select(AudiencePreset).where(AudiencePreset.id == preset_id))
        return AudiencePresetRecord.model_validate(preset) if preset else None

    async def list_presets(self) -> List[AudiencePresetRecord]:
        presets = await self._scalars(select(AudiencePreset).order_by(AudiencePreset.created_at.desc()))
        return [AudiencePresetRecord.model_validate(p) for p in presets]

    async def get_completion(self, survey_id: UUID, panelist_id: UUID) -> Optional[SurveyCompletionRecord]:
        completion = await self._scalar(
            select(SurveyCompletion).where(
                and_(SurveyCompletion.survey_id == survey_id, SurveyCompletion.panelist_id == panelist_id)
            )
        )
        return SurveyCompletionRecord.model_validate(completion) if completion else None

    async def completed_survey_ids(self, panelist_id: UUID) -> List[UUID]:
        return await self._scalars(
            select(SurveyCompletion.survey_id).where(SurveyCompletion.panelist_id == panelist_id)
        )

    async def record_survey_completion(
        self, survey: SurveyRecord, panelist_id: UUID, response_data: Dict[str, Any]
    ) -> Optional[Tuple[SurveyCompletionRecord, PointLedgerEntryRecord]]:
        completion_id = uuid4()
        async with self._transaction() as session:
            result = await session.execute(
                pg_insert(SurveyCompletion)
                .values(
                    id=completion_id, survey_id=survey.id, panelist_id=panelist_id,
                    points_earned=survey.points_reward, response_data=response_data,
                    completed_at=_now()
                )
                .on_conflict_do_nothing(
                    index_elements=[SurveyCompletion.survey_id, SurveyCompletion.panelist_id]
                )
                .returning(SurveyCompletion.id)
            )
            if result.scalar_one_or_none() is None:
                await session.rollback()
                return None

            entry = await self._credit_in_transaction(
                panelist_id,
                survey.points_reward,
                "survey_completion",
                f"Survey completed: {survey.title}",
                metadata={"survey_id": str(survey.id), "completion_id": str(completion_id)},
                extra_values={"surveys_completed": PanelistProfile.surveys_completed + 1},
            )
        completion = await self.get_completion(survey.id, panelist_id)
        return completion, entry

    # =========================================================================
    # POINTS
    # =========================================================================

    async def _credit_in_transaction(
        self,
        panelist_id: UUID,
        points: int,
        transaction_type: str,
        title: str,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        created_by: Optional[str] = None,
        extra_values: Optional[Dict[str, Any]] = None,
    ) -> PointLedgerEntryRecord:
        """Caller owns the transaction"""
        result = await self.session.execute(
            update(PanelistProfile)
            .where(PanelistProfile.id == panelist_id)
            .values(
                points_balance=PanelistProfile.points_balance + points,
                total_points_earned=PanelistProfile.total_points_earned + points,
                updated_at=_now(),
                **(extra_values or {})
            )
            .returning(PanelistProfile.id)
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError("Panelist profile not found")

        entry = PointLedgerEntry(
            id=uuid4(),
            panelist_id=panelist_id,
            points=points,
            transaction_type=transaction_type,
            title=title,
            description=description,
            entry_metadata=metadata or {},
            created_by=created_by,
            created_at=_now()
        )
        self.session.add(entry)
        await self.session.flush()
        return PointLedgerEntryRecord.model_validate(entry)

    async def _debit_in_transaction(
        self,
        panelist_id: UUID,
        points: int,
        transaction_type: str,
        title: str,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        created_by: Optional[str] = None,
    ) -> Optional[PointLedgerEntryRecord]:
        """Caller owns the transaction; None when the balance does not cover the debit"""
        result = await self.session.execute(
            update(PanelistProfile)
            .where(
                and_(
                    PanelistProfile.id == panelist_id,
                    PanelistProfile.points_balance >= points
                )
            )
            .values(
                points_balance=PanelistProfile.points_balance - points,
                total_points_redeemed=PanelistProfile.total_points_redeemed + points,
                updated_at=_now()
            )
            .returning(PanelistProfile.id)
        )
        if result.scalar_one_or_none() is None:
            return None

        entry = PointLedgerEntry(
            id=uuid4(),
            panelist_id=panelist_id,
            points=-points,
            transaction_type=transaction_type,
            title=title,
            description=description,
            entry_metadata=metadata or {},
            created_by=created_by,
            created_at=_now()
        )
        self.session.add(entry)
        await self.session.flush()
        return PointLedgerEntryRecord.model_validate(entry)

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
        async with self._transaction():
            entry = await self._credit_in_transaction(
                panelist_id, points, transaction_type, title, description, metadata, created_by
            )
        return entry

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
        async with self._transaction():
            entry = await self._debit_in_transaction(
                panelist_id, points, transaction_type, title, description, metadata, created_by
            )
        return entry

    async def list_ledger(
        self,
        panelist_id: Optional[UUID] = None,
        transaction_type: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[PointLedgerEntryRecord]:
        query = select(PointLedgerEntry)
        if panelist_id is not None:
            query = query.where(PointLedgerEntry.panelist_id == panelist_id)
        if transaction_type:
            query = query.where(PointLedgerEntry.transaction_type == transaction_type)
        query = query.order_by(PointLedgerEntry.created_at.desc()).limit(limit).offset(offset)
        return [PointLedgerEntryRecord.model_validate(e) for e in await self._scalars(query)]

    async def sum_points_in_window(
        self,
        panelist_ids: Sequence[UUID],
        window_start: datetime,
        window_end: datetime,
        transaction_types: Sequence[str],
    ) -> Dict[UUID, int]:
        if not panelist_ids:
            return {}
        rows = await self._rows(
            select(PointLedgerEntry.panelist_id, func.coalesce(func.sum(PointLedgerEntry.points), 0))
            .where(
                and_(
                    PointLedgerEntry.panelist_id.in_(list(panelist_ids)),
                    PointLedgerEntry.points > 0,
                    PointLedgerEntry.transaction_type.in_(list(transaction_types)),
                    PointLedgerEntry.created_at >= window_start,
                    PointLedgerEntry.created_at <= window_end
                )
            )
            .group_by(PointLedgerEntry.panelist_id)
        )
        return {panelist_id: int(total) for panelist_id, total in rows}

    # =========================================================================
    # OFFERS & REDEMPTIONS
    # =========================================================================

    async def list_offers(
        self,
        is_active: Optional[bool] = True,
        min_points: Optional[int] = None,
        max_points: Optional[int] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[MerchantOfferRecord]:
        query = select(MerchantOffer)
        if is_active is not None:
            query = query.where(MerchantOffer.is_active == is_active)
        if min_points is not None:
            query = query.where(MerchantOffer.points_required >= min_points)
        if max_points is not None:
            query = query.where(MerchantOffer.points_required <= max_points)
        query = query.order_by(MerchantOffer.points_required.asc()).limit(limit).offset(offset)
        return [MerchantOfferRecord.model_validate(o) for o in await self._scalars(query)]

    async def get_offer(self, offer_id: UUID) -> Optional[MerchantOfferRecord]:
        offer = await self._scalar(select(MerchantOffer).where(MerchantOffer.id == offer_id))
        return MerchantOfferRecord.model_validate(offer) if offer else None

    async def create_offer(self, fields: Dict[str, Any]) -> MerchantOfferRecord:
        offer = MerchantOffer(id=uuid4(), created_at=_now(), updated_at=_now(), **fields)
        async with self._transaction() as session:
            session.add(offer)
        return MerchantOfferRecord.model_validate(offer)

    async def update_offer(self, offer_id: UUID, fields: Dict[str, Any]) -> Optional[MerchantOfferRecord]:
        async with self._transaction() as session:
            result = await session.execute(
                update(MerchantOffer)
                .where(MerchantOffer.id == offer_id)
                .values(**fields, updated_at=_now())
                .returning(MerchantOffer)
            )
            offer = result.scalar_one_or_none()
        return MerchantOfferRecord.model_validate(offer) if offer else None

    async def redeem_offer(
        self, panelist_id: UUID, offer: MerchantOfferRecord, created_by: Optional[str] = None
    ) -> Optional[RedemptionRecord]:
        redemption = Redemption(
            id=uuid4(),
            panelist_id=panelist_id,
            offer_id=offer.id,
            points_spent=offer.points_required,
            status="pending",
            created_at=_now()
        )
        async with self._transaction() as session:
            session.add(redemption)
            await session.flush()

            entry = await self._debit_in_transaction(
                panelist_id,
                offer.points_required,
                "redemption",
                f"Redemption: {offer.title}",
                description=f"Redeemed offer for {offer.points_required} points",
                metadata={"offer_id": str(offer.id), "redemption_id": str(redemption.id)},
                created_by=created_by,
            )
            if entry is None:
                await session.rollback()
                return None

            redemption.status = "completed"
            redemption.redemption_date = _now()
        return RedemptionRecord.model_validate(redemption)

    async def list_redemptions(
        self, panelist_id: UUID, status: Optional[str] = None, limit: int = 10, offset: int = 0
    ) -> List[RedemptionRecord]:
        query = select(Redemption).where(Redemption.panelist_id == panelist_id)
        if status:
            query = query.where(Redemption.status == status)
        query = query.order_by(Redemption.created_at.desc()).limit(limit).offset(offset)
        return [RedemptionRecord.model_validate(r) for r in await self._scalars(query)]

    # =========================================================================
    # CONTESTS
    # =========================================================================

    async def create_contest(
        self, created_by: str, fields: Dict[str, Any], invited_panelist_ids: Sequence[UUID] = ()
    ) -> ContestRecord:
        contest = Contest(
            id=uuid4(), created_by=created_by, status=ContestStatus.DRAFT.value,
            created_at=_now(), updated_at=_now(), **fields
        )
        async with self._transaction() as session:
            session.add(contest)
            await session.flush()
            for panelist_id in dict.fromkeys(invited_panelist_ids):
                session.add(ContestInvitation(
                    id=uuid4(), contest_id=contest.id, panelist_id=panelist_id,
                    invited_by=created_by, invited_at=_now()
                ))
        return ContestRecord.model_validate(contest)

    async def get_contest(self, contest_id: UUID) -> Optional[ContestRecord]:
        contest = await self._scalar(select(Contest).where(Contest.id == contest_id))
        return ContestRecord.model_validate(contest) if contest else None

    async def list_contests(
        self, status: Optional[ContestStatus] = None, limit: int = 10, offset: int = 0
    ) -> List[ContestRecord]:
        query = select(Contest)
        if status is not None:
            query = query.where(Contest.status == status.value)
        query = query.order_by(Contest.created_at.desc()).limit(limit).offset(offset)
        return [ContestRecord.model_validate(c) for c in await self._scalars(query)]

    async def count_contests(self, status: Optional[ContestStatus] = None) -> int:
        query = select(func.count()).select_from(Contest)
        if status is not None:
            query = query.where(Contest.status == status.value)
        return await self._scalar(query) or 0

    async def count_participants(self, contest_id: UUID) -> int:
        return await self._scalar(
            select(func.count()).select_from(ContestParticipant)
            .where(ContestParticipant.contest_id == contest_id)
        ) or 0

    async def update_contest(self, contest_id: UUID, fields: Dict[str, Any]) -> Optional[ContestRecord]:
        async with self._transaction() as session:
            result = await session.execute(
                update(Contest)
                .where(Contest.id == contest_id)
                .values(**fields, updated_at=_now())
                .returning(Contest)
            )
            contest = result.scalar_one_or_none()
        return ContestRecord.model_validate(contest) if contest else None

    async def transition_contest(
        self,
        contest_id: UUID,
        from_statuses: Iterable[ContestStatus],
        to_status: ContestStatus,
        ended_at: Optional[datetime] = None,
    ) -> Optional[ContestRecord]:
        values = {"status": to_status.value, "updated_at": _now()}
        if ended_at is not None:
            values["ended_at"] = ended_at
        async with self._transaction() as session:
            result = await session.execute(
                update(Contest)
                .where(and_(Contest.id == contest_id, Contest.status.in_(_values(from_statuses))))
                .values(**values)
                .returning(Contest)
            )
            contest = result.scalar_one_or_none()
        return ContestRecord.model_validate(contest) if contest else None

    async def add_invitations(
        self, contest_id: UUID, panelist_ids: Sequence[UUID], invited_by: str
    ) -> List[ContestInvitationRecord]:
        if not panelist_ids:
            return []
        values = [
            {
                "id": uuid4(),
                "contest_id": contest_id,
                "panelist_id": panelist_id,
                "invited_by": invited_by,
                "invited_at": _now(),
            }
            for panelist_id in dict.fromkeys(panelist_ids)
        ]
        async with self._transaction() as session:
            result = await session.execute(
                pg_insert(ContestInvitation)
                .values(values)
                .on_conflict_do_nothing(
                    index_elements=[ContestInvitation.contest_id, ContestInvitation.panelist_id]
                )
                .returning(ContestInvitation)
            )
            created = list(result.scalars().all())
        return [ContestInvitationRecord.model_validate(i) for i in created]

    async def is_invited(self, contest_id: UUID, panelist_id: UUID) -> bool:
        found = await self._scalar(
            select(ContestInvitation.id).where(
                and_(ContestInvitation.contest_id == contest_id, ContestInvitation.panelist_id == panelist_id)
            )
        )
        return found is not None

    async def get_participant(self, contest_id: UUID, panelist_id: UUID) -> Optional[ContestParticipantRecord]:
        participant = await self._scalar(
            select(ContestParticipant).where(
                and_(ContestParticipant.contest_id == contest_id, ContestParticipant.panelist_id == panelist_id)
            )
        )
        return ContestParticipantRecord.model_validate(participant) if participant else None

    async def create_participant(self, contest_id: UUID, panelist_id: UUID) -> Optional[ContestParticipantRecord]:
        async with self._transaction() as session:
            result = await session.execute(
                pg_insert(ContestParticipant)
                .values(
                    id=uuid4(), contest_id=contest_id, panelist_id=panelist_id,
                    points_earned=0, rank=None, prize_awarded=False, joined_at=_now()
                )
                .on_conflict_do_nothing(
                    index_elements=[ContestParticipant.contest_id, ContestParticipant.panelist_id]
                )
                .returning(ContestParticipant)
            )
            participant = result.scalar_one_or_none()
        return ContestParticipantRecord.model_validate(participant) if participant else None

    async def list_participants(self, contest_id: UUID, limit: Optional[int] = None) -> List[ContestParticipantRecord]:
        query = (
            select(ContestParticipant)
            .where(ContestParticipant.contest_id == contest_id)
            .order_by(
                ContestParticipant.rank.asc().nulls_last(),
                ContestParticipant.points_earned.desc(),
                ContestParticipant.joined_at.asc()
            )
        )
        if limit is not None:
            query = query.limit(limit)
        return [ContestParticipantRecord.model_validate(p) for p in await self._scalars(query)]

    async def write_rankings(self, contest_id: UUID, assignments: Sequence[RankAssignment]) -> None:
        if not assignments:
            return
        async with self._transaction() as session:
            await session.execute(
                update(ContestParticipant),
                [
                    {"id": a.participant_id, "points_earned": a.points_earned, "rank": a.rank}
                    for a in assignments
                ]
            )

    async def award_prize(
        self, contest_id: UUID, panelist_id: UUID, prize_points: int, awarded_by: str, title: str
    ) -> Optional[PointLedgerEntryRecord]:
        async with self._transaction() as session:
            result = await session.execute(
                update(ContestParticipant)
                .where(
                    and_(
                        ContestParticipant.contest_id == contest_id,
                        ContestParticipant.panelist_id == panelist_id,
                        ContestParticipant.prize_awarded == False
                    )
                )
                .values(prize_awarded=True, prize_awarded_at=_now(), prize_awarded_by=awarded_by)
                .returning(ContestParticipant.id)
            )
            if result.scalar_one_or_none() is None:
                await session.rollback()
                return None

            entry = await self._credit_in_transaction(
                panelist_id,
                prize_points,
                "contest_prize",
                title,
                metadata={"contest_id": str(contest_id)},
                created_by=awarded_by,
            )
            session.add(ContestPrizeAward(
                id=uuid4(),
                contest_id=contest_id,
                panelist_id=panelist_id,
                points_awarded=prize_points,
                awarded_by=awarded_by,
                ledger_entry_id=entry.id,
                awarded_at=_now()
            ))
        return entry

    async def list_visible_contests(
        self, panelist_id: UUID, statuses: Iterable[ContestStatus]
    ) -> List[ContestRecord]:
        invited = select(ContestInvitation.contest_id).where(ContestInvitation.panelist_id == panelist_id)
        query = (
            select(Contest)
            .where(Contest.status.in_(_values(statuses)))
            .where(or_(Contest.invite_type == "all_panelists", Contest.id.in_(invited)))
            .order_by(Contest.start_date.desc())
        )
        return [ContestRecord.model_validate(c) for c in await self._scalars(query)]

    async def list_joined_contests(
        self, panelist_id: UUID, statuses: Iterable[ContestStatus]
    ) -> List[Tuple[ContestRecord, ContestParticipantRecord]]:
        rows = await self._rows(
            select(Contest, ContestParticipant)
            .join(ContestParticipant, ContestParticipant.contest_id == Contest.id)
            .where(
                and_(
                    ContestParticipant.panelist_id == panelist_id,
                    Contest.status.in_(_values(statuses))
                )
            )
            .order_by(Contest.end_date.asc())
        )
        return [
            (ContestRecord.model_validate(contest), ContestParticipantRecord.model_validate(participant))
            for contest, participant in rows
        ]

    # =========================================================================
    # ACTIVITY
    # =========================================================================

    async def log_activity(
        self, user_id: str, activity_type: str, description: str, metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        async with self._transaction() as session:
            session.add(ActivityLog(
                id=uuid4(),
                user_id=user_id,
                activity_type=activity_type,
                description=description,
                activity_metadata=metadata,
                created_at=_now()
            ))

    async def list_activity(self, user_id: str, limit: int = 20) -> List[ActivityRecord]:
        entries = await self._scalars(
            select(ActivityLog)
            .where(ActivityLog.user_id == user_id)
            .order_by(ActivityLog.created_at.desc())
            .limit(limit)
        )
        return [ActivityRecord.model_validate(e) for e in entries]


# Repository dependency for FastAPI
async def get_repository(db: AsyncSession = Depends(get_db)) -> PanelRepository:
    return SqlPanelRepository(db)
