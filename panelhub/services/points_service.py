"""
Points Service - balances, the point ledger and manual adjustments

Every balance change goes through credit_points/debit_points on the
repository, which apply database-side increments and write one ledger entry.
"""
import logging
from typing import Optional
from uuid import UUID

from panelhub.core.exceptions import NotFoundError, ValidationException
from panelhub.database.repository import PanelRepository
from panelhub.models.panel import (
    PanelistProfileRecord, PointAdjustmentRequest, PointLedgerEntryRecord,
    PointLedgerList, PointsBalance
)
from panelhub.services.activity_service import ActivityService

logger = logging.getLogger(__name__)


class PointsService:

    def __init__(self, repository: PanelRepository):
        self.repository = repository
        self.activity = ActivityService(repository)

    @staticmethod
    def balance_of(profile: PanelistProfileRecord) -> PointsBalance:
        return PointsBalance(
            points_balance=profile.points_balance,
            total_points_earned=profile.total_points_earned,
            total_points_redeemed=profile.total_points_redeemed
        )

    async def get_balance(self, panelist_id: UUID) -> PointsBalance:
        profile = await self.repository.get_panelist(panelist_id)
        if profile is None:
            raise NotFoundError("Panelist profile not found")
        return self.balance_of(profile)

    async def list_ledger(
        self,
        panelist_id: Optional[UUID] = None,
        transaction_type: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> PointLedgerList:
        entries = await self.repository.list_ledger(panelist_id, transaction_type, limit, offset)
        return PointLedgerList(entries=entries, total=len(entries))

    async def adjust_points(self, request: PointAdjustmentRequest, admin_id: str) -> PointLedgerEntryRecord:
        """Manual award (positive) or deduction (negative) by an administrator"""
        if await self.repository.get_panelist(request.panelist_id) is None:
            raise NotFoundError("Panelist profile not found")

        metadata = {"adjusted_by": admin_id}
        if request.points > 0:
            entry = await self.repository.credit_points(
                request.panelist_id,
                request.points,
                "manual_award",
                request.title,
                description=request.description,
                metadata=metadata,
                created_by=admin_id,
            )
        else:
            entry = await self.repository.debit_points(
                request.panelist_id,
                -request.points,
                "manual_deduction",
                request.title,
                description=request.description,
                metadata=metadata,
                created_by=admin_id,
            )
            if entry is None:
                raise ValidationException("Insufficient points for this deduction")

        logger.info(f"Admin {admin_id} adjusted panelist {request.panelist_id} by {request.points} points")
        await self.activity.log(
            admin_id,
            "points_adjusted",
            f"Adjusted {request.points} points: {request.title}",
            {"panelist_id": str(request.panelist_id), "points": request.points, "ledger_entry_id": str(entry.id)}
        )
        return entry
