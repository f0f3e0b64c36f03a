"""
Contest Service - contest lifecycle, competition ranking and prize awards

Lifecycle: draft -> active -> ended, with cancelled reachable from draft or
active. Every transition is a conditional update on the current status, so
two admins racing on the same contest cannot both succeed.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from panelhub.core.exceptions import (
    AuthorizationError, NotFoundError, StateConflictError, ValidationException
)
from panelhub.database.repository import PanelRepository
from panelhub.models.contests import (
    ContestCreate, ContestList, ContestParticipantRecord, ContestRecord,
    ContestStatus, ContestSummary, ContestUpdate, InvitePanelistsRequest,
    InvitePanelistsResponse, InviteType, JoinContestResponse, LeaderboardResponse,
    MyContestEntry, PrizeAwardResult, RankAssignment
)
from panelhub.models.panel import CONTEST_EARNING_TYPES, PanelistProfileRecord
from panelhub.services.activity_service import ActivityService

logger = logging.getLogger(__name__)

PANELIST_VISIBLE_STATUSES = (ContestStatus.ACTIVE, ContestStatus.ENDED)


# =============================================================================
# RANKING
# =============================================================================

def competition_ranks(scores: Sequence[int]) -> List[int]:
    """
    Standard competition ranking ("1224"), aligned with the input order.
    rank = 1 + number of scores strictly greater.
    """
    first_position: Dict[int, int] = {}
    for position, score in enumerate(sorted(scores, reverse=True), start=1):
        first_position.setdefault(score, position)
    return [first_position[score] for score in scores]


def rank_participants(
    participants: Iterable[ContestParticipantRecord], points: Dict[UUID, int]
) -> List[RankAssignment]:
    """Order by points descending, ties listed by join time then panelist id"""
    def sort_key(participant: ContestParticipantRecord):
        joined = participant.joined_at.timestamp() if participant.joined_at else float("inf")
        return (-points.get(participant.panelist_id, 0), joined, str(participant.panelist_id))

    ordered = sorted(participants, key=sort_key)
    ranks = competition_ranks([points.get(p.panelist_id, 0) for p in ordered])
    return [
        RankAssignment(
            participant_id=participant.id,
            points_earned=points.get(participant.panelist_id, 0),
            rank=rank
        )
        for participant, rank in zip(ordered, ranks)
    ]


# =============================================================================
# SERVICE
# =============================================================================

class ContestService:

    def __init__(self, repository: PanelRepository):
        self.repository = repository
        self.activity = ActivityService(repository)

    async def _get_contest(self, contest_id: UUID) -> ContestRecord:
        contest = await self.repository.get_contest(contest_id)
        if contest is None:
            raise NotFoundError("Contest not found")
        return contest

    async def _summarize(self, contest: ContestRecord) -> ContestSummary:
        count = await self.repository.count_participants(contest.id)
        return ContestSummary(**contest.model_dump(), participant_count=count)

    # =========================================================================
    # ADMIN OPERATIONS
    # =========================================================================

    async def create_contest(self, request: ContestCreate, created_by: str) -> ContestRecord:
        """New contests always start in draft"""
        invited: List[UUID] = []
        if request.invite_type == InviteType.SELECTED_PANELISTS:
            invited = await self.repository.panelist_ids_for_users(request.panelist_ids or [])
            if not invited:
                raise ValidationException("No valid panelists found")
            skipped = len(set(request.panelist_ids)) - len(invited)
            if skipped:
                logger.warning(f"Contest invite list had {skipped} users without panelist profiles")

        fields = request.model_dump(exclude={"panelist_ids"})
        fields["invite_type"] = request.invite_type.value

        contest = await self.repository.create_contest(created_by, fields, invited)
        logger.info(f"Created contest {contest.id} ({contest.invite_type.value}, {len(invited)} invited)")
        await self.activity.log(
            created_by, "contest_created", f"Created contest: {contest.title}",
            {"contest_id": str(contest.id), "invited_count": len(invited)}
        )
        return contest

    async def list_contests(
        self, status: Optional[ContestStatus] = None, limit: int = 10, offset: int = 0
    ) -> ContestList:
        page = await self.repository.list_contests(status, limit, offset)
        total = await self.repository.count_contests(status)
        summaries = [await self._summarize(contest) for contest in page]
        return ContestList(
            contests=summaries,
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + len(summaries) < total
        )

    async def get_contest(self, contest_id: UUID) -> ContestSummary:
        return await self._summarize(await self._get_contest(contest_id))

    async def update_contest(self, contest_id: UUID, update: ContestUpdate) -> ContestRecord:
        """Only draft contests are editable"""
        contest = await self._get_contest(contest_id)
        if contest.status != ContestStatus.DRAFT:
            raise StateConflictError("Only draft contests can be edited")

        fields = {
            key: value for key, value in update.model_dump(exclude_unset=True).items()
            if value is not None or key == "description"
        }
        if not fields:
            return contest

        start_date = fields.get("start_date", contest.start_date)
        end_date = fields.get("end_date", contest.end_date)
        if end_date <= start_date:
            raise ValidationException("End date must be after start date")
        if "invite_type" in fields:
            fields["invite_type"] = fields["invite_type"].value

        updated = await self.repository.update_contest(contest_id, fields)
        if updated is None:
            raise NotFoundError("Contest not found")
        logger.info(f"Updated contest {contest_id}: {sorted(fields)}")
        return updated

    async def _transition(
        self,
        contest_id: UUID,
        from_statuses: Sequence[ContestStatus],
        to_status: ContestStatus,
        verb: str,
        admin_id: str,
        ended_at: Optional[datetime] = None,
    ) -> ContestRecord:
        contest = await self._get_contest(contest_id)
        updated = await self.repository.transition_contest(contest_id, from_statuses, to_status, ended_at)
        if updated is None:
            current = await self.repository.get_contest(contest_id) or contest
            raise StateConflictError(f"Cannot {verb} a contest with status '{current.status.value}'")

        logger.info(f"Contest {contest_id}: {contest.status.value} -> {to_status.value} by {admin_id}")
        await self.activity.log(
            admin_id, f"contest_{to_status.value}", f"Contest {verb}: {updated.title}",
            {"contest_id": str(contest_id)}
        )
        return updated

    async def start_contest(self, contest_id: UUID, admin_id: str) -> ContestRecord:
        return await self._transition(contest_id, [ContestStatus.DRAFT], ContestStatus.ACTIVE, "start", admin_id)

    async def end_contest(self, contest_id: UUID, admin_id: str) -> ContestRecord:
        """Stamp ended_at, then recompute the final standings best-effort"""
        contest = await self._transition(
            contest_id, [ContestStatus.ACTIVE], ContestStatus.ENDED, "end", admin_id,
            ended_at=datetime.now(timezone.utc)
        )
        try:
            await self.update_leaderboard(contest_id)
        except Exception as e:
            logger.warning(f"Final leaderboard update failed for contest {contest_id}: {e}")
        return contest

    async def cancel_contest(self, contest_id: UUID, admin_id: str) -> ContestRecord:
        return await self._transition(
            contest_id, [ContestStatus.DRAFT, ContestStatus.ACTIVE], ContestStatus.CANCELLED, "cancel", admin_id
        )

    async def invite_panelists(
        self, contest_id: UUID, request: InvitePanelistsRequest, admin_id: str
    ) -> InvitePanelistsResponse:
        contest = await self._get_contest(contest_id)
        if contest.status not in (ContestStatus.DRAFT, ContestStatus.ACTIVE):
            raise StateConflictError(f"Cannot invite panelists to a contest with status '{contest.status.value}'")

        panelist_ids = await self.repository.panelist_ids_for_users(request.panelist_ids)
        if not panelist_ids:
            raise ValidationException("No valid panelists found")

        created = await self.repository.add_invitations(contest_id, panelist_ids, admin_id)
        logger.info(f"Invited {len(created)} new panelists to contest {contest_id}")
        return InvitePanelistsResponse(
            invitations=created,
            message=f"Invited {len(created)} panelists"
        )

    # =========================================================================
    # RANKING & PRIZES
    # =========================================================================

    async def update_leaderboard(self, contest_id: UUID) -> List[ContestParticipantRecord]:
        """
        Recompute points_earned from ledger entries inside the contest window
        and write competition ranks for every participant in one batch
        """
        contest = await self._get_contest(contest_id)
        participants = await self.repository.list_participants(contest_id)
        if not participants:
            return []

        points = await self.repository.sum_points_in_window(
            [participant.panelist_id for participant in participants],
            contest.start_date,
            contest.window_end(),
            CONTEST_EARNING_TYPES,
        )
        assignments = rank_participants(participants, points)
        await self.repository.write_rankings(contest_id, assignments)

        logger.info(f"Leaderboard updated for contest {contest_id}: {len(assignments)} participants")
        return await self.repository.list_participants(contest_id)

    async def award_prize(self, contest_id: UUID, panelist_id: UUID, awarded_by: str) -> PrizeAwardResult:
        """One-shot: a participation receives the contest prize at most once"""
        contest = await self._get_contest(contest_id)
        if contest.status != ContestStatus.ENDED:
            raise ValidationException("Prizes can only be awarded for ended contests")

        participant = await self.repository.get_participant(contest_id, panelist_id)
        if participant is None:
            raise NotFoundError("Participant not found")
        if participant.prize_awarded:
            raise StateConflictError("Prize already awarded to this participant")

        entry = await self.repository.award_prize(
            contest_id, panelist_id, contest.prize_points, awarded_by, f"Contest prize: {contest.title}"
        )
        if entry is None:
            # Lost the race to a concurrent award
            raise StateConflictError("Prize already awarded to this participant")

        logger.info(f"Awarded {contest.prize_points} points to panelist {panelist_id} in contest {contest_id}")
        await self.activity.log(
            awarded_by, "contest_prize_awarded", f"Awarded prize for contest: {contest.title}",
            {"contest_id": str(contest_id), "panelist_id": str(panelist_id), "points": contest.prize_points}
        )
        return PrizeAwardResult(
            contest_id=contest_id,
            panelist_id=panelist_id,
            points_awarded=contest.prize_points,
            ledger_entry_id=entry.id
        )

    # =========================================================================
    # PANELIST OPERATIONS
    # =========================================================================

    async def _can_see(self, contest: ContestRecord, panelist_id: UUID) -> bool:
        if contest.invite_type == InviteType.ALL_PANELISTS:
            return True
        return await self.repository.is_invited(contest.id, panelist_id)

    async def join_contest(self, contest_id: UUID, panelist: PanelistProfileRecord) -> JoinContestResponse:
        contest = await self._get_contest(contest_id)
        if contest.status != ContestStatus.ACTIVE:
            raise ValidationException("Only active contests can be joined")
        if not await self._can_see(contest, panelist.id):
            raise AuthorizationError("You are not invited to this contest")

        participation = await self.repository.create_participant(contest_id, panelist.id)
        if participation is None:
            raise StateConflictError("Already joined this contest")

        logger.info(f"Panelist {panelist.id} joined contest {contest_id}")
        await self.activity.log(
            panelist.user_id, "contest_joined", f"Joined contest: {contest.title}",
            {"contest_id": str(contest_id)}
        )
        return JoinContestResponse(participation=participation, message="Successfully joined contest")

    async def list_visible_contests(self, panelist: PanelistProfileRecord) -> List[ContestSummary]:
        contests = await self.repository.list_visible_contests(panelist.id, PANELIST_VISIBLE_STATUSES)
        return [await self._summarize(contest) for contest in contests]

    async def my_active_contests(self, panelist: PanelistProfileRecord) -> List[MyContestEntry]:
        joined = await self.repository.list_joined_contests(panelist.id, [ContestStatus.ACTIVE])
        return [MyContestEntry(contest=contest, participation=participation) for contest, participation in joined]

    async def get_leaderboard(
        self, contest_id: UUID, viewer: Optional[PanelistProfileRecord], limit: int = 50
    ) -> LeaderboardResponse:
        """
        viewer None is an administrator's view and skips the visibility check.
        Active contests are re-ranked first; if that fails the stored ranks are served.
        """
        contest = await self._get_contest(contest_id)
        if viewer is not None:
            if contest.status not in PANELIST_VISIBLE_STATUSES:
                raise NotFoundError("Contest not found")
            if not await self._can_see(contest, viewer.id):
                raise AuthorizationError("Access denied")

        message = None
        if contest.status == ContestStatus.ACTIVE:
            try:
                await self.update_leaderboard(contest_id)
            except Exception as e:
                logger.error(f"Leaderboard refresh failed for contest {contest_id}: {e}")
                message = "Leaderboard may be out of date"

        participants = await self.repository.list_participants(contest_id, limit)
        total = await self.repository.count_participants(contest_id)
        mine = None
        if viewer is not None:
            mine = await self.repository.get_participant(contest_id, viewer.id)

        return LeaderboardResponse(
            contest_id=contest_id,
            status=contest.status,
            participants=participants,
            total_participants=total,
            my_participation=mine,
            message=message
        )
