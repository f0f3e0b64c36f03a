"""
Contest Models - Pydantic Models for contests, participants and prize awards
"""
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum
import uuid


class ContestStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ENDED = "ended"
    CANCELLED = "cancelled"


class InviteType(str, Enum):
    ALL_PANELISTS = "all_panelists"
    SELECTED_PANELISTS = "selected_panelists"


# =============================================================================
# CONTEST MODELS
# =============================================================================

class ContestBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    prize_points: int = Field(..., gt=0, description="Points credited to each awarded participant")
    invite_type: InviteType = InviteType.ALL_PANELISTS

    @field_validator("start_date", "end_date")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are taken to be UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ContestCreate(ContestBase):
    panelist_ids: Optional[List[str]] = Field(None, description="User ids to invite for selected_panelists contests")

    @model_validator(mode="after")
    def check_window_and_invites(self) -> "ContestCreate":
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        if self.invite_type == InviteType.SELECTED_PANELISTS and not self.panelist_ids:
            raise ValueError("panelist_ids required when invite_type is selected_panelists")
        return self


class ContestUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    prize_points: Optional[int] = Field(None, gt=0)
    invite_type: Optional[InviteType] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


class ContestRecord(ContestBase):
    id: uuid.UUID
    status: ContestStatus = ContestStatus.DRAFT
    created_by: str
    ended_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("ended_at")
    @classmethod
    def ended_at_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    def window_end(self) -> datetime:
        """Points stop accruing at the earlier of the scheduled end and the moment the contest was ended"""
        if self.ended_at is not None and self.ended_at < self.end_date:
            return self.ended_at
        return self.end_date


class ContestSummary(ContestRecord):
    participant_count: int = 0


class ContestList(BaseModel):
    contests: List[ContestSummary]
    total: int
    limit: int
    offset: int
    has_more: bool


class ContestResponse(BaseModel):
    contest: ContestRecord
    message: str


# =============================================================================
# PARTICIPATION MODELS
# =============================================================================

class ContestParticipantRecord(BaseModel):
    id: uuid.UUID
    contest_id: uuid.UUID
    panelist_id: uuid.UUID
    points_earned: int = 0
    rank: Optional[int] = None
    prize_awarded: bool = False
    prize_awarded_at: Optional[datetime] = None
    prize_awarded_by: Optional[str] = None
    joined_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ContestInvitationRecord(BaseModel):
    id: uuid.UUID
    contest_id: uuid.UUID
    panelist_id: uuid.UUID
    invited_by: str
    invited_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RankAssignment(BaseModel):
    """One row of a leaderboard recomputation"""
    participant_id: uuid.UUID
    points_earned: int
    rank: int


class InvitePanelistsRequest(BaseModel):
    panelist_ids: List[str] = Field(..., min_length=1, description="User ids of the panelists to invite")


class InvitePanelistsResponse(BaseModel):
    invitations: List[ContestInvitationRecord]
    message: str


class JoinContestResponse(BaseModel):
    participation: ContestParticipantRecord
    message: str


class LeaderboardResponse(BaseModel):
    contest_id: uuid.UUID
    status: ContestStatus
    participants: List[ContestParticipantRecord]
    total_participants: int = 0
    my_participation: Optional[ContestParticipantRecord] = None
    message: Optional[str] = None


class MyContestEntry(BaseModel):
    contest: ContestRecord
    participation: ContestParticipantRecord


class AwardPrizeRequest(BaseModel):
    panelist_id: uuid.UUID


class PrizeAwardResult(BaseModel):
    contest_id: uuid.UUID
    panelist_id: uuid.UUID
    points_awarded: int
    ledger_entry_id: uuid.UUID
    message: str = "Prize awarded successfully"
