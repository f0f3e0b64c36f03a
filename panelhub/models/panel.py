"""
Panel Models - Pydantic Models for panelists, surveys, points, offers and redemptions
"""
from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime
from enum import Enum
import uuid


# =============================================================================
# PANELIST PROFILE MODELS
# =============================================================================

class PanelistProfileRecord(BaseModel):
    id: uuid.UUID
    user_id: str
    points_balance: int = Field(0, ge=0)
    total_points_earned: int = Field(0, ge=0)
    total_points_redeemed: int = Field(0, ge=0)
    surveys_completed: int = Field(0, ge=0)
    profile_data: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProfileUpdate(BaseModel):
    """Merged into profile_data; a null value removes the attribute"""
    profile_data: Dict[str, Any]


class ProgramRecord(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    is_active: bool = True

    class Config:
        from_attributes = True


class PointsBalance(BaseModel):
    points_balance: int
    total_points_earned: int
    total_points_redeemed: int


# =============================================================================
# SURVEY MODELS
# =============================================================================

class SurveyStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"


class SurveyCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    points_reward: int = Field(..., gt=0)
    estimated_completion_time: int = Field(..., gt=0, description="Minutes")
    qualification_criteria: Dict[str, Any] = Field(default_factory=dict)


class SurveyUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    points_reward: Optional[int] = Field(None, gt=0)
    estimated_completion_time: Optional[int] = Field(None, gt=0)
    qualification_criteria: Optional[Dict[str, Any]] = None


class SurveyStatusUpdate(BaseModel):
    status: SurveyStatus


class SurveyRecord(BaseModel):
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    points_reward: int
    estimated_completion_time: int
    qualification_criteria: Dict[str, Any] = Field(default_factory=dict)
    audience_count: int = 0
    status: SurveyStatus = SurveyStatus.DRAFT
    created_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SurveyResponseItem(BaseModel):
    question_id: str = Field(..., min_length=1)
    response_value: str
    response_metadata: Optional[Dict[str, Any]] = None


class SurveyCompletionRequest(BaseModel):
    survey_id: uuid.UUID
    responses: List[SurveyResponseItem] = Field(default_factory=list)


class SurveyCompletionRecord(BaseModel):
    id: uuid.UUID
    survey_id: uuid.UUID
    panelist_id: uuid.UUID
    points_earned: int
    response_data: Dict[str, Any] = Field(default_factory=dict)
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SurveyCompletionResult(BaseModel):
    success: bool = True
    completion_id: uuid.UUID
    points_earned: int
    new_balance: int


# =============================================================================
# POINT LEDGER MODELS
# =============================================================================

TransactionType = Literal[
    "survey_completion", "redemption", "contest_prize", "manual_award", "manual_deduction"
]

# Earning transactions that count toward contest standings
CONTEST_EARNING_TYPES = ("survey_completion", "manual_award")


class PointLedgerEntryRecord(BaseModel):
    id: uuid.UUID
    panelist_id: uuid.UUID
    points: int = Field(..., description="Positive for credits, negative for debits")
    transaction_type: TransactionType
    title: str
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="entry_metadata")
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        populate_by_name = True


class PointLedgerList(BaseModel):
    entries: List[PointLedgerEntryRecord]
    total: int


class PointAdjustmentRequest(BaseModel):
    panelist_id: uuid.UUID
    points: int = Field(..., description="Positive to award, negative to deduct")
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None

    @model_validator(mode="after")
    def non_zero(self) -> "PointAdjustmentRequest":
        if self.points == 0:
            raise ValueError("points must be non-zero")
        return self


# =============================================================================
# OFFER & REDEMPTION MODELS
# =============================================================================

class OfferCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    points_required: int = Field(..., ge=1)
    merchant_name: str = Field(..., min_length=1, max_length=255)
    offer_details: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


class OfferUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    points_required: Optional[int] = Field(None, ge=1)
    merchant_name: Optional[str] = Field(None, min_length=1, max_length=255)
    offer_details: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


class MerchantOfferRecord(BaseModel):
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    points_required: int
    merchant_name: str
    offer_details: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OfferList(BaseModel):
    offers: List[MerchantOfferRecord]
    total: int


RedemptionStatus = Literal["pending", "completed", "cancelled"]


class RedemptionRequest(BaseModel):
    offer_id: uuid.UUID


class RedemptionRecord(BaseModel):
    id: uuid.UUID
    panelist_id: uuid.UUID
    offer_id: uuid.UUID
    points_spent: int
    status: RedemptionStatus = "pending"
    redemption_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RedemptionResult(BaseModel):
    success: bool = True
    redemption_id: uuid.UUID
    points_spent: int
    new_balance: int
    total_redeemed: int


class RedemptionList(BaseModel):
    redemptions: List[RedemptionRecord]
    total: int


# =============================================================================
# ACTIVITY MODELS
# =============================================================================

class ActivityRecord(BaseModel):
    id: uuid.UUID
    user_id: str
    activity_type: str
    description: str
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="activity_metadata")
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        populate_by_name = True
