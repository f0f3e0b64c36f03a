"""
Audience Models - Pydantic Models for audience filters, presets and qualifications
"""
from pydantic import BaseModel, Field, AliasChoices, model_validator
from typing import Optional, List, Dict, Any, Union
from datetime import datetime
import uuid


# =============================================================================
# FILTER DEFINITION
# =============================================================================

# Two-element list inputs that expand into a min/max pair
RANGE_LIST_KEYS = {
    "age_range": ("age_min", "age_max"),
    "income_range": ("income_min", "income_max"),
    "household_size_range": ("household_size_min", "household_size_max"),
    "household_size": ("household_size_min", "household_size_max"),
}

RANGE_BOUNDS = {
    "age": ("age_min", "age_max"),
    "income": ("income_min", "income_max"),
    "household_size": ("household_size_min", "household_size_max"),
}


class AudienceFilter(BaseModel):
    """
    Demographic predicates combined with AND.
    A predicate left unset imposes no constraint on its attribute.
    """
    program: Optional[str] = Field(None, min_length=1, description="Restrict to panelists opted into this program")

    # Categorical equality
    gender: Optional[str] = Field(None, min_length=1)
    location: Optional[Union[str, List[str]]] = Field(None, description="Location code or list of codes")
    education_level: Optional[str] = Field(None, min_length=1)
    employment_status: Optional[str] = Field(None, min_length=1)
    children_under_18: Optional[bool] = None
    interests: Optional[List[str]] = Field(None, description="Every listed interest must be present")

    # Inclusive numeric ranges
    age_min: Optional[int] = Field(None, ge=0, validation_alias=AliasChoices("age_min", "ageMin"))
    age_max: Optional[int] = Field(None, ge=0, validation_alias=AliasChoices("age_max", "ageMax"))
    income_min: Optional[float] = Field(None, ge=0, validation_alias=AliasChoices("income_min", "incomeMin"))
    income_max: Optional[float] = Field(None, ge=0, validation_alias=AliasChoices("income_max", "incomeMax"))
    household_size_min: Optional[int] = Field(
        None, ge=0, validation_alias=AliasChoices("household_size_min", "householdSizeMin")
    )
    household_size_max: Optional[int] = Field(
        None, ge=0, validation_alias=AliasChoices("household_size_max", "householdSizeMax")
    )

    class Config:
        extra = "forbid"

    @model_validator(mode="before")
    @classmethod
    def expand_range_lists(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for list_key, (min_key, max_key) in RANGE_LIST_KEYS.items():
            if list_key not in data:
                continue
            bounds = data.pop(list_key)
            if bounds is None:
                continue
            if not isinstance(bounds, (list, tuple)) or len(bounds) != 2:
                raise ValueError(f"{list_key} must be a two-element [min, max] list")
            data.setdefault(min_key, bounds[0])
            data.setdefault(max_key, bounds[1])
        return data

    @model_validator(mode="after")
    def check_ranges(self) -> "AudienceFilter":
        for attribute, (min_key, max_key) in RANGE_BOUNDS.items():
            low, high = getattr(self, min_key), getattr(self, max_key)
            if low is not None and high is not None and low > high:
                raise ValueError(f"{attribute} range minimum {low} is greater than maximum {high}")
        if isinstance(self.location, list) and not self.location:
            self.location = None
        if self.interests is not None and not self.interests:
            self.interests = None
        return self

    def applied_filters(self) -> List[str]:
        """Names of the predicates that constrain the population (program excluded)"""
        return [
            key for key, value in self.model_dump(exclude={"program"}).items()
            if value is not None
        ]

    def is_empty(self) -> bool:
        return not self.applied_filters() and self.program is None


# =============================================================================
# AUDIENCE REQUESTS / RESPONSES
# =============================================================================

class AudienceFilterRequest(BaseModel):
    filters: AudienceFilter


class FilterSummary(BaseModel):
    total_panelists: int
    program_panelists: Optional[int] = None
    filtered_count: int
    filter_criteria: Dict[str, Any] = Field(default_factory=dict)
    applied_filters: List[str] = Field(default_factory=list)


class AudienceResult(BaseModel):
    audience_count: int = Field(..., ge=0)
    panelist_ids: List[uuid.UUID] = Field(default_factory=list)
    filter_summary: FilterSummary


class AssignAudienceRequest(BaseModel):
    program: Optional[str] = None
    filters: AudienceFilter
    qualification_reason: Optional[str] = Field(None, max_length=500)


class AssignPresetRequest(BaseModel):
    preset_id: uuid.UUID
    qualification_reason: Optional[str] = Field(None, max_length=500)


class AssignmentResult(BaseModel):
    success: bool = True
    survey_id: uuid.UUID
    panelist_count: int
    message: str


class RecalculationResult(BaseModel):
    success: bool = True
    survey_id: uuid.UUID
    eligible_count: int
    total_panelists: int


# =============================================================================
# PRESETS
# =============================================================================

class AudiencePresetCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    filters: AudienceFilter


class AudiencePresetRecord(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    filters: Dict[str, Any] = Field(default_factory=dict)
    created_by: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# =============================================================================
# SURVEY QUALIFICATIONS
# =============================================================================

class QualificationRow(BaseModel):
    """Per-(survey, panelist) decision, unique on the pair"""
    survey_id: uuid.UUID
    panelist_id: uuid.UUID
    is_qualified: bool
    qualification_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class QualificationUpdate(BaseModel):
    survey_id: uuid.UUID
    panelist_id: uuid.UUID
    is_qualified: bool
    qualification_reason: Optional[str] = Field(None, max_length=500)


class QualificationDecision(BaseModel):
    panelist_id: uuid.UUID
    is_qualified: bool


class BulkQualificationUpdate(BaseModel):
    survey_id: uuid.UUID
    qualifications: List[QualificationDecision] = Field(..., min_length=1)
    qualification_reason: Optional[str] = Field(None, max_length=500)


class QualificationList(BaseModel):
    survey_id: uuid.UUID
    qualifications: List[QualificationRow]
    total: int
