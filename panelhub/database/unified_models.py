"""
UNIFIED DATABASE MODELS - Survey & Rewards Panel
Users, panelist profiles, surveys and qualifications, the point ledger,
merchant offers and redemptions, contests and their participants
"""
from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, ForeignKey, Index, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.sql import func
import uuid as uuid_lib

Base = declarative_base()

# =============================================================================
# USER MANAGEMENT TABLES
# =============================================================================

class User(Base):
    """Application user linked to the identity provider subject id"""
    __tablename__ = "users"

    id = Column(Text, primary_key=True)  # Identity provider subject id
    email = Column(Text, nullable=False, index=True)
    role = Column(String(20), nullable=False, default="panelist", index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("role IN ('panelist', 'survey_admin', 'system_admin')", name='check_user_role'),
    )


class PanelistProfile(Base):
    """Panelist demographics and point totals - soft-deactivated, never deleted"""
    __tablename__ = "panelist_profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid_lib.uuid4)
    user_id = Column(Text, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True, index=True)

    # Point totals
    points_balance = Column(Integer, nullable=False, default=0)
    total_points_earned = Column(Integer, nullable=False, default=0)
    total_points_redeemed = Column(Integer, nullable=False, default=0)
    surveys_completed = Column(Integer, nullable=False, default=0)

    # age, gender, location, income, education_level, employment_status, interests, ...
    profile_data = Column(JSONB, nullable=False, default=lambda: {})
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    user = relationship("User")

    __table_args__ = (
        CheckConstraint('points_balance >= 0', name='check_points_balance_non_negative'),
    )


class PanelistProgram(Base):
    """Panel program a panelist can opt into"""
    __tablename__ = "panelist_programs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid_lib.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PanelistProgramOptIn(Base):
    __tablename__ = "panelist_program_opt_ins"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid_lib.uuid4)
    panelist_id = Column(UUID(as_uuid=True), ForeignKey('panelist_profiles.id', ondelete='CASCADE'), nullable=False, index=True)
    program_id = Column(UUID(as_uuid=True), ForeignKey('panelist_programs.id', ondelete='CASCADE'), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('panelist_id', 'program_id', name='uq_program_opt_in'),
    )


class ActivityLog(Base):
    """Best-effort activity feed"""
    __tablename__ = "activity_log"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid_lib.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    activity_type = Column(String(50), nullable=False, index=True)
    description = Column(Text, nullable=False)
    activity_metadata = Column("metadata", JSONB, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

# =============================================================================
# SURVEY TABLES
# =============================================================================

class Survey(Base):
    __tablename__ = "surveys"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid_lib.uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    points_reward = Column(Integer, nullable=False)
    estimated_completion_time = Column(Integer, nullable=False)  # minutes
    qualification_criteria = Column(JSONB, nullable=False, default=lambda: {})
    audience_count = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="draft", index=True)
    created_by = Column(Text, ForeignKey('users.id'), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("status IN ('draft', 'active', 'inactive')", name='check_survey_status'),
        CheckConstraint('points_reward > 0', name='check_points_reward_positive'),
    )


class SurveyQualification(Base):
    """Materialized per-(survey, panelist) qualification decision"""
    __tablename__ = "survey_qualifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid_lib.uuid4)
    survey_id = Column(UUID(as_uuid=True), ForeignKey('surveys.id', ondelete='CASCADE'), nullable=False, index=True)
    panelist_id = Column(UUID(as_uuid=True), ForeignKey('panelist_profiles.id', ondelete='CASCADE'), nullable=False, index=True)
    is_qualified = Column(Boolean, nullable=False, default=True)
    qualification_reason = Column(Text)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('survey_id', 'panelist_id', name='uq_survey_qualification'),
    )


class AudiencePreset(Base):
    """Saved audience filter"""
    __tablename__ = "audience_presets"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid_lib.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    filters = Column(JSONB, nullable=False, default=lambda: {})
    created_by = Column(Text, ForeignKey('users.id'), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SurveyAudienceAssignment(Base):
    """Tracking record written after an audience assignment"""
    __tablename__ = "survey_audience_assignments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid_lib.uuid4)
    survey_id = Column(UUID(as_uuid=True), ForeignKey('surveys.id', ondelete='CASCADE'), nullable=False, index=True)
    audience_preset_id = Column(UUID(as_uuid=True), ForeignKey('audience_presets.id', ondelete='SET NULL'), nullable=True)
    assigned_by = Column(Text, nullable=False)
    assignment_metadata = Column(JSONB, nullable=False, default=lambda: {})

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SurveyCompletion(Base):
    __tablename__ = "survey_completions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid_lib.uuid4)
    survey_id = Column(UUID(as_uuid=True), ForeignKey('surveys.id', ondelete='CASCADE'), nullable=False, index=True)
    panelist_id = Column(UUID(as_uuid=True), ForeignKey('panelist_profiles.id', ondelete='CASCADE'), nullable=False, index=True)
    points_earned = Column(Integer, nullable=False)
    response_data = Column(JSONB, nullable=False, default=lambda: {})

    completed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('survey_id', 'panelist_id', name='uq_survey_completion'),
    )

# =============================================================================
# POINTS, OFFERS & REDEMPTIONS
# =============================================================================

class PointLedgerEntry(Base):
    """One row per balance change"""
    __tablename__ = "point_ledger"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid_lib.uuid4)
    panelist_id = Column(UUID(as_uuid=True), ForeignKey('panelist_profiles.id', ondelete='CASCADE'), nullable=False, index=True)
    points = Column(Integer, nullable=False)  # positive credit, negative debit
    transaction_type = Column(String(30), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    entry_metadata = Column("metadata", JSONB, nullable=False, default=lambda: {})
    created_by = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

    __table_args__ = (
        Index('idx_point_ledger_panelist_created', 'panelist_id', 'created_at'),
    )


class MerchantOffer(Base):
    __tablename__ = "merchant_offers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid_lib.uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    points_required = Column(Integer, nullable=False)
    merchant_name = Column(String(255), nullable=False)
    offer_details = Column(JSONB, nullable=False, default=lambda: {})
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint('points_required > 0', name='check_points_required_positive'),
    )


class Redemption(Base):
    __tablename__ = "redemptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid_lib.uuid4)
    panelist_id = Column(UUID(as_uuid=True), ForeignKey('panelist_profiles.id', ondelete='CASCADE'), nullable=False, index=True)
    offer_id = Column(UUID(as_uuid=True), ForeignKey('merchant_offers.id'), nullable=False, index=True)
    points_spent = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    redemption_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    offer = relationship("MerchantOffer")

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'completed', 'cancelled')", name='check_redemption_status'),
    )

# =============================================================================
# CONTEST TABLES
# =============================================================================

class Contest(Base):
    __tablename__ = "contests"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid_lib.uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    prize_points = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="draft", index=True)
    invite_type = Column(String(30), nullable=False, default="all_panelists")
    created_by = Column(Text, ForeignKey('users.id'), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("status IN ('draft', 'active', 'ended', 'cancelled')", name='check_contest_status'),
        CheckConstraint("invite_type IN ('all_panelists', 'selected_panelists')", name='check_contest_invite_type'),
        CheckConstraint('end_date > start_date', name='check_contest_window'),
        CheckConstraint('prize_points > 0', name='check_prize_points_positive'),
    )


class ContestInvitation(Base):
    __tablename__ = "contest_invitations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid_lib.uuid4)
    contest_id = Column(UUID(as_uuid=True), ForeignKey('contests.id', ondelete='CASCADE'), nullable=False, index=True)
    panelist_id = Column(UUID(as_uuid=True), ForeignKey('panelist_profiles.id', ondelete='CASCADE'), nullable=False, index=True)
    invited_by = Column(Text, nullable=False)

    invited_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('contest_id', 'panelist_id', name='uq_contest_invitation'),
    )


class ContestParticipant(Base):
    __tablename__ = "contest_participants"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid_lib.uuid4)
    contest_id = Column(UUID(as_uuid=True), ForeignKey('contests.id', ondelete='CASCADE'), nullable=False, index=True)
    panelist_id = Column(UUID(as_uuid=True), ForeignKey('panelist_profiles.id', ondelete='CASCADE'), nullable=False, index=True)
    points_earned = Column(Integer, nullable=False, default=0)
    rank = Column(Integer, nullable=True)
    prize_awarded = Column(Boolean, nullable=False, default=False)
    prize_awarded_at = Column(DateTime(timezone=True), nullable=True)
    prize_awarded_by = Column(Text, nullable=True)

    joined_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('contest_id', 'panelist_id', name='uq_contest_participant'),
        Index('idx_contest_participants_rank', 'contest_id', 'rank'),
    )


class ContestPrizeAward(Base):
    """Audit record of a granted prize"""
    __tablename__ = "contest_prize_awards"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid_lib.uuid4)
    contest_id = Column(UUID(as_uuid=True), ForeignKey('contests.id', ondelete='CASCADE'), nullable=False, index=True)
    panelist_id = Column(UUID(as_uuid=True), ForeignKey('panelist_profiles.id', ondelete='CASCADE'), nullable=False)
    points_awarded = Column(Integer, nullable=False)
    awarded_by = Column(Text, nullable=False)
    ledger_entry_id = Column(UUID(as_uuid=True), ForeignKey('point_ledger.id'), nullable=True)

    awarded_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
