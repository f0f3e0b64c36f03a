"""
Authentication models for principals and roles
"""
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from enum import Enum


class UserRole(str, Enum):
    """User roles for role-based access control"""
    PANELIST = "panelist"
    SURVEY_ADMIN = "survey_admin"
    SYSTEM_ADMIN = "system_admin"


class IdentityClaims(BaseModel):
    """What the identity provider tells us about a bearer token"""
    subject: str
    email: Optional[str] = None


class UserRecord(BaseModel):
    """User row as stored in database"""
    id: str
    email: str
    role: UserRole = UserRole.PANELIST
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Principal(BaseModel):
    """Authenticated caller with the role permission checks consume"""
    id: str
    email: Optional[str] = None
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role in (UserRole.SURVEY_ADMIN, UserRole.SYSTEM_ADMIN)
