"""
Authentication middleware for FastAPI
Resolves the bearer token to a Principal and, for panelist routes, to the
caller's panelist profile
"""
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
import logging

from panelhub.core.exceptions import AuthenticationError, AuthorizationError
from panelhub.database.panel_repository import get_repository
from panelhub.database.repository import PanelRepository
from panelhub.models.auth import Principal, UserRole
from panelhub.models.panel import PanelistProfileRecord
from panelhub.services.panelist_service import PanelistService
from panelhub.services.supabase_auth_service import supabase_auth_service as auth_service

logger = logging.getLogger(__name__)

# Missing credentials are a 401, not FastAPI's default 403
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    repository: PanelRepository = Depends(get_repository),
) -> Principal:
    """
    Dependency to get current authenticated user
    A user row is created with the panelist role the first time a subject is seen
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError()

    claims = await auth_service.verify_token(credentials.credentials)

    user = await repository.get_user(claims.subject)
    if user is None:
        user = await repository.create_user(claims.subject, claims.email or "", UserRole.PANELIST)
        logger.info(f"AUTH: first sight of user {claims.subject}, created with panelist role")

    return Principal(id=user.id, email=user.email, role=user.role)


async def get_current_panelist(
    current_user: Principal = Depends(get_current_user),
    repository: PanelRepository = Depends(get_repository),
) -> PanelistProfileRecord:
    """
    Dependency to get the caller's panelist profile, creating it on first use
    """
    profile = await PanelistService(repository).get_or_create(current_user.id)
    if not profile.is_active:
        raise AuthorizationError("Panelist account is not active")
    return profile
