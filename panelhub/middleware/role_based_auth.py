"""
Role-Based Authorization
One table maps each action to the roles allowed to perform it
"""
from typing import Dict, FrozenSet, Iterable, Union
import logging
from fastapi import Depends

from panelhub.core.exceptions import AuthorizationError
from panelhub.middleware.auth_middleware import get_current_user
from panelhub.models.auth import Principal, UserRole

logger = logging.getLogger(__name__)

_ALL_ROLES = frozenset({UserRole.PANELIST, UserRole.SURVEY_ADMIN, UserRole.SYSTEM_ADMIN})
_ADMINS = frozenset({UserRole.SURVEY_ADMIN, UserRole.SYSTEM_ADMIN})
_PANELISTS = frozenset({UserRole.PANELIST})
_SYSTEM = frozenset({UserRole.SYSTEM_ADMIN})

PERMISSIONS: Dict[str, FrozenSet[UserRole]] = {
    # Panelist capabilities
    "view_own_profile": _ALL_ROLES,
    "complete_surveys": _PANELISTS,
    "redeem_points": _PANELISTS,
    "view_own_activity": _ALL_ROLES,
    "join_contests": _PANELISTS,

    # Survey administration
    "create_surveys": _ADMINS,
    "manage_qualifications": _ADMINS,
    "view_survey_analytics": _ADMINS,
    "manage_panelists": _ADMINS,
    "manage_contests": _ADMINS,
    "manage_offers": _ADMINS,
    "manage_programs": _ADMINS,

    # System administration
    "manage_points": _SYSTEM,
    "view_all_users": _SYSTEM,
    "manage_user_accounts": _SYSTEM,
}


def _as_role(role: Union[UserRole, str, None]):
    try:
        return UserRole(role)
    except ValueError:
        return None


def has_permission(role: Union[UserRole, str, None], action: str) -> bool:
    """Unknown roles and unknown actions never pass"""
    resolved = _as_role(role)
    if resolved is None:
        return False
    return resolved in PERMISSIONS.get(action, frozenset())


def has_any_permission(role: Union[UserRole, str, None], actions: Iterable[str]) -> bool:
    return any(has_permission(role, action) for action in actions)


def has_all_permissions(role: Union[UserRole, str, None], actions: Iterable[str]) -> bool:
    actions = list(actions)
    return bool(actions) and all(has_permission(role, action) for action in actions)


def require_permission(action: str):
    """
    Dependency factory guarding an endpoint with one action
    Usage: Depends(require_permission("manage_contests"))
    """
    async def permission_checker(current_user: Principal = Depends(get_current_user)) -> Principal:
        if not has_permission(current_user.role, action):
            logger.warning(
                f"Permission denied: user {current_user.id} ({current_user.role.value}) lacks {action}"
            )
            raise AuthorizationError()
        return current_user

    return permission_checker
