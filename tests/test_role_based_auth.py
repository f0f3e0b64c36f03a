import pytest

from panelhub.core.exceptions import AuthorizationError
from panelhub.middleware.role_based_auth import (
    PERMISSIONS, has_all_permissions, has_any_permission, has_permission, require_permission
)
from panelhub.models.auth import Principal, UserRole
from tests.conftest import run


class TestPermissionTable:

    def test_panelist_actions(self):
        assert has_permission(UserRole.PANELIST, "complete_surveys")
        assert has_permission(UserRole.PANELIST, "redeem_points")
        assert has_permission(UserRole.PANELIST, "join_contests")
        assert not has_permission(UserRole.PANELIST, "manage_contests")
        assert not has_permission(UserRole.PANELIST, "create_surveys")

    def test_survey_admin_cannot_manage_points(self):
        assert has_permission(UserRole.SURVEY_ADMIN, "manage_contests")
        assert has_permission(UserRole.SURVEY_ADMIN, "manage_qualifications")
        assert not has_permission(UserRole.SURVEY_ADMIN, "manage_points")

    def test_system_admin_holds_every_admin_action(self):
        for action, roles in PERMISSIONS.items():
            if UserRole.SURVEY_ADMIN in roles:
                assert has_permission(UserRole.SYSTEM_ADMIN, action), action
        assert has_permission(UserRole.SYSTEM_ADMIN, "manage_points")

    def test_string_roles_are_accepted(self):
        assert has_permission("survey_admin", "manage_offers")

    def test_unknown_role_or_action_is_denied(self):
        assert not has_permission("superuser", "view_own_profile")
        assert not has_permission(None, "view_own_profile")
        assert not has_permission(UserRole.SYSTEM_ADMIN, "launch_rockets")

    def test_any_and_all(self):
        assert has_any_permission(UserRole.PANELIST, ["manage_contests", "redeem_points"])
        assert not has_any_permission(UserRole.PANELIST, ["manage_contests", "manage_points"])
        assert has_all_permissions(UserRole.SYSTEM_ADMIN, ["manage_points", "manage_contests"])
        assert not has_all_permissions(UserRole.SURVEY_ADMIN, ["manage_points", "manage_contests"])
        assert not has_all_permissions(UserRole.SYSTEM_ADMIN, [])


class TestRequirePermission:

    def test_allows_matching_role(self):
        checker = require_permission("manage_contests")
        admin = Principal(id="admin-1", role=UserRole.SURVEY_ADMIN)
        assert run(checker(current_user=admin)) is admin

    def test_rejects_with_403(self):
        checker = require_permission("manage_contests")
        panelist = Principal(id="user-1", role=UserRole.PANELIST)
        with pytest.raises(AuthorizationError) as exc:
            run(checker(current_user=panelist))
        assert exc.value.status_code == 403
