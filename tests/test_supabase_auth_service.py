import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import jwt
import pytest

from panelhub.core.exceptions import AuthenticationError, UpstreamError
from panelhub.services.supabase_auth_service import SupabaseAuthService
from tests.conftest import run

SECRET = "test-secret-with-enough-length-for-hs256"


def make_token(secret=SECRET, **claims):
    payload = {"sub": "user-123", "email": "pat@example.com", "aud": "authenticated", "exp": int(time.time()) + 600}
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


class TestLocalJwtValidation:

    def test_valid_token(self):
        service = SupabaseAuthService(jwt_secret=SECRET, audience="authenticated")
        claims = run(service.verify_token(make_token()))
        assert claims.subject == "user-123"
        assert claims.email == "pat@example.com"

    def test_expired_token(self):
        service = SupabaseAuthService(jwt_secret=SECRET, audience="authenticated")
        with pytest.raises(AuthenticationError) as exc:
            run(service.verify_token(make_token(exp=int(time.time()) - 60)))
        assert exc.value.detail == "Token has expired"
        assert exc.value.status_code == 401

    def test_wrong_secret(self):
        service = SupabaseAuthService(jwt_secret=SECRET, audience="authenticated")
        with pytest.raises(AuthenticationError):
            run(service.verify_token(make_token(secret="another-secret-that-is-long-enough")))

    def test_wrong_audience(self):
        service = SupabaseAuthService(jwt_secret=SECRET, audience="authenticated")
        with pytest.raises(AuthenticationError):
            run(service.verify_token(make_token(aud="anon")))

    def test_no_validator_is_upstream_error(self):
        service = SupabaseAuthService(jwt_secret="", audience="authenticated")
        with pytest.raises(UpstreamError):
            run(service.verify_token("anything"))


class TestSupabaseValidation:

    def test_uses_supabase_user(self):
        service = SupabaseAuthService(jwt_secret="", audience="authenticated")
        service.supabase = MagicMock()
        service.supabase.auth.get_user.return_value = SimpleNamespace(
            user=SimpleNamespace(id="abc-1", email="sam@example.com")
        )

        claims = run(service.verify_token("opaque"))

        assert claims.subject == "abc-1"
        service.supabase.auth.get_user.assert_called_once_with("opaque")

    def test_supabase_rejection_is_401(self):
        service = SupabaseAuthService(jwt_secret="", audience="authenticated")
        service.supabase = MagicMock()
        service.supabase.auth.get_user.side_effect = Exception("invalid JWT")

        with pytest.raises(AuthenticationError):
            run(service.verify_token("opaque"))

    def test_health_reports_mode(self):
        service = SupabaseAuthService(jwt_secret=SECRET, audience="authenticated")
        health = run(service.health_check())
        assert health["mode"] == "local_jwt"
        assert health["status"] == "unhealthy"
