"""
Supabase Authentication Service
Validates bearer tokens with Supabase Auth, or locally against the project's
JWT secret when no Supabase client is configured
"""
import logging
from datetime import datetime
from typing import Optional, Dict, Any

import jwt
from supabase import create_client

from panelhub.core.config import settings
from panelhub.core.exceptions import AuthenticationError, UpstreamError
from panelhub.models.auth import IdentityClaims

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


class SupabaseAuthService:
    """Token validation against the hosted identity provider"""

    def __init__(self, jwt_secret: Optional[str] = None, audience: Optional[str] = None):
        self.supabase = None
        self.jwt_secret = jwt_secret if jwt_secret is not None else settings.SUPABASE_JWT_SECRET
        self.audience = audience or settings.JWT_AUDIENCE
        self.initialized = False
        self.initialization_error = None

    async def initialize(self) -> bool:
        """Create the Supabase client; local JWT validation needs no client"""
        if self.initialized:
            return True

        if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
            self.initialization_error = "SUPABASE_URL or SUPABASE_KEY not set"
            if self.jwt_secret:
                logger.warning(f"WARNING: {self.initialization_error} - validating tokens with SUPABASE_JWT_SECRET")
                self.initialized = True
                return True
            logger.error(f"ERROR: {self.initialization_error}")
            return False

        try:
            self.supabase = create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
            self.initialized = True
            self.initialization_error = None
            logger.info("SUCCESS: Supabase Auth Service initialized")
            return True
        except Exception as e:
            self.initialization_error = f"Failed to create Supabase client: {e}"
            logger.error(f"ERROR: {self.initialization_error}")
            return False

    async def verify_token(self, token: str) -> IdentityClaims:
        """Resolve a bearer token to the identity provider's subject id and email"""
        if not token:
            raise AuthenticationError()

        if self.supabase is not None:
            return self._verify_with_supabase(token)
        if self.jwt_secret:
            return self._verify_locally(token)

        logger.error(f"AUTH: no token validator available ({self.initialization_error})")
        raise UpstreamError("Authentication service unavailable")

    def _verify_with_supabase(self, token: str) -> IdentityClaims:
        try:
            user_response = self.supabase.auth.get_user(token)
        except Exception as e:
            logger.warning(f"TOKEN: Supabase validation failed: {e}")
            raise AuthenticationError("Invalid or expired token")

        if not user_response or not user_response.user:
            logger.warning("TOKEN: Supabase validation returned no user")
            raise AuthenticationError("Invalid or expired token")

        return IdentityClaims(subject=str(user_response.user.id), email=user_response.user.email)

    def _verify_locally(self, token: str) -> IdentityClaims:
        try:
            payload = jwt.decode(token, self.jwt_secret, algorithms=[ALGORITHM], audience=self.audience)
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.warning(f"TOKEN: Local validation failed: {e}")
            raise AuthenticationError("Invalid token")

        subject = payload.get("sub")
        if not subject:
            raise AuthenticationError("Invalid token")
        return IdentityClaims(subject=str(subject), email=payload.get("email"))

    async def health_check(self) -> Dict[str, Any]:
        health_status = {
            "service": "supabase_auth",
            "initialized": self.initialized,
            "mode": "supabase" if self.supabase is not None else ("local_jwt" if self.jwt_secret else "none"),
            "timestamp": datetime.now().isoformat(),
        }
        health_status["status"] = "healthy" if self.initialized else "unhealthy"
        if self.initialization_error and not self.initialized:
            health_status["error"] = self.initialization_error
        return health_status


# Create global instance
supabase_auth_service = SupabaseAuthService()
