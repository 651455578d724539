import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import jwt
from fastapi.concurrency import run_in_threadpool
from jwt import PyJWKClient

from orgguard.core.settings import settings
from orgguard.shared.permissions.services import is_system_admin
from orgguard.shared.permissions.types import (
    AuthenticatedSession,
    Principal,
    Session,
)

from .store import UserStore
from .types import SessionTokenClaims

logger = logging.getLogger(__name__)


def get_bearer_token(headers: Mapping[str, str]) -> Optional[str]:
    """Extract the bearer token from an Authorization header, if any."""
    authorization = headers.get("authorization") or headers.get("Authorization")
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization.split(" ", 1)[1].strip()
    return token or None


def _timestamp(value: Optional[int]) -> Optional[datetime]:
    return datetime.fromtimestamp(value, tz=timezone.utc) if value else None


class JwtSessionResolver:
    """
    Resolves the principal and session of a request from the session token
    issued by the external auth service.

    Uses JWT_SECRET (HS256) when configured, otherwise the service's JWKS
    endpoint (RS256). The principal is loaded from the user store on every
    request so bans and role changes apply immediately. Banned users hold
    no session, as the auth service revokes them on ban.
    """

    def __init__(
        self,
        users: UserStore,
        jwt_secret: Optional[str] = None,
        jwks_url: Optional[str] = None,
        audience: Optional[str] = None,
    ) -> None:
        self.users = users
        self.jwt_secret = jwt_secret or settings.JWT_SECRET
        self.audience = audience or settings.JWT_AUDIENCE
        jwks_url = jwks_url or settings.AUTH_JWKS_URL
        self._jwks_client = PyJWKClient(jwks_url) if jwks_url else None

    def decode(self, token: str) -> SessionTokenClaims:
        """
        Verify a session token and return its claims.

        Raises:
            jwt.PyJWTError: If the token is invalid or expired
            RuntimeError: If no verification key is configured
        """
        options: dict[str, Any] = {"verify_aud": self.audience is not None}

        # Development mode: prefer JWT_SECRET if available
        if self.jwt_secret:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=["HS256"],
                audience=self.audience,
                options=options,
            )
            return SessionTokenClaims(**dict(payload))

        # Production mode: use the auth service's JWKS
        if not self._jwks_client:
            raise RuntimeError("Auth service not configured")
        signing_key = self._jwks_client.get_signing_key_from_jwt(token).key
        payload = jwt.decode(
            token,
            signing_key,
            algorithms=["RS256"],
            audience=self.audience,
            options=options,
        )
        return SessionTokenClaims(**dict(payload))

    async def get_session(
        self, headers: Mapping[str, str]
    ) -> Optional[AuthenticatedSession]:
        """
        Authenticate a request.

        Returns:
            The principal and session, or None when the request carries no
            valid session

        Raises:
            jwt.PyJWKClientError: If the signing keys cannot be fetched
            RuntimeError: If no verification key is configured
        """
        token = get_bearer_token(headers)
        if token is None:
            return None

        # Key set lookups are blocking HTTP calls
        try:
            claims = await run_in_threadpool(self.decode, token)
        except jwt.PyJWKClientError:
            raise
        except jwt.PyJWTError as e:
            logger.debug(f"Session token rejected: {e}")
            return None

        session_id = claims.session_id or claims.jti
        if not claims.sub or not session_id:
            logger.debug("Session token without subject or session ID")
            return None

        principal = await self.users.get_user(claims.sub)
        if principal is None:
            logger.warning(f"Session token for unknown user {claims.sub}")
            return None

        if principal.is_banned():
            logger.info(f"Session token for banned user {principal.id} refused")
            return None

        session = Session(
            id=session_id,
            user_id=principal.id,
            created_at=_timestamp(claims.iat),
            updated_at=_timestamp(claims.updated_at or claims.iat),
            active_organization_id=claims.active_organization_id,
        )
        return AuthenticatedSession(principal=principal, session=session)

    async def is_system_admin(self, principal: Principal) -> bool:
        return is_system_admin(principal)
