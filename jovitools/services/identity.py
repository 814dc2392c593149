"""
Identity Service - verifies identity provider access tokens.

Tokens are HS256 JWTs signed with the provider's shared secret. Only the
subject and email claims are trusted; roles always come from user_roles.
"""

import jwt
from structlog import get_logger

from jovitools.config import settings
from jovitools.exceptions import AuthenticationError
from jovitools.models.domain import AuthenticatedUser

logger = get_logger(__name__)


class IdentityVerifier:
    """Bearer token to AuthenticatedUser."""

    def __init__(
        self,
        secret: str | None = None,
        audience: str | None = None,
        algorithm: str | None = None,
    ) -> None:
        self.secret = secret if secret is not None else settings.auth_jwt_secret
        self.audience = audience if audience is not None else settings.auth_jwt_audience
        self.algorithm = algorithm or settings.auth_jwt_algorithm

    def verify(self, token: str) -> AuthenticatedUser:
        """
        Verify signature, expiry and audience.

        Raises:
            AuthenticationError: Token missing, expired, invalid or without sub/email
        """
        if not token:
            raise AuthenticationError("Authorization header required")

        try:
            payload: dict[str, object] = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience or None,
                options={"verify_aud": bool(self.audience), "require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as e:
            logger.warning("auth_token_expired")
            raise AuthenticationError("Token expired") from e
        except jwt.InvalidTokenError as e:
            logger.warning("auth_token_invalid", error=str(e))
            raise AuthenticationError("Invalid token") from e

        subject = payload.get("sub")
        email = payload.get("email")
        if not isinstance(subject, str) or not isinstance(email, str):
            logger.warning(
                "auth_token_missing_claims", has_sub=bool(subject), has_email=bool(email)
            )
            raise AuthenticationError("Invalid token: missing subject or email")

        try:
            return AuthenticatedUser(user_id=subject, email=email.strip().lower())
        except ValueError as e:
            raise AuthenticationError(f"Invalid token: {e}") from e


identity_verifier = IdentityVerifier()
