"""JWT access tokens and opaque refresh tokens."""
import base64
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict

import jwt

from config import (
    ACCESS_TOKEN_EXPIRATION_MINUTES,
    JWT_ALGORITHM,
    JWT_AUDIENCE,
    JWT_ISSUER,
    JWT_SIGNING_KEY,
    REFRESH_TOKEN_EXPIRATION_DAYS,
)
from errors import UnauthorizedError
from models import RefreshToken, User, utcnow

logger = logging.getLogger(__name__)


@dataclass
class TokenResult:
    """Access token plus the refresh token entity to persist."""
    access_token: str
    access_token_expires_at: datetime
    refresh_token: RefreshToken


class TokenService:
    """Issues and validates signed access tokens."""

    def __init__(
        self,
        signing_key: str = JWT_SIGNING_KEY,
        issuer: str = JWT_ISSUER,
        audience: str = JWT_AUDIENCE,
        access_token_minutes: int = ACCESS_TOKEN_EXPIRATION_MINUTES,
        refresh_token_days: int = REFRESH_TOKEN_EXPIRATION_DAYS
    ):
        self.signing_key = signing_key
        self.issuer = issuer
        self.audience = audience
        self.access_token_lifetime = timedelta(minutes=access_token_minutes)
        self.refresh_token_lifetime = timedelta(days=refresh_token_days)

    def generate_tokens(self, user: User) -> TokenResult:
        """
        Create an access token for the user and a new, unsaved refresh token.

        Args:
            user: Authenticated user

        Returns:
            TokenResult with both tokens
        """
        now = utcnow()
        expires_at = now + self.access_token_lifetime
        claims = {
            "sub": str(user.id),
            "email": user.email,
            "name": user.name,
            "role": user.role.value,
            "jti": uuid.uuid4().hex,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "exp": expires_at,
        }
        access_token = jwt.encode(claims, self.signing_key, algorithm=JWT_ALGORITHM)

        refresh_token = RefreshToken(
            token=self.generate_refresh_token(),
            user_id=user.id,
            expires_at=now + self.refresh_token_lifetime,
        )
        return TokenResult(access_token, expires_at, refresh_token)

    @staticmethod
    def generate_refresh_token() -> str:
        return base64.b64encode(secrets.token_bytes(64)).decode("ascii")

    def _decode(self, token: str, verify_exp: bool) -> Dict[str, Any]:
        try:
            return jwt.decode(
                token,
                self.signing_key,
                algorithms=[JWT_ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_exp": verify_exp, "require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise UnauthorizedError("Access token has expired.") from e
        except jwt.InvalidTokenError as e:
            logger.debug("Rejected access token", extra={"error": str(e)})
            raise UnauthorizedError("Invalid access token.") from e

    def decode_access_token(self, token: str) -> Dict[str, Any]:
        """Validate signature, issuer, audience and lifetime; return the claims."""
        return self._decode(token, verify_exp=True)

    def get_claims_from_expired_token(self, token: str) -> Dict[str, Any]:
        """Validate everything except the expiry; used by refresh-token rotation."""
        return self._decode(token, verify_exp=False)


def subject_of(claims: Dict[str, Any]) -> uuid.UUID:
    """Parse the user id from token claims."""
    try:
        return uuid.UUID(str(claims["sub"]))
    except (KeyError, ValueError) as e:
        raise UnauthorizedError("Invalid access token.") from e
