"""Authentication utilities."""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header

from dependencies import get_token_service
from errors import ForbiddenError, UnauthorizedError
from models import UserRole
from monitoring import auth_attempts_counter, auth_failures_counter
from services.token_service import TokenService, subject_of

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller derived from the access token."""
    user_id: uuid.UUID
    email: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def get_current_actor(
    authorization: Optional[str] = Header(None),
    token_service: TokenService = Depends(get_token_service)
) -> Actor:
    """
    Verify the bearer access token.

    Args:
        authorization: Authorization header value
        token_service: Token validator

    Returns:
        The authenticated actor

    Raises:
        UnauthorizedError: If the token is missing, malformed or invalid
    """
    auth_attempts_counter.add(1, {"type": "bearer_token"})

    if authorization is None:
        _reject("missing_header")
        raise UnauthorizedError("Missing authorization header.")

    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        _reject("invalid_format")
        raise UnauthorizedError("Invalid authorization header format.")

    try:
        claims = token_service.decode_access_token(token)
        actor = Actor(
            user_id=subject_of(claims),
            email=claims.get("email", ""),
            role=UserRole(claims.get("role", UserRole.CUSTOMER.value)),
        )
    except (UnauthorizedError, ValueError) as e:
        _reject("invalid_token", error=str(e))
        raise UnauthorizedError("Invalid or expired access token.") from e

    logger.debug("Bearer token accepted", extra={"user_id": str(actor.user_id)})
    return actor


def _reject(reason: str, **details) -> None:
    auth_failures_counter.add(1, {"reason": reason})
    logger.warning("Bearer token rejected", extra={"reason": reason, **details})


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        logger.warning("Admin endpoint accessed by non-admin", extra={"user_id": str(actor.user_id)})
        raise ForbiddenError("Administrator role required.")
    return actor


def require_customer(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role != UserRole.CUSTOMER:
        raise ForbiddenError("Customer role required.")
    return actor
