"""Registration, login, token rotation and customer profiles."""
import logging
import uuid
from typing import Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from errors import ConflictError, NotFoundError, UnauthorizedError
from models import RefreshToken, User, UserRole, utcnow
from monitoring import auth_attempts_counter, auth_failures_counter
from passwords import hash_password, verify_password
from services.repository import UnitOfWork
from services.token_service import TokenResult, TokenService, subject_of

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """Service for account and session management."""

    def __init__(self, token_service: TokenService):
        self.token_service = token_service

    def _issue(self, uow: UnitOfWork, user: User) -> TokenResult:
        result = self.token_service.generate_tokens(user)
        uow.refresh_tokens.add(result.refresh_token)
        return result

    def register(self, db: Session, name: str, email: str, password: str) -> Tuple[User, TokenResult]:
        """
        Create a customer account and sign it in.

        Raises:
            ConflictError: If the email is already registered
        """
        uow = UnitOfWork(db)
        email = normalize_email(email)
        if uow.users.exists(func.lower(User.email) == email):
            raise ConflictError("A user with this email already exists.")

        user = User(
            id=uuid.uuid4(),
            name=name.strip(),
            email=email,
            password_hash=hash_password(password),
            role=UserRole.CUSTOMER
        )
        uow.users.add(user)
        result = self._issue(uow, user)
        uow.commit()

        logger.info("User registered", extra={"user_id": str(user.id)})
        return user, result

    def login(self, db: Session, email: str, password: str) -> Tuple[User, TokenResult]:
        """
        Verify credentials and issue a new token pair.

        Raises:
            UnauthorizedError: On unknown email or wrong password
        """
        auth_attempts_counter.add(1, {"type": "password"})
        uow = UnitOfWork(db)
        user = uow.users.first(
            func.lower(User.email) == normalize_email(email),
            User.is_deleted.is_(False)
        )
        if user is None or not verify_password(password, user.password_hash):
            auth_failures_counter.add(1, {"reason": "invalid_credentials"})
            logger.warning("Login failed", extra={"email": normalize_email(email)})
            raise UnauthorizedError("Invalid email or password.")

        now = utcnow()
        for token in uow.refresh_tokens.list_by(
            RefreshToken.user_id == user.id,
            RefreshToken.revoked_at.is_(None),
            for_update=True
        ):
            if token.is_expired:
                token.revoked_at = now
                uow.refresh_tokens.update(token)

        result = self._issue(uow, user)
        uow.commit()

        logger.info("User logged in", extra={"user_id": str(user.id)})
        return user, result

    def refresh_token(self, db: Session, access_token: str, refresh_token: str) -> Tuple[User, TokenResult]:
        """
        Rotate a refresh token.

        The access token may be expired but must otherwise be valid and
        belong to the same user as the refresh token.

        Raises:
            UnauthorizedError: If either token is invalid, unknown or revoked
        """
        auth_attempts_counter.add(1, {"type": "refresh_token"})
        claims = self.token_service.get_claims_from_expired_token(access_token)
        user_id = subject_of(claims)

        uow = UnitOfWork(db)
        stored = uow.refresh_tokens.first(RefreshToken.token == refresh_token, for_update=True)
        if stored is None or stored.user_id != user_id or stored.is_revoked:
            auth_failures_counter.add(1, {"reason": "invalid_refresh_token"})
            logger.warning("Refresh token rejected", extra={"user_id": str(user_id)})
            raise UnauthorizedError("Invalid refresh token.")

        user = uow.users.get_by_id(user_id)
        if user is None or user.is_deleted:
            auth_failures_counter.add(1, {"reason": "unknown_user"})
            raise UnauthorizedError("Invalid refresh token.")

        result = self._issue(uow, user)
        stored.revoked_at = utcnow()
        stored.replaced_by_token = result.refresh_token.token
        uow.refresh_tokens.update(stored)
        try:
            uow.commit()
        except StaleDataError as e:
            auth_failures_counter.add(1, {"reason": "refresh_token_reused"})
            logger.warning("Refresh token rotated concurrently", extra={"user_id": str(user.id)})
            raise UnauthorizedError("Invalid refresh token.") from e

        logger.info("Refresh token rotated", extra={"user_id": str(user.id)})
        return user, result

    def get_profile(self, db: Session, user_id: uuid.UUID) -> User:
        user = UnitOfWork(db).users.get_by_id(user_id)
        if user is None or user.is_deleted:
            raise NotFoundError("Customer", user_id)
        return user

    def update_profile(
        self,
        db: Session,
        user_id: uuid.UUID,
        name: str,
        email: str,
        password: Optional[str] = None
    ) -> User:
        """Update name, email and optionally the password of a user."""
        uow = UnitOfWork(db)
        user = self.get_profile(db, user_id)

        email = normalize_email(email)
        if email != user.email and uow.users.exists(func.lower(User.email) == email, User.id != user.id):
            raise ConflictError("A user with this email already exists.")

        user.name = name.strip()
        user.email = email
        if password:
            user.password_hash = hash_password(password)
        uow.users.update(user)
        uow.commit()

        logger.info("Customer profile updated", extra={"user_id": str(user.id)})
        return user
