"""Tests for password hashing and token issuance."""

import base64
import uuid
from datetime import timedelta

import pytest

from errors import UnauthorizedError
from models import User, UserRole, utcnow
from passwords import hash_password, verify_password
from services.token_service import TokenService


@pytest.fixture
def user():
    return User(id=uuid.uuid4(), name="Token Holder", email="holder@example.com", role=UserRole.ADMIN)


class TestPasswords:
    def test_round_trip(self):
        encoded = hash_password("Password123!")

        assert encoded.startswith("pbkdf2_sha256$")
        assert verify_password("Password123!", encoded)
        assert not verify_password("password123!", encoded)

    def test_salted(self):
        assert hash_password("Password123!") != hash_password("Password123!")

    @pytest.mark.parametrize("encoded", ["", "plain", "md5$1$abc$def", "pbkdf2_sha256$x$y$z"])
    def test_rejects_malformed_hashes(self, encoded):
        assert not verify_password("Password123!", encoded)


class TestTokenService:
    def test_access_token_claims(self, user):
        service = TokenService()

        result = service.generate_tokens(user)
        claims = service.decode_access_token(result.access_token)

        assert claims["sub"] == str(user.id)
        assert claims["role"] == "Admin"
        assert claims["email"] == user.email
        assert result.access_token_expires_at > utcnow()

    def test_refresh_token_is_random_and_unsaved(self, user):
        service = TokenService()

        first = service.generate_tokens(user).refresh_token
        second = service.generate_tokens(user).refresh_token

        assert first.token != second.token
        assert len(base64.b64decode(first.token)) == 64
        assert first.user_id == user.id
        assert first.expires_at - utcnow() > timedelta(days=6)

    def test_expired_token(self, user):
        service = TokenService(access_token_minutes=-1)
        token = service.generate_tokens(user).access_token

        with pytest.raises(UnauthorizedError):
            service.decode_access_token(token)
        assert service.get_claims_from_expired_token(token)["sub"] == str(user.id)

    def test_wrong_audience(self, user):
        token = TokenService(audience="someone-else").generate_tokens(user).access_token

        with pytest.raises(UnauthorizedError):
            TokenService().get_claims_from_expired_token(token)

    def test_garbage_token(self):
        with pytest.raises(UnauthorizedError):
            TokenService().decode_access_token("not.a.token")
