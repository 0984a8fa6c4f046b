"""Authentication API router."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from dependencies import get_auth_service
from models import User
from schemas import AuthResponse, LoginRequest, RefreshTokenRequest, RegisterRequest, UserResponse
from services.auth_service import AuthService
from services.token_service import TokenResult

router = APIRouter(prefix="/api/auth", tags=["authentication"])


def auth_response(user: User, result: TokenResult) -> AuthResponse:
    return AuthResponse(
        access_token=result.access_token,
        access_token_expires_at=result.access_token_expires_at,
        refresh_token=result.refresh_token.token,
        refresh_token_expires_at=result.refresh_token.expires_at,
        user=UserResponse.model_validate(user),
    )


@router.post("/register", response_model=AuthResponse)
async def register(
    request: RegisterRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Create a customer account and return a token pair."""
    user, result = auth_service.register(db, request.name, request.email, request.password)
    return auth_response(user, result)


@router.post("/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Authenticate with email and password."""
    user, result = auth_service.login(db, request.email, request.password)
    return auth_response(user, result)


@router.post("/refresh-token", response_model=AuthResponse)
async def refresh_token(
    request: RefreshTokenRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Exchange a refresh token for a new token pair.

    The access token may already be expired; the refresh token is revoked
    and replaced.
    """
    user, result = auth_service.refresh_token(db, request.access_token, request.refresh_token)
    return auth_response(user, result)
