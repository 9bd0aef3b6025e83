"""Authentication routes"""

from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.orm import Session
from typing import Optional

from chatbridge.core.database import get_db
from chatbridge.core.exceptions import RateLimitExceededError
from chatbridge.core.metrics import RATE_LIMIT_REJECTIONS
from chatbridge.core.security import AccessClaims
from chatbridge.schemas.user import (
    LoginRequest,
    RegisterRequest,
    RefreshTokenRequest,
    TokenResponse,
    UserResponse,
)
from chatbridge.schemas.response import APIResponse
from chatbridge.services.auth_service import auth_service
from chatbridge.services.rate_limiter import login_minute_limiter, login_hour_limiter
from chatbridge.services.user_service import normalize_identity
from chatbridge.api.deps import (
    client_address,
    get_current_principal,
    get_current_user,
    get_bearer_token,
)
from chatbridge.models.user import User

router = APIRouter()


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    db: Session = Depends(get_db)
):
    """
    Register a new USER account

    Args:
        body: Username, email, password, API key, token budget and model
        db: Database session

    Returns:
        Public user projection
    """
    user = auth_service.register(db, body)
    return UserResponse.model_validate(user)


@router.post("/login", response_model=TokenResponse, status_code=status.HTTP_200_OK)
def login(
    credentials: LoginRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Login endpoint - authenticate by username or email and return a token pair

    Args:
        credentials: Username (or email) and password
        db: Database session

    Returns:
        Access token, refresh token and access token lifetime
    """
    client_ip = client_address(request)
    user_key = f"{client_ip}:{normalize_identity(credentials.username)}"
    if not login_minute_limiter.try_acquire(user_key):
        RATE_LIMIT_REJECTIONS.labels(login_minute_limiter.name).inc()
        raise RateLimitExceededError(
            "Too many login attempts. Please wait a minute.",
            retry_after=login_minute_limiter.retry_after(user_key),
        )
    if not login_hour_limiter.try_acquire(user_key):
        RATE_LIMIT_REJECTIONS.labels(login_hour_limiter.name).inc()
        raise RateLimitExceededError(
            "Too many login attempts. Please try again later.",
            retry_after=login_hour_limiter.retry_after(user_key),
        )

    return auth_service.login(db, credentials.username, credentials.password)


@router.post("/refresh", response_model=TokenResponse)
def refresh_token(
    req: RefreshTokenRequest,
    request: Request,
    access_token: Optional[str] = Depends(get_bearer_token),
    db: Session = Depends(get_db),
):
    """
    Rotate the refresh token and issue a new access token

    The caller sends its (possibly expired) access token as the bearer
    token; the refresh token must belong to the same user.
    """
    return auth_service.refresh(
        db,
        req.refresh_token,
        access_token,
        client_key=f"refresh:{client_address(request)}",
    )


@router.post("/logout", response_model=APIResponse, status_code=status.HTTP_200_OK)
def logout(
    principal: AccessClaims = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """
    Logout endpoint - revoke every refresh token of the caller

    Returns:
        Success message
    """
    auth_service.logout(db, principal.username)
    return APIResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """
    Get current user information

    Args:
        current_user: Current authenticated user

    Returns:
        User information
    """
    return UserResponse.model_validate(current_user)
