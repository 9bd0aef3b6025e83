"""API dependencies - authentication and authorization"""

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Callable, Optional

from chatbridge.core.database import get_db
from chatbridge.core.exceptions import AuthorizationError, TokenInvalidError
from chatbridge.core.security import AccessClaims, access_token_issuer, permissions_for
from chatbridge.models.user import User
from chatbridge.services.auth_service import auth_service

# HTTP Bearer token scheme; missing headers are reported as our own 401
security = HTTPBearer(auto_error=False)


def client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _bearer_token(credentials: Optional[HTTPAuthorizationCredentials]) -> str:
    if credentials is None or not credentials.credentials:
        raise TokenInvalidError("Missing bearer token")
    return credentials.credentials


def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AccessClaims:
    """
    Verify the bearer access token

    Returns:
        Caller identity and roles asserted by the token

    Raises:
        TokenInvalidError: If the token is missing, tampered with or expired
    """
    return access_token_issuer.verify(_bearer_token(credentials))


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """
    Raw bearer token, unverified

    The refresh endpoint checks it only after the refresh rate limiter has
    admitted the call.
    """
    if credentials is None or not credentials.credentials:
        return None
    return credentials.credentials


def get_current_user(
    principal: AccessClaims = Depends(get_current_principal),
    db: Session = Depends(get_db)
) -> User:
    """
    Get current authenticated user from JWT token

    Args:
        principal: Verified access token claims
        db: Database session

    Returns:
        Current user

    Raises:
        ResourceNotFoundError: If the account was deleted after the token was issued
    """
    return auth_service.current_user(db, principal.username)


def require_permission(capability: str) -> Callable[[AccessClaims], AccessClaims]:
    """
    Build a dependency that admits callers whose roles grant ``capability``

    Args:
        capability: Capability string from ROLE_PERMISSIONS

    Returns:
        FastAPI dependency returning the verified principal
    """
    def _check(principal: AccessClaims = Depends(get_current_principal)) -> AccessClaims:
        if capability not in permissions_for(principal.roles):
            raise AuthorizationError(f"Missing permission: {capability}")
        return principal

    return _check


get_current_admin_user = require_permission("users:manage")
