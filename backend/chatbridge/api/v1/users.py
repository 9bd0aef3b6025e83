"""Account management routes for the authenticated user"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from chatbridge.core.database import get_db
from chatbridge.core.security import AccessClaims
from chatbridge.schemas.user import (
    UpdatePasswordRequest,
    UpdateEmailRequest,
    UpdateApiKeyRequest,
    UpdateMaxTokensRequest,
    UpdateModelRequest,
)
from chatbridge.schemas.response import APIResponse
from chatbridge.services.auth_service import auth_service
from chatbridge.api.deps import get_current_principal

router = APIRouter()


def _ok(message: str) -> APIResponse:
    return APIResponse(message=message)


@router.patch("/password", response_model=APIResponse, status_code=status.HTTP_200_OK)
def update_password(
    body: UpdatePasswordRequest,
    principal: AccessClaims = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """
    Change password; every refresh token of the user is revoked

    Args:
        body: Current and new password
        principal: Caller identity
        db: Database session
    """
    auth_service.update_password(db, principal.username, body.current_password, body.new_password)
    return _ok("Password updated successfully")


@router.patch("/email", response_model=APIResponse, status_code=status.HTTP_200_OK)
def update_email(
    body: UpdateEmailRequest,
    principal: AccessClaims = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    auth_service.update_email(db, principal.username, body.email)
    return _ok("Email updated successfully")


@router.patch("/api-key", response_model=APIResponse, status_code=status.HTTP_200_OK)
def update_api_key(
    body: UpdateApiKeyRequest,
    principal: AccessClaims = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    auth_service.update_api_key(db, principal.username, body.api_key)
    return _ok("API key updated successfully")


@router.patch("/max-tokens", response_model=APIResponse, status_code=status.HTTP_200_OK)
def update_max_tokens(
    body: UpdateMaxTokensRequest,
    principal: AccessClaims = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    auth_service.update_max_tokens(db, principal.username, body.max_tokens)
    return _ok("Max tokens updated successfully")


@router.patch("/model", response_model=APIResponse, status_code=status.HTTP_200_OK)
def update_model(
    body: UpdateModelRequest,
    principal: AccessClaims = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    auth_service.update_model(db, principal.username, body.model)
    return _ok("Model updated successfully")


@router.delete("", response_model=APIResponse, status_code=status.HTTP_200_OK)
def delete_account(
    principal: AccessClaims = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """
    Delete the caller's account

    Returns:
        Success message
    """
    auth_service.delete_account(db, principal.username)
    return _ok("Account deleted successfully")
