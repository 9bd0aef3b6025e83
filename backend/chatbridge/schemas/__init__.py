"""Pydantic schemas for API validation"""

from chatbridge.schemas.user import (
    Role,
    RegisterRequest,
    LoginRequest,
    RefreshTokenRequest,
    UpdatePasswordRequest,
    UpdateEmailRequest,
    UpdateApiKeyRequest,
    UpdateMaxTokensRequest,
    UpdateModelRequest,
    UserResponse,
    TokenResponse,
)
from chatbridge.schemas.response import APIResponse, ErrorResponse, HealthResponse

__all__ = [
    "Role", "RegisterRequest", "LoginRequest", "RefreshTokenRequest",
    "UpdatePasswordRequest", "UpdateEmailRequest", "UpdateApiKeyRequest",
    "UpdateMaxTokensRequest", "UpdateModelRequest", "UserResponse", "TokenResponse",
    "APIResponse", "ErrorResponse", "HealthResponse",
]
