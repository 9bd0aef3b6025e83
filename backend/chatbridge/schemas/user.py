"""User and authentication schemas"""

import re
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from datetime import datetime
from enum import Enum

USERNAME_PATTERN = r'^[a-zA-Z0-9_-]+$'
PASSWORD_SPECIALS = "@$!%*?&"
API_KEY_PATTERN = r'^sk-[a-zA-Z0-9_-]+$'
MAX_TOKENS_LIMIT = 999999
# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72


class Role(str, Enum):
    """User role enumeration"""
    USER = "USER"
    ADMIN = "ADMIN"


def _check_password_bytes(value: str) -> str:
    if len(value.encode('utf-8')) > MAX_PASSWORD_BYTES:
        raise ValueError(f'Password cannot be longer than {MAX_PASSWORD_BYTES} bytes')
    return value


def _check_password_strength(value: str) -> str:
    _check_password_bytes(value)
    if not re.fullmatch(rf'[A-Za-z\d{re.escape(PASSWORD_SPECIALS)}]{{8,}}', value):
        raise ValueError(
            f'Password must be at least 8 characters of letters, digits or {PASSWORD_SPECIALS}'
        )
    if not (
        re.search(r'[a-z]', value)
        and re.search(r'[A-Z]', value)
        and re.search(r'\d', value)
        and re.search(rf'[{re.escape(PASSWORD_SPECIALS)}]', value)
    ):
        raise ValueError(
            'Password must contain at least one uppercase letter, one lowercase letter, '
            'one digit, and one special character'
        )
    return value


def _not_blank(value: str, label: str) -> str:
    if not value or not value.strip():
        raise ValueError(f'{label} cannot be blank')
    return value.strip()


class RegisterRequest(BaseModel):
    """User registration schema"""
    username: str = Field(..., min_length=3, max_length=20, pattern=USERNAME_PATTERN)
    email: EmailStr
    password: str = Field(..., min_length=8)
    api_key: str
    max_tokens: int = Field(..., ge=1, le=MAX_TOKENS_LIMIT)
    model: Optional[str] = None

    @field_validator('username')
    @classmethod
    def normalize_username(cls, v):
        """Usernames are stored lower-cased"""
        return v.lower()

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        return str(v).strip().lower()

    @field_validator('password')
    @classmethod
    def password_strength(cls, v):
        return _check_password_strength(v)

    @field_validator('api_key')
    @classmethod
    def api_key_present(cls, v):
        return _not_blank(v, 'API key')

    @field_validator('model')
    @classmethod
    def model_not_blank(cls, v):
        if v is None:
            return v
        return _not_blank(v, 'Model')


class LoginRequest(BaseModel):
    """Login with username or email"""
    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)

    @field_validator('password')
    @classmethod
    def password_length(cls, v):
        return _check_password_bytes(v)


class RefreshTokenRequest(BaseModel):
    """Refresh token rotation request"""
    refresh_token: str = Field(..., min_length=1, max_length=255)


class UpdatePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)

    @field_validator('current_password')
    @classmethod
    def current_password_length(cls, v):
        return _check_password_bytes(v)

    @field_validator('new_password')
    @classmethod
    def password_strength(cls, v):
        return _check_password_strength(v)


class UpdateEmailRequest(BaseModel):
    email: EmailStr

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        return str(v).strip().lower()


class UpdateApiKeyRequest(BaseModel):
    api_key: str = Field(..., pattern=API_KEY_PATTERN)


class UpdateMaxTokensRequest(BaseModel):
    max_tokens: int = Field(..., ge=1, le=MAX_TOKENS_LIMIT)


class UpdateModelRequest(BaseModel):
    model: str

    @field_validator('model')
    @classmethod
    def model_not_blank(cls, v):
        return _not_blank(v, 'Model')


class UserResponse(BaseModel):
    """Public projection of a user; never carries the password hash or API key"""
    id: int
    username: str
    email: str
    roles: List[Role]
    max_tokens: int
    model: str
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    """Access/refresh token pair"""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
