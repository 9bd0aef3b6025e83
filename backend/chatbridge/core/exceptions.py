"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    code = "internal_error"

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """
    Base authentication error.

    The client always sees the same message; ``reason`` names the actual
    cause and is only written to the log.
    """

    code = "authentication_failed"
    PUBLIC_MESSAGE = "Authentication failed"

    def __init__(self, reason: str = "Authentication failed"):
        self.reason = reason
        super().__init__(self.PUBLIC_MESSAGE, status_code=401)


class InvalidCredentialsError(AuthenticationError):
    """Unknown user or wrong password"""
    def __init__(self, reason: str = "Invalid username or password"):
        super().__init__(reason)


class TokenInvalidError(AuthenticationError):
    """Access token is malformed, tampered with or expired"""
    def __init__(self, reason: str = "Invalid access token"):
        super().__init__(reason)


class InvalidRefreshTokenError(AuthenticationError):
    """Refresh token is unknown, already consumed, expired or bound to another user"""
    def __init__(self, reason: str = "Invalid refresh token"):
        super().__init__(reason)


# Authorization Errors
class AuthorizationError(BaseAPIException):
    """Insufficient permissions"""

    code = "forbidden"

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, status_code=403)


# Resource Errors
class ResourceNotFoundError(BaseAPIException):
    """Resource not found"""

    code = "not_found"

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", status_code=404)


class ResourceAlreadyExistsError(BaseAPIException):
    """Resource already exists"""

    code = "already_exists"

    def __init__(self, resource: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"{resource} already exists", status_code=409, details=details)


class ConstraintViolationError(ResourceAlreadyExistsError):
    """Unique constraint on username or email rejected a write"""
    def __init__(self, field: str):
        self.field = field
        super().__init__(field.capitalize(), details={"field": field})


class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded"""

    code = "rate_limit_exceeded"

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please try again later.",
        retry_after: Optional[int] = None,
    ):
        self.retry_after = retry_after
        details = {"retry_after": retry_after} if retry_after is not None else None
        super().__init__(message, status_code=429, details=details)


# System Errors
class SecretEncryptionError(BaseAPIException):
    """Encrypting or decrypting a stored secret failed"""

    code = "encryption_error"

    def __init__(self, message: str = "Stored secret could not be processed"):
        super().__init__(message, status_code=500)


class ConfigurationInvalidError(Exception):
    """Startup configuration is unusable; the process must not start"""
