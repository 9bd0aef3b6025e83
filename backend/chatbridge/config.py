"""Application configuration management"""

import binascii
import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List
from urllib.parse import quote_plus

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode

from chatbridge.core.exceptions import ConfigurationInvalidError

# Base directory: backend/
_BASE_DIR = Path(__file__).resolve().parent.parent

_DEV_SECRET_KEY = "dev-secret-key-change-in-production-use-openssl-rand-hex-32"
_DEV_ENCRYPTION_KEY = "dev-encryption-key-change-in-production"
_DEV_ENCRYPTION_SALT = "5c0744940b5c369b"


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application
    APP_NAME: str = "AI Chat Bridge"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Database (PostgreSQL)
    DATABASE_URL: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "chatbridge_db"
    POSTGRES_USER: str = "chatbridge"
    POSTGRES_PASSWORD: str = "chatbridge"
    DATABASE_POOL_SIZE: int = 30
    DATABASE_MAX_OVERFLOW: int = 20

    # Access tokens
    SECRET_KEY: str = _DEV_SECRET_KEY
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_ACCEPTS_EXPIRED_ACCESS_TOKEN: bool = True

    # Refresh tokens
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Secondary secret (AI provider API key) encryption
    ENCRYPTION_KEY: str = _DEV_ENCRYPTION_KEY
    ENCRYPTION_SALT: str = _DEV_ENCRYPTION_SALT
    ENCRYPTION_KDF_ITERATIONS: int = 100_000

    # Rate Limiting
    REFRESH_RATE_LIMIT_PERMITS: int = 10
    REFRESH_RATE_LIMIT_WINDOW_SECONDS: int = 60
    LOGIN_RATE_LIMIT_PER_MINUTE: int = 10
    LOGIN_RATE_LIMIT_PER_HOUR: int = 50

    # Accounts
    DEFAULT_MODEL: str = "gpt-4o-mini"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:3000"]

    # Bootstrap admin (skipped when ADMIN_PASSWORD is empty)
    ADMIN_USERNAME: str = "admin"
    ADMIN_EMAIL: str = "admin@localhost"
    ADMIN_PASSWORD: str = ""

    DB_INIT_MODE: str = "create_all"  # create_all | off

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, value: Any) -> Any:
        """Origins come from env as a JSON array or a comma-separated list."""
        if not isinstance(value, str):
            return value
        text = value.strip()
        if text.startswith("["):
            try:
                items = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValueError("CORS_ORIGINS is not a valid JSON array") from exc
        else:
            items = text.split(",")
        return [str(item).strip() for item in items if str(item).strip()]

    @field_validator("SECRET_KEY")
    @classmethod
    def _check_secret_key(cls, value: str) -> str:
        if value is None or len(value) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")
        return value

    @field_validator(
        "ACCESS_TOKEN_EXPIRE_MINUTES",
        "REFRESH_TOKEN_EXPIRE_DAYS",
        "ENCRYPTION_KDF_ITERATIONS",
        "REFRESH_RATE_LIMIT_PERMITS",
        "REFRESH_RATE_LIMIT_WINDOW_SECONDS",
        "LOGIN_RATE_LIMIT_PER_MINUTE",
        "LOGIN_RATE_LIMIT_PER_HOUR",
    )
    @classmethod
    def _check_positive(cls, value: int, info) -> int:
        if value <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return value

    @field_validator("ENCRYPTION_KEY")
    @classmethod
    def _check_encryption_key(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("ENCRYPTION_KEY cannot be blank")
        return value

    @field_validator("ENCRYPTION_SALT")
    @classmethod
    def _check_encryption_salt(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("ENCRYPTION_SALT cannot be blank")
        try:
            binascii.unhexlify(value.strip())
        except (binascii.Error, ValueError):
            raise ValueError("ENCRYPTION_SALT must be a hex-encoded string")
        return value.strip()

    def get_log_file(self) -> str:
        p = self.LOG_FILE
        if not p or p.startswith(".."):
            return str(_BASE_DIR.parent / "logs" / "app.log")
        return p

    def get_database_url(self) -> str:
        """DATABASE_URL when set, otherwise a PostgreSQL URL from the POSTGRES_* parts."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        credentials = f"{quote_plus(self.POSTGRES_USER)}:{quote_plus(self.POSTGRES_PASSWORD)}"
        return f"postgresql://{credentials}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    def validate_security_settings(self) -> None:
        """
        Validate runtime security defaults in production.

        Raises:
            ConfigurationInvalidError: If insecure defaults are detected.
        """
        if self.ENVIRONMENT.lower() != "production":
            return

        insecure_secret_markers = {
            "",
            _DEV_SECRET_KEY,
            "change-me",
        }

        if self.SECRET_KEY in insecure_secret_markers:
            raise ConfigurationInvalidError(
                "Insecure SECRET_KEY for production. Use a strong key (e.g. `openssl rand -hex 32`)."
            )

        if self.ENCRYPTION_KEY == _DEV_ENCRYPTION_KEY or self.ENCRYPTION_SALT == _DEV_ENCRYPTION_SALT:
            raise ConfigurationInvalidError(
                "Development ENCRYPTION_KEY/ENCRYPTION_SALT must not be used in production."
            )

        if self.ADMIN_PASSWORD and len(self.ADMIN_PASSWORD) < 10:
            raise ConfigurationInvalidError(
                "Insecure ADMIN_PASSWORD for production. Set a strong admin password before startup."
            )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance, refusing to start on invalid configuration"""
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigurationInvalidError(str(exc)) from exc


settings = get_settings()
