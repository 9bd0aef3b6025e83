"""Authentication service - registration, login, token refresh and account changes"""

from __future__ import annotations

from typing import Optional
import logging

from sqlalchemy.orm import Session

from chatbridge.config import settings
from chatbridge.core.exceptions import (
    AuthenticationError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    RateLimitExceededError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
    TokenInvalidError,
)
from chatbridge.core.metrics import AUTH_EVENTS, RATE_LIMIT_REJECTIONS
from chatbridge.core.security import (
    DUMMY_PASSWORD_HASH,
    AccessTokenIssuer,
    access_token_issuer,
    get_password_hash,
    verify_password,
)
from chatbridge.models.user import User
from chatbridge.schemas.user import RegisterRequest, Role, TokenResponse
from chatbridge.services.rate_limiter import RateLimiter, refresh_rate_limiter
from chatbridge.services.token_service import TokenService, token_service
from chatbridge.services.user_service import UserService, normalize_identity, user_service

logger = logging.getLogger(__name__)

BOOTSTRAP_ADMIN_MAX_TOKENS = 4096


class AuthService:
    """
    Composes the credential store, token issuer, refresh token manager and
    refresh rate limiter into the login/refresh/logout and account flows.

    All authentication failures surface as ``AuthenticationError`` with one
    public message; the specific reason only goes to the log.
    """

    def __init__(
        self,
        users: UserService,
        tokens: TokenService,
        issuer: AccessTokenIssuer,
        refresh_limiter: RateLimiter,
    ) -> None:
        self.users = users
        self.tokens = tokens
        self.issuer = issuer
        self.refresh_limiter = refresh_limiter

    # Lookups

    def current_user(self, db: Session, username: str) -> User:
        """
        Resolve the caller's record

        Raises:
            ResourceNotFoundError: if the account no longer exists
        """
        user = self.users.get_user_by_username(db, username)
        if user is None:
            logger.warning("User not found: %s", username)
            raise ResourceNotFoundError("User")
        return user

    # Registration and login

    def register(self, db: Session, request: RegisterRequest) -> User:
        """
        Create a USER account

        Raises:
            ResourceAlreadyExistsError: if the username or email is taken
        """
        logger.info("Registering new user: %s", request.username)
        if self.users.get_user_by_username(db, request.username) is not None:
            logger.warning("Username already taken: %s", request.username)
            AUTH_EVENTS.labels("register", "conflict").inc()
            raise ResourceAlreadyExistsError("Username")
        if self.users.get_user_by_email(db, request.email) is not None:
            logger.warning("Email already taken for registration of: %s", request.username)
            AUTH_EVENTS.labels("register", "conflict").inc()
            raise ResourceAlreadyExistsError("Email")

        user = User(
            username=request.username,
            email=request.email,
            password_hash=get_password_hash(request.password),
            roles=[Role.USER.value],
            api_key=request.api_key,
            max_tokens=request.max_tokens,
            model=request.model or settings.DEFAULT_MODEL,
        )
        user = self.users.save(db, user)
        AUTH_EVENTS.labels("register", "success").inc()
        logger.info("User registered successfully: %s", user.username)
        return user

    def authenticate(self, db: Session, identity: str, password: str) -> User:
        """
        Verify a password for a username or email

        Raises:
            InvalidCredentialsError: for an unknown identity or a wrong password alike
        """
        user = self.users.get_user_by_username_or_email(db, identity)
        if user is None:
            # Same bcrypt cost as a real check
            verify_password(password, DUMMY_PASSWORD_HASH)
            raise InvalidCredentialsError(f"No user with username or email: {normalize_identity(identity)}")
        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError(f"Wrong password for user: {user.username}")
        return user

    def _token_pair(self, user: User, refresh_token: str) -> TokenResponse:
        return TokenResponse(
            access_token=self.issuer.issue(user.username, user.roles),
            refresh_token=refresh_token,
            token_type="bearer",
            expires_in=self.issuer.lifetime_seconds,
        )

    def login(self, db: Session, identity: str, password: str) -> TokenResponse:
        try:
            user = self.authenticate(db, identity, password)
        except AuthenticationError as exc:
            AUTH_EVENTS.labels("login", "failure").inc()
            logger.warning("Login rejected: %s", exc.reason)
            raise

        record = self.tokens.generate(db, user)
        AUTH_EVENTS.labels("login", "success").inc()
        logger.info("User authenticated: %s", user.username)
        return self._token_pair(user, record.token)

    # Refresh and logout

    def refresh(
        self,
        db: Session,
        refresh_token: str,
        access_token: Optional[str],
        client_key: str,
    ) -> TokenResponse:
        """
        Rotate a refresh token and mint a new access token

        Args:
            db: Database session
            refresh_token: Token presented by the client
            access_token: Bearer token sent alongside; it may have expired
            client_key: Rate limiting key (client address)

        Raises:
            RateLimitExceededError: when the refresh limiter has no free permit
            AuthenticationError: for any unknown, consumed, expired or foreign token
        """
        if not self.refresh_limiter.try_acquire(client_key):
            RATE_LIMIT_REJECTIONS.labels(self.refresh_limiter.name).inc()
            raise RateLimitExceededError(
                "Too many refresh attempts. Slow down.",
                retry_after=self.refresh_limiter.retry_after(client_key),
            )

        try:
            if not access_token:
                raise TokenInvalidError("Refresh attempted without an access token")
            caller = self.issuer.verify(
                access_token,
                allow_expired=settings.REFRESH_ACCEPTS_EXPIRED_ACCESS_TOKEN,
            )

            record = self.tokens.validate(db, refresh_token)
            if self.tokens.is_expired(record):
                db.delete(record)
                db.commit()
                raise InvalidRefreshTokenError("Refresh token expired")

            user = record.user
            if user.username != caller.username:
                raise InvalidRefreshTokenError(
                    f"Refresh token of {user.username} presented by {caller.username}"
                )

            new_record = self.tokens.rotate(db, refresh_token, user)
        except AuthenticationError as exc:
            AUTH_EVENTS.labels("refresh", "failure").inc()
            logger.warning("Refresh rejected: %s", exc.reason)
            raise

        AUTH_EVENTS.labels("refresh", "success").inc()
        return self._token_pair(user, new_record.token)

    def logout(self, db: Session, username: str) -> None:
        """Revoke every refresh token of the caller; logging out twice is fine"""
        user = self.users.get_user_by_username(db, username)
        if user is None:
            logger.info("Logout for unknown user ignored: %s", username)
            return
        self.tokens.revoke_all(db, user)
        AUTH_EVENTS.labels("logout", "success").inc()
        logger.info("User logged out: %s", username)

    # Credential mutation

    def update_password(self, db: Session, username: str, current_password: str, new_password: str) -> None:
        """Change the password after re-checking the current one; ends every session"""
        user = self.current_user(db, username)
        if not verify_password(current_password, user.password_hash):
            AUTH_EVENTS.labels("update_password", "failure").inc()
            logger.warning("Incorrect current password for user: %s", username)
            raise InvalidCredentialsError(f"Current password is incorrect for user: {username}")

        user.password_hash = get_password_hash(new_password)
        self.tokens.revoke_all(db, user, commit=False)
        db.commit()
        AUTH_EVENTS.labels("update_password", "success").inc()
        logger.info("Password updated successfully for user: %s", username)

    def update_email(self, db: Session, username: str, new_email: str) -> None:
        user = self.current_user(db, username)
        new_email = normalize_identity(new_email)
        if new_email == user.email:
            return

        other = self.users.get_user_by_email(db, new_email)
        if other is not None and other.id != user.id:
            AUTH_EVENTS.labels("update_email", "conflict").inc()
            logger.warning("Email already in use, rejected change for user: %s", username)
            raise ResourceAlreadyExistsError("Email")

        user.email = new_email
        self.users.save(db, user)
        AUTH_EVENTS.labels("update_email", "success").inc()
        logger.info("Email updated successfully for user: %s", username)

    def update_api_key(self, db: Session, username: str, api_key: str) -> None:
        user = self.current_user(db, username)
        user.api_key = api_key
        db.commit()
        logger.info("OpenAI API key updated successfully for user: %s", username)

    def update_max_tokens(self, db: Session, username: str, max_tokens: int) -> None:
        user = self.current_user(db, username)
        user.max_tokens = max_tokens
        db.commit()
        logger.info("Max tokens updated successfully for user: %s", username)

    def update_model(self, db: Session, username: str, model: str) -> None:
        user = self.current_user(db, username)
        user.model = model
        db.commit()
        logger.info("Model updated successfully for user: %s", username)

    def delete_account(self, db: Session, username: str) -> None:
        """Delete the caller's account together with all of its refresh tokens"""
        user = self.current_user(db, username)
        self.tokens.revoke_all(db, user, commit=False)
        self.users.delete(db, user)
        AUTH_EVENTS.labels("delete_account", "success").inc()
        logger.info("Account deleted successfully for user: %s", username)

    # Bootstrap

    def ensure_admin(self, db: Session, username: str, email: str, password: str) -> Optional[User]:
        """Create the bootstrap admin unless an account with that username exists"""
        if self.users.get_user_by_username(db, username) is not None:
            return None
        admin = User(
            username=username,
            email=email,
            password_hash=get_password_hash(password),
            roles=[Role.USER.value, Role.ADMIN.value],
            api_key="",
            max_tokens=BOOTSTRAP_ADMIN_MAX_TOKENS,
            model=settings.DEFAULT_MODEL,
        )
        admin = self.users.save(db, admin)
        logger.info("Created admin user: %s", admin.username)
        return admin


auth_service = AuthService(
    users=user_service,
    tokens=token_service,
    issuer=access_token_issuer,
    refresh_limiter=refresh_rate_limiter,
)
