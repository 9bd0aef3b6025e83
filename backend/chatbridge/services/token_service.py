"""Refresh token generation, rotation and revocation service."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
import secrets

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from chatbridge.config import settings
from chatbridge.core.exceptions import ConfigurationInvalidError, InvalidRefreshTokenError
from chatbridge.models.security import RefreshToken
from chatbridge.models.user import User

logger = logging.getLogger(__name__)

TOKEN_BYTES = 48


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class TokenService:
    """
    Manage the lifecycle of opaque refresh tokens.

    Every check reads the database; nothing is cached between requests.
    Methods that change rows commit the session they are given.
    """

    def __init__(self, lifetime: timedelta) -> None:
        if lifetime.total_seconds() <= 0:
            raise ConfigurationInvalidError("Refresh token lifetime must be positive")
        self.lifetime = lifetime

    @staticmethod
    def _new_token_value() -> str:
        return secrets.token_urlsafe(TOKEN_BYTES)

    @staticmethod
    def _lock_user(db: Session, user_id: int) -> None:
        # Row lock on PostgreSQL; SQLite serializes writers on its own.
        db.execute(select(User.id).where(User.id == user_id).with_for_update()).scalar_one_or_none()

    def _insert(self, db: Session, user: User, now: Optional[datetime] = None) -> RefreshToken:
        issued = now or utc_now()
        record = RefreshToken(
            token=self._new_token_value(),
            user_id=user.id,
            expiry_date=issued + self.lifetime,
            created_at=issued,
        )
        db.add(record)
        db.flush()
        return record

    def generate(self, db: Session, user: User, now: Optional[datetime] = None) -> RefreshToken:
        """
        Create and persist a fresh refresh token for ``user``.

        Other live tokens of the user are left alone; callers that want a
        single session revoke first.
        """
        self._lock_user(db, user.id)
        record = self._insert(db, user, now)
        db.commit()
        logger.info("Refresh token generated for user: %s", user.username)
        return record

    def validate(self, db: Session, token: str) -> RefreshToken:
        """
        Look the token up by exact match.

        Expiry and owner binding are checked by the caller.

        Raises:
            InvalidRefreshTokenError: if no such token exists
        """
        record = db.execute(
            select(RefreshToken).where(RefreshToken.token == token)
        ).scalar_one_or_none()
        if record is None:
            raise InvalidRefreshTokenError("Refresh token not found")
        return record

    @staticmethod
    def is_expired(record: RefreshToken, now: Optional[datetime] = None) -> bool:
        return as_utc(record.expiry_date) <= (now or utc_now())

    def rotate(self, db: Session, old_token: str, user: User, now: Optional[datetime] = None) -> RefreshToken:
        """
        Replace every refresh token of ``user`` with a single new one.

        The presented token is consumed by a conditional delete inside the
        same transaction that inserts its successor. When two requests race
        with the same token, only the one whose delete removes the row goes
        on; the other sees zero rows and fails.

        Raises:
            InvalidRefreshTokenError: if ``old_token`` was already consumed
                or does not belong to ``user``
        """
        try:
            self._lock_user(db, user.id)
            consumed = db.execute(
                delete(RefreshToken).where(
                    RefreshToken.token == old_token,
                    RefreshToken.user_id == user.id,
                )
            ).rowcount
            if consumed != 1:
                db.rollback()
                raise InvalidRefreshTokenError("Refresh token already rotated or revoked")

            db.execute(delete(RefreshToken).where(RefreshToken.user_id == user.id))
            record = self._insert(db, user, now)
            db.commit()
        except InvalidRefreshTokenError:
            raise
        except Exception:
            db.rollback()
            raise

        logger.info("Refresh token rotated for user: %s", user.username)
        return record

    def revoke_all(self, db: Session, user: User, commit: bool = True) -> int:
        """Delete every refresh token owned by ``user``. Idempotent."""
        removed = db.execute(
            delete(RefreshToken).where(RefreshToken.user_id == user.id)
        ).rowcount
        if commit:
            db.commit()
        logger.info("Revoked %d refresh token(s) for user: %s", removed, user.username)
        return removed

    def sweep_expired(self, db: Session, before: Optional[datetime] = None) -> int:
        """Delete tokens whose expiry is strictly before ``before`` (default: now)."""
        cutoff = before or utc_now()
        removed = db.execute(
            delete(RefreshToken).where(RefreshToken.expiry_date < cutoff)
        ).rowcount
        db.commit()
        logger.info("Swept %d expired refresh token(s)", removed)
        return removed


token_service = TokenService(timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))
