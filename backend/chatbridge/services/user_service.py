"""User service - credential store lookups and persistence"""

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Optional
from chatbridge.models.user import User
from chatbridge.core.exceptions import ConstraintViolationError
import logging

logger = logging.getLogger(__name__)


def normalize_identity(value: str) -> str:
    """Usernames and emails are stored and looked up lower-cased."""
    return (value or "").strip().lower()


class UserService:
    """Persistence of user records; the only place that queries the users table"""

    @staticmethod
    def get_user_by_username(db: Session, username: str) -> Optional[User]:
        """Get user by username"""
        return db.execute(
            select(User).where(User.username == normalize_identity(username))
        ).scalar_one_or_none()

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email"""
        return db.execute(
            select(User).where(User.email == normalize_identity(email))
        ).scalar_one_or_none()

    @staticmethod
    def get_user_by_username_or_email(db: Session, identity: str) -> Optional[User]:
        """Get user whose username or email equals ``identity``"""
        value = normalize_identity(identity)
        return db.execute(
            select(User).where(or_(User.username == value, User.email == value))
        ).scalars().first()

    @staticmethod
    def save(db: Session, user: User) -> User:
        """
        Insert or update a user

        Args:
            db: Database session
            user: User to persist

        Returns:
            The persisted user, refreshed from the database

        Raises:
            ConstraintViolationError: if username or email belongs to another row
        """
        user.username = normalize_identity(user.username)
        user.email = normalize_identity(user.email)

        for field, finder in (
            ("username", UserService.get_user_by_username),
            ("email", UserService.get_user_by_email),
        ):
            with db.no_autoflush:
                other = finder(db, getattr(user, field))
            if other is not None and other is not user:
                raise ConstraintViolationError(field)

        db.add(user)
        try:
            db.commit()
        except IntegrityError as exc:
            # A concurrent insert won the unique index
            message = str(exc.orig).lower()
            field = "email" if "email" in message else "username"
            logger.warning("Unique constraint rejected %s for user: %s", field, user.username)
            db.rollback()
            raise ConstraintViolationError(field) from exc
        db.refresh(user)
        return user

    @staticmethod
    def delete(db: Session, user: User, commit: bool = True) -> None:
        """Delete a user; refresh tokens go with it through the FK cascade"""
        username = user.username
        db.delete(user)
        if commit:
            db.commit()
        logger.info(f"Deleted user: {username}")


# Singleton instance
user_service = UserService()
