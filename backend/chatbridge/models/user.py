"""User model"""

from sqlalchemy import Column, Integer, String, DateTime, Index, JSON, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from chatbridge.core.database import Base
from chatbridge.core.encryption import EncryptedText, secret_encryptor
from chatbridge.schemas.user import Role


class User(Base):
    """User model for authentication and authorization"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(20), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    roles = Column(JSON, nullable=False, default=lambda: [Role.USER.value])
    api_key = Column(EncryptedText(secret_encryptor), nullable=False)
    max_tokens = Column(Integer, nullable=False)
    model = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index('idx_users_username', 'username'),
        Index('idx_users_email', 'email'),
        CheckConstraint('max_tokens >= 1', name='chk_max_tokens_positive'),
    )

    def has_role(self, role: Role) -> bool:
        return role.value in (self.roles or [])

    def __repr__(self):
        # api_key and password_hash are deliberately left out
        return f"<User(id={self.id}, username='{self.username}', roles={self.roles})>"
