"""Database models"""

from chatbridge.models.user import User
from chatbridge.models.security import RefreshToken

__all__ = ["User", "RefreshToken"]
