"""Security utilities - JWT, password hashing, role permissions"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, FrozenSet, Iterable, List, Optional
from jose import ExpiredSignatureError, JWTError, jwt
import bcrypt
from chatbridge.config import settings
from chatbridge.core.exceptions import ConfigurationInvalidError, TokenInvalidError
from chatbridge.schemas.user import MAX_PASSWORD_BYTES, Role
import secrets

MIN_SECRET_LENGTH = 32

ROLE_PERMISSIONS: Dict[Role, FrozenSet[str]] = {
    Role.USER: frozenset({"ROLE_USER", "chat:use", "profile:manage"}),
    Role.ADMIN: frozenset({"ROLE_ADMIN", "chat:use", "profile:manage", "users:manage", "tokens:manage"}),
}


def permissions_for(roles: Iterable[str]) -> FrozenSet[str]:
    """Union of capabilities granted by the given role tags; unknown tags grant nothing."""
    granted = set()
    for tag in roles:
        try:
            granted |= ROLE_PERMISSIONS[Role(tag)]
        except ValueError:
            continue
    return frozenset(granted)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password

    Returns:
        bool: True if password matches; False for passwords bcrypt cannot hash
    """
    password_bytes = plain_password.encode('utf-8')
    if len(password_bytes) > MAX_PASSWORD_BYTES:
        return False
    return bcrypt.checkpw(password_bytes, hashed_password.encode('utf-8'))


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password

    Returns:
        str: Hashed password
    """
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt()
    ).decode('utf-8')


# Compared against when the user does not exist so both paths pay for bcrypt.
DUMMY_PASSWORD_HASH = get_password_hash(secrets.token_urlsafe(16))


@dataclass(frozen=True)
class AccessClaims:
    """Identity asserted by a verified access token"""
    username: str
    roles: List[str]
    issued_at: datetime
    expires_at: datetime


class AccessTokenIssuer:
    """Creates and verifies signed, short-lived access tokens."""

    TOKEN_TYPE = "access"

    def __init__(self, secret: str, algorithm: str = "HS256", lifetime: Optional[timedelta] = None):
        if secret is None or len(secret) < MIN_SECRET_LENGTH:
            raise ConfigurationInvalidError(
                f"JWT secret must be at least {MIN_SECRET_LENGTH} characters long"
            )
        if lifetime is None or lifetime.total_seconds() <= 0:
            raise ConfigurationInvalidError("Access token lifetime must be positive")
        self._secret = secret
        self._algorithm = algorithm
        self._lifetime = lifetime

    @property
    def lifetime_seconds(self) -> int:
        return int(self._lifetime.total_seconds())

    def issue(self, username: str, roles: Iterable[str], now: Optional[datetime] = None) -> str:
        """
        Create JWT access token

        Args:
            username: Subject of the token
            roles: Role tags carried as the ``roles`` claim
            now: Issue time, defaults to the current UTC time

        Returns:
            str: Encoded JWT token
        """
        issued_at = now or datetime.now(timezone.utc)
        to_encode = {
            "sub": username,
            "roles": sorted(set(roles)),
            "iat": issued_at,
            "exp": issued_at + self._lifetime,
            "jti": secrets.token_urlsafe(32),  # Unique token ID
            "typ": self.TOKEN_TYPE,
        }
        return jwt.encode(to_encode, self._secret, algorithm=self._algorithm)

    def verify(self, token: str, allow_expired: bool = False) -> AccessClaims:
        """
        Decode and verify JWT token

        Args:
            token: JWT token string
            allow_expired: Skip only the expiry check; signature and type are still enforced

        Returns:
            AccessClaims: Verified identity

        Raises:
            TokenInvalidError: For any malformed, tampered, expired or non-access token
        """
        if not token:
            raise TokenInvalidError("Missing access token")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": not allow_expired},
            )
        except ExpiredSignatureError:
            raise TokenInvalidError("Access token expired")
        except JWTError:
            raise TokenInvalidError("Access token signature or format invalid")

        if payload.get("typ") != self.TOKEN_TYPE:
            raise TokenInvalidError("Token is not an access token")
        username = payload.get("sub")
        roles = payload.get("roles")
        iat = payload.get("iat")
        exp = payload.get("exp")
        if not username or not isinstance(roles, list) or iat is None or exp is None:
            raise TokenInvalidError("Malformed access token claims")

        return AccessClaims(
            username=username,
            roles=[str(role) for role in roles],
            issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
        )


access_token_issuer = AccessTokenIssuer(
    settings.SECRET_KEY,
    algorithm=settings.ALGORITHM,
    lifetime=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
)
