import os
import sys
import tempfile
from datetime import timedelta
from pathlib import Path

# Point the application at throwaway storage before anything imports settings
_test_tmp_dir = tempfile.mkdtemp(prefix="chatbridge_test_")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_test_tmp_dir}/app.db")
os.environ.setdefault("LOG_FILE", f"{_test_tmp_dir}/app.log")
os.environ.setdefault("ENVIRONMENT", "test")

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from chatbridge.core.database import Base, make_engine  # noqa: E402
from chatbridge.core.security import access_token_issuer  # noqa: E402
from chatbridge.schemas.user import RegisterRequest  # noqa: E402
from chatbridge.services.auth_service import AuthService  # noqa: E402
from chatbridge.services.rate_limiter import (  # noqa: E402
    RateLimiter,
    login_hour_limiter,
    login_minute_limiter,
    refresh_rate_limiter,
)
from chatbridge.services.token_service import TokenService  # noqa: E402
from chatbridge.services.user_service import user_service  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock for rate limiter tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tokens():
    return TokenService(timedelta(days=7))


@pytest.fixture
def service(tokens):
    return AuthService(
        users=user_service,
        tokens=tokens,
        issuer=access_token_issuer,
        refresh_limiter=RateLimiter("refreshToken", permits=100, window_seconds=60),
    )


@pytest.fixture(autouse=True)
def reset_rate_limiters():
    for limiter in (refresh_rate_limiter, login_minute_limiter, login_hour_limiter):
        limiter.reset()
    yield


def _registration(**overrides) -> RegisterRequest:
    fields = {
        "username": "alice",
        "email": "alice@x.com",
        "password": "P@ssw0rd1",
        "api_key": "sk-abc",
        "max_tokens": 100,
    }
    fields.update(overrides)
    return RegisterRequest(**fields)


@pytest.fixture
def make_registration():
    return _registration
