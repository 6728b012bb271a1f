import os

# Configure before any kavach module reads settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("PAYMENT_KEY_SECRET", "test-payment-secret")
os.environ.setdefault("SCAN_DAY_BOUNDARY_TIMEZONE", "UTC")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kavach.api.scan import get_clock
from kavach.api.server import app
from kavach.config import settings
from kavach.database import Base, get_db
from kavach.services.token_service import create_access_token
from kavach.services.user_service import UserRepository
from kavach.utils.logging_config import metrics


class FixedClock:
    """Clock returning a settable instant."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def db_session():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = SessionLocal()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def clock():
    """Fixed at midday UTC so tests stay away from the day boundary."""
    return FixedClock(datetime(2026, 3, 14, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def client(db_session, clock):
    """FastAPI test client bound to the test database and clock."""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    metrics.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    """Factory for users in the test database."""
    users = UserRepository(db_session)
    counter = {"n": 0}

    def _make(is_pro: bool = False, **fields):
        counter["n"] += 1
        fields.setdefault("email", f"user{counter['n']}@example.com")
        fields.setdefault("name", f"User {counter['n']}")
        return users.create(is_pro=is_pro, **fields)

    return _make


@pytest.fixture
def auth_headers():
    """Build the session token header for a user."""
    def _headers(user):
        return {"auth-token": create_access_token(user.id)}

    return _headers


@pytest.fixture
def sample_safe_url():
    return "http://example.com"


@pytest.fixture
def sample_blacklisted_url():
    return "http://malicious-site.com/x"


@pytest.fixture
def sample_suspicious_url():
    return "http://free-money.biz/click"


class StaticJWKSClient:
    """Serves one public key for every token, in place of Google's JWKS endpoint."""

    def __init__(self, public_key):
        self.public_key = public_key

    def get_signing_key_from_jwt(self, token):
        return SimpleNamespace(key=self.public_key)


@pytest.fixture(scope="session")
def google_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def google_jwks_client(google_key):
    return StaticJWKSClient(google_key.public_key())


@pytest.fixture
def google_id_token(google_key):
    """Build a Google-style ID token signed with the test key."""
    def _token(key=None, **overrides):
        now = datetime.now(timezone.utc)
        claims = {
            "iss": "https://accounts.google.com",
            "aud": settings.google_client_id,
            "sub": "google-sub-123",
            "email": "g.user@example.com",
            "name": "G User",
            "picture": "https://example.com/avatar.png",
            "iat": now,
            "exp": now + timedelta(hours=1),
        }
        claims.update(overrides)
        claims = {k: v for k, v in claims.items() if v is not None}
        return jwt.encode(claims, key or google_key, algorithm="RS256")

    return _token
