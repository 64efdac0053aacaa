"""Pytest configuration and fixtures for Portal Auth tests.

Signing secrets are set before any portal_auth module is imported, because
settings are loaded (and validated) at import of ``portal_auth.core``.
"""

import os
from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

# Set test environment variables before importing app modules
os.environ["JWT_SECRET"] = "access-" + "a" * 57
os.environ["REFRESH_SECRET"] = "refresh-" + "b" * 56
os.environ["JWT_AUDIENCE"] = "portal-test"
os.environ["JWT_ISSUER"] = "portal-auth-test"
# TestClient talks plain HTTP; secure cookies would never be sent back
os.environ["COOKIE_SECURE"] = "false"
os.environ["COOKIE_SAMESITE"] = "lax"
os.environ["REVOCATION_BACKEND"] = "memory"

from portal_auth.core import get_settings  # noqa: E402
from portal_auth.schemas.auth import Principal  # noqa: E402
from portal_auth.services.claims import ClaimsBuilder  # noqa: E402
from portal_auth.services.directory import DirectoryAuthError  # noqa: E402
from portal_auth.services.issuer import TokenIssuer  # noqa: E402
from portal_auth.services.revocation import InMemoryRevocationStore  # noqa: E402
from portal_auth.services.token_pair import (  # noqa: E402
    TokenPairService,
    TransportPolicy,
    build_token_keys,
)
from portal_auth.services.verifier import TokenVerifier  # noqa: E402

TEST_USERNAME = "alice"
TEST_PASSWORD = "correct horse battery staple"


class FakeDirectory:
    """In-memory stand-in for the LDAP directory."""

    def __init__(self) -> None:
        self.users = {
            TEST_USERNAME: (
                TEST_PASSWORD,
                Principal(
                    subject="alice",
                    username=TEST_USERNAME,
                    attributes={"groups": ["studierende"], "displayName": "Alice Example"},
                ),
            ),
        }

    async def authenticate(self, username: str, password: str) -> Principal:
        entry = self.users.get(username)
        if entry is None or entry[0] != password:
            raise DirectoryAuthError("Invalid username or password")
        return entry[1]


class MutableClock:
    """Clock that tests can move forward or backward."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def token_keys(settings):
    return build_token_keys(settings)


@pytest.fixture
def store() -> InMemoryRevocationStore:
    return InMemoryRevocationStore()


@pytest.fixture
def issuer(token_keys, settings) -> TokenIssuer:
    return TokenIssuer(token_keys, audience=settings.jwt_audience, issuer=settings.jwt_issuer)


@pytest.fixture
def make_issuer(token_keys, settings) -> Callable[[Callable[[], datetime]], TokenIssuer]:
    """Build an issuer whose notion of "now" is controlled by the test."""

    def _make(clock: Callable[[], datetime]) -> TokenIssuer:
        return TokenIssuer(
            token_keys, audience=settings.jwt_audience, issuer=settings.jwt_issuer, clock=clock
        )

    return _make


@pytest.fixture
def verifier(token_keys, store, settings) -> TokenVerifier:
    return TokenVerifier(
        token_keys, store, audience=settings.jwt_audience, issuer=settings.jwt_issuer
    )


@pytest.fixture
def claims_builder() -> ClaimsBuilder:
    return ClaimsBuilder()


@pytest.fixture
def token_service(issuer, verifier, store) -> TokenPairService:
    return TokenPairService(issuer, verifier, store, transport=TransportPolicy(secure=False))


@pytest.fixture
def principal() -> Principal:
    return Principal(
        subject="alice",
        username="alice",
        attributes={"groups": ["studierende", "vpn-users"], "mail": "alice@example.edu"},
    )


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def app(settings, directory, store):
    from portal_auth.main import create_app

    return create_app(settings=settings, directory=directory, revocation_store=store)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Test client with the lifespan (cleanup task) running."""
    with TestClient(app) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def db_store():
    """Database revocation store on an in-memory SQLite database."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
    from sqlalchemy.pool import StaticPool

    from portal_auth.services.revocation_db import DatabaseRevocationStore

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    db_revocation_store = DatabaseRevocationStore(session_maker)
    await db_revocation_store.create_tables()

    yield db_revocation_store

    await engine.dispose()


@pytest.fixture
def make_clock() -> type[MutableClock]:
    return MutableClock


@pytest.fixture
def credentials() -> dict[str, str]:
    """Login body accepted by the fake directory."""
    return {"username": TEST_USERNAME, "password": TEST_PASSWORD}
