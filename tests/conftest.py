"""Shared test fixtures for the Perceo setup API test suite.

Uses an in-memory SQLite database (aiosqlite) so each test starts from an
empty schema. GitHub is never contacted: tests patch the functions in
``perceo_api.github.client`` or ``httpx.AsyncClient`` itself.
"""

from collections.abc import AsyncGenerator

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from nacl import encoding, public
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from perceo_api.core.config import Settings, get_settings
from perceo_api.db.models import Base
from perceo_api.db.session import get_db
from perceo_api.main import create_app


def _generate_test_private_key() -> str:
    """Generate a valid RSA private key for signing app JWTs."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    )
    return pem.decode()


TEST_PRIVATE_KEY = _generate_test_private_key()
TEST_APP_ID = "12345"
TEST_STATE_SECRET = "test-state-secret-0123456789abcdef"
TEST_WEBHOOK_SECRET = "test-webhook-secret"
TEST_INSTALL_URL = "https://github.com/apps/perceo"

# Curve25519 key pair standing in for a repository's Actions public key
REPO_PRIVATE_KEY = public.PrivateKey.generate()
REPO_PUBLIC_KEY_B64 = REPO_PRIVATE_KEY.public_key.encode(encoding.Base64Encoder).decode()
REPO_KEY_ID = "568250167242549743"


def make_settings(**overrides) -> Settings:
    values = dict(
        database_url="sqlite+aiosqlite:///:memory:",
        github_app_id=TEST_APP_ID,
        github_app_private_key=TEST_PRIVATE_KEY,
        github_app_private_key_path="",
        github_app_install_url=TEST_INSTALL_URL,
        github_webhook_secret=TEST_WEBHOOK_SECRET,
        state_secret=TEST_STATE_SECRET,
        web_base_url="",
        rotate_key_on_ensure=True,
        sentry_dsn="",
        debug=False,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
async def async_engine():
    """Create a fresh async SQLite engine for each test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a test DB session."""
    session_factory = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def app(async_engine, settings):
    """Create a FastAPI app with DB + settings dependencies overridden.

    The SlowAPI limiter keeps its counters in process memory, so they are
    reset before each test.
    """
    from perceo_api.core.limiter import limiter

    limiter.reset()

    test_app = create_app()

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        session_factory = async_sessionmaker(
            async_engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_settings] = lambda: settings
    return test_app


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
