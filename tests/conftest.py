"""Shared pytest fixtures for async database and API testing.

This module provides reusable fixtures for testing SQLAlchemy models,
services and routes against an in-memory SQLite database. The engine uses
a StaticPool so the test body and the application's request sessions see
the same database.
"""

import uuid
from collections.abc import AsyncIterator

import httpx
import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.clients.storage import StorageClient
from app.database import get_session
from app.main import app
from app.models import Base, User, VideoFile, VideoTask, VideoTaskStatus
from app.routes import dependencies
from app.services.credential_service import CredentialService, Principal
from app.utils.encryption import EncryptionService


@pytest.fixture
def valid_fernet_key() -> str:
    """Generate a valid Fernet key for testing.

    Returns a fresh, valid Fernet key string suitable for
    use with EncryptionService tests.
    """
    return Fernet.generate_key().decode()


@pytest.fixture(autouse=False)
def encryption_env(valid_fernet_key: str, monkeypatch: pytest.MonkeyPatch):
    """Set up encryption environment for tests.

    Sets FERNET_KEY environment variable and resets the
    EncryptionService singleton before and after the test.

    Use this fixture when tests need encryption capabilities.
    """
    EncryptionService.reset_instance()
    monkeypatch.setenv("FERNET_KEY", valid_fernet_key)
    yield valid_fernet_key
    EncryptionService.reset_instance()


@pytest_asyncio.fixture
async def async_engine():
    """Create an async SQLite engine for testing.

    Uses in-memory SQLite with aiosqlite for fast test execution.
    Creates all tables before yielding, disposes after.

    Yields:
        AsyncEngine: Configured test database engine.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine (expire_on_commit=False like production)."""
    return async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def async_session(session_factory) -> AsyncIterator[AsyncSession]:
    """Create an async session for testing.

    Yields:
        AsyncSession: Database session for test operations.
    """
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def user(async_session: AsyncSession) -> User:
    """A plain account without two-factor authentication."""
    user = User(email="user@example.com", name="Test User")
    async_session.add(user)
    await async_session.commit()
    return user


@pytest.fixture
def principal(user: User) -> Principal:
    return Principal(user_id=user.id, email=user.email)


@pytest.fixture
def other_principal() -> Principal:
    """A principal that owns nothing in the database."""
    return Principal(user_id=uuid.uuid4(), email="someone-else@example.com")


@pytest_asyncio.fixture
async def video(async_session: AsyncSession, user: User) -> VideoFile:
    """An uploaded video owned by `user`, with a NOT_STARTED task."""
    video = VideoFile(
        user_id=user.id,
        name="holiday.mp4",
        file_key=f"uploads/{user.id}/holiday_abc.mp4",
    )
    async_session.add(video)
    await async_session.flush()
    async_session.add(VideoTask(video_id=video.id, status=VideoTaskStatus.NOT_STARTED))
    await async_session.commit()
    return video


@pytest_asyncio.fixture
async def session_token(session_factory, user: User) -> str:
    """A valid bearer token for `user`."""
    async with session_factory() as session:
        token, _ = await CredentialService().create_session(user, session)
    return token


@pytest_asyncio.fixture
async def api_client(session_factory) -> AsyncIterator[httpx.AsyncClient]:
    """httpx client bound to the FastAPI app with the test database.

    Vendor-backed services can be swapped through app.dependency_overrides
    inside individual tests; all overrides are cleared afterwards.
    """

    async def override_get_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    dependencies.get_lookup_rate_limiter().reset()
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(session_token: str) -> dict[str, str]:
    """Authorization header carrying `session_token`."""
    return {"Authorization": f"Bearer {session_token}"}


class FakeS3:
    """In-memory stand-in for a boto3 S3 client."""

    def __init__(self):
        self.objects: dict[str, dict] = {}
        self.presigned: list[tuple[str, dict]] = []

    def generate_presigned_url(self, operation: str, Params: dict, ExpiresIn: int) -> str:
        self.presigned.append((operation, Params))
        return f"https://s3.test/{Params['Bucket']}/{Params['Key']}?op={operation}"

    def put_object(self, Bucket: str, Key: str, Body: bytes, ContentType: str) -> dict:
        self.objects[Key] = {"Body": Body, "ContentType": ContentType}
        return {}


@pytest.fixture
def fake_s3() -> FakeS3:
    return FakeS3()


@pytest.fixture
def storage(fake_s3: FakeS3) -> StorageClient:
    """StorageClient bound to the in-memory S3 double."""
    return StorageClient(bucket="studio-test", s3_client=fake_s3)
