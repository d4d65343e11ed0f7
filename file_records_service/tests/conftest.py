import io
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from typing import AsyncGenerator

import pytest
import pytest_asyncio
import httpx
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from starlette.datastructures import Headers, UploadFile

from config import Settings
from database import get_db
from lifecycle import FileRecordLifecycle
from main import create_app
from models import Base, User
from notifier import ConnectionManager
from security import create_access_token, hash_password
from storage import BlobStorage

TEST_PASSWORD = "secret123"


class RecordingNotifier(ConnectionManager):
    def __init__(self):
        super().__init__()
        self.events = []

    async def publish(self, event):
        self.events.append(event)
        await super().publish(event)


@pytest.fixture(scope="function")
def test_settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        STORAGE_BASE_PATH=tmp_path / "uploads_test",
        JWT_SECRET="test-secret",
        ENVIRONMENT="test",
        ORPHAN_GRACE_SECONDS=0,
        FRONTEND_URL=None,
    )

@pytest_asyncio.fixture(scope="function")
async def test_engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with TestingSessionLocal() as session:
        yield session
        await session.rollback()

@pytest.fixture(scope="function")
def storage(test_settings) -> BlobStorage:
    return BlobStorage(test_settings.STORAGE_BASE_PATH)

@pytest.fixture(scope="function")
def notifier() -> RecordingNotifier:
    return RecordingNotifier()

@pytest.fixture(scope="function")
def lifecycle(db_session, storage, notifier, test_settings) -> FileRecordLifecycle:
    return FileRecordLifecycle(db_session, storage, notifier, test_settings)

@pytest.fixture(scope="function")
def make_upload():
    def _make_upload(filename: str, content: bytes, content_type: str = "application/pdf") -> UploadFile:
        return UploadFile(
            file=io.BytesIO(content),
            filename=filename,
            headers=Headers({"content-type": content_type}),
        )
    return _make_upload

@pytest.fixture(scope="function")
def app(test_settings, db_session, storage, notifier):
    application = create_app(test_settings)
    application.state.storage = storage
    application.state.notifier = notifier

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    application.dependency_overrides[get_db] = override_get_db
    yield application
    application.dependency_overrides.clear()

@pytest_asyncio.fixture(scope="function")
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = httpx.ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testfrs") as client:
        yield client

async def create_test_user(db_session: AsyncSession, user_id: str, role: str = "user", is_active: bool = True) -> User:
    user = User(
        user_id=user_id,
        password_hash=hash_password(TEST_PASSWORD, rounds=4),
        name=f"{user_id} name",
        role=role,
        is_active=is_active,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user

@pytest_asyncio.fixture(scope="function")
async def admin_user(db_session) -> User:
    return await create_test_user(db_session, "admin", role="admin")

@pytest_asyncio.fixture(scope="function")
async def regular_user(db_session) -> User:
    return await create_test_user(db_session, "clerk", role="user")

@pytest.fixture(scope="function")
def auth_headers(admin_user, test_settings) -> dict:
    token = create_access_token(str(admin_user.id), "user", test_settings)
    return {"Authorization": f"Bearer {token}"}

@pytest.fixture(scope="function")
def user_headers(regular_user, test_settings) -> dict:
    token = create_access_token(str(regular_user.id), "user", test_settings)
    return {"Authorization": f"Bearer {token}"}
