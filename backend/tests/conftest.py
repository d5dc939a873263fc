"""Shared fixtures for the worktrack test suite.

Settings are read from the environment when worktrack.core.config is first
imported, so the temporary database and upload directories are configured
here before anything from the package is imported.
"""

import os
import tempfile

_TEST_ROOT = tempfile.mkdtemp(prefix="worktrack-tests-")
os.environ["DATA_DIR"] = _TEST_ROOT
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_ROOT}/test.db"
os.environ["UPLOAD_DIR"] = os.path.join(_TEST_ROOT, "uploads")
os.environ["EXPORT_DIR"] = os.path.join(_TEST_ROOT, "exports")
os.environ["SEED_ADMIN_USERNAME"] = ""
os.environ["JWT_SECRET_KEY"] = "test-secret"

import pytest
from httpx import ASGITransport, AsyncClient

from worktrack.core.database import Base, async_session_maker, engine
from worktrack.core.security import create_user_token, get_password_hash
from worktrack.main import app
from worktrack.models.user import Brand, User, UserRole, UserStatus

DEFAULT_PASSWORD = "secret123"


@pytest.fixture
def upload_root():
    """Directory that uploaded files are written to."""
    return os.environ["UPLOAD_DIR"]


@pytest.fixture
async def database():
    """Fresh schema for every test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
async def client(database):
    """HTTP client talking to the app in-process."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def create_user(database):
    """Factory inserting a user directly into the database."""
    counter = {"n": 0}

    async def _create(
        username=None,
        role=UserRole.USER,
        status=UserStatus.ACTIVE,
        password=DEFAULT_PASSWORD,
    ):
        counter["n"] += 1
        async with async_session_maker() as session:
            user = User(
                username=username or f"user{counter['n']}",
                hashed_password=get_password_hash(password),
                phone=f"1390000{counter['n']:04d}",
                brand=Brand.EL.value,
                role=UserRole(role).value,
                status=UserStatus(status).value,
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    return _create


def auth_headers(user):
    return {"Authorization": f"Bearer {create_user_token(user)}"}


@pytest.fixture
async def admin(create_user):
    return await create_user("admin", role=UserRole.ADMIN)


@pytest.fixture
async def super_admin(create_user):
    return await create_user("root", role=UserRole.SUPER_ADMIN)


@pytest.fixture
async def member(create_user):
    return await create_user("alice")


@pytest.fixture
async def other_member(create_user):
    return await create_user("bob")


@pytest.fixture
def headers():
    """Build bearer headers for a user: headers(user)."""
    return auth_headers
