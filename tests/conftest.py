"""
Bluhatch Test Configuration and Shared Fixtures

Every test gets its own SQLite database and blob directory under pytest's
``tmp_path``. The environment below is set before any application module is
imported so that module-level configuration picks it up.

Example usage:
    async def test_create_job(session, owner_id):
        job = await create_job(session, owner_id, JobCreate(...))
"""

import os
import tempfile
from pathlib import Path

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="bluhatch-tests-"))

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_ROOT / 'app.db'}"
os.environ["BLOB_STORAGE_DIR"] = str(_TEST_ROOT / "blobs")
os.environ["APP_URL"] = "http://testserver"
os.environ["JWT_SECRET"] = "bluhatch-test-secret-0123456789abcdef"
os.environ["TIMESTAMP_BACKEND"] = "simulated"
os.environ["TIMESTAMP_SIMULATED_DELAY_S"] = "0"
os.environ["BH_TEST_DISABLE_RATELIMIT"] = "1"
os.environ["LOG_FORMAT"] = "text"

from datetime import datetime, timezone  # noqa: E402
from uuid import uuid4  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from auth.tokens import create_access_token  # noqa: E402
from core.blob_store import LocalBlobStore, get_blob_store  # noqa: E402
from core.db import build_engine, get_session, init_db  # noqa: E402
from core.jobs import create_job  # noqa: E402
from core.models import JobCreate  # noqa: E402


@pytest.fixture
async def engine(tmp_path):
    """Per-test SQLite engine with all tables created."""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as s:
        yield s


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(tmp_path / "blobs", "http://testserver/evidence-files")


@pytest.fixture
def owner_id():
    return uuid4()


@pytest.fixture
def other_owner_id():
    return uuid4()


def bearer(user_id) -> dict:
    token = create_access_token(user_id, f"{user_id.hex[:8]}@example.com")
    return {"Authorization": f"Bearer {token.access_token}"}


@pytest.fixture
def auth_headers(owner_id):
    return bearer(owner_id)


@pytest.fixture
def other_headers(other_owner_id):
    return bearer(other_owner_id)


@pytest.fixture
async def job(session, owner_id):
    """A job owned by ``owner_id``."""
    return await create_job(
        session,
        owner_id,
        JobCreate(
            client_name="Alice Client",
            client_address="1 High Street, Leeds",
            job_type="Roof repair",
            contract_value=4500,
            start_date=datetime(2024, 3, 1, tzinfo=timezone.utc),
        ),
    )


@pytest.fixture
def app(session_maker, blob_store):
    """The application wired to the per-test database and blob store."""
    from app import app as application

    async def _get_session():
        async with session_maker() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    application.dependency_overrides[get_session] = _get_session
    application.dependency_overrides[get_blob_store] = lambda: blob_store
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
