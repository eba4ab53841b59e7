import sys, os, tempfile
from datetime import datetime, timedelta, timezone

import pytest, pytest_asyncio, httpx
from httpx import ASGITransport
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# ⚙️ Vor dem Import der App: keine lokale DB-Datei, Uploads ins Temp-Verzeichnis
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="dynamic-qr-uploads-"))

from database import Base, get_db
from main import app
from routes.utils import get_blob_store, get_clock
from utils.blob_store import BlobStore
from utils.rate_limit import LoginRateLimiter
from utils.repository import QRRepository

from helpers.api import ADMIN_PASSWORD, ADMIN_USERNAME


class FixedClock:
    """Steuerbare Uhr für Tests."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def repo(db):
    return QRRepository(db)


@pytest.fixture
def store(tmp_path):
    return BlobStore(tmp_path / "uploads")


@pytest.fixture
def app_overrides(session_factory, store, clock, monkeypatch):
    monkeypatch.setenv("ADMIN_USERNAME", ADMIN_USERNAME)
    monkeypatch.setenv("ADMIN_PASSWORD", ADMIN_PASSWORD)
    monkeypatch.delenv("ADMIN_PASSWORD_HASH", raising=False)
    monkeypatch.setenv("BASE_URL", "http://qr.test")

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: clock
    app.state.login_limiter = LoginRateLimiter(max_attempts=5, lockout_seconds=15 * 60)

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
def client(app_overrides):
    """TestClient ohne Login."""
    return TestClient(app)


@pytest.fixture
def admin_client(app_overrides):
    """TestClient mit aktiver Admin-Session."""
    test_client = TestClient(app)
    response = test_client.post(
        "/api/auth/login",
        json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD},
    )
    assert response.status_code == 200, response.text
    return test_client


@pytest_asyncio.fixture
async def async_client(app_overrides):
    """Async-Client über ASGITransport."""
    transport = ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
