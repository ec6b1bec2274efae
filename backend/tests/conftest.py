"""
Place Registry Backend — Test Configuration (conftest.py)
===========================================================

What:  Shared pytest fixtures for the entire test suite.
How:   A fresh in-memory SQLite database (aiosqlite) per test, a FileService
       rooted in tmp_path, and a mocked Notifier so nothing leaves the box.

Fixture Hierarchy:
    db_engine ─┬─ db_session ── place_service ── (unit tests)
               └─ test_client                    (HTTP tests)
    file_store ── reconciler ── place_service
    mock_notifier
    owner / other_user / admin                   Actor instances
"""

import os
import tempfile

# Settings are read at import time; these must be set before any
# placeregistry import
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="placeregistry_test_")
os.environ["SMTP_HOST"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from placeregistry.auth import Actor  # noqa: E402
from placeregistry.database import Base, get_db_session  # noqa: E402
from placeregistry.models import place as place_models  # noqa: E402,F401
from placeregistry.services.asset_service import AssetReconciler  # noqa: E402
from placeregistry.services.file_service import FileService  # noqa: E402
from placeregistry.services.notification_service import Notifier  # noqa: E402
from placeregistry.services.place_service import PlaceService  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite; StaticPool keeps the single connection the data lives in."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    factory = async_sessionmaker(db_engine, expire_on_commit=False)
    async with factory() as session:
        yield session
        await session.rollback()


# ══════════════════════════════════════════════════════════════════════════
# Services
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def file_store(tmp_path):
    return FileService(storage_root=str(tmp_path / "storage"))


@pytest.fixture
def reconciler(file_store):
    return AssetReconciler(storage=file_store)


@pytest.fixture
def mock_notifier():
    """Notifier whose sends always succeed; assert on the AsyncMock calls."""
    mock = MagicMock(spec=Notifier)
    mock.notify_new_place = AsyncMock(return_value=True)
    mock.notify_status_change = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def place_service(reconciler, mock_notifier):
    return PlaceService(assets=reconciler, notifications=mock_notifier)


# ══════════════════════════════════════════════════════════════════════════
# Actors & Payloads
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def owner():
    return Actor(actor_id="user-1")


@pytest.fixture
def other_user():
    return Actor(actor_id="user-2")


@pytest.fixture
def admin():
    return Actor(actor_id="admin-1", role="admin")


@pytest.fixture
def place_payload():
    """A valid create payload as the place form sends it (camelCase)."""
    return {
        "name": "Café de la Place",
        "placeType": "RESTAURANT",
        "street": "Place de la Mairie",
        "streetNumber": "2",
        "postalCode": "44000",
        "city": "Nantes",
        "email": "contact@cafe-de-la-place.fr",
        "website": "https://cafe-de-la-place.fr",
        "openingHours": [
            {"dayOfWeek": "MONDAY", "isClosed": True},
            {
                "dayOfWeek": "TUESDAY",
                "slots": [
                    {"openTime": "14:00", "closeTime": "18:00"},
                    {"openTime": "09:00", "closeTime": "12:00"},
                ],
            },
            {"dayOfWeek": "WEDNESDAY", "openTime": "09:00", "closeTime": "18:00"},
        ],
    }


@pytest.fixture
def sample_image_bytes():
    """Smallest valid JPEG: SOI + JFIF header + EOI."""
    return (
        b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
        b'\xff\xd9'
    )


# ══════════════════════════════════════════════════════════════════════════
# HTTP
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(db_engine, mock_notifier, monkeypatch):
    """
    HTTPX AsyncClient bound to the app, with sessions from the test engine
    and notifications mocked.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
    """
    from placeregistry.main import app
    from placeregistry.services.place_service import place_service as app_place_service

    factory = async_sessionmaker(db_engine, expire_on_commit=False)

    async def override_db_session():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session
    monkeypatch.setattr(app_place_service, "notifications", mock_notifier)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
