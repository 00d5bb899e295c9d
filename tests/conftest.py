"""Shared test fixtures."""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment before the package builds its settings
os.environ["DIAGNOSIS_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DIAGNOSIS_DIFY_API_KEY"] = "app-test-key"
os.environ["DIAGNOSIS_DIFY_API_URL"] = "https://dify.test/v1"
os.environ["DIAGNOSIS_APIFY_API_TOKEN"] = "test-token"
os.environ["DIAGNOSIS_LOG_LEVEL"] = "ERROR"  # Reduce log noise

from diagnosis_api import app  # noqa: E402
from diagnosis_api.diagnosis import DiagnosisService  # noqa: E402
from diagnosis_api.rate_limit import RateLimiter  # noqa: E402
from diagnosis_api.storage import SQLStore  # noqa: E402

from .fakes import FakeGenerator, FakeScraper  # noqa: E402


@pytest_asyncio.fixture
async def sql_store(tmp_path) -> AsyncGenerator[SQLStore, None]:
    """SQL store on a temporary SQLite file."""
    store = SQLStore(f"sqlite+aiosqlite:///{tmp_path / 'diagnosis.db'}")
    await store.startup()
    yield store
    await store.shutdown()


@pytest.fixture
def fake_scraper() -> FakeScraper:
    """Scraper returning a single public profile for "foo"."""
    return FakeScraper([{"username": "foo", "biography": "hi", "followersCount": 100}])


@pytest.fixture
def fake_generator() -> FakeGenerator:
    """Generator with a fixed answer."""
    return FakeGenerator("Great profile!")


@pytest.fixture
def service(sql_store, fake_scraper, fake_generator) -> DiagnosisService:
    """Diagnosis service over the real SQL store and fake collaborators."""
    return DiagnosisService(sql_store, fake_scraper, fake_generator)


@pytest_asyncio.fixture
async def client(sql_store, service) -> AsyncGenerator[AsyncClient, None]:
    """Test client fixture - services injected via app.state."""
    app.state.diagnosis_service = service
    app.state.rate_limiter = RateLimiter(sql_store, limit=10, window_seconds=86400)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.state.diagnosis_service = None
    app.state.rate_limiter = None
