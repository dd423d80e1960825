"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Required settings are given defaults here, before anything imports
``prompt_request.core.config``, so the global settings object can be built.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("S3_BUCKET", "prompt-request-test")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import AsyncIterator, Iterator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from prompt_request.adapters.storage.in_memory import InMemoryObjectStore  # noqa: E402
from prompt_request.core.app_factory import create_app  # noqa: E402
from prompt_request.core.config import (  # noqa: E402
    AppSettings,
    DatabaseSettings,
    LogSettings,
    Settings,
    StorageSettings,
)
from prompt_request.core.container import ServiceContainer  # noqa: E402
from prompt_request.db.repositories.accounts import AccountRepository  # noqa: E402
from prompt_request.db.session import Database  # noqa: E402


class SteppingClock:
    """Monotonic clock that advances by ``step`` seconds on every read."""

    def __init__(self, start: float = 1000.0, step: float = 10.0) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


def make_settings(db_url: str, **app_overrides) -> Settings:
    return Settings(
        app=AppSettings(**app_overrides),
        database=DatabaseSettings(url=db_url, create_schema=True),
        storage=StorageSettings(backend="memory", bucket="prompt-request-test", create_bucket=False),
        log=LogSettings(level="WARNING"),
    )


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'prompt_request.db'}"


@pytest.fixture
def settings_factory(db_url: str):
    """Build test settings against the temporary database, with app overrides."""

    def factory(**app_overrides) -> Settings:
        return make_settings(db_url, **app_overrides)

    return factory


@pytest_asyncio.fixture
async def database(db_url: str) -> AsyncIterator[Database]:
    """Fresh SQLite metadata store with the schema created."""
    db = Database(db_url)
    await db.create_schema()
    yield db
    await db.dispose()


@pytest.fixture
def store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest_asyncio.fixture
async def account_id(database: Database) -> int:
    """An existing account row to own documents in service-level tests."""
    async with database.session_factory() as session:
        async with session.begin():
            account = await AccountRepository(session).create("0" * 64)
    return account.id


@pytest_asyncio.fixture
async def other_account_id(database: Database) -> int:
    async with database.session_factory() as session:
        async with session.begin():
            account = await AccountRepository(session).create("1" * 64)
    return account.id


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture
def container(db_url: str, store: InMemoryObjectStore, clock: SteppingClock) -> ServiceContainer:
    return ServiceContainer.build(make_settings(db_url), store=store, clock=clock)


@pytest.fixture
def client(container: ServiceContainer) -> Iterator[TestClient]:
    """TestClient with lifespan (schema creation) and a stepping limiter clock.

    Each limiter read advances the clock past the one-second windows, so only
    the hour-long account-creation window throttles by default.
    """
    app = create_app(container=container)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api_key(client: TestClient) -> str:
    response = client.post("/accounts")
    assert response.status_code == 201
    return response.json()["api_key"]


@pytest.fixture
def auth_headers(api_key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {api_key}"}
