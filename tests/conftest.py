"""Shared pytest fixtures for PicShare tests.

A single FastAPI app is created per test session to avoid duplicate
Prometheus metric registration errors (the instrumentator registers
gauges in the global prometheus_client registry).

The lifespan does not run under ASGITransport, so every test gets fresh
stores swapped onto ``app.state``. The metadata store is parametrized, so
every test that uses it runs against both SQLite and the in-memory store.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from picshare.config import (
    AuthConfig,
    MetadataConfig,
    PicShareConfig,
    ServerConfig,
    StorageConfig,
)
from picshare.metadata.memory import MemoryMetadataStore
from picshare.metadata.sqlite import SQLiteMetadataStore
from picshare.server import create_app
from picshare.storage.memory import MemoryStorageBackend

SIGNING_KEY = "test-signing-key"
BASE_URL = "http://img.test"


@pytest.fixture(scope="session")
def config() -> PicShareConfig:
    """Create a test PicShareConfig with cheap bcrypt rounds."""
    return PicShareConfig(
        server=ServerConfig(host="127.0.0.1", port=8010),
        auth=AuthConfig(signing_key=SIGNING_KEY, bcrypt_rounds=4),
        metadata=MetadataConfig(engine="memory"),
        storage=StorageConfig(backend="memory", public_base_url=BASE_URL),
    )


@pytest.fixture(scope="session")
def app(config: PicShareConfig):
    """Create a single test FastAPI application for the whole session."""
    return create_app(config)


@pytest.fixture(params=["sqlite", "memory"])
async def metadata(request, tmp_path):
    """A fresh, initialized metadata store of each kind."""
    if request.param == "sqlite":
        store = SQLiteMetadataStore(str(tmp_path / "metadata.db"))
    else:
        store = MemoryMetadataStore()
    await store.init_db()
    yield store
    await store.close()


@pytest.fixture
def storage() -> MemoryStorageBackend:
    return MemoryStorageBackend()


@pytest.fixture
async def client(app, metadata, storage) -> AsyncClient:
    """Create an async test client bound to this test's stores."""
    app.state.metadata = metadata
    app.state.storage = storage

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def register(client):
    """Return a coroutine that registers an account and returns its token JSON."""

    async def _register(email: str, password: str = "hunter2") -> dict:
        resp = await client.post(
            "/register",
            data={
                "firstname": "Test",
                "lastname": "User",
                "email": email,
                "password": password,
            },
        )
        assert resp.status_code == 200, resp.text
        # Each test picks its caller explicitly via the Authorization header
        client.cookies.clear()
        return resp.json()

    return _register

