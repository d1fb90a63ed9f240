import asyncio
import datetime as dt
import os

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from tortoise import Tortoise

from app.config import settings
from app.core import db as db_module
from app.main import create_app
from app.models.identity import Identity
from app.services.restoration_base import RestorationResult, RestorationService


TEST_DB_URL = "sqlite://:memory:?cache=shared"
os.environ["DATABASE_URL"] = TEST_DB_URL
db_module.DB_URL = TEST_DB_URL
db_module.TORTOISE_ORM["connections"]["default"] = TEST_DB_URL

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 256


async def _init_test_db() -> None:
    """
    Initialize a clean in-memory SQLite database for every test.
    Ensures tables are recreated from scratch.
    """
    if Tortoise._inited:
        await Tortoise.close_connections()
    await Tortoise.init(config=db_module.TORTOISE_ORM)
    await Tortoise.generate_schemas()


class MutableClock:
    """Controllable UTC clock; call it to read, advance() to move forward."""

    def __init__(self, start: dt.datetime):
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs) -> dt.datetime:
        self.now = self.now + dt.timedelta(**kwargs)
        return self.now


class FakeRestorationService(RestorationService):
    """In-process provider: returns a fixed URL, or raises `error` after `delay` seconds."""

    def __init__(self, model_id: str = "test/restore", error: Exception | None = None, delay: float = 0.0):
        self.model_id = model_id
        self.error = error
        self.delay = delay
        self.calls = 0

    @property
    def name(self) -> str:
        return self.model_id

    def is_available(self) -> bool:
        return True

    async def restore(self, image):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return RestorationResult(
            result_url=f"https://cdn.example.com/{self.model_id}/{self.calls}.png",
            elapsed_ms=int(self.delay * 1000),
            model_id=self.model_id,
        )


@pytest.fixture
def clock():
    """Quota clock pinned to 2024-05-01 00:10 UTC."""
    return MutableClock(dt.datetime(2024, 5, 1, 0, 10, tzinfo=dt.timezone.utc))


@pytest_asyncio.fixture
async def db():
    """Fresh schema for tests that use the services without HTTP."""
    await _init_test_db()
    yield
    await Tortoise.close_connections()


@pytest.fixture
def make_identity():
    """Factory creating Identity rows directly via ORM."""

    async def _make_identity(user_id: str = "dev-test", **kwargs) -> Identity:
        now = dt.datetime.now(dt.timezone.utc)
        fields = {
            "device_fingerprint": user_id,
            "created_at": now,
            "last_seen": now,
        }
        fields.update(kwargs)
        return await Identity.create(user_id=user_id, **fields)

    return _make_identity


def _build_app(clock: MutableClock, dev: bool):
    cfg = settings.model_copy(update={"env": "development" if dev else "production"})
    app = create_app(cfg)
    app.state.quota.clock = clock
    app.state.authorization.providers = [FakeRestorationService()]
    return app


async def _client_for(app):
    # Use ASGITransport without lifespan parameter (not supported in all httpx versions)
    try:
        transport = ASGITransport(app=app, lifespan="off")
    except TypeError:
        transport = ASGITransport(app=app)
    return AsyncClient(transport=transport, base_url="http://testserver")


@pytest_asyncio.fixture
async def app(clock):
    """Production-mode app with a fake provider and a pinned quota clock."""
    return _build_app(clock, dev=False)


@pytest_asyncio.fixture
async def client(app):
    """
    Provide an HTTPX AsyncClient bound to the FastAPI app with a fresh DB.
    """
    await _init_test_db()
    async with await _client_for(app) as async_client:
        yield async_client
    await Tortoise.close_connections()


@pytest_asyncio.fixture
async def dev_app(clock):
    return _build_app(clock, dev=True)


@pytest_asyncio.fixture
async def dev_client(dev_app):
    """Same as `client`, but with development features (admin routes, error details) enabled."""
    await _init_test_db()
    async with await _client_for(dev_app) as async_client:
        yield async_client
    await Tortoise.close_connections()


async def login(client, fingerprint: str, **extra):
    return await client.post(
        "/api/v1/auth/anonymous",
        json={"deviceFingerprint": fingerprint, **extra},
    )


@pytest_asyncio.fixture
async def auth_header_factory(client):
    """
    Helper fixture to obtain Authorization headers via the anonymous login endpoint.
    """

    async def _get_headers(fingerprint: str) -> dict[str, str]:
        resp = await login(client, fingerprint)
        assert resp.status_code == 200, resp.text
        token = resp.json()["token"]
        return {"Authorization": f"Bearer {token}"}

    return _get_headers


async def upload(client, headers, data: bytes = JPEG_BYTES, content_type: str = "image/jpeg"):
    return await client.post(
        "/api/v1/colorise",
        files={"image": ("photo.jpg", data, content_type)},
        headers=headers,
    )
