# tests/conftest.py
"""
Pytest configuration and fixtures.

- The environment is pinned before the application is imported: a throwaway
  SQLite file, no scheduler, no send spacing or reconnect delay, and temporary
  sessions/web/log directories.
- Every test gets a fresh schema on its own async engine (NullPool, so no
  connection outlives the event loop it was opened on) and get_db is overridden.
- WhatsApp sockets are replaced by FakeSocket through a per-test WhatsAppManager;
  tests drive connection events with ``sock.show_qr()`` / ``sock.open()`` / ``sock.drop()``.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncIterator, Iterator
from pathlib import Path
from typing import Any, Optional

# ======================================================================================
# 0) Environment bootstrap (before any app import)
# ======================================================================================
_TMP_ROOT = Path(tempfile.mkdtemp(prefix="wa-saas-tests-"))

os.environ.setdefault("PYTHONIOENCODING", "UTF-8")
os.environ["ENVIRONMENT"] = "testing"
os.environ["TESTING"] = "1"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{(_TMP_ROOT / 'app.db').as_posix()}"
os.environ["ENABLE_SCHEDULER"] = "0"
os.environ["SEND_INTERVAL_SECONDS"] = "0"
os.environ["RECONNECT_DELAY_SECONDS"] = "0"
os.environ["SESSIONS_DIR"] = str(_TMP_ROOT / "sessions")
os.environ["WEB_DIR"] = str(_TMP_ROOT / "web")
os.environ["LOG_PATH"] = str(_TMP_ROOT / "logs" / "app.log")
os.environ["LOG_FORMAT"] = "text"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool  # noqa: E402

import app.models  # noqa: E402,F401  (registers every table on Base.metadata)
from app.core.db import close_db_async, get_db  # noqa: E402
from app.core.dependencies import get_whatsapp_manager  # noqa: E402
from app.integrations.whatsapp import CONNECTION_UPDATE, CREDS_UPDATE, EventEmitter  # noqa: E402
from app.main import app as fastapi_app  # noqa: E402
from app.models.base import Base  # noqa: E402
from app.services.whatsapp_manager import WhatsAppManager  # noqa: E402

TEST_PASSWORD = "secret123"


# ======================================================================================
# 1) Fake WhatsApp socket
# ======================================================================================
class FakeSocket:
    """In-process stand-in for GatewaySocket: same attributes, no network."""

    def __init__(self, instance_id: str, session_path: Path, auth_state: Any = None, **_: Any) -> None:
        self.instance_id = instance_id
        self.session_path = session_path
        self.auth_state = auth_state
        self.ev = EventEmitter()
        self.qr_code: Optional[str] = None
        self.is_connected = False
        self.connect_calls = 0
        self.sent: list[tuple[str, dict]] = []
        self.closed = False
        self.fail_send: Optional[Exception] = None

    async def connect(self) -> None:
        self.connect_calls += 1

    async def send_message(self, jid: str, content: dict) -> dict:
        if self.fail_send is not None:
            raise self.fail_send
        self.sent.append((jid, content))
        return {"ok": True, "to": jid}

    async def close(self) -> None:
        self.closed = True
        self.ev.remove_all_listeners()

    # ---- helpers driving the manager's listeners
    async def show_qr(self, qr: str = "2@pairing-ref,public-key,identity-key,adv-secret") -> None:
        await self.ev.emit(CONNECTION_UPDATE, {"qr": qr})

    async def open(self) -> None:
        await self.ev.emit(CONNECTION_UPDATE, {"connection": "open"})

    async def reconnecting(self) -> None:
        await self.ev.emit(CONNECTION_UPDATE, {"connection": "connecting"})

    async def drop(self, status_code: Optional[int] = 428, error: str = "Connection Closed") -> None:
        await self.ev.emit(
            CONNECTION_UPDATE, {"connection": "close", "status_code": status_code, "error": error}
        )

    async def update_creds(self, creds: dict) -> None:
        await self.ev.emit(CREDS_UPDATE, creds)


class FakeSocketFactory:
    """Callable socket factory; remembers every socket it built."""

    def __init__(self) -> None:
        self.sockets: list[FakeSocket] = []
        self.fail_with: Optional[Exception] = None

    def __call__(self, instance_id: str, session_path: Path, auth_state: Any = None, **kw: Any) -> FakeSocket:
        if self.fail_with is not None:
            raise self.fail_with
        sock = FakeSocket(instance_id, session_path, auth_state=auth_state, **kw)
        self.sockets.append(sock)
        return sock

    def for_instance(self, instance_id: str) -> list[FakeSocket]:
        return [s for s in self.sockets if s.instance_id == instance_id]

    def latest(self, instance_id: str) -> FakeSocket:
        return self.for_instance(instance_id)[-1]


# ======================================================================================
# 2) Database
# ======================================================================================
@pytest_asyncio.fixture
async def test_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{(tmp_path / 'test.db').as_posix()}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=test_engine, expire_on_commit=False, class_=AsyncSession, autoflush=False)


@pytest_asyncio.fixture
async def async_db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


# ======================================================================================
# 3) WhatsApp manager
# ======================================================================================
@pytest.fixture
def socket_factory() -> FakeSocketFactory:
    return FakeSocketFactory()


@pytest_asyncio.fixture
async def manager(tmp_path: Path, socket_factory: FakeSocketFactory) -> AsyncIterator[WhatsAppManager]:
    mgr = WhatsAppManager(
        sessions_dir=tmp_path / "sessions",
        socket_factory=socket_factory,
        send_interval=0,
        reconnect_delay=0,
    )
    try:
        yield mgr
    finally:
        await mgr.shutdown()


# ======================================================================================
# 4) Application clients
# ======================================================================================
@pytest.fixture
def app_overrides(session_factory: async_sessionmaker[AsyncSession], manager: WhatsAppManager) -> Iterator[Any]:
    async def _get_test_db() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = _get_test_db
    fastapi_app.dependency_overrides[get_whatsapp_manager] = lambda: manager
    try:
        yield fastapi_app
    finally:
        fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(app_overrides: Any) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app_overrides)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    # the module-level engine (used by /api/health) must not outlive this loop
    await close_db_async()


@pytest.fixture
def client() -> Iterator[TestClient]:
    """Plain client without lifespan, for routes that touch neither the DB nor WhatsApp."""
    yield TestClient(fastapi_app)


# ======================================================================================
# 5) Auth helpers
# ======================================================================================
async def register_and_login(client: AsyncClient, email: str, password: str = TEST_PASSWORD) -> dict[str, str]:
    resp = await client.post("/api/auth/register", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    resp = await client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest_asyncio.fixture
async def auth_headers(async_client: AsyncClient) -> dict[str, str]:
    return await register_and_login(async_client, "owner@example.com")


@pytest_asyncio.fixture
async def other_headers(async_client: AsyncClient) -> dict[str, str]:
    return await register_and_login(async_client, "intruder@example.com")


@pytest.fixture
def new_instance(async_client: AsyncClient):
    """Factory: creates an instance over the API and returns its id."""

    async def _create(headers: dict[str, str], name: str = "Main line") -> str:
        resp = await async_client.post("/api/instances", json={"name": name}, headers=headers)
        assert resp.status_code == 200, resp.text
        return resp.json()["id"]

    return _create
