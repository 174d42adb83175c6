"""Shared test fixtures.

Tests run against a throwaway SQLite database per test (aiosqlite through
the same async engine code as production) with no Redis pool, so the
leaderboard falls back to direct computation. Cache behaviour is covered
with the in-memory ``FakeRedis`` below.
"""

from __future__ import annotations

import fnmatch
import itertools
import os
import tempfile
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from pglms.auth.jwt import reset_keys
from pglms.auth.service_keys import hash_service_key
from pglms.config import get_settings
from pglms.database import close_db, get_engine, init_db
from pglms.db.base import Base
from pglms.db.models import User

SERVICE_KEY = "sk-pglms-test-service-key"
_PRIVATE_KEY_ENV = "TEST_JWT_PRIVATE_KEY_PATH"


def _ensure_test_keys() -> str:
    """Generate an RSA key pair once per run; returns the private key PEM.

    The private half stays with the tests, standing in for the identity
    service. The path travels through the environment so that re-importing
    this module (``from tests.conftest import ...``) reuses the same pair.
    """
    private_path = os.environ.get(_PRIVATE_KEY_ENV)
    if private_path and os.environ.get("PGLMS_JWT_PUBLIC_KEY_PATH"):
        with open(private_path) as fh:
            return fh.read()

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    tmpdir = tempfile.mkdtemp(prefix="pglms_test_keys_")
    private_path = os.path.join(tmpdir, "jwt_private.pem")
    public_path = os.path.join(tmpdir, "jwt_public.pem")

    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    with open(private_path, "wb") as fh:
        fh.write(private_pem)
    with open(public_path, "wb") as fh:
        fh.write(key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ))

    os.environ[_PRIVATE_KEY_ENV] = private_path
    os.environ["PGLMS_JWT_PUBLIC_KEY_PATH"] = public_path
    return private_pem.decode()


def _configure_test_env() -> str:
    private_pem = _ensure_test_keys()
    os.environ["PGLMS_SERVICE_API_KEY_HASH"] = hash_service_key(SERVICE_KEY)
    os.environ.setdefault("PGLMS_LOG_FORMAT", "console")
    get_settings.cache_clear()
    reset_keys()
    return private_pem


TEST_PRIVATE_KEY = _configure_test_env()


def sign_token(payload: dict[str, Any]) -> str:
    """Sign ``payload`` with the test private key."""
    return jwt.encode(payload, TEST_PRIVATE_KEY, algorithm=get_settings().jwt_algorithm)


def issue_access_token(user_id: int, role: str = "STAFF", minutes: int = 60) -> str:
    """Access token shaped like the identity service's."""
    now = datetime.now(timezone.utc)
    return sign_token({
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
        "iss": get_settings().jwt_issuer,
        "type": "access",
    })


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the snapshot cache and pub/sub."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.expiry: dict[str, int | None] = {}
        self.published: list[tuple[str, str]] = []

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False) -> bool | None:
        if nx and key in self.store:
            return None
        self.store[key] = value
        self.expiry[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                deleted += 1
            self.expiry.pop(key, None)
        return deleted

    async def scan_iter(self, match: str = "*"):
        for key in list(self.store):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 1

    async def ping(self) -> bool:
        return True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database with the full schema."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'pglms_test.db'}")
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await close_db()


@pytest_asyncio.fixture
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for test setup and assertions."""
    async with AsyncSession(db_engine, expire_on_commit=False) as session:
        yield session


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    """Factory for approved STAFF learners in branch North / area Coast / region West."""
    counter = itertools.count(1)

    async def _make(**overrides: object) -> User:
        n = next(counter)
        fields: dict[str, object] = {
            "email": f"learner{n}@pixelgalaxy.test",
            "name": f"Learner {n}",
            "employee_number": f"EMP{n:04d}",
            "role": "STAFF",
            "status": "APPROVED",
            "branch": "North",
            "area": "Coast",
            "region": "West",
            "timezone": "UTC",
            "xp": 0,
            "diamonds": 0,
            "streak_days": 0,
            "longest_streak": 0,
        }
        fields.update(overrides)
        user = User(**fields)
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {issue_access_token(user.id, user.role)}"}

    return _headers


@pytest.fixture
def service_headers() -> dict[str, str]:
    return {"X-Service-Key": SERVICE_KEY}


@pytest_asyncio.fixture
async def client(db_engine: AsyncEngine) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client bound to the test database."""
    from pglms.main import create_app

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
