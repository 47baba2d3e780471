"""Pytest configuration and fixtures for VerseNest auth tests.

Every test gets its own in-memory SQLite database. API tests drive the
FastAPI app through httpx's ASGITransport with get_db overridden to the
test session, and with token delivery captured instead of logged.
"""

import os
from collections.abc import AsyncGenerator
from datetime import datetime
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Set test environment variables before importing app modules
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_ACCESS_SECRET_KEY"] = "test-access-secret-" + "a" * 32
os.environ["JWT_REFRESH_SECRET_KEY"] = "test-refresh-secret-" + "b" * 32
# Cheap Argon2 parameters keep the suite fast
os.environ["PASSWORD_HASH_TIME_COST"] = "1"
os.environ["PASSWORD_HASH_MEMORY_COST"] = "1024"
os.environ["PASSWORD_HASH_PARALLELISM"] = "1"

from versenest.core.database import Base, build_engine, get_db  # noqa: E402
from versenest.models import Role, TokenType, User  # noqa: E402
from versenest.services.credential_store import CredentialStore  # noqa: E402
from versenest.services.passwords import hash_password  # noqa: E402
from versenest.services.profiles import build_profile  # noqa: E402
from versenest.services.session_manager import get_token_delivery  # noqa: E402

TEST_PASSWORD = "Quill&Ink2024"
NEW_PASSWORD = "Sonnet#Verse99"


class CapturingDelivery:
    """Token delivery that keeps issued tokens for the test to read."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, TokenType, str, datetime]] = []

    async def deliver(
        self, user: User, purpose: TokenType, token: str, expires_at: datetime
    ) -> None:
        self.sent.append((user.email, purpose, token, expires_at))

    def last_token(self, purpose: TokenType) -> str:
        for _email, sent_purpose, token, _expires in reversed(self.sent):
            if sent_purpose is purpose:
                return token
        raise AssertionError(f"No {purpose.value} token was delivered")


def cookie_from(response: Response, name: str) -> str | None:
    """Value of a Set-Cookie header on a response (None if not set)."""
    for header in response.headers.get_list("set-cookie"):
        cookie_name, _, rest = header.partition("=")
        if cookie_name.strip() == name:
            return rest.split(";", 1)[0].strip('"')
    return None


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory database per test."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Database session for a test."""
    session_maker = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session


@pytest.fixture
def delivery() -> CapturingDelivery:
    return CapturingDelivery()


@pytest_asyncio.fixture
async def async_client(
    db_session: AsyncSession, delivery: CapturingDelivery
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the test database."""
    from versenest.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_delivery] = lambda: delivery

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def user_factory(db_session: AsyncSession):
    """Create users directly in the store, bypassing the API."""
    store = CredentialStore(db_session)
    counter = 0

    async def create(
        role: Role = Role.READER,
        email: str | None = None,
        password: str = TEST_PASSWORD,
        **profile_fields: Any,
    ) -> User:
        nonlocal counter
        counter += 1
        if role is Role.WRITER:
            profile_fields.setdefault("pen_name", f"Quill {counter}")
        profile = build_profile(
            role, profile_fields.pop("full_name", f"Test User {counter}"), **profile_fields
        )
        user = await store.create(
            email or f"user{counter}@example.com", await hash_password(password), profile
        )
        await db_session.commit()
        return user

    return create


async def register(
    client: AsyncClient,
    email: str = "reader@example.com",
    password: str = TEST_PASSWORD,
    **overrides: Any,
) -> tuple[dict[str, Any], str]:
    """Register through the API; returns (response body, refresh token).

    The client's cookie jar is cleared so later requests only carry the
    credentials a test passes explicitly.
    """
    payload = {
        "email": email,
        "password": password,
        "fullName": "Ada Reader",
        "role": "reader",
        **overrides,
    }
    response = await client.post("/auth/register", json=payload)
    assert response.status_code == 201, response.text
    refresh_token = cookie_from(response, "refreshToken")
    client.cookies.clear()
    return response.json(), refresh_token


async def login(
    client: AsyncClient, email: str, password: str = TEST_PASSWORD
) -> tuple[dict[str, Any], str]:
    response = await client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    refresh_token = cookie_from(response, "refreshToken")
    client.cookies.clear()
    return response.json(), refresh_token
