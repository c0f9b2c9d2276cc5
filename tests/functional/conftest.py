"""
Shared fixtures for functional tests.
Uses httpx.AsyncClient against the real FastAPI app with an in-memory SQLite DB.
"""
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from meetread.db.models import Base, User, UserRole
from meetread.core.security import hash_password
from meetread.db import session as db_session_module
from meetread.main import app

PASSWORD = "password123"


# ─── DB override ────────────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Create an in-memory SQLite engine for functional testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def test_session_factory(test_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def client(test_session_factory):
    """Provide an httpx.AsyncClient with DB overridden to use the test DB."""

    async def override_get_db():
        async with test_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[db_session_module.get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ─── Auth helpers ───────────────────────────────────────────────


def auth_header(token: str) -> dict:
    """Return an Authorization header dict."""
    return {"Authorization": f"Bearer {token}"}


def due_in(days: int = 7) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


async def register_and_login(
    client: AsyncClient, name: str, phone_number: str = "6281234567890"
) -> dict:
    """Register a member through the API, log in, and return its id, email and token."""
    email = f"{name.lower().replace(' ', '-')}-{uuid4().hex[:6]}@mail.com"
    resp = await client.post(
        "/api/v1/auth/register",
        json={"name": name, "email": email, "password": PASSWORD, "phoneNumber": phone_number},
    )
    assert resp.status_code == 201, resp.text

    resp = await client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    # the client keeps the session cookie; clear it so each caller picks its identity explicitly
    client.cookies.clear()
    return {"id": body["user"]["id"], "email": email, "name": name, "token": body["accessToken"]}


async def _create_admin(client, test_session_factory, is_built_in: bool) -> dict:
    email = f"admin-{uuid4().hex[:6]}@mail.com"
    async with test_session_factory() as session:
        admin = User(
            name="Test Admin",
            email=email,
            password_hash=hash_password("adminpass123"),
            role=UserRole.ADMIN,
            is_built_in=is_built_in,
        )
        session.add(admin)
        await session.commit()

    resp = await client.post(
        "/api/v1/auth/admin/login",
        json={"email": email, "password": "adminpass123"},
    )
    assert resp.status_code == 200, resp.text
    client.cookies.clear()
    return {"id": admin.id, "email": email, "token": resp.json()["accessToken"]}


@pytest_asyncio.fixture
async def owner(client: AsyncClient):
    """A member who owns books and receives borrow requests."""
    return await register_and_login(client, "Owner")


@pytest_asyncio.fixture
async def borrower(client: AsyncClient):
    """A member who asks to borrow books."""
    return await register_and_login(client, "Borrower", "6289876543210")


@pytest_asyncio.fixture
async def admin_user(client: AsyncClient, test_session_factory):
    """Create an admin user directly in DB and log in through the admin endpoint."""
    return await _create_admin(client, test_session_factory, is_built_in=False)


@pytest_asyncio.fixture
async def built_in_admin(client: AsyncClient, test_session_factory):
    """Create the built-in admin user (cannot be deleted or demoted)."""
    return await _create_admin(client, test_session_factory, is_built_in=True)


@pytest_asyncio.fixture
async def owned_book(client: AsyncClient, owner):
    """A single-copy lendable book in the owner's collection."""
    resp = await client.post(
        "/api/v1/collections",
        json={"title": "Laskar Pelangi", "author": "Andrea Hirata", "totalCopies": 1, "availableCopies": 1},
        headers=auth_header(owner["token"]),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]
