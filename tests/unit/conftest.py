"""
Shared fixtures for unit tests.
Uses an in-memory SQLite database for fast isolated testing.
"""
from datetime import datetime, timedelta, timezone
from itertools import count

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from meetread.db.models import (
    Base, User, UserRole, Book, BookSource, BookStatus, BorrowRequest, BorrowRequestStatus,
)
from meetread.core.security import hash_password

_seq = count(1)

# bcrypt is slow; hash once and share it across factory users
DEFAULT_PASSWORD = "testpassword123"
DEFAULT_PASSWORD_HASH = hash_password(DEFAULT_PASSWORD)


@pytest_asyncio.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    # Enable foreign key support for SQLite
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
async def db_session(async_engine) -> AsyncSession:
    """Provide a transactional database session for each test."""
    session_factory = async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


# ─── Helper factories ───────────────────────────────────────────


@pytest.fixture
def make_user():
    """Factory fixture to create User instances."""
    def _make(
        name: str = "Test User",
        email: str = None,
        password_hash: str = DEFAULT_PASSWORD_HASH,
        phone_number: str = "6281234567890",
        role: UserRole = UserRole.USER,
        is_built_in: bool = False,
    ) -> User:
        return User(
            name=name,
            email=email or f"user-{next(_seq)}@mail.com",
            password_hash=password_hash,
            phone_number=phone_number,
            role=role,
            is_built_in=is_built_in,
        )
    return _make


@pytest.fixture
def make_book():
    """Factory fixture to create Book instances."""
    def _make(
        owner_id: int = None,
        title: str = "Laskar Pelangi",
        author: str = "Andrea Hirata",
        isbn: str = None,
        category: str = "Novel",
        total_copies: int = 1,
        available_copies: int = 1,
        lendable: bool = True,
        status: BookStatus = BookStatus.AVAILABLE,
    ) -> Book:
        return Book(
            title=title,
            author=author,
            isbn=isbn,
            category=category,
            total_copies=total_copies,
            available_copies=available_copies,
            lendable=lendable,
            status=status,
            owner_id=owner_id,
            source=BookSource.USER if owner_id else BookSource.CATALOG,
        )
    return _make


@pytest.fixture
def make_borrow_request():
    """Factory fixture to create BorrowRequest instances."""
    def _make(
        book_id: int,
        requester_id: int,
        status: BorrowRequestStatus = BorrowRequestStatus.PENDING,
        message: str = None,
    ) -> BorrowRequest:
        return BorrowRequest(
            book_id=book_id,
            requester_id=requester_id,
            status=status,
            message=message,
        )
    return _make


@pytest_asyncio.fixture
async def lending_setup(db_session, make_user, make_book):
    """An owner with a phone number, a single-copy available book, and a borrower."""
    owner = make_user(name="Owner", phone_number="0812-3456-7890")
    borrower = make_user(name="Borrower")
    db_session.add_all([owner, borrower])
    await db_session.flush()

    book = make_book(owner_id=owner.id)
    db_session.add(book)
    await db_session.flush()
    return owner, borrower, book


def future(days: int = 7) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


def past(days: int = 1) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)
