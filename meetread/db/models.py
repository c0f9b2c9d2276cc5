import enum
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import (
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    ForeignKey,
    Enum,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ──────────────────────────── Enums ────────────────────────────


class UserRole(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class BookStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    PENDING = "PENDING"
    RESERVED = "RESERVED"
    BORROWED = "BORROWED"
    UNAVAILABLE = "UNAVAILABLE"


class BorrowRequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"


class NotificationType(str, enum.Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    EXTENDED = "EXTENDED"
    RETURNED = "RETURNED"


class BookSource(str, enum.Enum):
    CATALOG = "catalog"
    USER = "user"


# ──────────────────────────── Models ────────────────────────────


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    profile_image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role"), nullable=False, default=UserRole.USER
    )
    is_built_in: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    books: Mapped[List["Book"]] = relationship(
        "Book", back_populates="owner", foreign_keys="Book.owner_id", passive_deletes=True
    )
    borrow_requests: Mapped[List["BorrowRequest"]] = relationship(
        "BorrowRequest", back_populates="requester", passive_deletes=True
    )


class Book(Base):
    __tablename__ = "books"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    isbn: Mapped[Optional[str]] = mapped_column(String(32), unique=True, nullable=True, index=True)
    published_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    available_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    cover_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    lendable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    source: Mapped[BookSource] = mapped_column(
        Enum(BookSource, name="book_source"), nullable=False, default=BookSource.CATALOG
    )
    status: Mapped[BookStatus] = mapped_column(
        Enum(BookStatus, name="book_status"),
        nullable=False,
        default=BookStatus.AVAILABLE,
        index=True,
    )
    owner_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    borrower_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    owner: Mapped[Optional["User"]] = relationship(
        "User", back_populates="books", foreign_keys=[owner_id], lazy="selectin"
    )
    borrower: Mapped[Optional["User"]] = relationship("User", foreign_keys=[borrower_id])
    borrow_requests: Mapped[List["BorrowRequest"]] = relationship(
        "BorrowRequest", back_populates="book", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint("total_copies >= 0", name="ck_books_total_copies_positive"),
        CheckConstraint("available_copies >= 0", name="ck_books_available_copies_positive"),
        CheckConstraint(
            "available_copies <= total_copies", name="ck_books_available_lte_total"
        ),
    )


class BorrowRequest(Base):
    __tablename__ = "borrow_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    book_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False
    )
    requester_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[BorrowRequestStatus] = mapped_column(
        Enum(BorrowRequestStatus, name="borrow_request_status"),
        nullable=False,
        default=BorrowRequestStatus.PENDING,
        index=True,
    )
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner_decision_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    whatsapp_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    book: Mapped["Book"] = relationship("Book", back_populates="borrow_requests", lazy="selectin")
    requester: Mapped["User"] = relationship(
        "User", back_populates="borrow_requests", lazy="selectin"
    )
    notifications: Mapped[List["BorrowNotification"]] = relationship(
        "BorrowNotification",
        back_populates="request",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="BorrowNotification.created_at",
    )

    __table_args__ = (
        Index("ix_borrow_requests_book_status", "book_id", "status"),
        Index("ix_borrow_requests_requester_status", "requester_id", "status"),
    )


class BorrowNotification(Base):
    __tablename__ = "borrow_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("borrow_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType, name="notification_type"), nullable=False
    )
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    request: Mapped["BorrowRequest"] = relationship(
        "BorrowRequest", back_populates="notifications", lazy="selectin"
    )
