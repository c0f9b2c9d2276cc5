from datetime import datetime
from typing import Optional, List

from pydantic import Field, HttpUrl, field_validator, model_validator

from meetread.db.models import BookSource, BookStatus
from meetread.schemas.common import CamelModel, blank_to_none

CATALOG_MIN_YEAR = 1450
COLLECTION_MIN_YEAR = 1000


def _max_year() -> int:
    return datetime.now().year + 1


class _BookFields(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    author: str = Field(..., min_length=1, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    isbn: Optional[str] = Field(None, max_length=32)
    published_year: Optional[int] = None
    cover_image_url: Optional[HttpUrl] = None
    description: Optional[str] = None

    @field_validator("title", "author", mode="before")
    @classmethod
    def _strip_required(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("category", "isbn", "cover_image_url", "description", mode="before")
    @classmethod
    def _blank_optional(cls, value):
        return blank_to_none(value)

    @field_validator("published_year", mode="before")
    @classmethod
    def _blank_year(cls, value):
        return blank_to_none(value)

    @model_validator(mode="after")
    def _check_copies(self):
        available = getattr(self, "available_copies", None)
        if available is not None and available > self.total_copies:
            raise ValueError("Available copies cannot exceed total copies")
        return self

    def to_record(self) -> dict:
        data = self.model_dump()
        if data.get("cover_image_url") is not None:
            data["cover_image_url"] = str(data["cover_image_url"])
        return data


class BookInput(_BookFields):
    """Catalog book form (admin)."""

    total_copies: int = Field(..., ge=0)
    available_copies: Optional[int] = Field(None, ge=0)

    @field_validator("published_year")
    @classmethod
    def _check_year(cls, value):
        if value is not None and not (CATALOG_MIN_YEAR <= value <= _max_year()):
            raise ValueError("Published year is not valid")
        return value


class CollectionBookInput(_BookFields):
    """Personal collection book form."""

    isbn: Optional[str] = Field(None, min_length=3, max_length=32)
    lendable: bool = True
    total_copies: int = Field(..., ge=1)
    available_copies: int = Field(..., ge=0)
    status: Optional[BookStatus] = None

    @field_validator("published_year")
    @classmethod
    def _check_year(cls, value):
        if value is not None and not (COLLECTION_MIN_YEAR <= value <= _max_year()):
            raise ValueError("Published year is not valid")
        return value


class BookOwnerSummary(CamelModel):
    id: int
    name: str


class BookResponse(CamelModel):
    id: int
    title: str
    author: str
    category: Optional[str]
    isbn: Optional[str]
    published_year: Optional[int]
    total_copies: int
    available_copies: int
    cover_image_url: Optional[str]
    description: Optional[str]
    lendable: bool
    source: BookSource
    status: BookStatus
    owner_id: Optional[int]
    owner: Optional[BookOwnerSummary] = None
    borrower_id: Optional[int]
    due_date: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class BookListResponse(CamelModel):
    items: List[BookResponse]
    total: int
    page: int
    size: int
    pages: int
