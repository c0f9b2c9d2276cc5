from typing import Annotated, Generic, Optional, TypeVar

from pydantic import BaseModel, StringConstraints
from pydantic.alias_generators import to_camel

T = TypeVar("T")

MESSAGE_MAX_LENGTH = 500

OptionalMessage = Optional[
    Annotated[str, StringConstraints(strip_whitespace=True, max_length=MESSAGE_MAX_LENGTH)]
]


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "from_attributes": True,
    }


class DataResponse(BaseModel, Generic[T]):
    data: T


class SuccessResponse(BaseModel):
    success: bool = True


class MessageResponse(BaseModel):
    message: str


def blank_to_none(value):
    """Treat empty or whitespace-only strings from forms as missing."""
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value
