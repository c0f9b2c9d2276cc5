import re
from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field, HttpUrl, TypeAdapter, field_validator, model_validator

from meetread.db.models import UserRole
from meetread.schemas.common import CamelModel

PROFILE_PHONE_PATTERN = r"^[0-9+ ]+$"

_http_url = TypeAdapter(HttpUrl)


class UserResponse(CamelModel):
    id: int
    name: str
    email: str
    role: UserRole
    is_built_in: bool
    created_at: datetime
    updated_at: datetime


class AdminUserUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    password: Optional[str] = Field(None, min_length=8, max_length=128)

    @model_validator(mode="after")
    def _require_change(self):
        if not self.model_fields_set:
            raise ValueError("No changes were given")
        return self


class ProfileUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = None
    profile_image: Optional[str] = None

    @field_validator("phone_number")
    @classmethod
    def _check_phone(cls, value):
        if value is None:
            return value
        value = value.strip()
        if value == "":
            return value
        if not 6 <= len(value) <= 20:
            raise ValueError("Phone number must be 6 to 20 characters")
        if not re.match(PROFILE_PHONE_PATTERN, value):
            raise ValueError("Phone number may only contain digits, spaces or +")
        return value

    @field_validator("profile_image")
    @classmethod
    def _check_image(cls, value):
        if value is None or value.strip() == "":
            return value
        return str(_http_url.validate_python(value.strip()))

    @model_validator(mode="after")
    def _require_change(self):
        if not self.model_fields_set:
            raise ValueError("No changes were given")
        return self


class ProfileResponse(CamelModel):
    id: int
    name: str
    email: str
    phone_number: Optional[str]
    profile_image: Optional[str]
    joined_at: datetime = Field(validation_alias="created_at", serialization_alias="joinedAt")


class PasswordChange(CamelModel):
    current_password: str = Field(..., min_length=8)
    new_password: str = Field(..., min_length=8)
    confirm_password: str = Field(..., min_length=8)

    @model_validator(mode="after")
    def _check_passwords(self):
        if self.new_password != self.confirm_password:
            raise ValueError("Password confirmation does not match")
        if self.new_password == self.current_password:
            raise ValueError("The new password must differ from the current one")
        return self
