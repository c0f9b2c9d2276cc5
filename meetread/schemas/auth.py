import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from meetread.db.models import UserRole
from meetread.schemas.common import CamelModel

REGISTER_PHONE_PATTERN = re.compile(r"^62\d{8,15}$")


class RegisterRequest(CamelModel):
    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    phone_number: str

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("phone_number", mode="before")
    @classmethod
    def _check_phone(cls, value):
        if isinstance(value, str):
            value = re.sub(r"\s+", "", value)
        if not isinstance(value, str) or not REGISTER_PHONE_PATTERN.match(value):
            raise ValueError("Phone number must start with 62 and have at least 10 digits")
        return value


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)


class AdminLoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=4)


class SessionUser(CamelModel):
    id: int
    name: str
    email: str
    role: UserRole
    phone_number: Optional[str] = None
    profile_image: Optional[str] = None
    joined_at: datetime = Field(validation_alias="created_at", serialization_alias="joinedAt")


class LoginResponse(CamelModel):
    user: SessionUser
    access_token: str
    token_type: str = "bearer"


class SessionResponse(BaseModel):
    user: Optional[SessionUser] = None
