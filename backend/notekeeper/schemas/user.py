"""
NoteKeeper Backend — User & Token Schemas
==========================================

What:  Pydantic models for registration, login, profile and token payloads.

UserResponse has no password field of any kind; it is the
only shape in which a user record leaves the service.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class UserCreate(BaseModel):
    """Body of POST /register."""

    username: str = Field(min_length=3, max_length=32)
    # bcrypt only looks at the first 72 bytes
    password: str = Field(min_length=8, max_length=72)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    phone_number: Optional[str] = Field(default=None, max_length=20)
    city: Optional[str] = Field(default=None, max_length=100)
    country: Optional[str] = Field(default=None, max_length=100)
    date_of_birth: Optional[date] = None

    @field_validator("username", "first_name", "last_name")
    @classmethod
    def reject_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class UserLogin(BaseModel):
    """Body of POST /login."""
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        # Same normalization as UserCreate
        return v.strip()


class UserProfileUpdate(BaseModel):
    """Body of PATCH /me. Omitted fields are left unchanged."""

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    city: Optional[str] = Field(default=None, max_length=100)
    country: Optional[str] = Field(default=None, max_length=100)
    date_of_birth: Optional[date] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def reject_blank(cls, v: Optional[str]) -> str:
        # Runs only for fields present in the body; names may be omitted, not nulled
        if v is None or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    date_of_birth: Optional[date] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    """Body returned by POST /login."""
    token: str
    token_type: str = "bearer"
