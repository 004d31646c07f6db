"""
User/auth schemas: registration, login, token and public user representation.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import EmailStr, Field, field_validator

from app.core.config import settings
from app.schemas.base import BaseSchema

__all__ = ["UserCreate", "UserLogin", "UserResponse", "TokenResponse"]


class UserCreate(BaseSchema):
    email: EmailStr = Field(..., description="Login e-mail")
    password: str = Field(..., min_length=1, max_length=128)
    plan: str = Field(default="free", max_length=32)

    @field_validator("email")
    @classmethod
    def _lower(cls, v: str) -> str:
        return v.lower()

    @field_validator("password")
    @classmethod
    def _password_len(cls, v: str) -> str:
        if len(v) < settings.PASSWORD_MIN_LENGTH:
            raise ValueError(f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters long")
        return v

    @field_validator("plan")
    @classmethod
    def _plan(cls, v: str) -> str:
        return v or "free"


class UserLogin(BaseSchema):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def _lower(cls, v: str) -> str:
        return v.lower()


class UserResponse(BaseSchema):
    id: int
    email: str
    plan: str
    created_at: datetime
    updated_at: datetime


class TokenResponse(BaseSchema):
    token: str
