"""Schemas for scheduled messages."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field, field_validator

from app.models.base import to_naive_utc
from app.schemas.base import BaseSchema


class ScheduleCreate(BaseSchema):
    instance_id: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1, max_length=32)
    text: str = Field(..., min_length=1)
    send_at: datetime

    @field_validator("phone")
    @classmethod
    def _digits(cls, v: str) -> str:
        digits = "".join(ch for ch in v if ch.isdigit())
        if not digits:
            raise ValueError("phone must contain digits")
        return digits

    @field_validator("send_at")
    @classmethod
    def _naive_utc(cls, v: datetime) -> datetime:
        return to_naive_utc(v)


class ScheduleResponse(BaseSchema):
    id: int
    instance_id: str
    phone: str
    text: str
    sent: bool
    send_at: datetime
    created_at: datetime
