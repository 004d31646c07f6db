"""Schemas for WhatsApp instance endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from app.schemas.base import BaseSchema

ConnectionStatus = Literal["connected", "pending_qr", "disconnected"]
QrStatus = Literal["disconnected", "connected", "qr_available", "waiting"]


class InstanceCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255, description="Display name of the instance")


class InstanceCreated(BaseSchema):
    id: str
    name: str
    status: str = "pending_qr"
    message: str
    has_qr: bool = False


class InstanceListItem(BaseSchema):
    id: str
    name: str
    user_id: int
    created_at: datetime
    updated_at: datetime
    connection_status: ConnectionStatus
    has_qr: bool
    in_memory: bool
    is_connected: bool


class QRResponse(BaseSchema):
    """QR endpoint payload; only the fields relevant to ``status`` are set."""

    status: QrStatus
    message: str
    qr: Optional[str] = None
    qr_image: Optional[str] = None
    is_connected: Optional[bool] = None
    has_qr: Optional[bool] = None
    in_memory: Optional[bool] = None
    timestamp: Optional[str] = None


class ReconnectResponse(BaseSchema):
    success: bool = True
    message: str
    instance_id: str
