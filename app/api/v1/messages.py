# app/api/v1/messages.py
"""One-off outbound text messages."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from app.core.dependencies import get_current_user, get_whatsapp_manager
from app.core.exceptions import (
    AuthorizationError,
    BadRequestError,
    ExternalServiceError,
    NotFoundError,
)
from app.core.logging import audit_logger, bound_context, get_logger
from app.models.user import User
from app.schemas.message import SendRequest, SendResponse
from app.services.whatsapp_manager import WhatsAppManager

router = APIRouter(tags=["Messages"])
logger = get_logger(__name__)


@router.post("/send", response_model=SendResponse)
async def send_message(
    body: Optional[SendRequest] = None,
    current_user: User = Depends(get_current_user),
    manager: WhatsAppManager = Depends(get_whatsapp_manager),
):
    if body is None or body.missing_fields():
        raise BadRequestError("Missing required fields: instanceId, phone, text", "MISSING_FIELDS")

    record = manager.registry.get(body.instance_id)
    if record is None:
        raise NotFoundError("Instance not found", "INSTANCE_NOT_FOUND")
    if record.user_id != current_user.id:
        audit_logger.log_permission_denied(
            current_user.id, reason="not_owner", resource=f"instance:{body.instance_id}"
        )
        raise AuthorizationError("Access denied", "ACCESS_DENIED")
    if not record.is_connected:
        raise BadRequestError("Instance not connected to WhatsApp", "INSTANCE_NOT_CONNECTED")

    with bound_context(instance_id=body.instance_id):
        try:
            await manager.send_text(body.instance_id, body.phone, body.text)
        except ExternalServiceError as e:
            logger.error("send_failed", error=e.message)
            raise ExternalServiceError(e.message, e.code, http_status=500) from e

    return SendResponse(to=body.phone, instance_id=body.instance_id)
