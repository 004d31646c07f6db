# app/api/v1/instances.py
"""
WhatsApp instances: create, list, pairing QR and reconnect.

An instance is a DB row plus, while the process lives, an in-memory socket
record in the WhatsApp manager. After a restart only the row remains until the
owner calls /reconnect.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.dependencies import get_current_user, get_whatsapp_manager
from app.core.exceptions import (
    AuthorizationError,
    ExternalServiceError,
    NotFoundError,
    WhatsAppSaaSError,
)
from app.core.logging import audit_logger, bound_context, get_logger
from app.models.base import utc_iso
from app.models.instance import Instance
from app.models.user import User
from app.schemas.instance import (
    InstanceCreate,
    InstanceCreated,
    InstanceListItem,
    QRResponse,
    ReconnectResponse,
)
from app.services.whatsapp_manager import WhatsAppManager
from app.utils.qr import qr_data_url

router = APIRouter(prefix="/instances", tags=["Instances"])
logger = get_logger(__name__)


async def _get_owned_instance(db: AsyncSession, instance_id: str, user: User) -> Instance:
    instance = await db.get(Instance, instance_id)
    if instance is None:
        raise NotFoundError("Instance not found", "INSTANCE_NOT_FOUND")
    if instance.user_id != user.id:
        audit_logger.log_permission_denied(user.id, reason="not_owner", resource=f"instance:{instance_id}")
        raise AuthorizationError("Access denied", "ACCESS_DENIED")
    return instance


@router.post("", response_model=InstanceCreated)
async def create_instance(
    body: InstanceCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    manager: WhatsAppManager = Depends(get_whatsapp_manager),
):
    instance = Instance(name=body.name, user_id=current_user.id)
    db.add(instance)
    await db.commit()
    await db.refresh(instance)

    with bound_context(instance_id=instance.id):
        try:
            await manager.start_instance(instance.id, current_user.id)
        except ExternalServiceError as e:
            logger.error("instance_start_failed", error=e.message)
            raise ExternalServiceError(e.message, e.code, http_status=500) from e

    audit_logger.log_data_change(
        user_id=current_user.id,
        action="create",
        resource_type="instance",
        resource_id=instance.id,
        changes={"name": instance.name},
    )
    return InstanceCreated(
        id=instance.id,
        name=instance.name,
        message=f"Instance created. Get QR code at /api/instances/{instance.id}/qr",
    )


@router.get("", response_model=list[InstanceListItem])
async def list_instances(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    manager: WhatsAppManager = Depends(get_whatsapp_manager),
):
    res = await db.execute(
        select(Instance).where(Instance.user_id == current_user.id).order_by(Instance.created_at)
    )
    items = []
    for instance in res.scalars().all():
        record = manager.registry.get(instance.id)
        items.append(
            InstanceListItem(
                id=instance.id,
                name=instance.name,
                user_id=instance.user_id,
                created_at=instance.created_at,
                updated_at=instance.updated_at,
                connection_status=record.connection_status() if record else "disconnected",
                has_qr=bool(record and record.has_qr),
                in_memory=record is not None,
                is_connected=bool(record and record.is_connected),
            )
        )
    return items


@router.get("/{instance_id}/qr")
async def get_qr(
    instance_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    manager: WhatsAppManager = Depends(get_whatsapp_manager),
) -> dict:
    record = manager.registry.get(instance_id)

    if record is None:
        await _get_owned_instance(db, instance_id, current_user)
        return QRResponse(
            status="disconnected",
            message="Instance exists but not connected. Please restart the instance.",
            in_memory=False,
        ).to_response()

    if record.user_id != current_user.id:
        audit_logger.log_permission_denied(
            current_user.id, reason="not_owner", resource=f"instance:{instance_id}"
        )
        raise AuthorizationError("Access denied", "ACCESS_DENIED")

    if record.is_connected:
        return QRResponse(
            status="connected",
            message="Instance is already connected to WhatsApp",
            is_connected=True,
        ).to_response()

    if record.has_qr:
        return QRResponse(
            status="qr_available",
            message="Scan this QR code with WhatsApp",
            qr=record.qr_code,
            qr_image=qr_data_url(record.qr_code),
            is_connected=False,
            has_qr=True,
        ).to_response()

    return QRResponse(
        status="waiting",
        message="Waiting for QR code generation... Please try again in a few seconds.",
        timestamp=utc_iso(),
        is_connected=False,
        has_qr=False,
    ).to_response()


@router.post("/{instance_id}/reconnect", response_model=ReconnectResponse)
async def reconnect_instance(
    instance_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    manager: WhatsAppManager = Depends(get_whatsapp_manager),
):
    instance = await _get_owned_instance(db, instance_id, current_user)

    with bound_context(instance_id=instance_id):
        try:
            await manager.restart_instance(instance_id, instance.user_id)
        except Exception as e:
            logger.error("instance_reconnect_failed", error=str(e))
            raise WhatsAppSaaSError(
                "Failed to reconnect instance",
                "RECONNECT_FAILED",
                extra={"details": str(e)},
                http_status=500,
            ) from e

    return ReconnectResponse(
        message="Instance reconnected. QR code will be available shortly.",
        instance_id=instance_id,
    )
