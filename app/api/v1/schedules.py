# app/api/v1/schedules.py
"""
Scheduled messages.

Rows are picked up by the scheduler worker once ``sendAt`` has passed and the
instance is connected; see app.worker.scheduler_worker.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.dependencies import get_current_user
from app.core.exceptions import AuthorizationError, NotFoundError
from app.core.logging import audit_logger
from app.models.instance import Instance
from app.models.schedule import Schedule
from app.models.user import User
from app.schemas.schedule import ScheduleCreate, ScheduleResponse

router = APIRouter(prefix="/schedules", tags=["Schedules"])


@router.post("", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
async def create_schedule(
    body: ScheduleCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    instance = await db.get(Instance, body.instance_id)
    if instance is None:
        raise NotFoundError("Instance not found", "INSTANCE_NOT_FOUND")
    if instance.user_id != current_user.id:
        audit_logger.log_permission_denied(
            current_user.id, reason="not_owner", resource=f"instance:{body.instance_id}"
        )
        raise AuthorizationError("Access denied", "ACCESS_DENIED")

    schedule = Schedule(instance_id=instance.id, phone=body.phone, text=body.text, send_at=body.send_at)
    db.add(schedule)
    await db.commit()
    await db.refresh(schedule)

    audit_logger.log_data_change(
        user_id=current_user.id,
        action="create",
        resource_type="schedule",
        resource_id=schedule.id,
        changes={"instance_id": instance.id, "send_at": schedule.send_at.isoformat()},
    )
    return ScheduleResponse.model_validate(schedule)


@router.get("", response_model=list[ScheduleResponse])
async def list_schedules(
    sent: Optional[bool] = Query(None, description="Filter by delivery state"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    stmt = (
        select(Schedule)
        .join(Instance, Instance.id == Schedule.instance_id)
        .where(Instance.user_id == current_user.id)
        .order_by(Schedule.send_at, Schedule.id)
    )
    if sent is not None:
        stmt = stmt.where(Schedule.sent.is_(sent))
    res = await db.execute(stmt)
    return [ScheduleResponse.model_validate(s) for s in res.scalars().all()]
