# app/worker/scheduler_worker.py
"""
APScheduler worker for scheduled WhatsApp messages:
- every SCHEDULER_INTERVAL_SECONDS picks rows with sent = false and send_at <= now
- rows whose instance is not in memory or not connected are left for a later tick
- each send goes through the global send queue; the row is marked sent right after
- a failed send is logged and retried on the next tick (no backoff)
- service functions: start/stop/reload_jobs/get_status

Settings (see app/core/config.py):
  ENABLE_SCHEDULER=True
  SCHEDULER_INTERVAL_SECONDS=5
  SCHEDULER_TIMEZONE=UTC
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES, EVENT_JOB_MISSED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.db import session_scope
from app.core.logging import bound_context, get_logger
from app.models.base import utc_now
from app.models.schedule import Schedule
from app.services.whatsapp_manager import WhatsAppManager, whatsapp_manager

logger = get_logger(__name__)

_JOB_ID_PROCESS_SCHEDULES = "process_due_schedules"

scheduler: Optional[AsyncIOScheduler] = None


def _on_scheduler_event(event):
    job_id = getattr(event, "job_id", "?")
    if event.code == EVENT_JOB_MISSED:
        logger.warning("scheduler_job_missed", job_id=job_id)
    elif event.code == EVENT_JOB_MAX_INSTANCES:
        logger.warning("scheduler_job_max_instances", job_id=job_id)
    elif event.code == EVENT_JOB_ERROR:
        logger.error("scheduler_job_error", job_id=job_id, exc_info=getattr(event, "exception", None))


# -------- Business logic -------- #


async def process_due_schedules(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    manager: Optional[WhatsAppManager] = None,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    One scheduler tick. Returns counters: due / sent / skipped / failed.
    """
    manager = manager or whatsapp_manager
    now = now or utc_now()
    stats = {"due": 0, "sent": 0, "skipped": 0, "failed": 0}

    async with session_scope(session_factory) as db:
        res = await db.execute(
            select(Schedule)
            .where(Schedule.sent.is_(False), Schedule.send_at <= now)
            .order_by(Schedule.send_at, Schedule.id)
        )
        jobs = res.scalars().all()
        stats["due"] = len(jobs)

        for job in jobs:
            if not manager.is_connected(job.instance_id):
                stats["skipped"] += 1
                continue

            with bound_context(instance_id=job.instance_id):
                try:
                    await manager.send_text(job.instance_id, job.phone, job.text)
                except Exception as e:
                    stats["failed"] += 1
                    logger.error("scheduled_send_failed", schedule_id=job.id, error=str(e))
                    continue

                job.mark_sent()
                # committed per row: a crash later in the batch must not resend this one
                await db.commit()
                stats["sent"] += 1

    if stats["due"]:
        logger.info("scheduled_tick", **stats)
    return stats


async def _tick() -> None:
    await process_due_schedules()


# -------- Service functions -------- #


def _add_jobs(sched: AsyncIOScheduler) -> None:
    sched.add_job(
        _tick,
        trigger=IntervalTrigger(seconds=int(settings.SCHEDULER_INTERVAL_SECONDS)),
        id=_JOB_ID_PROCESS_SCHEDULES,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=settings.SCHEDULER_INTERVAL_SECONDS,
    )


def start() -> None:
    """Start the scheduler on the running event loop (called from the app lifespan)."""
    global scheduler
    if scheduler is not None and scheduler.running:
        return

    scheduler = AsyncIOScheduler(timezone=settings.SCHEDULER_TIMEZONE or "UTC")
    scheduler.add_listener(_on_scheduler_event, EVENT_JOB_MISSED | EVENT_JOB_MAX_INSTANCES | EVENT_JOB_ERROR)
    _add_jobs(scheduler)
    scheduler.start()
    logger.info(
        "scheduler_started",
        interval_seconds=settings.SCHEDULER_INTERVAL_SECONDS,
        timezone=settings.SCHEDULER_TIMEZONE,
    )


def stop() -> None:
    global scheduler
    if scheduler is None:
        return
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")
    scheduler = None


def reload_jobs() -> None:
    """Re-create the periodic job (e.g. after changing the interval)."""
    if scheduler is None:
        return
    _add_jobs(scheduler)
    logger.info("scheduler_jobs_reloaded")


def get_status() -> Dict[str, str]:
    if scheduler is None:
        return {"running": "False", "jobs_count": "0", "jobs": ""}
    jobs = scheduler.get_jobs()
    return {
        "running": str(scheduler.running),
        "jobs_count": str(len(jobs)),
        "jobs": ", ".join(j.id for j in jobs),
    }


__all__ = ["process_due_schedules", "start", "stop", "reload_jobs", "get_status"]
