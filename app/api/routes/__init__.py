# app/api/routes/__init__.py
"""
Aggregation point for API routers.

Usage in app.main:
    from app.api.routes import mount_api
    mount_api(app, base_prefix="/api")
"""

from __future__ import annotations

import logging
from typing import Union

from fastapi import APIRouter, FastAPI

from app.api.v1 import auth, debug, instances, messages, schedules, system

logger = logging.getLogger(__name__)

# (name, router); every prefix is relative to base_prefix
API_ROUTERS: list[tuple[str, APIRouter]] = [
    ("system", system.router),
    ("auth", auth.router),
    ("instances", instances.router),
    ("messages", messages.router),
    ("schedules", schedules.router),
    ("debug", debug.router),
]

_MOUNTED_FLAG = "_api_routers_mounted"


def mount_api(app: Union[FastAPI, APIRouter], base_prefix: str = "/api") -> None:
    """Include every API router under ``base_prefix``; repeated calls are no-ops."""
    marker = getattr(app, "state", app)
    if getattr(marker, _MOUNTED_FLAG, False):
        logger.debug("API routers already mounted")
        return
    for name, router in API_ROUTERS:
        app.include_router(router, prefix=base_prefix)
        logger.debug("Mounted router %s at %s%s", name, base_prefix, router.prefix)
    setattr(marker, _MOUNTED_FLAG, True)


__all__ = ["API_ROUTERS", "mount_api"]
