# app/api/v1/system.py
"""Liveness, metadata and the endpoint index."""

from __future__ import annotations

import time

import psutil
from fastapi import APIRouter, Depends, Request

from app.core.config import settings
from app.core.db import health_check_db_async
from app.core.dependencies import get_whatsapp_manager
from app.models.base import utc_iso
from app.services.whatsapp_manager import WhatsAppManager

router = APIRouter(tags=["System"])

_STARTED_AT = time.monotonic()

ENDPOINTS: list[dict[str, str]] = [
    {"method": "GET", "path": "/api/status", "description": "Service status"},
    {"method": "GET", "path": "/api/health", "description": "Health check"},
    {"method": "GET", "path": "/api/version", "description": "API version"},
    {"method": "POST", "path": "/api/auth/register", "description": "Register a new user"},
    {"method": "POST", "path": "/api/auth/login", "description": "Log in and receive a token"},
    {"method": "POST", "path": "/api/instances", "description": "Create a WhatsApp instance"},
    {"method": "GET", "path": "/api/instances", "description": "List your instances"},
    {"method": "GET", "path": "/api/instances/:id/qr", "description": "Get the pairing QR code"},
    {"method": "POST", "path": "/api/instances/:id/reconnect", "description": "Reconnect an instance"},
    {"method": "POST", "path": "/api/send", "description": "Send a text message"},
    {"method": "POST", "path": "/api/schedules", "description": "Schedule a text message"},
    {"method": "GET", "path": "/api/schedules", "description": "List scheduled messages"},
    {"method": "GET", "path": "/api/debug/instances", "description": "Debug: in-memory instances"},
    {"method": "GET", "path": "/api/debug-files", "description": "Debug: web build files"},
]


def uptime_seconds() -> float:
    return round(time.monotonic() - _STARTED_AT, 3)


def _memory_usage() -> dict[str, int]:
    mem = psutil.Process().memory_info()
    return {"rss": mem.rss, "vms": mem.vms}


@router.get("/status")
async def service_status(manager: WhatsAppManager = Depends(get_whatsapp_manager)) -> dict:
    return {
        "status": "online",
        "service": settings.SERVICE_NAME,
        "timestamp": utc_iso(),
        "uptime": uptime_seconds(),
        "instances": len(manager.registry),
        "environment": settings.ENVIRONMENT,
        "memoryUsage": _memory_usage(),
    }


@router.get("/health")
async def health() -> dict:
    db = await health_check_db_async()
    return {
        "status": "OK",
        "timestamp": utc_iso(),
        "database": "ok" if db["ok"] else "unavailable",
    }


@router.get("/version")
async def version() -> dict:
    return {
        "version": settings.VERSION,
        "name": settings.APP_NAME,
        "description": settings.DESCRIPTION,
    }


@router.get("")
async def api_index(request: Request) -> dict:
    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc
    return {
        "service": settings.SERVICE_NAME,
        "baseUrl": f"{proto}://{host}/api",
        "endpoints": ENDPOINTS,
    }
