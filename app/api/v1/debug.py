# app/api/v1/debug.py
"""Diagnostics: the in-memory instance map and the web build tree."""

from __future__ import annotations

import os
from pathlib import Path

from fastapi import APIRouter, Depends

from app.core.config import settings
from app.core.dependencies import get_current_user, get_whatsapp_manager
from app.models.user import User
from app.services.whatsapp_manager import WhatsAppManager

router = APIRouter(tags=["Debug"])

_MAX_FILES = 500


def list_tree(root: Path, limit: int = _MAX_FILES) -> list[str]:
    """Relative paths under ``root`` (directories end with '/'), walked lazily, stops at ``limit``."""
    out: list[str] = []
    if not root.is_dir():
        return out
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        base = Path(dirpath).relative_to(root)
        for name in dirnames:
            out.append((base / name).as_posix() + "/")
        for name in sorted(filenames):
            out.append((base / name).as_posix())
        if len(out) >= limit:
            return out[:limit]
    return out


@router.get("/debug/instances")
async def debug_instances(
    current_user: User = Depends(get_current_user),
    manager: WhatsAppManager = Depends(get_whatsapp_manager),
) -> dict:
    return manager.debug_snapshot()


@router.get("/debug-files")
async def debug_files() -> dict:
    web_dir = settings.web_path
    next_dir = web_dir / ".next"
    return {
        "webDir": str(web_dir),
        "nextDir": str(next_dir),
        "exists": next_dir.is_dir(),
        "files": list_tree(next_dir),
    }
