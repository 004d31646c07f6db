# app/core/dependencies.py
"""
FastAPI dependencies: client info, bearer authentication, WhatsApp manager access.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.exceptions import AuthenticationError
from app.core.logging import audit_logger, bind_context
from app.core.security import verify_token
from app.models.user import User
from app.services.whatsapp_manager import WhatsAppManager, whatsapp_manager


# ------------------------------------------------------------------------------
# Utility: correlation ids and client info
# ------------------------------------------------------------------------------
def get_client_info(request: Request) -> dict:
    return {
        "ip_address": (
            request.headers.get("x-real-ip")
            or request.headers.get("x-forwarded-for")
            or (request.client.host if request.client else "")
        ),
        "user_agent": request.headers.get("user-agent", "unknown"),
        "request_id": request.headers.get("x-request-id") or request.headers.get("x-correlation-id") or "",
    }


# ------------------------------------------------------------------------------
# Authentication
# ------------------------------------------------------------------------------
security = HTTPBearer(auto_error=False)


def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    # dashboard and older clients send the raw token without the "Bearer " prefix
    raw = (request.headers.get("authorization") or "").strip()
    if raw.lower().startswith("bearer "):
        raw = raw[7:].strip()
    return raw or None


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    token = _extract_token(request, credentials)
    info = get_client_info(request)
    if not token:
        raise AuthenticationError("Authentication required", "AUTH_REQUIRED")

    sub = verify_token(token)
    if not sub or not sub.isdigit():
        audit_logger.log_auth_failure(
            username="", ip_address=info["ip_address"], reason="invalid_token", path=request.url.path
        )
        raise AuthenticationError("Invalid or expired token", "INVALID_TOKEN")

    user = await db.get(User, int(sub))
    if user is None:
        audit_logger.log_auth_failure(
            username=sub, ip_address=info["ip_address"], reason="user_not_found", path=request.url.path
        )
        raise AuthenticationError("User not found", "USER_NOT_FOUND")

    bind_context(user_id=user.id)
    request.state.user_id = user.id
    return user


def get_whatsapp_manager() -> WhatsAppManager:
    """Process-wide WhatsApp manager; tests override this dependency."""
    return whatsapp_manager


__all__ = ["get_client_info", "security", "get_current_user", "get_whatsapp_manager"]
