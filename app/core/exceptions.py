# app/core/exceptions.py
"""
Unified exceptions & handlers for the WhatsApp SaaS API.

- Domain exceptions (AuthenticationError, AuthorizationError, NotFoundError, ...)
- Global FastAPI handlers with structured logging via app.core.logging
- Every error body is JSON: {"error": <message>} plus optional "code"/"details"
- IntegrityError parsing (duplicate/foreign key/not null) for PG/SQLite
- RequestValidationError, HTTPException, SQLAlchemyError, OperationalError handling
"""

from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Optional, Tuple

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.logging import bound_context, get_logger, redact_secrets

logger = get_logger(__name__)

# -----------------------------------------------------------------------------
# Domain exceptions
# -----------------------------------------------------------------------------


class WhatsAppSaaSError(Exception):
    """Base domain exception."""

    default_status = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        *,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        http_status: Optional[int] = None,
    ):
        self.message = message
        self.code = code
        self.extra = extra or {}
        self.headers = headers or {}
        self.http_status = http_status
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.http_status or self.default_status


class BadRequestError(WhatsAppSaaSError):
    """Malformed or incomplete request."""


class AuthenticationError(WhatsAppSaaSError):
    """Missing/invalid credentials."""

    default_status = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(WhatsAppSaaSError):
    """Authenticated, but the resource belongs to someone else."""

    default_status = status.HTTP_403_FORBIDDEN


class NotFoundError(WhatsAppSaaSError):
    default_status = status.HTTP_404_NOT_FOUND


class ExternalServiceError(WhatsAppSaaSError):
    """The WhatsApp gateway (or another upstream) failed."""

    default_status = status.HTTP_502_BAD_GATEWAY


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _error_body(message: str, code: Optional[str] = None, details: Any = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": message}
    if code:
        body["code"] = code
    if details is not None:
        body["details"] = details
    return body


def _extract_request_id(headers: Mapping[str, str]) -> str:
    for k in ("x-request-id", "x-correlation-id"):
        if k in headers:
            return headers.get(k, "")
    return ""


def _json_error(status_code: int, content: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=headers or None)


_DUP_RE = re.compile(r"duplicate key|unique constraint|unique violation", re.IGNORECASE)
_FK_RE = re.compile(r"foreign key", re.IGNORECASE)
_NOTNULL_RE = re.compile(r"not null", re.IGNORECASE)


def _parse_integrity_error(exc: IntegrityError) -> Tuple[str, str]:
    """Returns (message, code) for user-friendly error mapping."""
    text = str(getattr(exc, "orig", exc))
    if _DUP_RE.search(text):
        return ("A record with this value already exists", "DUPLICATE_VALUE")
    if _FK_RE.search(text):
        return ("Referenced record does not exist", "FOREIGN_KEY_ERROR")
    if _NOTNULL_RE.search(text):
        return ("Required field is missing", "REQUIRED_FIELD")
    return ("A database constraint was violated", "INTEGRITY_ERROR")


def _validation_message(errors: list[dict]) -> str:
    parts = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        field = ".".join(loc) or "request"
        parts.append(f"{field}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts) or "Invalid request"


# -----------------------------------------------------------------------------
# Exception Handlers (FastAPI)
# -----------------------------------------------------------------------------


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for uncaught exceptions."""
    with bound_context(request_id=_extract_request_id(request.headers)):
        logger.error("Unhandled exception", exc_info=exc, path=request.url.path, method=request.method)
    return _json_error(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        _error_body("An unexpected error occurred. Please try again later.", "INTERNAL_ERROR"),
    )


async def domain_exception_handler(request: Request, exc: WhatsAppSaaSError) -> JSONResponse:
    sc = exc.status_code
    if isinstance(exc, AuthenticationError):
        exc.headers.setdefault("WWW-Authenticate", "Bearer")

    with bound_context(request_id=_extract_request_id(request.headers)):
        log = logger.error if sc >= 500 else logger.warning
        log(
            "Domain exception",
            exception_type=type(exc).__name__,
            message=exc.message,
            code=exc.code,
            status=sc,
            path=request.url.path,
            method=request.method,
            extra=redact_secrets(exc.extra),
        )

    details = exc.extra.get("details") if exc.extra else None
    return _json_error(sc, _error_body(exc.message, exc.code, details), headers=exc.headers)


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    msg, code = _parse_integrity_error(exc)
    with bound_context(request_id=_extract_request_id(request.headers)):
        logger.warning(
            "Database integrity error",
            error=str(getattr(exc, "orig", exc)),
            path=request.url.path,
            method=request.method,
            code=code,
        )
    return _json_error(status.HTTP_409_CONFLICT, _error_body(msg, code))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body/query/path validation failures are client errors (400)."""
    errs = exc.errors()
    with bound_context(request_id=_extract_request_id(request.headers)):
        logger.warning(
            "Request validation error",
            errors=redact_secrets([{k: v for k, v in e.items() if k != "input"} for e in errs]),
            path=request.url.path,
            method=request.method,
        )
    details = [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errs]
    return _json_error(
        status.HTTP_400_BAD_REQUEST,
        _error_body(_validation_message(errs), "VALIDATION_ERROR", details),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handler for HTTP exceptions raised by FastAPI/Starlette (404 routes, 405, ...)."""
    with bound_context(request_id=_extract_request_id(request.headers)):
        logger.info(
            "HTTP exception",
            status_code=exc.status_code,
            detail=redact_secrets(exc.detail),
            path=request.url.path,
            method=request.method,
        )
    return _json_error(exc.status_code, _error_body(str(exc.detail)), headers=getattr(exc, "headers", None))


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    with bound_context(request_id=_extract_request_id(request.headers)):
        logger.error("SQLAlchemy error", exc_info=exc, path=request.url.path, method=request.method)
    return _json_error(
        status.HTTP_500_INTERNAL_SERVER_ERROR, _error_body("Database operation failed", "DB_ERROR")
    )


async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    """Operational DB errors (timeouts, connection issues)."""
    with bound_context(request_id=_extract_request_id(request.headers)):
        logger.error("DB operational error", exc_info=exc, path=request.url.path, method=request.method)
    return _json_error(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        _error_body("Database is temporarily unavailable. Please retry later.", "DB_UNAVAILABLE"),
    )


# -----------------------------------------------------------------------------
# Registration
# -----------------------------------------------------------------------------


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to FastAPI app."""
    app.add_exception_handler(WhatsAppSaaSError, domain_exception_handler)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

    app.add_exception_handler(IntegrityError, integrity_error_handler)  # 409
    app.add_exception_handler(OperationalError, operational_error_handler)  # 503
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)  # 500

    app.add_exception_handler(Exception, global_exception_handler)


__all__ = [
    "WhatsAppSaaSError",
    "BadRequestError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ExternalServiceError",
    "register_exception_handlers",
]
