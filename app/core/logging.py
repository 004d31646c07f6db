# app/core/logging.py
"""
Logging for the WhatsApp SaaS API.

stdlib logging is configured once through dictConfig (stdout plus a rotating
application log and a rotating errors log next to LOG_PATH); structlog sits on
top of it and renders JSON in production or when LOG_FORMAT=json, the dev
console renderer otherwise.

Every event is enriched with the request-scoped context kept in contextvars
(request id, user id, instance id, client ip, user agent). Credentials, tokens
and passwords are masked before rendering.
"""

from __future__ import annotations

import logging
import logging.config
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Iterator, Optional

import structlog

from app.core.config import settings

CONTEXT_KEYS = ("request_id", "user_id", "instance_id", "client_ip", "user_agent")
_context: dict[str, ContextVar[str]] = {key: ContextVar(key, default="") for key in CONTEXT_KEYS}

_SENSITIVE = ("secret", "password", "token", "dsn", "api_key", "authorization", "creds")
_ROTATE_BYTES = 10 * 1024 * 1024
_ROTATE_KEEP = 5

_configured = False


# ------------------------------------------------------------------ redaction
def _mask(value: Any) -> str:
    text = str(value)
    return "***" if len(text) <= 6 else f"{text[:3]}***{text[-3:]}"


def redact_secrets(data: Any) -> Any:
    """Masks values whose key looks sensitive, recursing into dicts, lists and tuples."""
    if isinstance(data, dict):
        return {
            k: _mask(v) if any(s in str(k).lower() for s in _SENSITIVE) else redact_secrets(v)
            for k, v in data.items()
        }
    if isinstance(data, (list, tuple)):
        return type(data)(redact_secrets(v) for v in data)
    return data


# ----------------------------------------------------------------- processors
def _add_request_context(_logger, _name, event_dict):
    for key, var in _context.items():
        value = var.get()
        if value:
            event_dict.setdefault(key, value)
    return event_dict


def _redact(_logger, _name, event_dict):
    return redact_secrets(event_dict)


def _add_service(_logger, _name, event_dict):
    event_dict.setdefault("service", settings.SERVICE_NAME)
    event_dict.setdefault("version", settings.VERSION)
    return event_dict


# ------------------------------------------------------------- configuration
def _rotating(filename: Path, level: str) -> dict:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": "detailed",
        "filename": str(filename),
        "maxBytes": _ROTATE_BYTES,
        "backupCount": _ROTATE_KEEP,
        "encoding": "utf8",
    }


def _dict_config(log_file: Path) -> dict:
    level = (settings.LOG_LEVEL or "INFO").upper()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    everything = ["console", "app_file", "error_file"]
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {"format": "%(asctime)s [%(levelname)s] %(name)s - %(message)s", "datefmt": "%Y-%m-%d %H:%M:%S"},
            "detailed": {
                "format": "%(asctime)s [%(levelname)s] %(name)s:%(funcName)s:%(lineno)d - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "plain",
                "stream": "ext://sys.stdout",
            },
            "app_file": _rotating(log_file, "DEBUG"),
            "error_file": _rotating(log_file.with_name("errors.log"), "ERROR"),
        },
        "loggers": {
            "": {"handlers": everything, "level": level, "propagate": False},
            "uvicorn.error": {"handlers": everything, "level": "INFO", "propagate": False},
            "uvicorn.access": {"handlers": ["console", "app_file"], "level": "INFO", "propagate": False},
            "apscheduler": {"handlers": ["console", "app_file"], "level": "WARNING", "propagate": False},
            "httpx": {"handlers": ["console", "app_file"], "level": "WARNING", "propagate": False},
        },
    }


def _json_output() -> bool:
    return settings.is_production or (settings.LOG_FORMAT or "").lower() == "json"


def setup_logging() -> None:
    """Configure stdlib logging and structlog; later calls are no-ops."""
    global _configured
    if _configured:
        return

    log_file = settings.resolve_path(settings.LOG_PATH or "logs/app.log")
    logging.config.dictConfig(_dict_config(log_file))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _add_request_context,
            _add_service,
            _redact,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if _json_output() else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _configured = True

    log = get_logger(__name__)
    log.info("logging_configured", log_file=str(log_file), json=_json_output())
    log.debug("settings_loaded", settings=settings.dump_settings_safe())


def get_logger(name: str):
    return structlog.get_logger(name)


def integrate_uvicorn_loggers() -> None:
    """uvicorn installs its own handlers; keep its records on ours only."""
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).propagate = False


def log_startup_summary() -> None:
    get_logger("startup").info(
        "startup_summary",
        environment=settings.ENVIRONMENT,
        debug=bool(settings.DEBUG),
        port=settings.PORT,
        gateway=settings.WA_GATEWAY_URL,
        sessions_dir=str(settings.sessions_path),
        scheduler=bool(settings.ENABLE_SCHEDULER),
    )


# ------------------------------------------------------------------- context
def bind_context(**values: Optional[Any]) -> None:
    """Set context values until they are overridden or cleared."""
    for key, value in values.items():
        if key in _context and value is not None:
            _context[key].set(str(value))


def clear_context() -> None:
    for var in _context.values():
        var.set("")


@contextmanager
def bound_context(**values: Optional[Any]) -> Iterator[None]:
    """Like bind_context(), restoring the previous values on exit."""
    tokens = [
        (_context[key], _context[key].set(str(value)))
        for key, value in values.items()
        if key in _context and value is not None
    ]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


# --------------------------------------------------------------------- audit
class AuditLogger:
    """Security-relevant events on a dedicated ``audit`` logger."""

    def __init__(self) -> None:
        self.logger = get_logger("audit")

    def log_auth_success(self, user_id: int | str, ip_address: str, user_agent: str, **extra: Any) -> None:
        self.logger.info("auth_success", user_id=user_id, ip_address=ip_address, user_agent=user_agent, **extra)

    def log_auth_failure(self, username: str, ip_address: str, reason: str, **extra: Any) -> None:
        self.logger.warning("auth_failure", username=username, ip_address=ip_address, reason=reason, **extra)

    def log_data_change(
        self,
        user_id: int | str,
        action: str,
        resource_type: str,
        resource_id: str | int,
        changes: dict[str, Any],
    ) -> None:
        self.logger.info(
            "data_change",
            user_id=user_id,
            action=action,
            resource=f"{resource_type}:{resource_id}",
            changes=redact_secrets(changes),
        )

    def log_permission_denied(self, user_id: int | str, reason: str, resource: str) -> None:
        self.logger.warning("permission_denied", user_id=user_id, reason=reason, resource=resource)


audit_logger = AuditLogger()


# ---------------------------------------------------------------- middleware
class LoggingContextMiddleware:
    """
    Pure ASGI middleware: takes X-Request-ID from the request (or makes one),
    echoes it on the response and logs one line per request with its duration.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            return await self.app(scope, receive, send)

        headers = {k.decode("latin-1").lower(): v.decode("latin-1") for k, v in scope.get("headers", [])}
        request_id = headers.get("x-request-id") or headers.get("x-correlation-id") or uuid.uuid4().hex
        client = scope.get("client")
        status = 500
        started = time.perf_counter()

        async def send_with_request_id(message):
            nonlocal status
            if message["type"] == "http.response.start":
                status = message.get("status", 200)
                raw = list(message.get("headers", []))
                if all(k.lower() != b"x-request-id" for k, _ in raw):
                    raw.append((b"x-request-id", request_id.encode("latin-1")))
                message["headers"] = raw
            await send(message)

        with bound_context(
            request_id=request_id,
            client_ip=client[0] if client else None,
            user_agent=headers.get("user-agent"),
        ):
            try:
                await self.app(scope, receive, send_with_request_id)
            finally:
                get_logger("http").info(
                    "request",
                    method=scope.get("method", ""),
                    path=scope.get("path", ""),
                    status=status,
                    duration_ms=round((time.perf_counter() - started) * 1000.0, 2),
                )


__all__ = [
    "setup_logging",
    "get_logger",
    "bind_context",
    "bound_context",
    "clear_context",
    "log_startup_summary",
    "AuditLogger",
    "audit_logger",
    "LoggingContextMiddleware",
    "integrate_uvicorn_loggers",
    "redact_secrets",
]
