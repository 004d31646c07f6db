# app/main.py
"""
FastAPI application entrypoint for the WhatsApp SaaS API.

- lifespan: logging, session/log directories, DB schema, scheduler; graceful shutdown
  of the scheduler, live WhatsApp sockets and the DB engine
- middleware: CORS, security headers, request context / access log
- routers: /api/* (app.api.routes), then the web front-end catch-all (app.web.spa)

Run:
    uvicorn app.main:app --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import mount_api
from app.core.config import settings
from app.core.db import close_db_async, init_db_async
from app.core.exceptions import register_exception_handlers
from app.core.logging import (
    LoggingContextMiddleware,
    get_logger,
    integrate_uvicorn_loggers,
    log_startup_summary,
    setup_logging,
)
from app.services.whatsapp_manager import whatsapp_manager
from app.web.spa import mount_frontend
from app.worker import scheduler_worker

logger = get_logger(__name__)

_STATE: dict[str, Any] = {"scheduler_started": False}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ---- Startup
    setup_logging()
    integrate_uvicorn_loggers()
    settings.ensure_dirs()
    log_startup_summary()

    await init_db_async()

    if settings.ENABLE_SCHEDULER and not _STATE["scheduler_started"]:
        scheduler_worker.start()
        _STATE["scheduler_started"] = True

    try:
        yield
    finally:
        # ---- Shutdown
        if _STATE["scheduler_started"]:
            scheduler_worker.stop()
            _STATE["scheduler_started"] = False

        await whatsapp_manager.shutdown()
        await close_db_async()
        logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    docs = settings.ENABLE_DOCS
    app = FastAPI(
        title=settings.SERVICE_NAME,
        description=settings.DESCRIPTION,
        version=settings.VERSION,
        debug=settings.DEBUG,
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
        openapi_url="/openapi.json" if docs else None,
        lifespan=lifespan,
    )

    app.add_middleware(CORSMiddleware, expose_headers=["X-Request-ID"], **settings.cors_config)

    @app.middleware("http")
    async def security_headers_mw(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        return response

    # outermost, so every response (errors included) carries X-Request-ID
    app.add_middleware(LoggingContextMiddleware)

    register_exception_handlers(app)

    mount_api(app, base_prefix="/api")
    # the catch-all must be registered after every API route
    mount_frontend(app)

    return app


# Uvicorn entrypoint
app: FastAPI = create_app()


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("app.main:app", **settings.uvicorn_kwargs())
