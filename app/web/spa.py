# app/web/spa.py
"""
Serving the prebuilt web front-end, with an inline dashboard as the last resort.

Lookup for ``GET /<path>`` (non-API paths only), first hit wins:

    WEB_DIR/.next/server/pages
    WEB_DIR/.next/server/app
    WEB_DIR/.next/server
    WEB_DIR/out
    WEB_DIR/build

``/`` maps to ``index.html``; anything else to ``<path>.html`` and then
``<path>/index.html``. Files under ``WEB_DIR/public`` are served first (directory
paths, ``/`` included, use their ``index.html``) and
``/_next`` assets come from ``WEB_DIR/.next`` when a build exists.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, Response
from jinja2 import Environment, FileSystemLoader, select_autoescape
from starlette.staticfiles import StaticFiles

from app.api.v1.system import ENDPOINTS
from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

HTML_ROOTS: tuple[str, ...] = (
    ".next/server/pages",
    ".next/server/app",
    ".next/server",
    "out",
    "build",
)

PROBE_ENDPOINTS = ["/api/health", "/api/status", "/api/version", "/api/debug-files"]

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

_jinja_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)


def _within(base: Path, candidate: Path) -> bool:
    try:
        candidate.resolve().relative_to(base.resolve())
    except ValueError:
        return False
    return True


def _candidates(base: Path, path: str) -> list[Path]:
    if path in ("", "/"):
        return [base / "index.html"]
    clean = path.strip("/")
    return [base / f"{clean}.html", base / clean / "index.html"]


def resolve_html(web_dir: Path, path: str) -> Optional[Path]:
    """First existing HTML file for ``path`` across HTML_ROOTS, or None."""
    for root in HTML_ROOTS:
        base = web_dir / root
        if not base.is_dir():
            continue
        for candidate in _candidates(base, path):
            if _within(base, candidate) and candidate.is_file():
                return candidate
    return None


def resolve_public(web_dir: Path, path: str) -> Optional[Path]:
    """A file under ``public/``; ``/`` and directories resolve to their index.html."""
    public = web_dir / "public"
    if not public.is_dir():
        return None
    candidate = public / path.strip("/")
    if candidate.is_dir():
        candidate = candidate / "index.html"
    if _within(public, candidate) and candidate.is_file():
        return candidate
    return None


def render_dashboard() -> str:
    template = _jinja_env.get_template("dashboard.html")
    return template.render(
        app_name=settings.APP_NAME,
        service_name=settings.SERVICE_NAME,
        version=settings.VERSION,
        environment=settings.ENVIRONMENT,
        endpoints=ENDPOINTS,
        probe_endpoints=PROBE_ENDPOINTS,
        docs_url="/docs" if settings.ENABLE_DOCS else None,
        today=date.today().isoformat(),
    )


router = APIRouter(include_in_schema=False)


@router.get("/{full_path:path}")
async def frontend(full_path: str, request: Request) -> Response:
    path = "/" + full_path
    if path == "/api" or path.startswith("/api/"):
        return JSONResponse(status_code=404, content={"error": "Not found"})

    web_dir = settings.web_path
    public_file = resolve_public(web_dir, path)
    if public_file is not None:
        return FileResponse(public_file)

    html = resolve_html(web_dir, path)
    if html is not None:
        logger.debug("spa_html", path=path, file=str(html))
        return FileResponse(html, media_type="text/html")

    logger.debug("spa_dashboard_fallback", path=path)
    return HTMLResponse(render_dashboard())


def mount_frontend(app: FastAPI) -> None:
    """Register /_next assets (when built) and the catch-all route; call after the API routers."""
    next_dir = settings.web_path / ".next"
    if (next_dir / "static").is_dir():
        app.mount("/_next", StaticFiles(directory=str(next_dir)), name="next-assets")
        logger.info("Serving Next.js assets", directory=str(next_dir))
    app.include_router(router)


__all__ = ["HTML_ROOTS", "resolve_html", "resolve_public", "render_dashboard", "mount_frontend"]
