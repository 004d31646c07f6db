from __future__ import annotations

import os
import json
import logging
from functools import lru_cache
from typing import Optional, List, Dict, Any
from pathlib import Path
from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ================================
# Helpers
# ================================
def _under_pytest() -> bool:
    return "PYTEST_CURRENT_TEST" in os.environ


def _mask_secret(val: Optional[str]) -> Optional[str]:
    if val is None:
        return None
    s = str(val)
    if not s:
        return s
    if len(s) <= 6:
        return "***"
    return s[:3] + "***" + s[-3:]


def _project_root() -> Path:
    here = Path(__file__).resolve()
    return here.parent.parent.parent


def _parse_list_like(v):
    if isinstance(v, str):
        v = v.strip()
        if v.startswith("[") and v.endswith("]"):
            try:
                parsed = json.loads(v)
            except ValueError:
                parsed = None
            if isinstance(parsed, list):
                return [str(i).strip() for i in parsed if str(i).strip()]
        return [i.strip() for i in v.split(",") if i.strip()]
    return v


def _is_secret_key_name(key: str) -> bool:
    lk = key.lower()
    return any(s in lk for s in ("secret", "password", "token", "dsn"))


def _writable(p: Path) -> bool:
    try:
        p.mkdir(parents=True, exist_ok=True)
        test = p / ".writetest"
        test.write_text("ok", encoding="utf-8")
        test.unlink(missing_ok=True)
        return True
    except OSError:
        return False


# ================================
# Application settings (Pydantic v2)
# ================================
class Settings(BaseSettings):
    """
    Settings for the WhatsApp SaaS API.

    - Values come from the environment, then `.env.test` / `.env`.
    - Paths (sessions, web build, logs) are resolved against the project root when relative.
    - Production refuses the built-in JWT secret.
    """

    model_config = SettingsConfigDict(
        env_file=(".env.test", ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    # ---- base
    APP_NAME: str = Field(default="WhatsApp SaaS", description="Application name")
    SERVICE_NAME: str = Field(default="WhatsApp SaaS API", description="Service name reported by /api/status")
    VERSION: str = Field(default="1.0.0", description="Application version")
    DESCRIPTION: str = Field(default="API for sending messages via WhatsApp", description="Short description")
    DEBUG: bool = Field(default=False, description="Debug mode")
    ENVIRONMENT: str = Field(default="development", description="Environment")
    TESTING: bool = Field(default=False, description="Testing mode")
    HOST: str = Field(default="0.0.0.0", description="Server host")
    PORT: int = Field(default=3000, description="Server port")
    ENABLE_DOCS: bool = Field(default=True, description="Expose OpenAPI docs")

    # ---- security/JWT
    JWT_SECRET: str = Field(default="default_secret_key", description="JWT signing secret")
    ALGORITHM: str = Field(default="HS256", description="JWT algorithm")
    ACCESS_TOKEN_EXPIRE_DAYS: int = Field(default=7, description="Access token lifetime (days)")
    PASSWORD_MIN_LENGTH: int = Field(default=6, description="Password min length")

    # ---- database
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./whatsapp_saas.db", description="Async SQLAlchemy database URL"
    )
    SQLALCHEMY_POOL_SIZE: int = Field(default=10, description="Pool size (non-sqlite)")
    SQLALCHEMY_MAX_OVERFLOW: int = Field(default=20, description="Max overflow (non-sqlite)")
    SQLALCHEMY_POOL_RECYCLE: int = Field(default=1800, description="Pool recycle (s)")

    # ---- WhatsApp gateway
    SESSIONS_DIR: str = Field(default="sessions", description="Per-instance credential folders")
    WA_GATEWAY_URL: str = Field(default="http://127.0.0.1:3300", description="Baileys gateway base URL")
    WA_GATEWAY_SECRET: str = Field(default="", description="Shared secret sent as X-Internal-Secret")
    WA_GATEWAY_TIMEOUT: float = Field(default=15.0, description="Gateway HTTP timeout (s)")
    WA_POLL_INTERVAL_SECONDS: float = Field(default=1.0, description="Socket status poll cadence (s)")
    WA_MAX_POLL_FAILURES: int = Field(default=3, ge=1, description="Consecutive failed status polls before a session counts as lost")
    SEND_INTERVAL_SECONDS: float = Field(default=2.0, description="Spacing between outbound sends (s)")
    RECONNECT_DELAY_SECONDS: float = Field(default=5.0, description="Delay before reconnecting a dropped socket (s)")

    # ---- scheduler
    ENABLE_SCHEDULER: bool = Field(default=True, description="Run the scheduled-message loop")
    SCHEDULER_INTERVAL_SECONDS: int = Field(default=5, description="Scheduled-message poll interval (s)")
    SCHEDULER_TIMEZONE: str = Field(default="UTC", description="Scheduler timezone")

    # ---- CORS / web
    CORS_ORIGINS: List[str] = Field(default=["*"], description="CORS origins")
    WEB_DIR: str = Field(default="web", description="Built web front-end root")

    # ---- logs
    LOG_PATH: str = Field(default="logs/app.log", description="Log file path")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="text", description="Logging format (json|text)")

    # --------- validators ---------
    @field_validator("CORS_ORIGINS", mode="before")
    def _cors(cls, v):
        return _parse_list_like(v)

    @field_validator("ALGORITHM")
    def check_alg(cls, v):
        allowed = {"HS256", "HS384", "HS512"}
        if v not in allowed:
            raise ValueError(f"Unsupported JWT algorithm: {v}")
        return v

    @field_validator("WA_GATEWAY_URL")
    def strip_gateway_url(cls, v):
        return (v or "").strip().rstrip("/")

    @field_validator("DATABASE_URL")
    def normalize_database_url(cls, v):
        v = (v or "").strip()
        if v.startswith("postgres://"):
            v = "postgresql+asyncpg://" + v[len("postgres://"):]
        elif v.startswith("postgresql://"):
            v = "postgresql+asyncpg://" + v[len("postgresql://"):]
        return v

    # --------- properties ---------
    @property
    def base_dir(self) -> Path:
        return _project_root()

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() in {"dev", "development"}

    @property
    def is_testing(self) -> bool:
        return bool(self.TESTING or _under_pytest())

    @property
    def is_sqlite(self) -> bool:
        return urlparse(self.DATABASE_URL).scheme.startswith("sqlite")

    def resolve_path(self, value: str) -> Path:
        p = Path(value)
        if not p.is_absolute():
            p = self.base_dir / value
        return p

    @property
    def sessions_path(self) -> Path:
        return self.resolve_path(self.SESSIONS_DIR)

    @property
    def web_path(self) -> Path:
        return self.resolve_path(self.WEB_DIR)

    @property
    def jwt_settings(self) -> dict:
        return {
            "secret": self.JWT_SECRET,
            "algorithm": self.ALGORITHM,
            "expire_days": self.ACCESS_TOKEN_EXPIRE_DAYS,
        }

    @property
    def gateway_settings(self) -> dict:
        return {
            "base_url": self.WA_GATEWAY_URL,
            "secret": self.WA_GATEWAY_SECRET,
            "timeout": self.WA_GATEWAY_TIMEOUT,
            "poll_interval": self.WA_POLL_INTERVAL_SECONDS,
            "max_poll_failures": self.WA_MAX_POLL_FAILURES,
        }

    @property
    def cors_config(self) -> dict:
        origins = self.CORS_ORIGINS or ["*"]
        return {
            "allow_origins": origins,
            # credentials cannot be combined with a wildcard origin
            "allow_credentials": origins != ["*"],
            "allow_methods": ["*"],
            "allow_headers": ["*"],
        }

    def sqlalchemy_engine_options(self) -> Dict[str, Any]:
        opts: Dict[str, Any] = {"echo": bool(self.DEBUG), "pool_pre_ping": True}
        if not self.is_sqlite:
            opts.update(
                pool_size=self.SQLALCHEMY_POOL_SIZE,
                max_overflow=self.SQLALCHEMY_MAX_OVERFLOW,
                pool_recycle=self.SQLALCHEMY_POOL_RECYCLE,
            )
        return opts

    # --------- checks and init ---------
    def ensure_dirs(self) -> None:
        dirs = {self.SESSIONS_DIR, os.path.dirname(self.LOG_PATH) if self.LOG_PATH else ""}
        for d in filter(None, dirs):
            p = self.resolve_path(d)
            if not _writable(p):
                logging.getLogger(__name__).warning("Directory not writable: %s", p)

    def check_secret_key(self) -> None:
        if self.is_production:
            weak = {"default_secret_key", "changeme", "secret", "password"}
            if not self.JWT_SECRET or self.JWT_SECRET.strip().lower() in weak:
                raise ValueError("Set a secure JWT_SECRET in .env for production!")

    def dump_settings_safe(self) -> dict:
        out: Dict[str, Any] = {}
        for k, v in self.model_dump().items():
            out[k] = _mask_secret(v) if _is_secret_key_name(k) and isinstance(v, str) else v
        return out

    def uvicorn_kwargs(self) -> dict:
        return {
            "host": self.HOST,
            "port": int(self.PORT),
            "reload": bool(self.DEBUG and self.is_development),
            "log_config": None,
        }


@lru_cache
def get_settings() -> Settings:
    s = Settings()
    if not _under_pytest() and os.getenv("DISABLE_APP_STARTUP_HOOKS") != "1":
        s.check_secret_key()
    return s


settings = get_settings()

__all__ = ["Settings", "get_settings", "settings"]
