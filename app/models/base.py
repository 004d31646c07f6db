# app/models/base.py
"""
Declarative base and the shared abstract model (SQLAlchemy 2.x, DeclarativeBase).

- Constraint naming conventions, so generated DDL is stable across SQLite/PostgreSQL.
- BaseModel: created_at / updated_at (naive UTC), touch(), to_dict().
- utc_now(): naive UTC, the storage convention for every DateTime column here.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import DateTime, MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

NAMING_CONVENTIONS: dict[str, str] = {
    "ix": "ix__%(table_name)s__%(column_0_N_name)s",
    "uq": "uq__%(table_name)s__%(column_0_N_name)s",
    "ck": "ck__%(table_name)s__%(constraint_name)s",
    "fk": "fk__%(table_name)s__%(column_0_N_name)s__%(referred_table_name)s",
    "pk": "pk__%(table_name)s",
}


def utc_now() -> datetime:
    """Current UTC time as a naive datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def utc_iso(dt: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with a trailing Z (millisecond precision)."""
    dt = to_naive_utc(dt) if dt is not None else utc_now()
    return dt.isoformat(timespec="milliseconds") + "Z"


def to_naive_utc(dt: datetime) -> datetime:
    """Aware datetimes are converted to UTC; naive ones are taken as UTC already."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTIONS)


class BaseModel(Base):
    """Common base for all project models."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )

    @declared_attr
    def __tablename__(cls) -> str:  # type: ignore[override]
        return cls.__name__.lower() + "s"

    def touch(self) -> None:
        self.updated_at = utc_now()

    def to_dict(self, exclude: set[str] | None = None) -> dict[str, Any]:
        exclude = exclude or set()
        out: dict[str, Any] = {}
        for col in self.__table__.columns:
            if col.key in exclude:
                continue
            value = getattr(self, col.key, None)
            if isinstance(value, (datetime, date)):
                value = value.isoformat()
            out[col.key] = value
        return out

    def __repr__(self) -> str:  # pragma: no cover
        return f"<{self.__class__.__name__}(id={getattr(self, 'id', None)!r})>"


__all__ = ["NAMING_CONVENTIONS", "Base", "BaseModel", "utc_now", "utc_iso", "to_naive_utc"]
