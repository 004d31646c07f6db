"""Persisted side of a WhatsApp instance (the live socket is kept in memory)."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel

if TYPE_CHECKING:
    from app.models.schedule import Schedule
    from app.models.user import User


def _new_instance_id() -> str:
    return str(uuid.uuid4())


class Instance(BaseModel):
    __tablename__ = "instances"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_instance_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    user: Mapped["User"] = relationship(back_populates="instances")
    schedules: Mapped[list["Schedule"]] = relationship(
        back_populates="instance", lazy="noload", passive_deletes=True
    )
