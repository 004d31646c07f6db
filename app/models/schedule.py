"""Messages queued for delivery at a later time."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel

if TYPE_CHECKING:
    from app.models.instance import Instance


class Schedule(BaseModel):
    __tablename__ = "schedules"
    __table_args__ = (Index("ix__schedules__sent__send_at", "sent", "send_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    instance_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("instances.id", ondelete="CASCADE"), nullable=False, index=True
    )
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # naive UTC
    send_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    instance: Mapped["Instance"] = relationship(back_populates="schedules")

    def mark_sent(self) -> None:
        self.sent = True
        self.touch()
