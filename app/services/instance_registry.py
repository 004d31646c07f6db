"""
In-memory registry of live WhatsApp sockets, keyed by instance id.

The registry is process-local and is lost on restart; persisted instances come
back only after an explicit reconnect.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Optional

from app.models.base import utc_now


@dataclass
class InstanceRecord:
    sock: Any
    user_id: int
    session_path: Path
    last_updated: datetime = field(default_factory=utc_now)

    def touch(self) -> None:
        self.last_updated = utc_now()

    @property
    def qr_code(self) -> Optional[str]:
        return getattr(self.sock, "qr_code", None) if self.sock is not None else None

    @property
    def has_qr(self) -> bool:
        return bool(self.qr_code)

    @property
    def is_connected(self) -> bool:
        return bool(getattr(self.sock, "is_connected", False)) if self.sock is not None else False

    def connection_status(self) -> str:
        if self.is_connected:
            return "connected"
        if self.has_qr:
            return "pending_qr"
        return "disconnected"


class InstanceRegistry:
    def __init__(self) -> None:
        self._records: dict[str, InstanceRecord] = {}

    def get(self, instance_id: str) -> Optional[InstanceRecord]:
        return self._records.get(instance_id)

    def set(self, instance_id: str, record: InstanceRecord) -> None:
        self._records[instance_id] = record

    def delete(self, instance_id: str) -> Optional[InstanceRecord]:
        return self._records.pop(instance_id, None)

    def has(self, instance_id: str) -> bool:
        return instance_id in self._records

    __contains__ = has

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._records))

    def items(self) -> list[tuple[str, InstanceRecord]]:
        return list(self._records.items())

    def clear(self) -> None:
        self._records.clear()
