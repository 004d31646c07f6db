"""Baileys disconnect status codes."""

from __future__ import annotations

from enum import IntEnum
from typing import Any


class DisconnectReason(IntEnum):
    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    TIMED_OUT = 408
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411


def is_logged_out(status_code: Any) -> bool:
    try:
        return int(status_code) == DisconnectReason.LOGGED_OUT
    except (TypeError, ValueError):
        return False
