"""
WhatsApp integration: socket factory, credential storage and disconnect codes.
"""

from __future__ import annotations

import os
from typing import Any, Optional

from app.integrations.whatsapp.auth_state import MultiFileAuthState, use_multi_file_auth_state
from app.integrations.whatsapp.events import EventEmitter
from app.integrations.whatsapp.reasons import DisconnectReason, is_logged_out
from app.integrations.whatsapp.socket import CONNECTION_UPDATE, CREDS_UPDATE, GatewaySocket

JID_SUFFIX = "@s.whatsapp.net"


def jid_for(phone: str) -> str:
    """``77011234567`` -> ``77011234567@s.whatsapp.net``; full JIDs pass through."""
    phone = (phone or "").strip()
    if "@" in phone:
        return phone
    digits = "".join(ch for ch in phone if ch.isdigit())
    return f"{digits or phone}{JID_SUFFIX}"


def make_wa_socket(
    instance_id: str,
    session_path: os.PathLike | str,
    auth_state: Optional[MultiFileAuthState] = None,
    **kwargs: Any,
) -> GatewaySocket:
    return GatewaySocket(instance_id, session_path, auth_state=auth_state, **kwargs)


__all__ = [
    "CONNECTION_UPDATE",
    "CREDS_UPDATE",
    "DisconnectReason",
    "EventEmitter",
    "GatewaySocket",
    "MultiFileAuthState",
    "is_logged_out",
    "jid_for",
    "make_wa_socket",
    "use_multi_file_auth_state",
]
