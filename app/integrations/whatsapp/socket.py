"""
HTTP-backed WhatsApp socket.

The WhatsApp Web protocol session lives in a Baileys gateway process; this
module drives it over HTTP:

- POST /whatsapp/{id}/start   start (or resume, with stored creds) a session
- GET  /whatsapp/{id}/status  {connected, state, qr, statusCode, error, creds, keys}
- POST /send                  {tenantId, to, type: "text", text}
- POST /whatsapp/{id}/stop    stop the session

Status changes observed by the poller are re-emitted on ``ev`` as
``connection.update`` / ``creds.update`` events. A 404 from ``/status``, or
``max_poll_failures`` failed polls in a row, is reported as a close with
``DisconnectReason.CONNECTION_LOST``.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import ExternalServiceError
from app.core.logging import bound_context, get_logger
from app.integrations.whatsapp.auth_state import MultiFileAuthState
from app.integrations.whatsapp.events import EventEmitter
from app.integrations.whatsapp.reasons import DisconnectReason

logger = get_logger(__name__)

CONNECTION_UPDATE = "connection.update"
CREDS_UPDATE = "creds.update"


class GatewaySocket:
    def __init__(
        self,
        instance_id: str,
        session_path: os.PathLike | str,
        *,
        auth_state: Optional[MultiFileAuthState] = None,
        base_url: Optional[str] = None,
        secret: Optional[str] = None,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        max_poll_failures: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        gw = settings.gateway_settings
        self.instance_id = instance_id
        self.session_path = Path(session_path)
        self.auth_state = auth_state
        self.poll_interval = gw["poll_interval"] if poll_interval is None else poll_interval
        self.max_poll_failures = gw["max_poll_failures"] if max_poll_failures is None else max_poll_failures
        self.ev = EventEmitter()

        self.qr_code: Optional[str] = None
        self.is_connected = False
        self.state = "connecting"

        secret = gw["secret"] if secret is None else secret
        headers = {"X-Internal-Secret": secret} if secret else {}
        self._client = httpx.AsyncClient(
            base_url=base_url or gw["base_url"],
            headers=headers,
            timeout=gw["timeout"] if timeout is None else timeout,
            transport=transport,
        )
        self._poll_task: Optional[asyncio.Task] = None
        self._closed = False
        self._last_qr: Optional[str] = None
        self._last_creds: Any = None
        self._poll_failures = 0

    # ------------------------------------------------------------------ http
    async def _request(self, method: str, path: str, **kwargs: Any) -> dict:
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning("gateway_http_error", method=method, path=path, error=str(e))
            code = "GATEWAY_SESSION_NOT_FOUND" if e.response.status_code == 404 else "GATEWAY_ERROR"
            raise ExternalServiceError(f"WhatsApp gateway error: {e}", code) from e
        except httpx.HTTPError as e:
            logger.warning("gateway_http_error", method=method, path=path, error=str(e))
            raise ExternalServiceError(f"WhatsApp gateway error: {e}", "GATEWAY_ERROR") from e
        if not resp.content:
            return {}
        try:
            data = resp.json()
        except ValueError as e:
            raise ExternalServiceError("WhatsApp gateway returned invalid JSON", "GATEWAY_BAD_RESPONSE") from e
        return data if isinstance(data, dict) else {"data": data}

    # ------------------------------------------------------------- lifecycle
    async def connect(self) -> None:
        state = self.auth_state.state if self.auth_state else {"creds": None, "keys": {}}
        await self._request("POST", f"/whatsapp/{self.instance_id}/start", json=state)
        self._poll_task = asyncio.create_task(self._poll_loop(), name=f"wa-poll-{self.instance_id}")
        logger.info("gateway_session_started", instance_id=self.instance_id, resumed=bool(state["creds"]))

    async def _poll_loop(self) -> None:
        with bound_context(instance_id=self.instance_id):
            while not self._closed:
                try:
                    await self.poll_once()
                    self._poll_failures = 0
                except ExternalServiceError as e:
                    self._poll_failures += 1
                    logger.warning("gateway_poll_failed", error=e.message, failures=self._poll_failures)
                    # 404: the gateway no longer has this session
                    if e.code == "GATEWAY_SESSION_NOT_FOUND" or self._poll_failures >= self.max_poll_failures:
                        await self._mark_lost(e.message)
                if self.state == "close":
                    return
                await asyncio.sleep(self.poll_interval)

    async def _mark_lost(self, error: str) -> None:
        self.state = "close"
        await self.ev.emit(
            CONNECTION_UPDATE,
            {"connection": "close", "status_code": int(DisconnectReason.CONNECTION_LOST), "error": error},
        )

    async def poll_once(self) -> dict:
        data = await self._request("GET", f"/whatsapp/{self.instance_id}/status")
        await self.apply_status(data)
        return data

    async def apply_status(self, data: dict) -> None:
        """Translate a gateway status document into socket events."""
        creds = data.get("creds")
        if creds and creds != self._last_creds:
            self._last_creds = creds
            await self.ev.emit(CREDS_UPDATE, creds)

        # signal key changes go straight to the key store; None deletes a key
        keys = data.get("keys")
        if keys and self.auth_state is not None:
            self.auth_state.save_keys(keys)

        state = data.get("state") or ("open" if data.get("connected") else "connecting")
        previous, self.state = self.state, state

        if state == "open":
            if previous != "open":
                await self.ev.emit(CONNECTION_UPDATE, {"connection": "open"})
        elif state == "close":
            if previous != "close":
                await self.ev.emit(
                    CONNECTION_UPDATE,
                    {"connection": "close", "status_code": data.get("statusCode"), "error": data.get("error")},
                )
        else:
            if previous == "open":
                await self.ev.emit(CONNECTION_UPDATE, {"connection": "connecting"})
            qr = data.get("qr")
            if qr and qr != self._last_qr:
                self._last_qr = qr
                await self.ev.emit(CONNECTION_UPDATE, {"qr": qr})

    async def send_message(self, jid: str, content: dict) -> dict:
        text = content.get("text")
        if not text:
            raise ValueError("Only text messages are supported")
        return await self._request(
            "POST", "/send", json={"tenantId": self.instance_id, "to": jid, "type": "text", "text": text}
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        task = self._poll_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.ev.remove_all_listeners()
        try:
            await self._request("POST", f"/whatsapp/{self.instance_id}/stop")
        except ExternalServiceError as e:
            logger.warning("gateway_stop_failed", instance_id=self.instance_id, error=e.message)
        finally:
            await self._client.aclose()

    @property
    def closed(self) -> bool:
        return self._closed
