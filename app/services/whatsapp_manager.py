"""
WhatsApp instance lifecycle: socket creation, connection events, reconnects and sends.

Connection events handled per socket:
- qr                      -> QR stored on the socket, record touched
- connection=open         -> connected, QR cleared
- connection=connecting   -> disconnected, waiting for the gateway
- connection=close        -> disconnected; logged out removes the record,
                             anything else reconnects after RECONNECT_DELAY_SECONDS
- creds.update            -> credentials written to the session folder
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any, Callable, Optional

from app.core.config import settings
from app.core.exceptions import BadRequestError, NotFoundError
from app.core.logging import bound_context, get_logger
from app.integrations.whatsapp import (
    CONNECTION_UPDATE,
    CREDS_UPDATE,
    MultiFileAuthState,
    is_logged_out,
    jid_for,
    make_wa_socket,
    use_multi_file_auth_state,
)
from app.services.instance_registry import InstanceRecord, InstanceRegistry
from app.services.send_queue import SendQueue

logger = get_logger(__name__)

SocketFactory = Callable[..., Any]


class WhatsAppManager:
    def __init__(
        self,
        *,
        sessions_dir: Optional[os.PathLike | str] = None,
        socket_factory: Optional[SocketFactory] = None,
        send_interval: Optional[float] = None,
        reconnect_delay: Optional[float] = None,
    ) -> None:
        self.registry = InstanceRegistry()
        self.queue = SendQueue(settings.SEND_INTERVAL_SECONDS if send_interval is None else send_interval)
        self.socket_factory: SocketFactory = socket_factory or make_wa_socket
        self.reconnect_delay = settings.RECONNECT_DELAY_SECONDS if reconnect_delay is None else reconnect_delay
        self.sessions_dir = Path(sessions_dir) if sessions_dir else settings.sessions_path
        self._reconnect_tasks: set[asyncio.Task] = set()

    def session_path_for(self, instance_id: str) -> Path:
        return self.sessions_dir / instance_id

    def is_connected(self, instance_id: str) -> bool:
        record = self.registry.get(instance_id)
        return bool(record and record.is_connected)

    # ------------------------------------------------------------------ sockets
    async def create_socket(self, instance_id: str, session_path: os.PathLike | str) -> Any:
        auth = use_multi_file_auth_state(session_path)
        sock = self.socket_factory(instance_id, Path(session_path), auth_state=auth)
        self._attach_listeners(instance_id, sock, auth)
        try:
            await sock.connect()
        except BaseException:
            await sock.close()
            raise
        return sock

    def _attach_listeners(self, instance_id: str, sock: Any, auth: MultiFileAuthState) -> None:
        async def on_connection_update(update: Optional[dict]) -> None:
            update = update or {}
            record = self.registry.get(instance_id)
            if record is not None and record.sock is not sock:
                return

            with bound_context(instance_id=instance_id):
                if update.get("qr"):
                    sock.qr_code = update["qr"]
                    logger.info("qr_received")

                connection = update.get("connection")
                if connection == "open":
                    sock.is_connected = True
                    sock.qr_code = None
                    logger.info("instance_connected")
                elif connection == "connecting":
                    sock.is_connected = False
                    logger.info("instance_connecting")
                elif connection == "close":
                    sock.is_connected = False
                    status_code = update.get("status_code")
                    if is_logged_out(status_code):
                        logger.info("instance_logged_out", status_code=status_code)
                        self.registry.delete(instance_id)
                        await sock.close()
                        return
                    logger.warning(
                        "instance_connection_closed",
                        status_code=status_code,
                        error=update.get("error"),
                        reconnect_in=self.reconnect_delay,
                    )
                    self._schedule_reconnect(instance_id, sock)

                if record is not None:
                    record.touch()

        def on_creds_update(creds: Optional[dict]) -> None:
            auth.save_creds(creds)

        sock.ev.on(CONNECTION_UPDATE, on_connection_update)
        sock.ev.on(CREDS_UPDATE, on_creds_update)

    def _schedule_reconnect(self, instance_id: str, old_sock: Any) -> None:
        task = asyncio.create_task(
            self._reconnect_later(instance_id, old_sock), name=f"wa-reconnect-{instance_id}"
        )
        self._reconnect_tasks.add(task)
        task.add_done_callback(self._reconnect_tasks.discard)

    async def _reconnect_later(self, instance_id: str, old_sock: Any) -> None:
        await asyncio.sleep(self.reconnect_delay)
        record = self.registry.get(instance_id)
        # removed or already replaced in the meantime
        if record is None or record.sock is not old_sock:
            return

        with bound_context(instance_id=instance_id):
            await old_sock.close()
            try:
                new_sock = await self.create_socket(instance_id, record.session_path)
            except Exception as e:
                logger.error("instance_reconnect_failed", error=str(e), retry_in=self.reconnect_delay)
                self._schedule_reconnect(instance_id, old_sock)
                return
            if self.registry.get(instance_id) is not record:
                # logged out or restarted while connecting
                await new_sock.close()
                return
            record.sock = new_sock
            record.touch()
            logger.info("instance_reconnected")

    @property
    def pending_reconnects(self) -> int:
        return len(self._reconnect_tasks)

    # ---------------------------------------------------------------- lifecycle
    async def start_instance(self, instance_id: str, user_id: int) -> InstanceRecord:
        path = self.session_path_for(instance_id)
        sock = await self.create_socket(instance_id, path)
        record = InstanceRecord(sock=sock, user_id=user_id, session_path=path)
        self.registry.set(instance_id, record)
        logger.info("instance_started", instance_id=instance_id, user_id=user_id)
        return record

    async def restart_instance(self, instance_id: str, user_id: int) -> InstanceRecord:
        old = self.registry.delete(instance_id)
        if old is not None and old.sock is not None:
            old.sock.ev.remove_all_listeners()
            await old.sock.close()
        return await self.start_instance(instance_id, user_id)

    async def send_text(self, instance_id: str, phone: str, text: str) -> Any:
        record = self.registry.get(instance_id)
        if record is None:
            raise NotFoundError("Instance not found", "INSTANCE_NOT_FOUND")
        if not record.is_connected:
            raise BadRequestError("Instance not connected to WhatsApp", "INSTANCE_NOT_CONNECTED")

        jid = jid_for(phone)

        async def _job() -> Any:
            return await record.sock.send_message(jid, {"text": text})

        result = await self.queue.add(_job)
        record.touch()
        logger.info("message_sent", instance_id=instance_id, to=jid)
        return result

    async def shutdown(self) -> None:
        tasks = list(self._reconnect_tasks)
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        for instance_id, record in self.registry.items():
            try:
                await record.sock.close()
            except Exception as e:
                logger.warning("socket_close_failed", instance_id=instance_id, error=str(e))
        self.registry.clear()

    # -------------------------------------------------------------------- debug
    def debug_snapshot(self) -> dict:
        return {
            "total": len(self.registry),
            "instances": {
                instance_id: {
                    "userId": record.user_id,
                    "hasSocket": record.sock is not None,
                    "hasQR": record.has_qr,
                    "isConnected": record.is_connected,
                    "lastUpdated": record.last_updated.isoformat(),
                    "sessionPath": str(record.session_path),
                }
                for instance_id, record in self.registry.items()
            },
        }


whatsapp_manager = WhatsAppManager()

__all__ = ["WhatsAppManager", "whatsapp_manager"]
