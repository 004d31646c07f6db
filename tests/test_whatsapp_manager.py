import asyncio
import json

import pytest

from app.core.exceptions import BadRequestError, NotFoundError


async def test_start_instance_registers_record(manager, socket_factory):
    record = await manager.start_instance("inst-1", user_id=5)

    assert manager.registry.get("inst-1") is record
    assert record.user_id == 5
    assert record.connection_status() == "disconnected"
    sock = socket_factory.latest("inst-1")
    assert sock.session_path == manager.sessions_dir / "inst-1"
    assert sock.auth_state is not None and sock.auth_state.creds is None


async def test_qr_then_open(manager):
    record = await manager.start_instance("inst-1", user_id=5)
    before = record.last_updated

    await record.sock.show_qr("qr-payload")
    assert record.qr_code == "qr-payload"
    assert record.connection_status() == "pending_qr"
    assert record.last_updated >= before

    await record.sock.open()
    assert record.is_connected
    assert record.qr_code is None
    assert record.connection_status() == "connected"

    await record.sock.reconnecting()
    assert not record.is_connected
    assert manager.registry.get("inst-1") is record
    assert manager.pending_reconnects == 0


async def test_creds_update_persisted(manager):
    record = await manager.start_instance("inst-1", user_id=5)
    await record.sock.update_creds({"me": {"id": "77011234567:1@s.whatsapp.net"}})

    stored = json.loads((record.session_path / "creds.json").read_text(encoding="utf-8"))
    assert stored["me"]["id"].startswith("77011234567")


async def test_saved_creds_are_loaded_on_next_start(manager, socket_factory):
    record = await manager.start_instance("inst-1", user_id=5)
    await record.sock.update_creds({"registered": True})

    await manager.restart_instance("inst-1", user_id=5)
    assert socket_factory.latest("inst-1").auth_state.creds == {"registered": True}


async def test_events_from_replaced_socket_are_ignored(manager):
    record = await manager.start_instance("inst-1", user_id=5)
    stale = record.sock
    # keep the stale socket's listeners alive to simulate a late event
    stale.ev.remove_all_listeners = lambda *a, **k: None
    stale.close = _noop_close

    new_record = await manager.restart_instance("inst-1", user_id=5)
    await stale.open()

    assert new_record.sock is not stale
    assert not new_record.is_connected


async def _noop_close():
    return None


async def test_reconnect_retries_until_socket_comes_back(manager, socket_factory):
    record = await manager.start_instance("inst-1", user_id=5)
    old = record.sock

    socket_factory.fail_with = RuntimeError("gateway unreachable")
    await old.drop()
    # let the first attempt fail and be rescheduled
    for _ in range(5):
        await asyncio.sleep(0)
    assert manager.registry.get("inst-1").sock is old

    socket_factory.fail_with = None
    while manager._reconnect_tasks:
        await asyncio.gather(*list(manager._reconnect_tasks))

    assert manager.registry.get("inst-1").sock is not old


async def test_reconnect_abandoned_when_instance_removed(manager, socket_factory):
    record = await manager.start_instance("inst-1", user_id=5)
    await record.sock.drop()
    manager.registry.delete("inst-1")

    while manager._reconnect_tasks:
        await asyncio.gather(*list(manager._reconnect_tasks))
    assert len(socket_factory.for_instance("inst-1")) == 1


async def test_send_text_goes_through_queue(manager):
    record = await manager.start_instance("inst-1", user_id=5)
    await record.sock.open()

    result = await manager.send_text("inst-1", "77011234567", "hello")
    assert result["to"] == "77011234567@s.whatsapp.net"
    assert record.sock.sent == [("77011234567@s.whatsapp.net", {"text": "hello"})]


async def test_send_text_errors(manager):
    with pytest.raises(NotFoundError):
        await manager.send_text("missing", "7701", "x")

    await manager.start_instance("inst-1", user_id=5)
    with pytest.raises(BadRequestError):
        await manager.send_text("inst-1", "7701", "x")


async def test_debug_snapshot(manager):
    record = await manager.start_instance("inst-1", user_id=5)
    await record.sock.show_qr()

    snap = manager.debug_snapshot()
    assert snap["total"] == 1
    entry = snap["instances"]["inst-1"]
    assert entry == {
        "userId": 5,
        "hasSocket": True,
        "hasQR": True,
        "isConnected": False,
        "lastUpdated": record.last_updated.isoformat(),
        "sessionPath": str(manager.sessions_dir / "inst-1"),
    }


async def test_shutdown_closes_everything(manager):
    first = await manager.start_instance("a", user_id=1)
    second = await manager.start_instance("b", user_id=2)

    await manager.shutdown()
    assert len(manager.registry) == 0
    assert first.sock.closed and second.sock.closed
