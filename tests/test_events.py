from app.integrations.whatsapp.events import EventEmitter


async def test_sync_and_async_handlers_in_order():
    ev = EventEmitter()
    calls = []

    async def async_handler(payload):
        calls.append(("async", payload))

    ev.on("x", lambda p: calls.append(("sync", p)))
    ev.on("x", async_handler)

    await ev.emit("x", 1)
    assert calls == [("sync", 1), ("async", 1)]


async def test_failing_handler_does_not_stop_others():
    ev = EventEmitter()
    calls = []

    def broken(_):
        raise RuntimeError("handler bug")

    ev.on("x", broken)
    ev.on("x", calls.append)

    await ev.emit("x", "payload")
    assert calls == ["payload"]


async def test_off_and_remove_all():
    ev = EventEmitter()
    handler = ev.on("x", lambda _: None)
    ev.on("y", lambda _: None)

    ev.off("x", handler)
    assert ev.listener_count("x") == 0
    ev.remove_all_listeners()
    assert ev.listener_count("y") == 0
    # emitting without listeners is a no-op
    await ev.emit("y")
