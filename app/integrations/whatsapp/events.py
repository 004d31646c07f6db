"""Minimal async event emitter used by WhatsApp sockets."""

from __future__ import annotations

import inspect
from collections import defaultdict
from typing import Any, Awaitable, Callable, Optional, Union

from app.core.logging import get_logger

logger = get_logger(__name__)

Handler = Callable[[Any], Union[None, Awaitable[None]]]


class EventEmitter:
    """
    Named events with sync or async handlers.

    emit() awaits coroutine handlers in registration order. A failing handler is
    logged and does not stop the remaining handlers.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler) -> Handler:
        self._handlers[event].append(handler)
        return handler

    def off(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def remove_all_listeners(self, event: Optional[str] = None) -> None:
        if event is None:
            self._handlers.clear()
        else:
            self._handlers.pop(event, None)

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))

    async def emit(self, event: str, payload: Any = None) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "event_handler_failed", event_name=event, handler=getattr(handler, "__name__", "?")
                )
