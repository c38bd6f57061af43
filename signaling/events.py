"""
signaling/events.py — Per-instance event emitter

Connections, sessions and plugins each own one emitter; there is no global
bus. Handlers are plain callables invoked synchronously, in subscription
order, from emit().
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable

from observability.logger import get_logger

log = get_logger(__name__)

Handler = Callable[..., Any]


class EventEmitter:
    """
    Named-event observer list.

    A failing handler is logged with its traceback and the remaining handlers
    still run, so one misbehaving subscriber cannot stall message dispatch.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler) -> Handler:
        """Subscribe `handler` to `event`. Returns the handler for later off()."""
        self._handlers[event].append(handler)
        return handler

    def once(self, event: str, handler: Handler) -> Handler:
        """Subscribe for a single emission. Returns the wrapper to pass to off()."""

        def _once(*args: Any, **kwargs: Any) -> Any:
            self.off(event, _once)
            return handler(*args, **kwargs)

        return self.on(event, _once)

    def off(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def listeners(self, event: str) -> tuple[Handler, ...]:
        return tuple(self._handlers.get(event, ()))

    def emit(self, event: str, *args: Any) -> bool:
        """Call every handler of `event`. Returns True if there was any."""
        handlers = self.listeners(event)
        for handler in handlers:
            try:
                handler(*args)
            except Exception:  # noqa: BLE001
                log.exception("events.handler_failed", event_name=event, handler=repr(handler))
        return bool(handlers)
