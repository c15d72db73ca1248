"""Single-slot event dispatcher.

Decouples what arrived from the network from who currently wants to handle
it. Each EventKind owns exactly one handler slot; registering a handler
replaces whatever was there. The slot is read when an event is dispatched,
never when the handler is registered, so a UI that re-registers its
callbacks on every render never has an outdated callback fire.

Usage:
    dispatcher = EventDispatcher()
    dispatcher.set_handler(EventKind.TASK_CREATED, on_created)

    # Later, on re-render
    dispatcher.set_handler(EventKind.TASK_CREATED, on_created_v2)

    await dispatcher.dispatch(event)  # only on_created_v2 runs
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from .events import Event, EventHandler, EventKind, error_message


logger = logging.getLogger(__name__)


ErrorSink = Callable[[str], None]


class EventDispatcher:
    """Routes push events to the currently registered handler per kind.

    Handler failures are logged and contained here; they never propagate to
    the connection that delivered the event.
    """

    def __init__(self, error_sink: Optional[ErrorSink] = None):
        """Initialize the dispatcher.

        Args:
            error_sink: Called with the message of every server ``error``
                event. The coordinator uses it to record ``last_error``.
        """
        self._handlers: Dict[EventKind, Optional[EventHandler]] = {
            kind: None for kind in EventKind
        }
        self._error_sink = error_sink

    def set_handler(self, kind: EventKind, handler: Optional[EventHandler]) -> None:
        """Replace the handler for an event kind.

        Args:
            kind: The event kind.
            handler: New handler, or None to clear the slot.
        """
        self._handlers[EventKind(kind)] = handler

    def clear_handler(self, kind: EventKind) -> None:
        self._handlers[EventKind(kind)] = None

    def clear_all(self) -> None:
        for kind in EventKind:
            self._handlers[kind] = None

    def get_handler(self, kind: EventKind) -> Optional[EventHandler]:
        return self._handlers[EventKind(kind)]

    def has_handler(self, kind: EventKind) -> bool:
        return self._handlers[EventKind(kind)] is not None

    def set_error_sink(self, sink: Optional[ErrorSink]) -> None:
        self._error_sink = sink

    async def dispatch(self, event: Event) -> bool:
        """Invoke the current handler for the event's kind.

        Coroutine handlers are awaited inline so that events are fully
        handled in arrival order.

        Args:
            event: The parsed push event.

        Returns:
            True if a handler ran to completion, False if no handler was
            registered or the handler raised.
        """
        handler = self._handlers.get(event.kind)
        if handler is None:
            logger.debug(f"No handler registered for {event.kind.value}")
            return False

        try:
            result = handler(event)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception(f"Handler for {event.kind.value} raised")
            return False
        return True

    def dispatch_error(self, payload: Any) -> str:
        """Handle a server ``error`` event.

        Protocol errors are kept apart from push events: they are logged and
        forwarded to the error sink only.

        Returns:
            The extracted error message.
        """
        message = error_message(payload)
        logger.warning(f"Server reported error: {message}")
        if self._error_sink is not None:
            try:
                self._error_sink(message)
            except Exception:
                logger.exception("Error sink raised")
        return message
