from __future__ import annotations

import enum
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

Handler = Callable[[], None]


class LifecycleEvent(str, enum.Enum):
    LOGIN = "login"
    LOGOUT = "logout"


class LifecycleSignals:
    """Application-wide login/logout notifications.

    Handlers run synchronously in registration order and must not block;
    anything slow (a network fetch) should be scheduled by the handler.
    """

    def __init__(self) -> None:
        self._handlers: dict[LifecycleEvent, list[Handler]] = {
            event: [] for event in LifecycleEvent
        }

    def connect(self, event: LifecycleEvent, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``event``; returns a callable that unregisters it."""
        self._handlers[event].append(handler)

        def disconnect() -> None:
            try:
                self._handlers[event].remove(handler)
            except ValueError:
                pass

        return disconnect

    def handler_count(self, event: LifecycleEvent) -> int:
        return len(self._handlers[event])

    def emit(self, event: LifecycleEvent) -> None:
        handlers = list(self._handlers[event])
        logger.info("Lifecycle signal %s -> %d handler(s)", event.value, len(handlers))
        for handler in handlers:
            try:
                handler()
            except Exception:
                logger.exception("Handler for %s signal failed", event.value)

    def login(self) -> None:
        self.emit(LifecycleEvent.LOGIN)

    def logout(self) -> None:
        self.emit(LifecycleEvent.LOGOUT)
