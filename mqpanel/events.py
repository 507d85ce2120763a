"""Observer registry used for credential and availability notifications."""
from __future__ import annotations

import logging
from typing import Any, Callable

log = logging.getLogger(__name__)


class ListenerRegistry:
    """Ordered set of callbacks.

    ``add`` returns an unsubscribe handle.  A failing listener is logged and
    never stops delivery to the others.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: list[Callable[..., Any]] = []

    def add(self, listener: Callable[..., Any]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, *args: Any) -> None:
        # Copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener(*args)
            except Exception:
                log.exception("Listener for %s failed", self.name)

    def __len__(self) -> int:
        return len(self._listeners)
