"""Subscriber registry for backend membership notifications."""

from __future__ import annotations

import logging
from typing import Any, Callable

from vmresolver.models import Backend

logger = logging.getLogger(__name__)

ADDED = "added"
REMOVED = "removed"

EVENT_KINDS = (ADDED, REMOVED)

AddedCallback = Callable[[str, Backend], Any]
RemovedCallback = Callable[[str], Any]


class EventSource:
    """Delivers ``added(key, backend)`` and ``removed(key)`` notifications.

    Callbacks run synchronously, in subscription order. A callback that
    raises is logged and skipped; the remaining subscribers still see the
    event.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callable[..., Any]]] = {
            kind: [] for kind in EVENT_KINDS
        }

    def subscribe(self, kind: str, callback: Callable[..., Any]) -> None:
        """Register *callback* for events of *kind* (``"added"`` or ``"removed"``)."""
        self._listeners(kind).append(callback)

    def unsubscribe(self, kind: str, callback: Callable[..., Any]) -> None:
        """Remove a previously registered *callback*; unknown callbacks are ignored."""
        listeners = self._listeners(kind)
        if callback in listeners:
            listeners.remove(callback)

    def on_added(self, callback: AddedCallback) -> None:
        self.subscribe(ADDED, callback)

    def on_removed(self, callback: RemovedCallback) -> None:
        self.subscribe(REMOVED, callback)

    def subscriber_count(self, kind: str) -> int:
        return len(self._listeners(kind))

    def emit_added(self, key: str, backend: Backend) -> None:
        self._emit(ADDED, key, backend)

    def emit_removed(self, key: str) -> None:
        self._emit(REMOVED, key)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _listeners(self, kind: str) -> list[Callable[..., Any]]:
        try:
            return self._subscribers[kind]
        except KeyError:
            raise ValueError(
                f"Unknown event kind '{kind}'. Choose from: {list(EVENT_KINDS)}"
            ) from None

    def _emit(self, kind: str, *args: Any) -> None:
        # Copy so a callback may unsubscribe itself mid-delivery.
        for callback in list(self._subscribers[kind]):
            try:
                callback(*args)
            except Exception:
                logger.exception("Error in %s subscriber %r", kind, callback)
