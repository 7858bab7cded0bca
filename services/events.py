"""In-process publish/subscribe hub for snapshot, reading and ticket updates."""

from __future__ import annotations

import logging
from functools import lru_cache
from threading import Lock
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

READING_NEW = "reading:new"
DASHBOARD_UPDATE = "dashboard:update"
TICKET_UPDATE = "ticket:update"

Handler = Callable[[str, Any], None]


class EventHub:
    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Handler]] = {}
        self._lock = Lock()

    def subscribe(self, topic: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._subscribers.setdefault(topic, [])
            if handler not in handlers:
                handlers.append(handler)

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._subscribers.get(topic)
            if handlers and handler in handlers:
                handlers.remove(handler)

    def publish(self, topic: str, message: Any) -> int:
        """Deliver ``message`` to every handler of ``topic``.

        A failing handler is logged and does not stop delivery to the others.
        Returns the number of handlers that completed.
        """
        with self._lock:
            handlers = list(self._subscribers.get(topic, ()))

        delivered = 0
        for handler in handlers:
            try:
                handler(topic, message)
            except Exception:  # noqa: BLE001 - subscribers must not break ingestion
                logger.exception("Event handler failed", extra={"reason": topic})
                continue
            delivered += 1
        return delivered


@lru_cache
def build_default_event_hub() -> EventHub:
    return EventHub()
