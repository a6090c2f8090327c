"""Fire-and-forget broadcast of progress and terminal events."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from .models import Progress

logger = logging.getLogger("clipart_crawler")

PROGRESS = "progress"
COMPLETE = "complete"
ERROR = "error"

Listener = Callable[[str, Dict[str, Any]], None]


class EventChannel:
    """Broadcast channel with no acknowledgement and no guaranteed listener."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event_type, payload)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Listener failed while handling %s event", event_type)


class ProgressTracker:
    """Emits progress events, never letting ``current`` move backwards."""

    def __init__(self, channel: EventChannel, total: int) -> None:
        self.channel = channel
        self.total = total
        self.current = 0

    def report(self, status: str, current: int, total: int | None = None) -> Progress:
        if total is not None:
            self.total = total
        self.current = min(max(self.current, current), self.total)
        progress = Progress(status=status, current=self.current, total=self.total)
        self.channel.emit(
            PROGRESS,
            {"status": progress.status, "current": progress.current, "total": progress.total},
        )
        return progress

    def finish(self, status: str = "Complete!") -> Progress:
        return self.report(status, self.total)
