"""
EventEmitter: fan-out of engine signals to registered listeners.

The engine reports two kinds of out-of-band news: the undo/redo availability
changed (``history``) and a flatten pruned invalid edges (``repair``). The
Socket.IO layer subscribes here and forwards both to connected canvases.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

EventListener = Callable[[str, Dict[str, Any]], None]


class EventEmitter:
    def __init__(self) -> None:
        self._listeners: List[EventListener] = []

    # ------------------------------------------------------------------
    # Listener registration
    # ------------------------------------------------------------------

    def on_event(self, callback: EventListener) -> None:
        """Register a callback that receives every emitted (event, payload)."""
        self._listeners.append(callback)

    def off_event(self, callback: EventListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    # ------------------------------------------------------------------
    # Emit
    # ------------------------------------------------------------------

    def fire(self, event: str, payload: Dict[str, Any]) -> None:
        """Stamp the payload with a millisecond timestamp and broadcast it."""
        if "ts" not in payload:
            payload["ts"] = int(time.time() * 1000)
        for cb in list(self._listeners):
            try:
                cb(event, payload)
            except Exception:
                logger.exception("Listener for '%s' failed", event)


# Singleton shared by the state module and the socket server.
global_events = EventEmitter()
