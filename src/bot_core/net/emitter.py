# src/bot_core/net/emitter.py
"""
Minimal synchronous event emitter shared by world-link implementations.

Listeners run in registration order on the caller's thread (the event
loop). A failing listener is logged and does not stop the others.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from contracts import EventListener

log = logging.getLogger(__name__)


class EventEmitter:
    def __init__(self) -> None:
        # event -> [(listener, once)]
        self._listeners: Dict[str, List[Tuple[EventListener, bool]]] = {}

    def on(self, event: str, listener: EventListener) -> None:
        self._listeners.setdefault(event, []).append((listener, False))

    def once(self, event: str, listener: EventListener) -> None:
        self._listeners.setdefault(event, []).append((listener, True))

    def off(self, event: str, listener: EventListener) -> None:
        """Remove the first registration of `listener` for `event`."""
        entries = self._listeners.get(event)
        if not entries:
            return
        for index, (fn, _once) in enumerate(entries):
            if fn == listener:
                del entries[index]
                return

    def remove_all_listeners(self, event: Optional[str] = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> bool:
        """Call every listener for `event`. Returns False if there were none."""
        entries = self._listeners.get(event)
        if not entries:
            return False

        snapshot = list(entries)
        # Drop once-listeners before calling so re-entrant emits skip them.
        self._listeners[event] = [entry for entry in entries if not entry[1]]

        for fn, _once in snapshot:
            try:
                fn(*args)
            except Exception:
                log.exception("Listener for %r failed", event)
        return True
