# JSON logger subscribing to EventBus
"""
Structured activity logging.

Provides:
- JsonFileLogger: subscribes to an EventBus and writes MonitoringEvents as JSONL.
- log_event: convenience helper for publishing MonitoringEvents via the EventBus.

Usage:

    bus = EventBus()
    activity = JsonFileLogger(Path("logs/bot-activity.jsonl"), bus)

    log_event(
        bus=bus,
        module="bot_core.mining",
        event_type=EventType.AREA_FINISHED,
        message="Area cleared",
        payload={"mined": 12, "skipped": 1},
    )
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional

from .bus import EventBus
from .events import EventType, MonitoringEvent

log = logging.getLogger(__name__)

DEFAULT_ACTIVITY_FILE = "bot-activity.jsonl"


# ============================================================
# JSONL File Logger
# ============================================================

class JsonFileLogger:
    """
    JSON-lines logger for MonitoringEvent instances.

    - Subscribes to an EventBus and writes one JSON object per line.
    - Ensures UTF-8 encoding.
    - Ensures parent directory exists.
    """

    def __init__(self, path: Path, bus: EventBus) -> None:
        self._path = path
        self._bus = bus
        path.parent.mkdir(parents=True, exist_ok=True)
        self._file = path.open("a", encoding="utf-8")
        bus.subscribe(self._on_event)

    @property
    def path(self) -> Path:
        return self._path

    def _on_event(self, event: MonitoringEvent) -> None:
        """Write one event as a JSON line."""
        line = json.dumps(event.to_dict(), ensure_ascii=False, default=str)
        try:
            self._file.write(line + "\n")
            self._file.flush()
        except OSError as exc:
            # Disk full or closed handle: activity logging must not stop the bot.
            log.warning("Dropping activity event %s: %s", event.event_type.name, exc)

    def close(self) -> None:
        """Unsubscribe and close the file handle. Call at graceful shutdown."""
        self._bus.unsubscribe(self._on_event)
        if not self._file.closed:
            self._file.close()


# ============================================================
# Convenience helper for emitting events
# ============================================================

def log_event(
    bus: Optional[EventBus],
    module: str,
    event_type: EventType,
    message: str,
    payload: Optional[Dict[str, Any]] = None,
    correlation_id: Optional[str] = None,
) -> None:
    """
    Create and publish a MonitoringEvent.

    Parameters
    ----------
    bus:
        EventBus to publish to. None is accepted so components built without
        monitoring can call this unconditionally.
    module:
        Source module ("bot_core.core", "bot_core.nav", "agent.tools").
    event_type:
        EventType member describing what kind of event this is.
    message:
        Short human-readable description.
    payload:
        Structured JSON-safe data attached to this event.
    correlation_id:
        Optional ID linking related events (one area task, one chat session).
    """
    if bus is None:
        return
    event = MonitoringEvent(
        ts=time.time(),
        module=module,
        event_type=event_type,
        message=message,
        payload=payload or {},
        correlation_id=correlation_id,
    )
    bus.publish(event)
