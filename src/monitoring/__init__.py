# src/monitoring/__init__.py
"""
Activity monitoring: structured events, an in-process bus and a JSONL sink.
"""

from __future__ import annotations

from .bus import EventBus
from .events import EventType, MonitoringEvent
from .logger import DEFAULT_ACTIVITY_FILE, JsonFileLogger, log_event

__all__ = [
    "DEFAULT_ACTIVITY_FILE",
    "EventBus",
    "EventType",
    "JsonFileLogger",
    "MonitoringEvent",
    "log_event",
]
