# path: src/monitoring/events.py
"""
Event schema for bot activity monitoring.

This module defines:
- EventType enum
- MonitoringEvent (structured activity records)

All events are JSON-serializable via `.to_dict()` and are intended
for use with monitoring.bus.EventBus and monitoring.logger.JsonFileLogger.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum, auto
from typing import Any, Dict, Optional


# ============================================================
# Event Types
# ============================================================

class EventType(Enum):
    """Typed monitoring events emitted by the bot core and its surfaces."""

    # Connection lifecycle
    CONNECTION_STATE = auto()
    RECONNECT_SCHEDULED = auto()
    RECONNECT_EXHAUSTED = auto()

    # Movement goals
    MOVEMENT_STARTED = auto()
    MOVEMENT_REACHED = auto()
    MOVEMENT_FAILED = auto()
    MOVEMENT_STOPPED = auto()
    MOVEMENT_STUCK = auto()

    # Area clearing
    AREA_STARTED = auto()
    AREA_FINISHED = auto()

    # Server-side authentication
    AUTH_SUCCESS = auto()
    AUTH_REQUIRED = auto()
    AUTH_TIMEOUT = auto()

    # Tool surface / chat
    TOOL_CALL = auto()
    CHAT = auto()

    # Generic log messages
    LOG = auto()


# ============================================================
# Monitoring Event Structure
# ============================================================

@dataclass
class MonitoringEvent:
    """
    Activity record emitted by the connection manager, movement,
    area clearing, authentication or the tool surface.

    All fields must be JSON-safe.
    """

    ts: float                   # UNIX timestamp (seconds)
    module: str                 # Source module string ("bot_core.nav", "agent.tools", etc.)
    event_type: EventType       # Enum describing the event class
    message: str                # Short human-readable description
    payload: Dict[str, Any]     # Structured data (goal, counts, reason)
    correlation_id: Optional[str] = None  # Groups events of one task or session

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe dict for loggers."""
        data = asdict(self)
        data["event_type"] = self.event_type.name  # store name, not enum
        return data
