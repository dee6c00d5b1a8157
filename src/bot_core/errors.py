# src/bot_core/errors.py
"""
Domain errors for the orchestration core.

Every failure the core surfaces is a BotCoreError carrying:
    - message: human-readable explanation (what str() returns)
    - code:    stable machine-readable identifier
    - details: JSON-safe context for logs and monitoring events

Per-cell (area clearing) and per-attempt (authentication) failures are
absorbed where they happen and never reach callers as exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass(eq=False)
class BotCoreError(RuntimeError):
    """
    Base class for domain-level errors raised by the core.

    Examples:
        - the link never reported spawn
        - a movement goal timed out
        - an operation was called before the bot was ready
    """

    message: str
    code: str = "bot_core_error"
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class ConnectionTimeout(BotCoreError):
    code: str = "connection_timeout"


@dataclass(eq=False)
class LinkError(BotCoreError):
    """Link-level failure: the world connection errored or could not be built."""

    code: str = "link_error"


@dataclass(eq=False)
class ReconnectBudgetExhausted(BotCoreError):
    """Fatal for auto-recovery, never for the process."""

    code: str = "reconnect_budget_exhausted"


@dataclass(eq=False)
class NotReady(BotCoreError):
    code: str = "not_ready"


@dataclass(eq=False)
class NotInitialized(BotCoreError):
    """A two-phase component was used before initialize()."""

    code: str = "not_initialized"


# ---------------------------------------------------------------------------
# Movement
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class MovementTimeout(BotCoreError):
    code: str = "movement_timeout"


@dataclass(eq=False)
class MovementUnreachable(BotCoreError):
    code: str = "movement_unreachable"


@dataclass(eq=False)
class TargetNotVisible(BotCoreError):
    code: str = "target_not_visible"


# ---------------------------------------------------------------------------
# Tasks / auth / tool surface
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class TaskAlreadyRunning(BotCoreError):
    code: str = "task_already_running"


@dataclass(eq=False)
class AuthTimeout(BotCoreError):
    code: str = "auth_timeout"


@dataclass(eq=False)
class ToolExecutionError(BotCoreError):
    """Wraps any failure surfaced through the tool surface."""

    code: str = "tool_execution_error"


def describe_error(error: BaseException) -> str:
    """One-line description used in logs and tool replies."""
    text = str(error)
    return text if text else type(error).__name__
