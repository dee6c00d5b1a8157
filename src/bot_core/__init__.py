# bot_core package
# src/bot_core/__init__.py
"""
Orchestration core of the companion bot.

Exports:
    - BotCoreImpl: connection lifecycle manager and operation facade
    - BotCoreError: base of the domain error taxonomy
    - CancellationToken: shared cooperative stop counter
"""

from __future__ import annotations

from .cancellation import CancellationToken
from .core import BotCoreImpl, BotState, ConnectionState, ReconnectPolicy
from .errors import BotCoreError
from .mining import AreaClearResult

__all__ = [
    "AreaClearResult",
    "BotCoreError",
    "BotCoreImpl",
    "BotState",
    "CancellationToken",
    "ConnectionState",
    "ReconnectPolicy",
]
