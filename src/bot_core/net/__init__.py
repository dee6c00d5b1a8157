# bot_core.net package
# src/bot_core/net/__init__.py
"""
Network layer for the companion bot.

This package provides:
- EventEmitter: listener registry shared by link implementations
- BridgeWorldLink / BridgePathSolver: JSON-lines client for the game sidecar
- Factory helpers wired to the resolved BotConfig.
"""

from __future__ import annotations

from .bridge import BridgePathSolver, BridgeWorldLink
from .emitter import EventEmitter
from .link import LinkFactory, create_world_link_for_env, link_factory_for

__all__ = [
    "BridgePathSolver",
    "BridgeWorldLink",
    "EventEmitter",
    "LinkFactory",
    "create_world_link_for_env",
    "link_factory_for",
]
