# src/env/__init__.py
"""
Configuration loading for the companion bot.

Exports:
    - load_environment: resolve config/bot.yaml plus environment overrides
    - BotConfig: top-level configuration dataclass
"""

from __future__ import annotations

from .loader import build_config, load_environment
from .schema import BotConfig

__all__ = [
    "BotConfig",
    "build_config",
    "load_environment",
]
