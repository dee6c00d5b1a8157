# world-link factory
# src/bot_core/net/link.py
"""
Factory for the concrete WorldLink, wired to the resolved BotConfig.
"""

from __future__ import annotations

from typing import Callable, Optional

from contracts import WorldLink
from env.loader import load_environment
from env.schema import BotConfig

from .bridge import BridgeWorldLink

LinkFactory = Callable[[], WorldLink]


def create_world_link_for_env(config: Optional[BotConfig] = None) -> WorldLink:
    """
    Construct a WorldLink for the given configuration.

    Loads config/bot.yaml (plus environment overrides) when no config is
    passed. The link is not started; BotCoreImpl.connect() does that.
    """
    cfg = config if config is not None else load_environment()
    return BridgeWorldLink(cfg.bridge, cfg.minecraft)


def link_factory_for(config: BotConfig) -> LinkFactory:
    """Bind a config so BotCoreImpl can build a fresh link per connect()."""
    return lambda: create_world_link_for_env(config)
