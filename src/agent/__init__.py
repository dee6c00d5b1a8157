# src/agent/__init__.py
"""
Command layer on top of the orchestration core.

Exports:
    - ToolSurface: the six bot tools as text-returning calls
    - ToolCallingAgent: chat-completion loop that drives ToolSurface
    - InGameControl: chat mention / whisper bridge
    - configure_logging: process-wide logging setup

The llama.cpp backend lives in agent.backend_llamacpp and is imported only
when the `llm` extra is installed.
"""

from __future__ import annotations

from .in_game import InGameControl
from .llm_agent import ChatBackend, ToolCallingAgent
from .logging_config import configure_logging
from .tools import TOOL_DEFINITIONS, ToolSurface

__all__ = [
    "ChatBackend",
    "InGameControl",
    "TOOL_DEFINITIONS",
    "ToolCallingAgent",
    "ToolSurface",
    "configure_logging",
]
