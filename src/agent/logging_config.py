# src/agent/logging_config.py
"""
Central logging configuration for the companion bot.

Call configure_logging() from your main entrypoint once, for example:

    from agent.logging_config import configure_logging
    configure_logging("DEBUG", to_file=True, directory="logs")

After that, module loggers (bot_core.*, agent.*, cli.*) are visible on
stdout and, when enabled, in logs/combined.log and logs/error.log.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
COMBINED_LOG = "combined.log"
ERROR_LOG = "error.log"


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    to_console: bool = True,
    to_file: bool = False,
    directory: Union[str, Path] = "logs",
) -> None:
    """
    Configure root logging if no handlers are attached yet.

    Args:
        level: default logging level (e.g., logging.INFO or "DEBUG")
        to_console: attach a stdout handler
        to_file: attach combined.log (all records) and error.log (ERROR+)
        directory: where the log files go
    """
    root = logging.getLogger()

    # Don't duplicate handlers if someone already configured logging.
    if root.handlers:
        return

    formatter = logging.Formatter(fmt=LOG_FORMAT)

    if to_console:
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    if to_file:
        log_dir = Path(directory)
        log_dir.mkdir(parents=True, exist_ok=True)

        combined = logging.FileHandler(log_dir / COMBINED_LOG, encoding="utf-8")
        combined.setFormatter(formatter)
        root.addHandler(combined)

        errors = logging.FileHandler(log_dir / ERROR_LOG, encoding="utf-8")
        errors.setLevel(logging.ERROR)
        errors.setFormatter(formatter)
        root.addHandler(errors)

    if not root.handlers:
        root.addHandler(logging.NullHandler())

    root.setLevel(_resolve_level(level))
