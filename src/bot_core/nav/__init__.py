# src/bot_core/nav/__init__.py
"""
Navigation subsystem: movement goals on top of an external path solver.

Provides:
- GoalExecutor: one goal at a time, one terminal transition per attempt
- StuckDetector: low-displacement sampling while a goal is pursued
- MovementController: two-phase movement state machine with status snapshots
"""

from __future__ import annotations

from .controller import DEFAULT_FOLLOW_DISTANCE, MovementController, MovementStatus
from .executor import GoalExecutor, TransitionFn
from .stuck import StuckDetector

__all__ = [
    "DEFAULT_FOLLOW_DISTANCE",
    "GoalExecutor",
    "MovementController",
    "MovementStatus",
    "StuckDetector",
    "TransitionFn",
]
