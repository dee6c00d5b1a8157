# src/contracts/__init__.py

from __future__ import annotations

"""
Collaborator contracts for the companion bot.

This package re-exports the *interfaces and value types* shared across the
codebase:
  - WorldLink / PathSolver protocols (external collaborators)
  - Movement goal variants
  - Geometry and world object value types

No behaviour lives here; concrete links are in bot_core.net and the
in-memory fakes in bot_core.testing.
"""

from .goals import Goal, GoalBlock, GoalFollow, GoalNear, goal_satisfied
from .types import (
    AreaBounds,
    Block,
    BlockQuery,
    CellKey,
    Entity,
    Item,
    MovementRules,
    Player,
    Vec3,
)
from .world import LINK_EVENTS, EventListener, PathSolver, WorldLink, describe_reason

__all__ = [
    # Goals
    "Goal",
    "GoalBlock",
    "GoalFollow",
    "GoalNear",
    "goal_satisfied",
    # Value types
    "AreaBounds",
    "Block",
    "BlockQuery",
    "CellKey",
    "Entity",
    "Item",
    "MovementRules",
    "Player",
    "Vec3",
    # Collaborators
    "LINK_EVENTS",
    "EventListener",
    "PathSolver",
    "WorldLink",
    "describe_reason",
]
