# movement goal variants understood by the path solver
# src/contracts/goals.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Union

from .types import Entity, Vec3


@dataclass(frozen=True, eq=False)
class GoalBlock:
    """Stand exactly on the given cell. Terminal."""
    x: int
    y: int
    z: int

    dynamic = False

    @classmethod
    def at(cls, target: Vec3) -> "GoalBlock":
        x, y, z = target.key()
        return cls(x, y, z)

    def target(self) -> Vec3:
        return Vec3(self.x, self.y, self.z)

    def describe(self) -> str:
        return f"goto ({self.x}, {self.y}, {self.z})"

    def to_payload(self) -> Dict[str, Any]:
        return {"kind": "block", "x": self.x, "y": self.y, "z": self.z}


@dataclass(frozen=True, eq=False)
class GoalNear:
    """Get within `range` blocks of the given cell. Terminal."""
    x: int
    y: int
    z: int
    range: float

    dynamic = False

    @classmethod
    def around(cls, target: Vec3, range_: float) -> "GoalNear":
        x, y, z = target.key()
        return cls(x, y, z, range_)

    def target(self) -> Vec3:
        return Vec3(self.x, self.y, self.z)

    def describe(self) -> str:
        return f"goNear ({self.x}, {self.y}, {self.z}) r={self.range:g}"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "kind": "near",
            "x": self.x,
            "y": self.y,
            "z": self.z,
            "range": self.range,
        }


@dataclass(frozen=True, eq=False)
class GoalFollow:
    """Keep within `distance` of a moving entity. Dynamic: never completes."""
    entity: Entity
    distance: float

    dynamic = True

    def target(self) -> Vec3:
        return self.entity.position

    def describe(self) -> str:
        who = self.entity.username or self.entity.name or f"#{self.entity.id}"
        return f"follow {who} at distance {self.distance:g}"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "kind": "follow",
            "entity_id": self.entity.id,
            "distance": self.distance,
        }


Goal = Union[GoalBlock, GoalNear, GoalFollow]


def goal_satisfied(goal: Goal, position: Vec3) -> bool:
    """True when `position` already satisfies a terminal goal."""
    if isinstance(goal, GoalBlock):
        return position.key() == (goal.x, goal.y, goal.z)
    if isinstance(goal, GoalNear):
        # Compare against the cell centre the way the solver does.
        centre = Vec3(goal.x + 0.5, goal.y, goal.z + 0.5)
        return position.distance_squared(centre) <= goal.range * goal.range
    return False
