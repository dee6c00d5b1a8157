# core shared value types: Vec3, Block, Item, Entity, Player, BlockQuery
# src/contracts/types.py

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

# Integer cell key (floored x, y, z)
CellKey = Tuple[int, int, int]


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Vec3:
    """Immutable 3D point in world coordinates."""
    x: float
    y: float
    z: float

    def offset(self, dx: float, dy: float, dz: float) -> "Vec3":
        return Vec3(self.x + dx, self.y + dy, self.z + dz)

    def floored(self) -> "Vec3":
        return Vec3(math.floor(self.x), math.floor(self.y), math.floor(self.z))

    def key(self) -> CellKey:
        """Integer cell this point falls into."""
        return (math.floor(self.x), math.floor(self.y), math.floor(self.z))

    def distance_squared(self, other: "Vec3") -> float:
        dx = self.x - other.x
        dy = self.y - other.y
        dz = self.z - other.z
        return (dx * dx) + (dy * dy) + (dz * dz)

    def distance_to(self, other: "Vec3") -> float:
        return math.sqrt(self.distance_squared(other))

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Vec3":
        return cls(float(data["x"]), float(data["y"]), float(data["z"]))

    def __str__(self) -> str:
        x, y, z = self.key()
        return f"({x}, {y}, {z})"


@dataclass(frozen=True)
class AreaBounds:
    """
    Inclusive integer cuboid spanned by two opposite corners.

    Built with from_corners(); construction is order-independent, so
    from_corners(a, b) == from_corners(b, a).
    """
    min_x: int
    max_x: int
    min_y: int
    max_y: int
    min_z: int
    max_z: int

    @classmethod
    def from_corners(cls, a: Vec3, b: Vec3) -> "AreaBounds":
        ax, ay, az = a.key()
        bx, by, bz = b.key()
        return cls(
            min_x=min(ax, bx),
            max_x=max(ax, bx),
            min_y=min(ay, by),
            max_y=max(ay, by),
            min_z=min(az, bz),
            max_z=max(az, bz),
        )

    def contains(self, point: Optional[Vec3]) -> bool:
        if point is None:
            return False
        x, y, z = point.key()
        return (
            self.min_x <= x <= self.max_x
            and self.min_y <= y <= self.max_y
            and self.min_z <= z <= self.max_z
        )

    def size(self) -> Tuple[int, int, int]:
        return (
            self.max_x - self.min_x + 1,
            self.max_y - self.min_y + 1,
            self.max_z - self.min_z + 1,
        )

    def diagonal(self) -> float:
        dx, dy, dz = self.size()
        return math.sqrt((dx * dx) + (dy * dy) + (dz * dz))

    def hover_point(self) -> Vec3:
        """Horizontal centre of the box, one cell above its top."""
        return Vec3(
            (self.min_x + self.max_x) // 2,
            self.max_y + 1,
            (self.min_z + self.max_z) // 2,
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "min_x": self.min_x,
            "max_x": self.max_x,
            "min_y": self.min_y,
            "max_y": self.max_y,
            "min_z": self.min_z,
            "max_z": self.max_z,
        }

    def __str__(self) -> str:
        return (
            f"({self.min_x}, {self.min_y}, {self.min_z}) -> "
            f"({self.max_x}, {self.max_y}, {self.max_z})"
        )


# ---------------------------------------------------------------------------
# World objects
# ---------------------------------------------------------------------------

@dataclass
class Block:
    """A block as reported by the world-link."""
    name: str
    position: Optional[Vec3]
    diggable: bool = True
    bounding_box: str = "block"             # "empty" for air-like blocks
    material: Optional[str] = None          # e.g. "mineable/pickaxe"


@dataclass
class Item:
    """Inventory item stack."""
    name: str
    slot: int
    count: int = 1


@dataclass
class Entity:
    """Tracked entity (mob, player, dropped item, ...)."""
    id: int
    name: Optional[str]
    kind: str                               # "player", "mob", "object", ...
    position: Vec3
    height: float = 1.8
    username: Optional[str] = None


@dataclass
class Player:
    """Tab-list entry; entity is None when the player is out of view."""
    username: str
    entity: Optional[Entity] = None


@dataclass(frozen=True)
class BlockQuery:
    """
    Filter for nearby-block searches.

    Results are block positions ordered nearest-first from `point`,
    at most `count` of them, within `max_distance`. When `bounds` is set
    only cells inside it are returned; cells in `exclude` are skipped.
    """
    point: Vec3
    max_distance: float
    count: int
    bounds: Optional[AreaBounds] = None
    exclude: FrozenSet[CellKey] = field(default_factory=frozenset)
    diggable_only: bool = True

    def to_payload(self) -> Dict[str, Any]:
        return {
            "point": self.point.to_dict(),
            "max_distance": self.max_distance,
            "count": self.count,
            "bounds": self.bounds.to_dict() if self.bounds else None,
            "exclude": [list(k) for k in sorted(self.exclude)],
            "diggable_only": self.diggable_only,
        }


@dataclass(frozen=True)
class MovementRules:
    """Movement permissions handed to the path solver."""
    allow_sprinting: bool = True
    allow_1by1_towers: bool = True
    can_dig: bool = True
