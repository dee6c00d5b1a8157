# WorldLink and PathSolver interface definitions
# src/contracts/world.py

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from .goals import Goal
from .types import Block, BlockQuery, Entity, Item, MovementRules, Player, Vec3

# Listener signature for world-link events. Arguments depend on the event:
#   login()                      spawn()               respawn()
#   health()                     death()               end(reason)
#   message(text)                chat(username, text)  whisper(username, text)
#   kicked(reason)               error(exc)
EventListener = Callable[..., None]

LINK_EVENTS = (
    "login",
    "spawn",
    "respawn",
    "health",
    "death",
    "message",
    "chat",
    "whisper",
    "kicked",
    "end",
    "error",
)


class PathSolver(Protocol):
    """Goal search and execution, owned by an external collaborator.

    Setting a different goal (or None) while goto() is pending makes that
    goto() raise. Re-setting the identical goal object replans without
    aborting the pending goto().
    """

    def configure(self, rules: MovementRules) -> None:
        """Apply movement permissions (sprinting, towering, digging)."""
        ...

    def set_goal(self, goal: Optional[Goal], dynamic: bool = False) -> None:
        """Install a goal without waiting for it; None clears the current goal."""
        ...

    async def goto(self, goal: Goal) -> None:
        """Pursue a terminal goal until reached; raise if it cannot be."""
        ...

    def is_moving(self) -> bool:
        """True while the solver is executing a path."""
        ...


class WorldLink(Protocol):
    """Live connection to the simulated world.

    This is the Mineflayer-like "body" handle: mirrored entity state is
    exposed as plain attributes, commands are methods. Queries that may need
    a round trip to the world are coroutines.
    """

    username: str
    entity: Optional[Entity]
    players: Mapping[str, Player]
    health: float
    food: float
    dimension: str
    game_mode: str
    experience: Dict[str, float]
    held_item: Optional[Item]

    # Populated once the world reports spawn.
    pathfinder: Optional[PathSolver]

    # -- events -----------------------------------------------------------

    def on(self, event: str, listener: EventListener) -> None:
        ...

    def once(self, event: str, listener: EventListener) -> None:
        ...

    def off(self, event: str, listener: EventListener) -> None:
        ...

    def remove_all_listeners(self) -> None:
        ...

    # -- lifecycle --------------------------------------------------------

    def start(self) -> None:
        """Begin connecting; the outcome arrives as spawn / error / end events."""
        ...

    def quit(self, reason: str = "") -> None:
        """Leave the world; an end event follows."""
        ...

    # -- commands ---------------------------------------------------------

    def chat(self, text: str) -> None:
        ...

    def whisper(self, username: str, text: str) -> None:
        ...

    async def look_at(self, point: Vec3, force: bool = False) -> None:
        ...

    async def dig(self, block: Block, force_look: bool = True) -> None:
        ...

    def stop_digging(self) -> None:
        ...

    async def equip(self, item: Item, destination: str = "hand") -> None:
        ...

    def attack(self, entity: Entity) -> None:
        ...

    async def consume(self) -> None:
        ...

    # -- queries ----------------------------------------------------------

    async def find_blocks(self, query: BlockQuery) -> List[Vec3]:
        ...

    async def block_at(self, point: Vec3) -> Optional[Block]:
        ...

    async def can_dig_block(self, block: Block) -> bool:
        ...

    async def best_harvest_tool(self, block: Block) -> Optional[Item]:
        ...

    def nearest_entity(self, predicate: Callable[[Entity], bool]) -> Optional[Entity]:
        ...

    def inventory_items(self) -> List[Item]:
        ...


def describe_reason(reason: Any) -> str:
    """Render a kick/end reason (string or chat component) as text."""
    if reason is None:
        return "unknown reason"
    if isinstance(reason, str):
        return reason
    if isinstance(reason, Mapping):
        text = reason.get("text")
        if isinstance(text, str) and text:
            return text
    return repr(reason)
