# JSON-lines bridge to the game-client sidecar
# src/bot_core/net/bridge.py
"""
World-link over a JSON-lines TCP bridge.

The sidecar process hosts the actual game client and path solver. This
module talks to it with one UTF-8 JSON object per line:

  sidecar -> bot (events):
      {"type": "<event>", "payload": { ... }}

  bot -> sidecar (requests, answered):
      {"id": 7, "op": "<operation>", "args": { ... }}
  sidecar -> bot (responses):
      {"id": 7, "ok": true, "result": ...}
      {"id": 7, "ok": false, "error": {"code": "...", "message": "..."}}

  bot -> sidecar (commands, fire-and-forget):
      {"op": "<operation>", "args": { ... }}

Entity, health, player and inventory state is mirrored from events so the
synchronous parts of the WorldLink contract never block.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from contracts import (
    Block,
    BlockQuery,
    Entity,
    Goal,
    Item,
    MovementRules,
    Player,
    Vec3,
    describe_reason,
)
from env.schema import BridgeConfig, MinecraftConfig

from ..errors import BotCoreError, LinkError, MovementUnreachable
from .emitter import EventEmitter

log = logging.getLogger(__name__)

# Sidecar error code for "the solver found no path".
NO_PATH = "no_path"


# ---------------------------------------------------------------------------
# Payload decoding
# ---------------------------------------------------------------------------


def entity_from_payload(data: Mapping[str, Any]) -> Entity:
    return Entity(
        id=int(data["id"]),
        name=data.get("name"),
        kind=str(data.get("kind") or data.get("type") or "unknown"),
        position=Vec3.from_mapping(data["position"]),
        height=float(data.get("height", 1.8)),
        username=data.get("username"),
    )


def block_from_payload(data: Mapping[str, Any]) -> Block:
    position = data.get("position")
    return Block(
        name=str(data["name"]),
        position=Vec3.from_mapping(position) if position else None,
        diggable=bool(data.get("diggable", True)),
        bounding_box=str(data.get("bounding_box", "block")),
        material=data.get("material"),
    )


def item_from_payload(data: Mapping[str, Any]) -> Item:
    return Item(
        name=str(data["name"]),
        slot=int(data["slot"]),
        count=int(data.get("count", 1)),
    )


def _item_payload(item: Item) -> Dict[str, Any]:
    return {"name": item.name, "slot": item.slot, "count": item.count}


def _block_payload(block: Block) -> Dict[str, Any]:
    return {
        "name": block.name,
        "position": block.position.to_dict() if block.position else None,
    }


# ---------------------------------------------------------------------------
# Path solver over the bridge
# ---------------------------------------------------------------------------


class BridgePathSolver:
    """PathSolver implementation forwarding to the sidecar's solver."""

    def __init__(self, link: "BridgeWorldLink") -> None:
        self._link = link
        self._moving = False

    def configure(self, rules: MovementRules) -> None:
        self._link.send_command(
            "pathfinder.configure",
            {
                "allow_sprinting": rules.allow_sprinting,
                "allow_1by1_towers": rules.allow_1by1_towers,
                "can_dig": rules.can_dig,
            },
        )

    def set_goal(self, goal: Optional[Goal], dynamic: bool = False) -> None:
        self._link.send_command(
            "pathfinder.set_goal",
            {"goal": goal.to_payload() if goal is not None else None, "dynamic": dynamic},
        )

    async def goto(self, goal: Goal) -> None:
        # No request timeout: callers race goto() against their own deadline.
        await self._link.request("pathfinder.goto", {"goal": goal.to_payload()}, timeout_s=None)

    def is_moving(self) -> bool:
        return self._moving

    def _set_moving(self, moving: bool) -> None:
        self._moving = moving


# ---------------------------------------------------------------------------
# World link
# ---------------------------------------------------------------------------


class BridgeWorldLink(EventEmitter):
    """
    WorldLink backed by the JSON-lines bridge.

    start() connects in the background; the outcome is reported through the
    usual link events (spawn / error / end).
    """

    def __init__(self, bridge: BridgeConfig, minecraft: MinecraftConfig) -> None:
        super().__init__()
        self._bridge = bridge
        self._minecraft = minecraft

        self.username: str = minecraft.username
        self.entity: Optional[Entity] = None
        self.players: Dict[str, Player] = {}
        self.health: float = 20.0
        self.food: float = 20.0
        self.dimension: str = "unknown"
        self.game_mode: str = "unknown"
        self.experience: Dict[str, float] = {"level": 0, "points": 0, "progress": 0.0}
        self.held_item: Optional[Item] = None
        self.pathfinder: Optional[BridgePathSolver] = None

        self._entities: Dict[int, Entity] = {}
        self._inventory: List[Item] = []

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._task: Optional[asyncio.Task] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._ids = itertools.count(1)
        self._ended = False

        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            "login": self._on_login,
            "spawn": self._on_spawn,
            "respawn": self._on_respawn,
            "health": self._on_health,
            "death": lambda payload: self.emit("death"),
            "experience": self._on_experience,
            "game": self._on_game,
            "position": self._on_position,
            "entities": self._on_entities,
            "players": self._on_players,
            "inventory": self._on_inventory,
            "path_state": self._on_path_state,
            "message": lambda payload: self.emit("message", str(payload.get("text", ""))),
            "chat": lambda payload: self.emit(
                "chat", str(payload.get("username", "")), str(payload.get("message", ""))
            ),
            "whisper": lambda payload: self.emit(
                "whisper", str(payload.get("username", "")), str(payload.get("message", ""))
            ),
            "kicked": lambda payload: self.emit("kicked", payload.get("reason")),
            "end": lambda payload: self._finish(payload.get("reason")),
            "error": lambda payload: self.emit(
                "error", LinkError(str(payload.get("message", "bridge error")), details=payload)
            ),
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._task is not None:
            return
        self._ended = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    def quit(self, reason: str = "") -> None:
        if self._writer is None:
            return
        try:
            self.send_command("quit", {"reason": reason})
        except LinkError as exc:
            log.debug("Could not send quit: %s", exc)
        self._close_transport()

    async def _run(self) -> None:
        host, port = self._bridge.host, self._bridge.port
        log.info("BridgeWorldLink connecting to %s:%d", host, port)
        try:
            self._reader, self._writer = await asyncio.open_connection(host, port)
        except OSError as exc:
            self._task = None
            self.emit("error", LinkError(f"Bridge connection failed: {exc}", details={"host": host, "port": port}))
            return

        mc = self._minecraft
        self.send_command(
            "connect",
            {
                "host": mc.host,
                "port": mc.port,
                "username": mc.username,
                "version": mc.version,
                "auth": mc.auth,
            },
        )

        try:
            while True:
                line = await self._reader.readline()
                if not line:
                    break
                line = line.strip()
                if line:
                    self._handle_raw_line(line)
        except (OSError, asyncio.IncompleteReadError) as exc:
            log.warning("BridgeWorldLink read failed: %s", exc)
        finally:
            self._task = None
            self._close_transport()
            self._fail_pending(LinkError("Bridge connection closed"))
            self._finish("connection closed")

    def _close_transport(self) -> None:
        writer = self._writer
        self._writer = None
        self._reader = None
        if writer is not None:
            writer.close()

    def _fail_pending(self, error: BaseException) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    def _finish(self, reason: Any) -> None:
        """Emit `end` at most once per connection."""
        if self._ended:
            return
        self._ended = True
        self.entity = None
        self.pathfinder = None
        self.emit("end", describe_reason(reason))

    # ------------------------------------------------------------------
    # Wire helpers
    # ------------------------------------------------------------------

    def send_command(self, op: str, args: Mapping[str, Any]) -> None:
        """Fire-and-forget command."""
        self._write({"op": op, "args": dict(args)})

    async def request(
        self,
        op: str,
        args: Mapping[str, Any],
        timeout_s: Optional[float] = -1.0,
    ) -> Any:
        """
        Send a request and await its response.

        timeout_s < 0 uses the configured request timeout; None waits forever.
        """
        if timeout_s is not None and timeout_s < 0:
            timeout_s = self._bridge.request_timeout_ms / 1000.0

        request_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            self._write({"id": request_id, "op": op, "args": dict(args)})
            return await asyncio.wait_for(future, timeout=timeout_s)
        except asyncio.TimeoutError:
            raise LinkError(f"Bridge request timed out: {op}", details={"op": op}) from None
        finally:
            self._pending.pop(request_id, None)

    def _write(self, message: Mapping[str, Any]) -> None:
        if self._writer is None:
            raise LinkError("Bridge is not connected")
        encoded = json.dumps(message, separators=(",", ":")).encode("utf-8") + b"\n"
        self._writer.write(encoded)

    def _handle_raw_line(self, line: bytes) -> None:
        try:
            obj = json.loads(line.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            log.exception("BridgeWorldLink failed to decode JSON line: %r", line)
            return

        if not isinstance(obj, dict):
            log.warning("BridgeWorldLink received non-object message: %r", obj)
            return

        if "id" in obj and "ok" in obj:
            self._handle_response(obj)
            return

        event_type = obj.get("type")
        payload = obj.get("payload") or {}
        if not isinstance(event_type, str) or not isinstance(payload, dict):
            log.warning("BridgeWorldLink received malformed event: %r", obj)
            return

        handler = self._handlers.get(event_type)
        if handler is None:
            log.debug("BridgeWorldLink no handler for event type=%s", event_type)
            return
        try:
            handler(payload)
        except (KeyError, TypeError, ValueError):
            log.exception("BridgeWorldLink bad payload for %s: %r", event_type, payload)

    def _handle_response(self, obj: Mapping[str, Any]) -> None:
        future = self._pending.get(obj["id"])
        if future is None or future.done():
            log.debug("BridgeWorldLink dropping response for id=%r", obj["id"])
            return
        if obj.get("ok"):
            future.set_result(obj.get("result"))
            return

        error = obj.get("error") or {}
        code = str(error.get("code", "bridge_error"))
        message = str(error.get("message", "bridge request failed"))
        if code == NO_PATH:
            future.set_exception(MovementUnreachable(message, details=dict(error)))
        else:
            future.set_exception(BotCoreError(message, code=code, details=dict(error)))

    # ------------------------------------------------------------------
    # Event handlers (state mirroring)
    # ------------------------------------------------------------------

    def _on_login(self, payload: Dict[str, Any]) -> None:
        self.username = str(payload.get("username", self.username))
        self.emit("login")

    def _on_spawn(self, payload: Dict[str, Any]) -> None:
        self.entity = entity_from_payload(payload["entity"])
        self._on_game(payload)
        if self.pathfinder is None:
            self.pathfinder = BridgePathSolver(self)
        self.emit("spawn")

    def _on_respawn(self, payload: Dict[str, Any]) -> None:
        self._on_game(payload)
        self.emit("respawn")

    def _on_game(self, payload: Dict[str, Any]) -> None:
        if "dimension" in payload:
            self.dimension = str(payload["dimension"])
        if "game_mode" in payload:
            self.game_mode = str(payload["game_mode"])

    def _on_health(self, payload: Dict[str, Any]) -> None:
        self.health = float(payload.get("health", self.health))
        self.food = float(payload.get("food", self.food))
        self.emit("health")

    def _on_experience(self, payload: Dict[str, Any]) -> None:
        for key in ("level", "points", "progress"):
            if key in payload:
                self.experience[key] = payload[key]

    def _on_position(self, payload: Dict[str, Any]) -> None:
        if self.entity is not None:
            self.entity.position = Vec3.from_mapping(payload)

    def _on_entities(self, payload: Dict[str, Any]) -> None:
        entities = [entity_from_payload(e) for e in payload.get("entities", [])]
        self._entities = {e.id: e for e in entities}

    def _on_players(self, payload: Dict[str, Any]) -> None:
        players: Dict[str, Player] = {}
        for raw in payload.get("players", []):
            entity = raw.get("entity")
            players[str(raw["username"])] = Player(
                username=str(raw["username"]),
                entity=entity_from_payload(entity) if entity else None,
            )
        self.players = players

    def _on_inventory(self, payload: Dict[str, Any]) -> None:
        self._inventory = [item_from_payload(i) for i in payload.get("items", [])]
        held = payload.get("held_item")
        self.held_item = item_from_payload(held) if held else None

    def _on_path_state(self, payload: Dict[str, Any]) -> None:
        if self.pathfinder is not None:
            self.pathfinder._set_moving(bool(payload.get("moving", False)))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def chat(self, text: str) -> None:
        self.send_command("chat", {"message": text})

    def whisper(self, username: str, text: str) -> None:
        self.send_command("whisper", {"username": username, "message": text})

    async def look_at(self, point: Vec3, force: bool = False) -> None:
        await self.request("look_at", {"point": point.to_dict(), "force": force})

    async def dig(self, block: Block, force_look: bool = True) -> None:
        # Digging can outlast the default request timeout on hard blocks.
        await self.request(
            "dig", {"block": _block_payload(block), "force_look": force_look}, timeout_s=None
        )

    def stop_digging(self) -> None:
        if self._writer is not None:
            self.send_command("stop_digging", {})

    async def equip(self, item: Item, destination: str = "hand") -> None:
        await self.request("equip", {"item": _item_payload(item), "destination": destination})

    def attack(self, entity: Entity) -> None:
        self.send_command("attack", {"entity_id": entity.id})

    async def consume(self) -> None:
        await self.request("consume", {}, timeout_s=None)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def find_blocks(self, query: BlockQuery) -> List[Vec3]:
        result = await self.request("find_blocks", query.to_payload())
        return [Vec3.from_mapping(p) for p in result or []]

    async def block_at(self, point: Vec3) -> Optional[Block]:
        result = await self.request("block_at", {"point": point.to_dict()})
        return block_from_payload(result) if result else None

    async def can_dig_block(self, block: Block) -> bool:
        return bool(await self.request("can_dig_block", {"block": _block_payload(block)}))

    async def best_harvest_tool(self, block: Block) -> Optional[Item]:
        result = await self.request("best_harvest_tool", {"block": _block_payload(block)})
        return item_from_payload(result) if result else None

    def nearest_entity(self, predicate: Callable[[Entity], bool]) -> Optional[Entity]:
        me = self.entity
        candidates = [e for e in self._entities.values() if predicate(e)]
        if not candidates:
            return None
        if me is None:
            return candidates[0]
        return min(candidates, key=lambda e: e.position.distance_squared(me.position))

    def inventory_items(self) -> List[Item]:
        return list(self._inventory)
