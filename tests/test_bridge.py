# tests/test_bridge.py
"""
Tests for bot_core.net.bridge.BridgeWorldLink against an in-process
JSON-lines sidecar (asyncio.start_server on an ephemeral port).

Covers:
- connect handshake, spawn and state mirroring from events
- fire-and-forget commands and request/response correlation
- sidecar errors mapped to domain errors
- request timeout, connection refused, pending requests failing on close
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import pytest

from bot_core.errors import BotCoreError, LinkError, MovementUnreachable
from bot_core.net.bridge import BridgePathSolver, BridgeWorldLink
from contracts import Block, BlockQuery, GoalBlock, Item, Vec3
from env.schema import BridgeConfig, MinecraftConfig

JsonDict = Dict[str, Any]

SPAWN = {
    "type": "spawn",
    "payload": {
        "entity": {
            "id": 1,
            "name": "BotGirl",
            "kind": "player",
            "position": {"x": 0.5, "y": 64, "z": 0.5},
        },
        "dimension": "overworld",
        "game_mode": "survival",
    },
}


class Sidecar:
    """Scripted sidecar: sends `greeting` after the connect command, then answers requests."""

    def __init__(
        self,
        greeting: List[Any],
        answer: Optional[Callable[[JsonDict], Optional[JsonDict]]] = None,
    ) -> None:
        self.greeting = greeting
        self.answer = answer
        self.received: List[JsonDict] = []
        self.server: Optional[asyncio.AbstractServer] = None

    @property
    def port(self) -> int:
        assert self.server is not None
        return self.server.sockets[0].getsockname()[1]

    async def start(self) -> "Sidecar":
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        return self

    async def close(self) -> None:
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        def send(obj: Any) -> None:
            raw = obj if isinstance(obj, bytes) else json.dumps(obj).encode("utf-8")
            writer.write(raw + b"\n")

        self.received.append(json.loads(await reader.readline()))
        for obj in self.greeting:
            send(obj)
        await writer.drain()

        while True:
            line = await reader.readline()
            if not line:
                break
            message = json.loads(line)
            self.received.append(message)
            if message.get("op") in ("quit", "hang_up"):
                break
            if "id" in message and self.answer is not None:
                response = self.answer(message)
                if response is not None:
                    send({"id": message["id"], **response})
                    await writer.drain()
        writer.close()


def make_link(port: int, request_timeout_ms: int = 2_000) -> BridgeWorldLink:
    return BridgeWorldLink(
        BridgeConfig(host="127.0.0.1", port=port, request_timeout_ms=request_timeout_ms),
        MinecraftConfig(host="mc.example.org", username="BotGirl"),
    )


def next_event(link: BridgeWorldLink, event: str) -> "asyncio.Future[Any]":
    future = asyncio.get_running_loop().create_future()

    def listener(*args: Any) -> None:
        if not future.done():
            future.set_result(args)

    link.once(event, listener)
    return future


def answer_world(message: JsonDict) -> Optional[JsonDict]:
    op = message["op"]
    if op == "block_at":
        return {"ok": True, "result": {"name": "stone", "position": message["args"]["point"]}}
    if op == "find_blocks":
        return {"ok": True, "result": [{"x": 1, "y": 2, "z": 3}, {"x": 4, "y": 5, "z": 6}]}
    if op == "pathfinder.goto":
        return {"ok": False, "error": {"code": "no_path", "message": "No path to goal"}}
    if op == "equip":
        return {"ok": False, "error": {"code": "no_item", "message": "Item not in inventory"}}
    return None


@pytest.mark.asyncio
async def test_spawn_state_and_requests() -> None:
    sidecar = await Sidecar(
        [
            b"not json",
            [1, 2, 3],
            {"type": "login", "payload": {"username": "BotGirl"}},
            SPAWN,
            {"type": "health", "payload": {"health": 15, "food": 9}},
            {
                "type": "players",
                "payload": {
                    "players": [
                        {
                            "username": "Steve",
                            "entity": {"id": 9, "name": "Steve", "kind": "player",
                                       "position": {"x": 3, "y": 64, "z": 3}},
                        },
                        {"username": "Alex"},
                    ]
                },
            },
            {"type": "inventory", "payload": {"items": [{"name": "bread", "slot": 36, "count": 4}]}},
            {"type": "chat", "payload": {"username": "Steve", "message": "@BotGirl hi"}},
        ],
        answer_world,
    ).start()
    link = make_link(sidecar.port)
    spawned = next_event(link, "spawn")
    chatted = next_event(link, "chat")

    link.start()
    await asyncio.wait_for(spawned, timeout=2.0)
    assert await asyncio.wait_for(chatted, timeout=2.0) == ("Steve", "@BotGirl hi")

    assert sidecar.received[0] == {
        "op": "connect",
        "args": {
            "host": "mc.example.org",
            "port": 25565,
            "username": "BotGirl",
            "version": "1.20.1",
            "auth": "offline",
        },
    }
    assert link.entity is not None and link.entity.position == Vec3(0.5, 64, 0.5)
    assert link.dimension == "overworld"
    assert isinstance(link.pathfinder, BridgePathSolver)
    assert (link.health, link.food) == (15.0, 9.0)
    assert link.players["Steve"].entity is not None
    assert link.players["Alex"].entity is None
    assert link.inventory_items() == [Item("bread", 36, 4)]

    block = await link.block_at(Vec3(1, 2, 3))
    assert block == Block(name="stone", position=Vec3(1, 2, 3))

    link.chat("hello")
    found = await link.find_blocks(BlockQuery(point=Vec3(0, 64, 0), max_distance=8.0, count=2))
    assert found == [Vec3(1, 2, 3), Vec3(4, 5, 6)]

    with pytest.raises(MovementUnreachable, match="No path to goal"):
        await link.pathfinder.goto(GoalBlock(1, 2, 3))
    with pytest.raises(BotCoreError) as info:
        await link.equip(Item("bread", 36))
    assert info.value.code == "no_item"

    assert {"op": "chat", "args": {"message": "hello"}} in sidecar.received

    ended = next_event(link, "end")
    link.quit("bye")
    assert await asyncio.wait_for(ended, timeout=2.0) == ("connection closed",)
    assert link.entity is None
    await sidecar.close()


@pytest.mark.asyncio
async def test_connection_refused_reports_error() -> None:
    sidecar = await Sidecar([]).start()
    port = sidecar.port
    await sidecar.close()

    link = make_link(port)
    errored = next_event(link, "error")
    link.start()

    (error,) = await asyncio.wait_for(errored, timeout=2.0)
    assert isinstance(error, LinkError)
    assert "Bridge connection failed" in str(error)


@pytest.mark.asyncio
async def test_request_timeout() -> None:
    sidecar = await Sidecar([SPAWN]).start()
    link = make_link(sidecar.port, request_timeout_ms=50)
    spawned = next_event(link, "spawn")
    link.start()
    await asyncio.wait_for(spawned, timeout=2.0)

    with pytest.raises(LinkError, match="Bridge request timed out: can_dig_block"):
        await link.can_dig_block(Block(name="stone", position=Vec3(0, 0, 0)))

    link.quit()
    await sidecar.close()


@pytest.mark.asyncio
async def test_pending_requests_fail_when_sidecar_hangs_up() -> None:
    sidecar = await Sidecar([SPAWN]).start()
    link = make_link(sidecar.port)
    spawned = next_event(link, "spawn")
    link.start()
    await asyncio.wait_for(spawned, timeout=2.0)

    ended = next_event(link, "end")
    pending = asyncio.ensure_future(link.request("consume", {}, timeout_s=None))
    await asyncio.sleep(0)
    link.send_command("hang_up", {})

    with pytest.raises(LinkError, match="Bridge connection closed"):
        await asyncio.wait_for(pending, timeout=2.0)
    await asyncio.wait_for(ended, timeout=2.0)
    await sidecar.close()


def test_commands_require_connection() -> None:
    link = make_link(1)
    with pytest.raises(LinkError, match="Bridge is not connected"):
        link.chat("hello")
    # stop_digging and quit are no-ops while disconnected
    link.stop_digging()
    link.quit()
