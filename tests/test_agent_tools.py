# tests/test_agent_tools.py
"""
Tests for agent.tools.ToolSurface

Covers:
- Tool definitions (names, required arguments)
- Text results for every tool against a connected fake bot
- Failures rendered as "Error: ..." by call(), raised by execute()
- TOOL_CALL monitoring events
"""

from __future__ import annotations

from typing import List, Tuple

import pytest

from agent.tools import TOOL_DEFINITIONS, TOOL_NAMES, ToolSurface, clamp_follow_distance, format_status
from bot_core import BotCoreImpl
from bot_core.errors import ToolExecutionError
from bot_core.testing.fakes import FakeWorldLink, fake_link_factory
from contracts import Vec3
from env.schema import AdvancedConfig, AuthConfig, BotConfig
from monitoring.bus import EventBus
from monitoring.events import EventType, MonitoringEvent


def make_config() -> BotConfig:
    return BotConfig(
        auth=AuthConfig(password="s3cretPassw0rd", initial_delay_ms=0, command_delay_ms=0),
        advanced=AdvancedConfig(movement_timeout_ms=1_000, survival_tick_ms=60_000),
    )


def make_surface() -> Tuple[ToolSurface, BotCoreImpl, List[FakeWorldLink], List[MonitoringEvent]]:
    bus = EventBus()
    events: List[MonitoringEvent] = []
    bus.subscribe(events.append)
    links: List[FakeWorldLink] = []
    bot = BotCoreImpl(make_config(), fake_link_factory(links), bus=bus)
    return ToolSurface(bot), bot, links, events


def test_tool_definitions_shape() -> None:
    assert TOOL_NAMES == (
        "move_to",
        "follow_player",
        "mine_area",
        "stop_movement",
        "send_chat",
        "get_status",
    )
    by_name = {d["function"]["name"]: d["function"] for d in TOOL_DEFINITIONS}
    assert by_name["move_to"]["parameters"]["required"] == ["x", "y", "z"]
    assert by_name["follow_player"]["parameters"]["required"] == ["username"]
    assert by_name["mine_area"]["parameters"]["required"] == ["x1", "y1", "z1", "x2", "y2", "z2"]
    assert by_name["get_status"]["parameters"]["properties"] == {}


@pytest.mark.parametrize(
    "raw, expected",
    [(None, 3), (0, 1), (0.9, 1), (2.7, 2), (16, 16), (40, 16), (-5, 1), ("7", 7), ("far", 3), (float("nan"), 3)],
)
def test_clamp_follow_distance(raw, expected: int) -> None:
    assert clamp_follow_distance(raw) == expected


def test_format_status_without_state() -> None:
    assert format_status(None) == "Bot is not ready or not spawned yet."


@pytest.mark.asyncio
async def test_unknown_tool() -> None:
    surface, _bot, _links, _events = make_surface()
    assert await surface.call("fly", {}) == "Unknown tool: fly"


@pytest.mark.asyncio
async def test_tools_before_spawn() -> None:
    surface, _bot, _links, _events = make_surface()

    assert await surface.call("get_status") == "Bot is not ready or not spawned yet."
    assert await surface.call("move_to", {"x": 1, "y": 2, "z": 3}) == "Error: Bot is not ready"


@pytest.mark.asyncio
async def test_argument_errors() -> None:
    surface, _bot, _links, _events = make_surface()

    assert await surface.call("move_to", {"x": 1, "y": 2}) == "Error: Missing argument: z"
    assert (
        await surface.call("move_to", {"x": "north", "y": 2, "z": 3})
        == "Error: Argument x must be a number, got 'north'"
    )
    assert await surface.call("follow_player", {"username": "  "}) == "Error: Missing argument: username"
    assert await surface.call("send_chat", {}) == "Error: Missing argument: message"


@pytest.mark.asyncio
async def test_execute_wraps_core_errors() -> None:
    surface, _bot, _links, _events = make_surface()

    with pytest.raises(ToolExecutionError) as info:
        await surface.execute("follow_player", {"username": "Steve"})

    assert info.value.details == {"tool": "follow_player", "cause": "not_ready"}
    assert isinstance(info.value.__cause__, Exception)


@pytest.mark.asyncio
async def test_tools_on_connected_bot() -> None:
    surface, bot, links, events = make_surface()
    await bot.connect()
    link = links[0]

    assert await surface.call("get_status") == (
        "Position: (0, 64, 0), health: 20/20, food: 20/20, dimension: overworld."
    )
    assert await surface.call("move_to", {"x": 3.7, "y": 64, "z": -1.5}) == "Arrived at (3, 64, -2)."

    link.add_player("Steve", Vec3(8, 64, 8))
    assert (
        await surface.call("follow_player", {"username": "Steve", "distance": 40})
        == "Now following Steve at distance 16."
    )
    assert (await surface.call("follow_player", {"username": "Alex"})).startswith("Error: ")

    assert await surface.call("stop_movement") == "Stopped all movement and mining."
    assert bot.cancellation.value == 1

    link.set_block(5, 64, 5, "dirt")
    link.set_block(5, 65, 5, "bedrock", diggable=False)
    result = await surface.call(
        "mine_area", {"x1": 4, "y1": 63, "z1": 4, "x2": 6, "y2": 66, "z2": 6}
    )
    assert result == "Mining complete. Mined: 1, skipped: 0."

    assert await surface.call("send_chat", {"message": "hello"}) == 'Sent message: "hello".'
    assert link.sent_chat == ["hello"]

    calls = [e.payload["tool"] for e in events if e.event_type is EventType.TOOL_CALL]
    assert calls == [
        "get_status",
        "move_to",
        "follow_player",
        "follow_player",
        "stop_movement",
        "mine_area",
        "send_chat",
    ]
    await bot.disconnect()
