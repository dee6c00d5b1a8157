# src/agent/tools.py
"""
Tool surface exposed to the chat-completion model and the console.

Six tools, each returning a short text result:

    move_to(x, y, z)
    follow_player(username, distance?)
    mine_area(x1, y1, z1, x2, y2, z2)
    stop_movement()
    send_chat(message)
    get_status()

ToolSurface.execute() raises ToolExecutionError on failure;
ToolSurface.call() renders failures as "Error: <message>" text, which is
what the model sees as the tool result.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from bot_core import BotCoreImpl, BotState
from bot_core.errors import BotCoreError, ToolExecutionError, describe_error
from bot_core.nav import DEFAULT_FOLLOW_DISTANCE
from contracts import Vec3
from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import log_event

log = logging.getLogger(__name__)

MODULE = "agent.tools"

JsonDict = Dict[str, Any]

MIN_FOLLOW_DISTANCE = 1
MAX_FOLLOW_DISTANCE = 16


def _function(name: str, description: str, properties: JsonDict, required: List[str]) -> JsonDict:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
                "additionalProperties": False,
            },
        },
    }


def _number(description: str) -> JsonDict:
    return {"type": "number", "description": description}


TOOL_DEFINITIONS: List[JsonDict] = [
    _function(
        "move_to",
        "Move the bot to specific X Y Z coordinates in the Minecraft world.",
        {"x": _number("X coordinate"), "y": _number("Y coordinate"), "z": _number("Z coordinate")},
        ["x", "y", "z"],
    ),
    _function(
        "follow_player",
        "Follow a specific player continuously at a given distance.",
        {
            "username": {
                "type": "string",
                "description": "The Minecraft username of the player to follow",
            },
            "distance": _number("Distance to maintain from the player (1-16 blocks, default 3)"),
        },
        ["username"],
    ),
    _function(
        "mine_area",
        "Mine all diggable blocks within a rectangular 3D area defined by two corner coordinates.",
        {
            "x1": _number("X coordinate of first corner"),
            "y1": _number("Y coordinate of first corner"),
            "z1": _number("Z coordinate of first corner"),
            "x2": _number("X coordinate of opposite corner"),
            "y2": _number("Y coordinate of opposite corner"),
            "z2": _number("Z coordinate of opposite corner"),
        },
        ["x1", "y1", "z1", "x2", "y2", "z2"],
    ),
    _function(
        "stop_movement",
        "Stop all current movement and mining operations immediately.",
        {},
        [],
    ),
    _function(
        "send_chat",
        "Send a public message in the Minecraft chat.",
        {"message": {"type": "string", "description": "The message to send in chat"}},
        ["message"],
    ),
    _function(
        "get_status",
        "Get the bot's current position, health, food, and dimension.",
        {},
        [],
    ),
]

TOOL_NAMES = tuple(d["function"]["name"] for d in TOOL_DEFINITIONS)


def _coerce_number(args: Mapping[str, Any], key: str) -> float:
    if key not in args:
        raise ToolExecutionError(f"Missing argument: {key}")
    try:
        value = float(args[key])
    except (TypeError, ValueError):
        raise ToolExecutionError(f"Argument {key} must be a number, got {args[key]!r}") from None
    if not math.isfinite(value):
        raise ToolExecutionError(f"Argument {key} must be a finite number")
    return value


def clamp_follow_distance(raw: Any) -> int:
    """floor(raw) clamped to [1, 16]; missing values use the default distance."""
    if raw is None:
        return int(DEFAULT_FOLLOW_DISTANCE)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return int(DEFAULT_FOLLOW_DISTANCE)
    if not math.isfinite(value):
        return int(DEFAULT_FOLLOW_DISTANCE)
    return int(min(MAX_FOLLOW_DISTANCE, max(MIN_FOLLOW_DISTANCE, math.floor(value))))


def format_status(state: Optional[BotState]) -> str:
    if state is None or state.position is None:
        return "Bot is not ready or not spawned yet."
    x, y, z = state.position.key()
    return (
        f"Position: ({x}, {y}, {z}), "
        f"health: {state.health:g}/20, food: {state.food:g}/20, dimension: {state.dimension}."
    )


class ToolSurface:
    """
    Binds the tool definitions to one BotCoreImpl.

    Usage:
        surface = ToolSurface(bot, bus)
        text = await surface.call("move_to", {"x": 10, "y": 64, "z": -3})
    """

    def __init__(self, bot: BotCoreImpl, bus: Optional[EventBus] = None) -> None:
        self._bot = bot
        self._bus = bus if bus is not None else bot.bus
        self._handlers: Dict[str, Callable[[Mapping[str, Any]], Awaitable[str]]] = {
            "move_to": self._move_to,
            "follow_player": self._follow_player,
            "mine_area": self._mine_area,
            "stop_movement": self._stop_movement,
            "send_chat": self._send_chat,
            "get_status": self._get_status,
        }

    @property
    def definitions(self) -> List[JsonDict]:
        return TOOL_DEFINITIONS

    async def execute(self, name: str, args: Optional[Mapping[str, Any]] = None) -> str:
        """
        Run one tool.

        Raises:
            ToolExecutionError wrapping whatever the core raised.
        """
        handler = self._handlers.get(name)
        if handler is None:
            return f"Unknown tool: {name}"
        try:
            return await handler(args or {})
        except ToolExecutionError:
            raise
        except BotCoreError as exc:
            raise ToolExecutionError(
                describe_error(exc),
                details={"tool": name, "cause": exc.code},
            ) from exc
        except Exception as exc:
            log.exception("Tool %s failed unexpectedly", name)
            raise ToolExecutionError(
                describe_error(exc),
                details={"tool": name, "cause": type(exc).__name__},
            ) from exc

    async def call(self, name: str, args: Optional[Mapping[str, Any]] = None) -> str:
        """execute() with failures rendered as 'Error: ...' text."""
        log_event(
            self._bus,
            MODULE,
            EventType.TOOL_CALL,
            f"Tool call: {name}",
            {"tool": name, "args": dict(args or {})},
        )
        try:
            result = await self.execute(name, args)
        except ToolExecutionError as exc:
            result = f"Error: {exc}"
        log.info("Tool result [%s]: %s", name, result)
        return result

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _move_to(self, args: Mapping[str, Any]) -> str:
        x = _coerce_number(args, "x")
        y = _coerce_number(args, "y")
        z = _coerce_number(args, "z")
        await self._bot.move_to(x, y, z)
        return f"Arrived at ({math.floor(x)}, {math.floor(y)}, {math.floor(z)})."

    async def _follow_player(self, args: Mapping[str, Any]) -> str:
        username = str(args.get("username") or "").strip()
        if not username:
            raise ToolExecutionError("Missing argument: username")
        distance = clamp_follow_distance(args.get("distance"))
        self._bot.follow_player(username, float(distance))
        return f"Now following {username} at distance {distance}."

    async def _mine_area(self, args: Mapping[str, Any]) -> str:
        corner_a = Vec3(_coerce_number(args, "x1"), _coerce_number(args, "y1"), _coerce_number(args, "z1"))
        corner_b = Vec3(_coerce_number(args, "x2"), _coerce_number(args, "y2"), _coerce_number(args, "z2"))
        result = await self._bot.mine_area(corner_a, corner_b)
        if result.stopped:
            return f"Mining stopped. Mined: {result.mined_blocks}, skipped: {result.skipped_blocks}."
        return f"Mining complete. Mined: {result.mined_blocks}, skipped: {result.skipped_blocks}."

    async def _stop_movement(self, args: Mapping[str, Any]) -> str:
        self._bot.stop_movement()
        return "Stopped all movement and mining."

    async def _send_chat(self, args: Mapping[str, Any]) -> str:
        message = str(args.get("message") or "")
        if not message:
            raise ToolExecutionError("Missing argument: message")
        self._bot.chat(message)
        return f'Sent message: "{message}".'

    async def _get_status(self, args: Mapping[str, Any]) -> str:
        return format_status(self._bot.get_state())
