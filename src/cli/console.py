# src/cli/console.py
"""
Process entry point and the two run modes.

    companion-bot --mode terminal          # console commands + in-game chat control
    companion-bot --mode mcp               # in-game chat control through the local LLM

Terminal commands:
    /help  /status  /say <msg>  /goto x y z  /follow <player> [d]
    /mine x1 y1 z1 x2 y2 z2  /stop  /quit
Any line without "/" is sent as normal chat.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import math
import signal
import sys
import threading
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence, Set

from rich.console import Console
from rich.table import Table

from agent.in_game import InGameControl
from agent.llm_agent import ToolCallingAgent
from agent.logging_config import configure_logging
from bot_core import BotCoreImpl
from bot_core.errors import BotCoreError, describe_error
from contracts import Vec3, WorldLink
from env.loader import load_environment
from env.schema import BotConfig
from monitoring.bus import EventBus
from monitoring.logger import DEFAULT_ACTIVITY_FILE, JsonFileLogger

log = logging.getLogger(__name__)

HELP_ROWS = [
    ("/help", "Show commands"),
    ("/status", "Show bot status"),
    ("/say <message>", "Send chat message"),
    ("/goto <x> <y> <z>", "Move to coordinates"),
    ("/follow <player> [d]", "Follow a player"),
    ("/mine <x1> <y1> <z1> <x2> <y2> <z2>", "Mine all diggable blocks in area"),
    ("/stop", "Stop current movement and mining"),
    ("/quit", "Disconnect and exit"),
]

QUIT_COMMANDS = ("/quit", "/exit")


class RunningMode(Protocol):
    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...

    async def wait_closed(self) -> None:
        ...


def _parse_numbers(args: Sequence[str]) -> Optional[List[float]]:
    try:
        values = [float(a) for a in args]
    except ValueError:
        return None
    if not all(math.isfinite(v) for v in values):
        return None
    return values


# ---------------------------------------------------------------------------
# Terminal mode
# ---------------------------------------------------------------------------


class TerminalMode:
    """Line-oriented console driving one BotCoreImpl."""

    def __init__(
        self,
        bot: BotCoreImpl,
        *,
        console: Optional[Console] = None,
        input_fn: Callable[[str], str] = input,
        interactive: Optional[bool] = None,
    ) -> None:
        self._bot = bot
        self._console = console or Console()
        self._input_fn = input_fn
        self._interactive = sys.stdin.isatty() if interactive is None else interactive
        self._started = False
        self._reader: Optional[asyncio.Task] = None
        self._commands: Set[asyncio.Task] = set()
        self._closed = asyncio.Event()

    async def start(self) -> None:
        if self._started:
            log.warning("Terminal mode already started")
            return

        log.info("Starting terminal mode...")
        await self._bot.connect()
        self._started = True

        if not self._interactive:
            cfg = self._bot.config
            log.warning("No interactive TTY detected. Local terminal input is disabled in this session.")
            log.warning(
                'Use in-game chat commands instead, e.g. "%s%s help".',
                cfg.personality.mention_prefix,
                cfg.minecraft.username,
            )
            return

        self.print_help()
        log.info("Terminal input ready. Type /help and press Enter.")
        self._reader = asyncio.get_running_loop().create_task(self._read_loop())

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        reader = self._reader
        self._reader = None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
        for task in list(self._commands):
            task.cancel()
        await self._bot.disconnect()
        self._closed.set()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    def _pump_input(self, loop: asyncio.AbstractEventLoop, queue: "asyncio.Queue[Optional[str]]") -> None:
        # Runs in a daemon thread so a blocked input() never holds up shutdown.
        while True:
            try:
                line: Optional[str] = self._input_fn("> ")
            except (EOFError, OSError):
                line = None
            try:
                loop.call_soon_threadsafe(queue.put_nowait, line)
            except RuntimeError:
                return  # loop closed
            if line is None:
                return

    async def _read_loop(self) -> None:
        loop = asyncio.get_running_loop()
        queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        threading.Thread(
            target=self._pump_input, args=(loop, queue), name="console-input", daemon=True
        ).start()
        while self._started:
            line = await queue.get()
            if line is None:
                break
            stripped = line.strip()
            if stripped.lower() in QUIT_COMMANDS:
                break
            # Commands run concurrently so /stop can interrupt a /goto or /mine.
            task = loop.create_task(self.handle_input(stripped))
            self._commands.add(task)
            task.add_done_callback(self._commands.discard)
        self._closed.set()

    async def handle_input(self, line: str) -> bool:
        """Run one console line. Returns False when the user asked to quit."""
        if not line:
            return True

        if not line.startswith("/"):
            self._bot.chat(line)
            return True

        parts = line[1:].split()
        command = parts[0].lower() if parts else ""
        args = parts[1:]

        try:
            if command == "help":
                self.print_help()
            elif command == "status":
                self.print_status()
            elif command == "say":
                self._bot.chat(" ".join(args))
            elif command == "goto":
                await self._goto(args)
            elif command == "follow":
                self._follow(args)
            elif command == "mine":
                await self._mine(args)
            elif command == "stop":
                self._bot.stop_movement()
                log.info("Movement stopped")
            elif "/" + command in QUIT_COMMANDS:
                return False
            else:
                log.warning("Unknown command: %s. Use /help.", command)
        except BotCoreError as exc:
            log.error("Command /%s failed: %s", command, describe_error(exc))
        except Exception:
            log.exception("Command /%s failed unexpectedly", command)
        return True

    async def _goto(self, args: Sequence[str]) -> None:
        if len(args) < 3:
            log.warning("Usage: /goto <x> <y> <z>")
            return
        values = _parse_numbers(args[:3])
        if values is None:
            log.warning("Coordinates must be valid numbers")
            return
        x, y, z = values
        log.info("Moving to (%g, %g, %g)...", x, y, z)
        await self._bot.move_to(x, y, z)
        log.info("Reached target")

    def _follow(self, args: Sequence[str]) -> None:
        if not args:
            log.warning("Usage: /follow <player> [distance]")
            return
        username = args[0]
        distance = 3.0
        if len(args) > 1:
            parsed = _parse_numbers(args[1:2])
            if parsed is None or parsed[0] < 1:
                log.warning("Distance must be a number >= 1")
                return
            distance = parsed[0]
        self._bot.follow_player(username, distance)
        log.info("Following %s with distance %g", username, distance)

    async def _mine(self, args: Sequence[str]) -> None:
        if len(args) < 6:
            log.warning("Usage: /mine <x1> <y1> <z1> <x2> <y2> <z2>")
            return
        values = _parse_numbers(args[:6])
        if values is None:
            log.warning("Coordinates must be valid numbers")
            return
        a = Vec3(values[0], values[1], values[2])
        b = Vec3(values[3], values[4], values[5])
        log.info("Mining area %s -> %s...", a, b)
        result = await self._bot.mine_area(a, b)
        log.info(
            "Mining %s. Mined %d blocks, skipped %d",
            "stopped" if result.stopped else "completed",
            result.mined_blocks,
            result.skipped_blocks,
        )

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def print_help(self) -> None:
        table = Table(title="Terminal commands", show_header=False, box=None)
        table.add_column(style="bold cyan")
        table.add_column()
        for command, text in HELP_ROWS:
            table.add_row(command, text)
        self._console.print(table)
        cfg = self._bot.config
        self._console.print('Any input without "/" is sent as normal chat.')
        self._console.print(
            f'In-game control: type "{cfg.personality.mention_prefix}{cfg.minecraft.username} help" '
            "in Minecraft chat."
        )

    def print_status(self) -> None:
        state = self._bot.get_state()
        auth = self._bot.get_auth_state()
        movement = self._bot.get_movement_status()

        table = Table(title="Bot status", show_header=False)
        table.add_column(style="bold")
        table.add_column()
        table.add_row("Connection", self._bot.state.value)
        table.add_row("Connected", str(state.connected if state else False))
        table.add_row("Spawned", str(state.spawned if state else False))

        if state is not None:
            table.add_row("Position", str(state.position) if state.position else "?")
            table.add_row("Health", f"{state.health:g}/20")
            table.add_row("Food", f"{state.food:g}/20")
            table.add_row("Dimension", state.dimension)

        if auth is not None:
            table.add_row("Auth logged in", str(auth.logged_in))
            table.add_row("Auth attempts", str(auth.attempts))

        if movement is not None:
            table.add_row("Moving", str(movement.moving))
            if movement.current_goal:
                table.add_row("Current goal", movement.current_goal)
            if movement.last_error:
                table.add_row("Last movement error", movement.last_error)

        if self._bot.reconnect_exhausted is not None:
            table.add_row("Reconnect", "[red]exhausted[/red] (use /quit and restart)")

        self._console.print(table)


# ---------------------------------------------------------------------------
# MCP mode
# ---------------------------------------------------------------------------


class MCPMode:
    """Connect and let players drive the bot through the tool-calling agent."""

    def __init__(self, bot: BotCoreImpl) -> None:
        self._bot = bot
        self._started = False
        self._closed = asyncio.Event()

    async def start(self) -> None:
        if self._started:
            log.warning("MCP mode already started")
            return
        log.info("Starting MCP mode...")
        await self._bot.connect()
        self._started = True
        log.info("MCP mode started. Bot is listening for in-game commands via LLM.")

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        await self._bot.disconnect()
        self._closed.set()

    async def wait_closed(self) -> None:
        await self._closed.wait()


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_bot(config: BotConfig, bus: Optional[EventBus] = None) -> BotCoreImpl:
    """
    Build the BotCoreImpl for the configured mode.

    mcp mode loads the llama.cpp model here, once; every connection gets a
    fresh InGameControl bound to the same agent.
    """
    if config.mode != "mcp":
        return BotCoreImpl(
            config,
            bus=bus,
            in_game_factory=lambda bot, link: InGameControl(bot, link),
        )

    if not config.llm.model_path:
        raise ValueError("mcp mode requires llm.model_path (or LLM_MODEL_PATH)")

    # Optional extra; import only when the model is actually needed.
    from agent.backend_llamacpp import LlamaCppChatBackend

    backend = LlamaCppChatBackend(config.llm)
    holder: List[ToolCallingAgent] = []

    def in_game(bot: BotCoreImpl, link: WorldLink) -> InGameControl:
        if not holder:
            holder.append(ToolCallingAgent(bot, backend))
        return InGameControl(bot, link, holder[0])

    return BotCoreImpl(config, bus=bus, in_game_factory=in_game)


def build_mode(bot: BotCoreImpl) -> RunningMode:
    if bot.config.mode == "mcp":
        return MCPMode(bot)
    return TerminalMode(bot)


def _print_banner(config: BotConfig) -> None:
    log.info("=" * 60)
    log.info("Companion bot starting")
    log.info("=" * 60)
    log.info("Mode: %s", config.mode.upper())
    log.info("Minecraft server: %s:%d", config.minecraft.host, config.minecraft.port)
    log.info("Bridge: %s:%d", config.bridge.host, config.bridge.port)
    log.info("Bot username: %s", config.minecraft.username)
    if config.mode == "mcp":
        log.info("LLM model: %s", config.llm.model_path)
    log.info("=" * 60)


async def run(config: BotConfig, bus: EventBus) -> int:
    bot = build_bot(config, bus)
    mode = build_mode(bot)
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()

    def request_shutdown(signame: str) -> None:
        log.info("Received %s, shutting down gracefully...", signame)
        shutdown.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown, sig.name)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handlers; Ctrl+C still
            # raises KeyboardInterrupt out of asyncio.run().
            pass

    try:
        await mode.start()
    except BotCoreError as exc:
        log.error("Fatal startup error: %s", describe_error(exc))
        await bot.disconnect()
        return 1

    closed = loop.create_task(mode.wait_closed())
    stop_requested = loop.create_task(shutdown.wait())
    try:
        await asyncio.wait({closed, stop_requested}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        closed.cancel()
        stop_requested.cancel()
        try:
            await mode.stop()
        except Exception:
            log.exception("Error during shutdown")
    return 0


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Companion bot for a Minecraft server (terminal console or LLM chat control)."
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to bot.yaml")
    parser.add_argument("--mode", choices=("terminal", "mcp"), default=None, help="Override config mode")
    parser.add_argument("--log-level", default=None, help="Override logging level (DEBUG, INFO, ...)")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    config = load_environment(args.config)
    if args.mode:
        config.mode = args.mode
    if args.log_level:
        config.logging.level = args.log_level

    configure_logging(
        config.logging.level,
        to_console=config.logging.to_console,
        to_file=config.logging.to_file,
        directory=config.logging.directory,
    )
    _print_banner(config)

    bus = EventBus()
    activity = JsonFileLogger(Path(config.logging.directory) / DEFAULT_ACTIVITY_FILE, bus)
    try:
        return asyncio.run(run(config, bus))
    except KeyboardInterrupt:
        log.info("Interrupted")
        return 0
    finally:
        activity.close()


if __name__ == "__main__":
    sys.exit(main())
