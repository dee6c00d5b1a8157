# src/bot_core/core.py
"""
Connection lifecycle manager and facade for the companion bot.

This module wires together:
- WorldLink (live connection, created per connect() by an injected factory)
- MovementController (goal state machine, initialized after spawn)
- AreaClearer (area-clearing tasks)
- AuthNegotiator (server-side /register and /login)
- SurvivalBehavior (background defend / eat / look loop)
- an optional in-game chat hook (mention bridge to the tool-calling agent)

Public surface (for the tool surface, console and in-game bridge):
    class BotCoreImpl:
        await connect() -> WorldLink
        await disconnect() -> None
        is_ready() / get_state() / get_auth_state() / get_movement_status()
        await move_to(...) / follow_player(...) / stop_movement()
        await mine_area(a, b) -> AreaClearResult
        chat(...) / whisper(...)

Design constraints:
- Dependencies are handed in at construction; there is no global bot.
- Unexpected disconnects reconnect with capped exponential backoff until
  the attempt budget is spent. Exhaustion is surfaced once and kept as a
  standing condition until the next successful connect().
- Nothing here terminates the process.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

from contracts import Vec3, WorldLink, describe_reason
from env.loader import load_environment
from env.schema import AdvancedConfig, BotConfig
from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import log_event

from .auth import AuthNegotiator, AuthState, CredentialStore
from .cancellation import CancellationToken
from .errors import (
    BotCoreError,
    ConnectionTimeout,
    LinkError,
    NotInitialized,
    NotReady,
    ReconnectBudgetExhausted,
    describe_error,
)
from .mining import AreaClearer, AreaClearResult
from .nav import DEFAULT_FOLLOW_DISTANCE, MovementController, MovementStatus
from .net import LinkFactory, link_factory_for
from .survival import SurvivalBehavior

log = logging.getLogger(__name__)

MODULE = "bot_core.core"


# ---------------------------------------------------------------------------
# State / policy
# ---------------------------------------------------------------------------


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED_NOT_SPAWNED = "connected_not_spawned"
    READY = "ready"
    RECONNECTING = "reconnecting"
    SHUTTING_DOWN = "shutting_down"


@dataclass(frozen=True)
class ReconnectPolicy:
    """delay(n) = min(base * 2**(n-1), cap) for attempt n >= 1."""

    max_attempts: int = 10
    base_delay_s: float = 5.0
    cap_delay_s: float = 60.0

    @classmethod
    def from_config(cls, advanced: AdvancedConfig) -> "ReconnectPolicy":
        return cls(
            max_attempts=advanced.max_reconnect_attempts,
            base_delay_s=advanced.reconnect_delay_ms / 1000.0,
            cap_delay_s=advanced.reconnect_cap_ms / 1000.0,
        )

    def delay_for(self, attempt: int) -> float:
        if attempt < 1:
            raise ValueError("attempt numbers start at 1")
        return min(self.base_delay_s * (2 ** (attempt - 1)), self.cap_delay_s)


@dataclass(frozen=True)
class BotState:
    """Status projection served to the tool surface and console."""

    connected: bool
    spawned: bool
    health: float
    food: float
    position: Optional[Vec3]
    dimension: str
    game_mode: str
    experience: Dict[str, float] = field(default_factory=dict)
    auth_state: Optional[AuthState] = None
    movement_status: Optional[MovementStatus] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "spawned": self.spawned,
            "health": self.health,
            "food": self.food,
            "position": self.position.to_dict() if self.position else None,
            "dimension": self.dimension,
            "game_mode": self.game_mode,
            "experience": dict(self.experience),
            "auth_state": self.auth_state.to_dict() if self.auth_state else None,
            "movement_status": self.movement_status.to_dict() if self.movement_status else None,
        }


class SessionHook(Protocol):
    """Per-connection component with a start/stop lifecycle."""

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...


InGameFactory = Callable[["BotCoreImpl", WorldLink], SessionHook]


# ---------------------------------------------------------------------------
# Implementation
# ---------------------------------------------------------------------------


class BotCoreImpl:
    """
    Owns one world connection at a time and everything bound to it.

    Consumers see:
        - connect / disconnect
        - status projection (get_state, get_auth_state, get_movement_status)
        - movement, area clearing and chat operations
        - the shared CancellationToken (`cancellation`)
    """

    def __init__(
        self,
        config: Optional[BotConfig] = None,
        link_factory: Optional[LinkFactory] = None,
        *,
        bus: Optional[EventBus] = None,
        in_game_factory: Optional[InGameFactory] = None,
    ) -> None:
        """
        Build a BotCoreImpl.

        If `config` is None it is loaded from config/bot.yaml. If
        `link_factory` is None a BridgeWorldLink is built from the config on
        every connect().
        """
        self._config = config if config is not None else load_environment()
        self._link_factory = link_factory or link_factory_for(self._config)
        self._bus = bus
        self._in_game_factory = in_game_factory

        self.cancellation = CancellationToken()
        self._policy = ReconnectPolicy.from_config(self._config.advanced)
        self._credentials = CredentialStore(self._config.auth.password)

        self._link: Optional[WorldLink] = None
        self._state = ConnectionState.DISCONNECTED
        self._shutting_down = False
        self._attempts = 0
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._exhausted: Optional[ReconnectBudgetExhausted] = None

        self._movement: Optional[MovementController] = None
        self._area: Optional[AreaClearer] = None
        self._auth: Optional[AuthNegotiator] = None
        self._survival: Optional[SurvivalBehavior] = None
        self._in_game: Optional[SessionHook] = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> BotConfig:
        return self._config

    @property
    def bus(self) -> Optional[EventBus]:
        return self._bus

    @property
    def link(self) -> Optional[WorldLink]:
        return self._link

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_policy(self) -> ReconnectPolicy:
        return self._policy

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    @property
    def reconnect_exhausted(self) -> Optional[ReconnectBudgetExhausted]:
        """Standing exhausted condition; cleared by the next successful connect()."""
        return self._exhausted

    @property
    def movement(self) -> Optional[MovementController]:
        return self._movement

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> WorldLink:
        """
        Create a fresh link and wait for spawn.

        Raises:
            ConnectionTimeout if spawn does not arrive in time.
            LinkError if the link reports an error or ends first.
        """
        if self._link is not None:
            log.warning("Bot already connected, disconnecting first")
            await self.disconnect()

        self._shutting_down = False
        mc = self._config.minecraft
        log.info(
            "Connecting to %s:%d as %s (version %s, auth %s)",
            mc.host,
            mc.port,
            mc.username,
            mc.version,
            mc.auth,
        )

        try:
            link = self._link_factory()
        except Exception as exc:
            self._set_state(ConnectionState.DISCONNECTED)
            raise LinkError(f"Failed to create world link: {describe_error(exc)}") from exc

        self._link = link
        self._set_state(ConnectionState.CONNECTING)
        self._wire(link)

        timeout_s = self._config.advanced.connect_timeout_ms / 1000.0
        loop = asyncio.get_running_loop()
        outcome: asyncio.Future = loop.create_future()

        def on_spawn(*_args: Any) -> None:
            if not outcome.done():
                outcome.set_result(None)

        def on_error(error: Any = None) -> None:
            if outcome.done():
                return
            if isinstance(error, BaseException):
                outcome.set_exception(error)
            else:
                outcome.set_exception(LinkError(f"Connection error: {error}"))

        def on_end(reason: Any = None) -> None:
            if not outcome.done():
                outcome.set_exception(
                    LinkError(f"Connection ended before spawn: {describe_reason(reason)}")
                )

        link.once("spawn", on_spawn)
        link.once("error", on_error)
        link.once("kicked", on_end)
        link.once("end", on_end)

        try:
            link.start()
            await asyncio.wait_for(outcome, timeout=timeout_s)
        except asyncio.TimeoutError:
            log.error("Connection timeout after %g seconds", timeout_s)
            await self._abandon(link)
            raise ConnectionTimeout(
                f"Connection timeout after {timeout_s:g} seconds",
                details={"timeout_s": timeout_s},
            ) from None
        except BotCoreError as exc:
            log.error("Connection error: %s", describe_error(exc))
            await self._abandon(link)
            raise
        except Exception as exc:
            log.error("Connection error: %s", describe_error(exc))
            await self._abandon(link)
            raise LinkError(
                f"Connection error: {describe_error(exc)}",
                details={"exception": repr(exc)},
            ) from exc
        finally:
            link.off("spawn", on_spawn)
            link.off("error", on_error)
            link.off("kicked", on_end)
            link.off("end", on_end)

        self._attempts = 0
        self._exhausted = None
        log.info("Bot spawned successfully")
        return link

    async def disconnect(self) -> None:
        """Tear everything down. Idempotent."""
        self._shutting_down = True
        if self._link is not None:
            self._set_state(ConnectionState.SHUTTING_DOWN)

        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        task = self._reconnect_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        self._reconnect_task = None

        if self._movement is not None:
            self._movement.destroy()
            self._movement = None
        self._area = None

        if self._survival is not None:
            self._survival.stop()
            self._survival = None

        if self._in_game is not None:
            self._in_game.stop()
            self._in_game = None

        if self._auth is not None:
            self._auth.destroy()
            self._auth = None

        link = self._link
        if link is not None:
            log.info("Disconnecting bot...")
            try:
                link.quit("Shutting down")
            finally:
                link.remove_all_listeners()
                self._link = None

        self._set_state(ConnectionState.DISCONNECTED)
        self._shutting_down = False

    async def _abandon(self, link: WorldLink) -> None:
        if self._link is link:
            await self.disconnect()

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def _wire(self, link: WorldLink) -> None:
        link.on("login", self._on_login)
        link.on("spawn", self._on_spawn)
        link.on("respawn", lambda *_: log.info("Bot respawned"))
        link.on("health", self._on_health)
        link.on("death", lambda *_: log.warning("Bot died"))
        link.on("message", lambda text="": log.debug("Chat: %s", text))
        link.on("whisper", lambda username="", text="": log.info("Whisper from %s: %s", username, text))
        link.on("error", lambda error=None: log.error("Bot runtime error: %s", error))
        link.on("kicked", self._on_kicked)
        link.on("end", self._on_end)

        self._auth = AuthNegotiator(link, self._config.auth, self._credentials, bus=self._bus)
        self._auth.attach()

        self._movement = MovementController(link, self._config.advanced, self._bus)

        if self._in_game_factory is not None:
            self._in_game = self._in_game_factory(self, link)
            self._in_game.start()
            log.info(
                'In-game control enabled. Use "%s%s help" in chat.',
                self._config.personality.mention_prefix,
                self._config.minecraft.username,
            )

        self._survival = SurvivalBehavior(
            link,
            self.is_busy,
            tick_interval_s=self._config.advanced.survival_tick_ms / 1000.0,
        )

    def _on_login(self, *_args: Any) -> None:
        log.info("Bot logged in successfully")
        if self._state is ConnectionState.CONNECTING:
            self._set_state(ConnectionState.CONNECTED_NOT_SPAWNED)

    def _on_spawn(self, *_args: Any) -> None:
        link = self._link
        if link is None:
            return
        entity = link.entity
        log.info("Spawned at %s in %s", entity.position if entity else "?", link.dimension)
        self._set_state(ConnectionState.READY)

        movement = self._movement
        if movement is not None and not movement.is_initialized():
            try:
                movement.initialize()
                log.info("Movement controller initialized")
            except BotCoreError as exc:
                log.error("Movement initialization failed: %s", describe_error(exc))
            else:
                self._area = AreaClearer(link, movement, self.cancellation, bus=self._bus)

        if self._survival is not None:
            self._survival.start()

    def _on_health(self, *_args: Any) -> None:
        link = self._link
        if link is None:
            return
        if link.health <= 5:
            log.warning("Low health: %s/20", link.health)
        if link.food <= 5:
            log.warning("Low food: %s/20", link.food)

    def _on_kicked(self, reason: Any = None) -> None:
        text = describe_reason(reason)
        log.warning("Kicked from server: %s", text)
        self._connection_lost(f"kicked: {text}")

    def _on_end(self, reason: Any = None) -> None:
        text = describe_reason(reason)
        log.info("Connection ended: %s", text)
        self._connection_lost(text)

    def _connection_lost(self, reason: str) -> None:
        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED_NOT_SPAWNED):
            # connect() is still racing spawn and reports this itself.
            return
        if not self._shutting_down:
            self._set_state(ConnectionState.DISCONNECTED, reason)
        self._handle_reconnect()

    # ------------------------------------------------------------------
    # Reconnection
    # ------------------------------------------------------------------

    def _handle_reconnect(self) -> None:
        if self._shutting_down:
            log.info("Shutdown in progress, skipping reconnect")
            return

        if self._reconnect_handle is not None:
            return

        max_attempts = self._policy.max_attempts
        if self._attempts >= max_attempts:
            if self._exhausted is None:
                self._exhausted = ReconnectBudgetExhausted(
                    f"Max reconnect attempts reached ({max_attempts})",
                    details={"attempts": self._attempts},
                )
                log.error("Max reconnect attempts reached (%d)", max_attempts)
                log_event(
                    self._bus,
                    MODULE,
                    EventType.RECONNECT_EXHAUSTED,
                    "Reconnect budget exhausted",
                    {"attempts": self._attempts, "max_attempts": max_attempts},
                )
            self._set_state(ConnectionState.DISCONNECTED)
            return

        self._attempts += 1
        delay_s = self._policy.delay_for(self._attempts)
        log.info(
            "Reconnecting in %ds (attempt %d/%d)",
            int(delay_s),
            self._attempts,
            max_attempts,
        )
        log_event(
            self._bus,
            MODULE,
            EventType.RECONNECT_SCHEDULED,
            f"Reconnect attempt {self._attempts}/{max_attempts} in {delay_s:g}s",
            {"attempt": self._attempts, "max_attempts": max_attempts, "delay_s": delay_s},
        )
        self._set_state(ConnectionState.RECONNECTING)
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(delay_s, self._fire_reconnect)

    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect())

    async def _reconnect(self) -> None:
        try:
            await self.connect()
        except BotCoreError as exc:
            log.error("Reconnection failed: %s", describe_error(exc))
            self._handle_reconnect()
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    def _set_state(self, state: ConnectionState, reason: Optional[str] = None) -> None:
        if state is self._state:
            return
        previous = self._state
        self._state = state
        log.debug("Connection state %s -> %s", previous.value, state.value)
        payload: Dict[str, Any] = {"from": previous.value, "to": state.value}
        if reason:
            payload["reason"] = reason
        log_event(self._bus, MODULE, EventType.CONNECTION_STATE, f"Connection {state.value}", payload)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def is_ready(self) -> bool:
        return self._link is not None and self._link.entity is not None

    def get_state(self) -> Optional[BotState]:
        link = self._link
        if link is None or link.entity is None:
            return None
        return BotState(
            connected=True,
            spawned=True,
            health=link.health,
            food=link.food,
            position=link.entity.position,
            dimension=str(link.dimension or "unknown"),
            game_mode=str(link.game_mode or "unknown"),
            experience=dict(link.experience),
            auth_state=self.get_auth_state(),
            movement_status=self.get_movement_status(),
        )

    def get_auth_state(self) -> Optional[AuthState]:
        return self._auth.get_state() if self._auth is not None else None

    def get_movement_status(self) -> Optional[MovementStatus]:
        return self._movement.get_status() if self._movement is not None else None

    def is_busy(self) -> bool:
        if self._area is not None and self._area.is_running:
            return True
        status = self.get_movement_status()
        return bool(status and status.moving)

    def online_players(self) -> List[str]:
        if self._link is None:
            return []
        return sorted(self._link.players)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def _require_movement(self) -> MovementController:
        if not self.is_ready():
            raise NotReady("Bot is not ready")
        movement = self._movement
        if movement is None or not movement.is_initialized():
            raise NotInitialized("Movement controller is not initialized yet (wait for spawn)")
        return movement

    async def move_to(
        self,
        x: float,
        y: float,
        z: float,
        range_: Optional[float] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        await self._require_movement().go_to(x, y, z, range_=range_, timeout_s=timeout_s)

    def follow_player(self, username: str, distance: float = DEFAULT_FOLLOW_DISTANCE) -> None:
        self._require_movement().follow_player(username, distance)

    def stop_movement(self) -> None:
        """Stop everything in flight: goals, digging and multi-step tasks."""
        self.cancellation.request_stop()
        if self._link is not None:
            self._link.stop_digging()
        if self._movement is not None:
            self._movement.stop()

    async def mine_area(self, corner_a: Vec3, corner_b: Vec3) -> AreaClearResult:
        self._require_movement()
        if self._area is None:
            raise NotInitialized("Area clearing is not available yet (wait for spawn)")
        return await self._area.clear_area(corner_a, corner_b)

    def chat(self, message: str) -> None:
        link = self._link
        if link is None or link.entity is None:
            log.warning("Cannot send chat: bot is not ready")
            return
        link.chat(message)
        log_event(self._bus, MODULE, EventType.CHAT, f"Bot chat: {message}", {"message": message})

    def whisper(self, username: str, message: str) -> None:
        link = self._link
        if link is None or link.entity is None:
            log.warning("Cannot whisper: bot is not ready")
            return
        link.whisper(username, message)
        log_event(
            self._bus,
            MODULE,
            EventType.CHAT,
            f"Whisper to {username}: {message}",
            {"username": username, "message": message},
        )
