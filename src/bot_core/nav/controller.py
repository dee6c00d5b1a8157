# src/bot_core/nav/controller.py
"""
MovementController: the movement state machine exposed to the rest of
the core.

    Idle -> Pursuing(goal) -> {Reached, Failed(reason), Stopped} -> Idle

Two-phase: constructed without a solver, initialize() after spawn wires
the link's PathSolver, applies movement rules and starts stuck detection.
Every transition recomputes an immutable MovementStatus snapshot and is
published on the monitoring bus.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from contracts import Goal, MovementRules, PathSolver, Vec3, WorldLink
from env.schema import AdvancedConfig
from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import log_event

from ..errors import NotInitialized, TargetNotVisible, describe_error
from .executor import GoalExecutor
from .stuck import DEFAULT_EPSILON, StuckDetector

log = logging.getLogger(__name__)

MODULE = "bot_core.nav"
DEFAULT_FOLLOW_DISTANCE = 3.0


@dataclass(frozen=True)
class MovementStatus:
    moving: bool = False
    current_goal: Optional[str] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "moving": self.moving,
            "current_goal": self.current_goal,
            "last_error": self.last_error,
        }


_TRANSITION_EVENTS = {
    "started": EventType.MOVEMENT_STARTED,
    "reached": EventType.MOVEMENT_REACHED,
    "failed": EventType.MOVEMENT_FAILED,
    "stopped": EventType.MOVEMENT_STOPPED,
}


class MovementController:
    def __init__(
        self,
        link: WorldLink,
        config: Optional[AdvancedConfig] = None,
        bus: Optional[EventBus] = None,
        rules: Optional[MovementRules] = None,
    ) -> None:
        self._link = link
        self._config = config or AdvancedConfig()
        self._bus = bus
        self._rules = rules or MovementRules()

        self._solver: Optional[PathSolver] = None
        self._executor: Optional[GoalExecutor] = None
        self._stuck: Optional[StuckDetector] = None
        self._status = MovementStatus()
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Wire the solver. Must run after the link reported spawn."""
        if self._initialized:
            return

        solver = self._link.pathfinder
        if solver is None:
            raise NotInitialized("Path solver is not available on the world link")

        solver.configure(self._rules)
        self._solver = solver
        self._executor = GoalExecutor(
            solver,
            on_transition=self._on_transition,
            default_timeout_s=self._config.movement_timeout_ms / 1000.0,
        )
        self._stuck = StuckDetector(
            position_fn=self._current_position,
            is_active=self._is_pursuing,
            on_stuck=self._handle_stuck,
            interval_s=self._config.stuck_check_interval_ms / 1000.0,
            epsilon=DEFAULT_EPSILON,
            sample_limit=self._config.stuck_sample_limit,
        )
        self._stuck.start()
        self._initialized = True
        log.debug("MovementController initialized with %s", self._rules)

    def destroy(self) -> None:
        if self._executor is not None:
            self._executor.stop_current_goal()
        if self._stuck is not None:
            self._stuck.stop()
        self._stuck = None
        self._executor = None
        self._solver = None
        self._initialized = False

    def is_initialized(self) -> bool:
        return self._initialized

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    async def go_to(
        self,
        x: float,
        y: float,
        z: float,
        range_: Optional[float] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        """GoalNear when range_ > 0, otherwise GoalBlock."""
        target = Vec3(x, y, z)
        if range_ is not None and range_ > 0:
            await self.go_near(target, range_, timeout_s)
        else:
            await self.go_to_block(target, timeout_s)

    async def go_to_block(self, target: Vec3, timeout_s: Optional[float] = None) -> None:
        await self._require_executor().go_to_block(target, timeout_s)

    async def go_near(
        self,
        target: Vec3,
        range_: float,
        timeout_s: Optional[float] = None,
    ) -> None:
        await self._require_executor().go_near(target, range_, timeout_s)

    def follow_player(self, username: str, distance: float = DEFAULT_FOLLOW_DISTANCE) -> None:
        executor = self._require_executor()
        player = self._link.players.get(username)
        if player is None or player.entity is None:
            raise TargetNotVisible(
                f'Player "{username}" is not visible to the bot',
                details={"username": username},
            )
        executor.follow_entity(player.entity, distance)

    def stop(self) -> None:
        """Clear the active goal, if any. Safe before initialize().

        A stop is always reported, including when nothing was being pursued.
        """
        if not self._initialized or self._executor is None:
            return
        if self._executor.stop_current_goal():
            return
        self._status = MovementStatus(last_error=self._status.last_error)
        log.info("Movement stopped: no active goal")
        log_event(
            self._bus,
            MODULE,
            EventType.MOVEMENT_STOPPED,
            "stopped: no active goal",
            {"goal": None, "description": None},
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def is_moving(self) -> bool:
        if self._solver is None:
            return False
        return self._solver.is_moving()

    @property
    def current_goal(self) -> Optional[Goal]:
        if self._executor is None:
            return None
        return self._executor.current_goal

    def get_status(self) -> MovementStatus:
        return self._status

    @property
    def stuck_detector(self) -> Optional[StuckDetector]:
        return self._stuck

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_executor(self) -> GoalExecutor:
        if not self._initialized or self._executor is None:
            raise NotInitialized("MovementController has not been initialized")
        return self._executor

    def _current_position(self) -> Optional[Vec3]:
        entity = self._link.entity
        return entity.position if entity is not None else None

    def _is_pursuing(self) -> bool:
        return (
            self._executor is not None
            and self._executor.is_active()
            and self.is_moving()
        )

    def _handle_stuck(self, position: Vec3) -> None:
        log.warning("Movement appears stuck near %s, retrying goal", position)
        goal = self.current_goal
        log_event(
            self._bus,
            MODULE,
            EventType.MOVEMENT_STUCK,
            f"Stuck near {position}",
            {
                "position": position.to_dict(),
                "goal": goal.describe() if goal is not None else None,
            },
        )
        if self._executor is not None:
            self._executor.retry_current_goal()

    def _on_transition(
        self,
        kind: str,
        goal: Goal,
        error: Optional[BaseException],
    ) -> None:
        description = goal.describe()
        if kind == "started":
            self._status = MovementStatus(moving=True, current_goal=description)
            log.info("Movement started: %s", description)
        elif kind == "reached":
            self._status = MovementStatus(last_error=self._status.last_error)
            log.info("Movement reached: %s", description)
        elif kind == "failed":
            message = describe_error(error) if error is not None else "unknown error"
            self._status = MovementStatus(last_error=message)
            log.warning("Movement failed: %s (%s)", description, message)
        elif kind == "stopped":
            self._status = MovementStatus(last_error=self._status.last_error)
            log.info("Movement stopped: %s", description)
        else:
            log.debug("Movement %s: %s", kind, description)

        event_type = _TRANSITION_EVENTS.get(kind)
        if event_type is None:
            return
        payload: Dict[str, Any] = {"goal": goal.to_payload(), "description": description}
        if error is not None:
            payload["error"] = describe_error(error)
            payload["code"] = getattr(error, "code", type(error).__name__)
        log_event(self._bus, MODULE, event_type, f"{kind}: {description}", payload)
