# src/bot_core/nav/executor.py
"""
Goal execution on top of an external PathSolver.

GoalExecutor owns "the current goal" and turns one solver attempt into
exactly one terminal transition:

    started -> reached | failed | stopped

Terminal goals (GoalBlock / GoalNear) are awaited with a timeout; the
dynamic GoalFollow is installed and left running until stopped or
superseded by another goal.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from contracts import Goal, GoalBlock, GoalFollow, GoalNear, PathSolver, Vec3
from contracts.types import Entity

from ..errors import MovementTimeout, describe_error

log = logging.getLogger(__name__)

# (kind, goal, error) where kind is one of:
#   "started", "reached", "failed", "stopped", "retried"
TransitionFn = Callable[[str, Goal, Optional[BaseException]], None]


def _ignore_transition(kind: str, goal: Goal, error: Optional[BaseException]) -> None:
    return None


class GoalExecutor:
    """Runs one movement goal at a time against a PathSolver."""

    def __init__(
        self,
        solver: PathSolver,
        on_transition: Optional[TransitionFn] = None,
        default_timeout_s: float = 45.0,
    ) -> None:
        self._solver = solver
        self._on_transition = on_transition or _ignore_transition
        self._default_timeout_s = default_timeout_s
        self._current: Optional[Goal] = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def current_goal(self) -> Optional[Goal]:
        return self._current

    def is_active(self) -> bool:
        return self._current is not None

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    async def go_to_block(self, target: Vec3, timeout_s: Optional[float] = None) -> None:
        """Stand on the cell containing `target`."""
        await self._execute_goto(GoalBlock.at(target), timeout_s)

    async def go_near(
        self,
        target: Vec3,
        range_: float,
        timeout_s: Optional[float] = None,
    ) -> None:
        """Get within `range_` of the cell containing `target`."""
        await self._execute_goto(GoalNear.around(target, range_), timeout_s)

    def follow_entity(self, entity: Entity, distance: float) -> GoalFollow:
        """Install a dynamic follow goal and return immediately."""
        goal = GoalFollow(entity=entity, distance=distance)
        self._install(goal)
        self._solver.set_goal(goal, dynamic=True)
        return goal

    def retry_current_goal(self) -> bool:
        """
        Re-issue the current goal so the solver replans.

        The identical goal object is re-set, so a pending goto() keeps
        waiting and its timeout keeps running.
        """
        goal = self._current
        if goal is None:
            return False
        self._solver.set_goal(goal, dynamic=goal.dynamic)
        self._on_transition("retried", goal, None)
        return True

    def stop_current_goal(self) -> bool:
        """Clear the solver goal. Returns True if a goal was active."""
        goal = self._current
        self._current = None
        self._solver.set_goal(None)
        if goal is None:
            return False
        self._on_transition("stopped", goal, None)
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _install(self, goal: Goal) -> None:
        previous = self._current
        self._current = goal
        if previous is not None:
            # Superseded: the previous attempt ends as stopped.
            self._on_transition("stopped", previous, None)
        self._on_transition("started", goal, None)

    async def _execute_goto(self, goal: Goal, timeout_s: Optional[float]) -> None:
        timeout = self._default_timeout_s if timeout_s is None else timeout_s
        self._install(goal)
        log.debug("GoalExecutor: %s (timeout %.1fs)", goal.describe(), timeout)

        try:
            await asyncio.wait_for(self._solver.goto(goal), timeout=timeout)
        except asyncio.TimeoutError:
            error = MovementTimeout(
                f"Movement timeout: {goal.describe()}",
                details={"goal": goal.to_payload(), "timeout_s": timeout},
            )
            if self._current is goal:
                self._solver.set_goal(None)
                self._on_transition("failed", goal, error)
            raise error from None
        except Exception as exc:
            # When the goal was stopped or superseded, that transition
            # already closed this attempt.
            if self._current is goal:
                self._solver.set_goal(None)
                self._on_transition("failed", goal, exc)
            log.debug("GoalExecutor: %s failed: %s", goal.describe(), describe_error(exc))
            raise
        else:
            if self._current is goal:
                self._on_transition("reached", goal, None)
        finally:
            if self._current is goal:
                self._current = None
