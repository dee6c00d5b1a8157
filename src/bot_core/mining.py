# src/bot_core/mining.py
"""
Area clearing: dig every diggable block inside a cuboid.

Design constraints:
- One running task per bot; a second request raises TaskAlreadyRunning.
- Corners are normalized to an inclusive integer box, order-independent.
- Nearest-first: each iteration searches the closest eligible block
  from the current position, walks near it and digs it.
- Per-cell failures are absorbed: the cell is ignored for the rest of the
  task and counted as skipped. An ignored cell is never revisited.
- When nothing eligible is in range, walk once to the hover point above
  the box and rescan before declaring the area exhausted.
- Cooperative cancellation: the shared CancellationToken is checked at
  every iteration boundary and after any failed step. Being stopped is
  not an error; the result reports it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

from contracts import AreaBounds, Block, BlockQuery, CellKey, Vec3, WorldLink
from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import log_event

from .cancellation import CancellationToken
from .errors import TaskAlreadyRunning, describe_error
from .nav import MovementController

log = logging.getLogger(__name__)

MODULE = "bot_core.mining"


# ---------------------------------------------------------------------------
# Config / results
# ---------------------------------------------------------------------------


@dataclass
class AreaClearerConfig:
    """Search and approach knobs for area clearing."""

    # Lower bound on the block search radius.
    min_search_distance: float = 32.0

    # Extra radius on top of the box diagonal.
    search_margin: float = 8.0

    # Maximum candidates per search.
    search_count: int = 128

    # How close to get to a block before digging it.
    dig_approach_range: float = 2.0

    # How close to get to the hover point when repositioning.
    hover_approach_range: float = 3.0

    # Per-move timeout; None uses the movement controller default.
    movement_timeout_s: Optional[float] = None


@dataclass(frozen=True)
class AreaClearResult:
    mined_blocks: int
    skipped_blocks: int
    stopped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mined_blocks": self.mined_blocks,
            "skipped_blocks": self.skipped_blocks,
            "stopped": self.stopped,
        }


def is_diggable_block(block: Optional[Block]) -> bool:
    """Solid, non-air and marked diggable by the world."""
    if block is None:
        return False
    return block.name != "air" and block.bounding_box != "empty" and block.diggable


def search_distance_for(bounds: AreaBounds, config: AreaClearerConfig) -> float:
    return max(config.min_search_distance, math.ceil(bounds.diagonal()) + config.search_margin)


# ---------------------------------------------------------------------------
# Area clearer
# ---------------------------------------------------------------------------


class AreaClearer:
    """
    Run area-clearing tasks against a WorldLink.

    Public contract:
      await clear_area(corner_a, corner_b) -> AreaClearResult
    """

    def __init__(
        self,
        link: WorldLink,
        movement: MovementController,
        token: CancellationToken,
        *,
        bus: Optional[EventBus] = None,
        config: Optional[AreaClearerConfig] = None,
    ) -> None:
        self._link = link
        self._movement = movement
        self._token = token
        self._bus = bus
        self._cfg = config if config is not None else AreaClearerConfig()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def clear_area(self, corner_a: Vec3, corner_b: Vec3) -> AreaClearResult:
        if self._running:
            raise TaskAlreadyRunning("A mining task is already running")

        self._running = True
        try:
            return await self._run(AreaBounds.from_corners(corner_a, corner_b))
        finally:
            self._running = False

    # ------------------------------------------------------------------
    # Task loop
    # ------------------------------------------------------------------

    async def _run(self, bounds: AreaBounds) -> AreaClearResult:
        mark = self._token.snapshot()
        self._movement.stop()

        hover = bounds.hover_point()
        ignored: Set[CellKey] = set()
        mined = 0
        skipped = 0
        rescan_after_reposition = True
        stopped = False

        log.info("Mining area started: %s", bounds)
        log_event(
            self._bus,
            MODULE,
            EventType.AREA_STARTED,
            f"Mining area started: {bounds}",
            {"bounds": bounds.to_dict(), "hover": hover.to_dict()},
        )

        while True:
            if self._token.was_stopped_after(mark):
                stopped = True
                break

            position = await self._find_next_block(bounds, ignored)
            if position is None:
                if not rescan_after_reposition:
                    break
                rescan_after_reposition = False
                try:
                    await self._movement.go_near(
                        hover, self._cfg.hover_approach_range, self._cfg.movement_timeout_s
                    )
                except Exception:
                    if self._token.was_stopped_after(mark):
                        stopped = True
                        break
                    raise
                continue

            rescan_after_reposition = True
            key = position.key()

            try:
                dug = await self._mine_block(position)
            except Exception as exc:
                if self._token.was_stopped_after(mark):
                    stopped = True
                    break
                skipped += 1
                ignored.add(key)
                log.warning("Skipping block at %s: %s", position, describe_error(exc))
                continue

            if dug:
                mined += 1
            else:
                skipped += 1
                ignored.add(key)

        result = AreaClearResult(mined_blocks=mined, skipped_blocks=skipped, stopped=stopped)
        if stopped:
            message = f"Mining stopped by user: mined={mined}, skipped={skipped}"
        else:
            message = f"Mining area completed: mined={mined}, skipped={skipped}, area={bounds}"
        log.info(message)
        log_event(
            self._bus,
            MODULE,
            EventType.AREA_FINISHED,
            message,
            {"bounds": bounds.to_dict(), **result.to_dict()},
        )
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _find_next_block(
        self,
        bounds: AreaBounds,
        ignored: Set[CellKey],
    ) -> Optional[Vec3]:
        """Position of the nearest diggable, in-bounds, not-ignored block."""
        entity = self._link.entity
        if entity is None:
            return None

        query = BlockQuery(
            point=entity.position,
            max_distance=search_distance_for(bounds, self._cfg),
            count=self._cfg.search_count,
            bounds=bounds,
            exclude=frozenset(ignored),
        )
        for candidate in await self._link.find_blocks(query):
            block = await self._link.block_at(candidate)
            if not is_diggable_block(block) or block.position is None:
                continue
            if not bounds.contains(block.position) or block.position.key() in ignored:
                continue
            return block.position
        return None

    async def _mine_block(self, position: Vec3) -> bool:
        """Approach, re-check and dig one cell. False means "skip it"."""
        await self._movement.go_near(
            position, self._cfg.dig_approach_range, self._cfg.movement_timeout_s
        )

        block = await self._link.block_at(position)
        if block is None or not is_diggable_block(block):
            return False

        await self._equip_best_tool(block)

        if not await self._link.can_dig_block(block):
            return False

        await self._link.look_at(position.floored().offset(0.5, 0.5, 0.5), force=True)
        await self._link.dig(block, force_look=True)
        return True

    async def _equip_best_tool(self, block: Block) -> None:
        """Best-effort: a failed lookup or equip is logged and digging goes on."""
        try:
            tool = await self._link.best_harvest_tool(block)
            if tool is None:
                return

            held = self._link.held_item
            if held is not None and held.slot == tool.slot:
                return

            await self._link.equip(tool, "hand")
        except Exception as exc:
            log.warning(
                "Failed to equip best tool for %s: %s",
                block.name,
                describe_error(exc),
            )
