# src/bot_core/nav/stuck.py
"""
Low-displacement ("stuck") detection while a movement goal is active.

Samples the bot position every `interval_s`. When the squared displacement
between consecutive samples stays below `epsilon` for `sample_limit`
samples in a row, `on_stuck(position)` fires once and the count resets.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from contracts import Vec3

log = logging.getLogger(__name__)

PositionFn = Callable[[], Optional[Vec3]]
ActiveFn = Callable[[], bool]
StuckFn = Callable[[Vec3], None]

DEFAULT_INTERVAL_S = 1.5
DEFAULT_EPSILON = 0.05
DEFAULT_SAMPLE_LIMIT = 6


class StuckDetector:
    def __init__(
        self,
        position_fn: PositionFn,
        is_active: ActiveFn,
        on_stuck: StuckFn,
        interval_s: float = DEFAULT_INTERVAL_S,
        epsilon: float = DEFAULT_EPSILON,
        sample_limit: int = DEFAULT_SAMPLE_LIMIT,
    ) -> None:
        self._position_fn = position_fn
        self._is_active = is_active
        self._on_stuck = on_stuck
        self._interval_s = interval_s
        self._epsilon = epsilon
        self._sample_limit = sample_limit

        self._last_position: Optional[Vec3] = None
        self._unchanged = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def unchanged_samples(self) -> int:
        return self._unchanged

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start periodic sampling on the running loop. No-op if running."""
        if self.is_running():
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self.reset()

    def reset(self) -> None:
        self._last_position = None
        self._unchanged = 0

    def check(self) -> bool:
        """Take one sample. Returns True when this sample fired on_stuck."""
        position = self._position_fn()
        if not self._is_active() or position is None:
            self.reset()
            return False

        if self._last_position is None:
            self._last_position = position
            return False

        moved = position.distance_squared(self._last_position)
        self._last_position = position

        if moved < self._epsilon:
            self._unchanged += 1
        else:
            self._unchanged = 0

        if self._unchanged >= self._sample_limit:
            self._unchanged = 0
            self._on_stuck(position)
            return True
        return False

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval_s)
            try:
                self.check()
            except Exception:
                log.exception("StuckDetector: sample failed")
