# src/bot_core/survival.py
"""
Background survival loop.

Ticks on a fixed interval once the bot has spawned. Each tick runs at most
one behaviour, in priority order:

    1. self-defense: attack the nearest hostile in reach (always)
    2. eat when hungry (always)
    3. look at the nearest player (only when the bot is idle)

Tick errors are logged at debug level and never escape the loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, FrozenSet, List, Optional, Tuple

from contracts import Entity, Item, WorldLink

log = logging.getLogger(__name__)

TICK_INTERVAL_S = 0.25
HUNGER_THRESHOLD = 14
ENEMY_RANGE = 5.0
ATTACK_REACH = 3.5
ATTACK_COOLDOWN_S = 0.5
LOOK_AT_PLAYER_RANGE = 16.0
PLAYER_EYE_HEIGHT = 1.6

FOOD_ITEMS: FrozenSet[str] = frozenset({
    "apple", "baked_potato", "beetroot", "beetroot_soup", "bread",
    "carrot", "chorus_fruit", "cooked_beef", "cooked_chicken",
    "cooked_cod", "cooked_mutton", "cooked_porkchop", "cooked_rabbit",
    "cooked_salmon", "cookie", "dried_kelp", "enchanted_golden_apple",
    "golden_apple", "golden_carrot", "honey_bottle", "melon_slice",
    "mushroom_stew", "pumpkin_pie", "rabbit_stew", "beef",
    "chicken", "cod", "mutton", "porkchop", "potato", "rabbit",
    "salmon", "rotten_flesh", "spider_eye", "suspicious_stew",
    "sweet_berries", "tropical_fish", "glow_berries",
})

# Preferred foods, best first; anything else edible comes after.
FOOD_PRIORITY: Tuple[str, ...] = (
    "golden_carrot", "cooked_beef", "cooked_porkchop", "cooked_mutton",
    "cooked_salmon", "cooked_chicken", "cooked_rabbit", "cooked_cod",
    "bread", "baked_potato", "beetroot", "carrot", "apple", "melon_slice",
)

HOSTILE_TYPES: FrozenSet[str] = frozenset({
    "zombie", "skeleton", "spider", "creeper", "enderman",
    "witch", "slime", "phantom", "drowned", "husk",
    "stray", "blaze", "ghast", "magma_cube", "hoglin",
    "piglin_brute", "warden", "vindicator", "pillager",
    "ravager", "evoker", "vex", "wither_skeleton",
    "cave_spider", "silverfish", "guardian", "elder_guardian",
    "shulker", "zombified_piglin",
})

SWORD_TIERS = (
    "netherite_sword", "diamond_sword", "iron_sword",
    "stone_sword", "golden_sword", "wooden_sword",
)
AXE_TIERS = (
    "netherite_axe", "diamond_axe", "iron_axe",
    "stone_axe", "golden_axe", "wooden_axe",
)


def find_best_food(items: List[Item]) -> Optional[Item]:
    edible = [item for item in items if item.name in FOOD_ITEMS]
    if not edible:
        return None
    for name in FOOD_PRIORITY:
        for item in edible:
            if item.name == name:
                return item
    return edible[0]


def find_best_weapon(items: List[Item]) -> Optional[Item]:
    """Best sword, else best axe."""
    by_name = {}
    for item in items:
        by_name.setdefault(item.name, item)
    for name in SWORD_TIERS + AXE_TIERS:
        if name in by_name:
            return by_name[name]
    return None


class SurvivalBehavior:
    def __init__(
        self,
        link: WorldLink,
        is_busy: Callable[[], bool],
        *,
        tick_interval_s: float = TICK_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._link = link
        self._is_busy = is_busy
        self._tick_interval_s = tick_interval_s
        self._clock = clock

        self._task: Optional[asyncio.Task] = None
        self._eat_task: Optional[asyncio.Task] = None
        self._eating = False
        self._last_attack: Optional[float] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def eating(self) -> bool:
        return self._eating

    def start(self) -> None:
        if self.active:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        log.info("Survival behavior started")

    def stop(self) -> None:
        if self._eat_task is not None:
            self._eat_task.cancel()
            self._eat_task = None
        self._eating = False
        if self._task is None:
            return
        self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval_s)
            await self.tick()

    async def tick(self) -> Optional[str]:
        """Run one tick. Returns the behaviour that acted, if any."""
        me = self._link.entity
        if me is None:
            return None

        try:
            if await self._try_defend(me):
                return "defend"

            if self._should_eat():
                self._start_eating()
                return "eat"

            if not self._is_busy():
                if await self._look_at_nearest_player(me):
                    return "look"
        except Exception as exc:
            log.debug("Survival tick error: %s", exc)
        return None

    # ------------------------------------------------------------------
    # Self-defense
    # ------------------------------------------------------------------

    async def _try_defend(self, me: Entity) -> bool:
        now = self._clock()
        if self._last_attack is not None and now - self._last_attack < ATTACK_COOLDOWN_S:
            return False

        hostile = self._link.nearest_entity(
            lambda e: e.id != me.id
            and (e.name or "").lower() in HOSTILE_TYPES
            and me.position.distance_to(e.position) <= ENEMY_RANGE
        )
        if hostile is None:
            return False

        if me.position.distance_to(hostile.position) > ATTACK_REACH:
            # Nearby but out of reach: keep it in view.
            await self._link.look_at(hostile.position.offset(0, hostile.height * 0.8, 0))
            return False

        await self._equip_best_weapon()
        self._link.attack(hostile)
        self._last_attack = now
        return True

    async def _equip_best_weapon(self) -> None:
        weapon = find_best_weapon(self._link.inventory_items())
        if weapon is None:
            return
        held = self._link.held_item
        if held is not None and held.slot == weapon.slot:
            return
        try:
            await self._link.equip(weapon, "hand")
        except Exception as exc:
            log.debug("Failed to equip %s: %s", weapon.name, exc)

    # ------------------------------------------------------------------
    # Eating
    # ------------------------------------------------------------------

    def _should_eat(self) -> bool:
        food = self._link.food
        return not self._eating and 0 < food < HUNGER_THRESHOLD

    def _start_eating(self) -> None:
        # A meal runs beside the tick loop so defense keeps working meanwhile.
        self._eating = True
        self._eat_task = asyncio.get_running_loop().create_task(self._try_eat())

    async def _try_eat(self) -> None:
        try:
            item = find_best_food(self._link.inventory_items())
            if item is None:
                return

            await self._link.equip(item, "hand")
            log.info("Eating %s (hunger: %s/20)", item.name, self._link.food)
            await self._link.consume()
            log.info("Finished eating. Hunger now: %s/20", self._link.food)
        except Exception as exc:
            log.debug("Failed to eat: %s", exc)
        finally:
            self._eating = False

    # ------------------------------------------------------------------
    # Idle
    # ------------------------------------------------------------------

    async def _look_at_nearest_player(self, me: Entity) -> bool:
        nearest: Optional[Entity] = None
        nearest_distance = LOOK_AT_PLAYER_RANGE

        for player in self._link.players.values():
            entity = player.entity
            if entity is None or entity.id == me.id:
                continue
            distance = me.position.distance_to(entity.position)
            if distance < nearest_distance:
                nearest_distance = distance
                nearest = entity

        if nearest is None:
            return False
        await self._link.look_at(nearest.position.offset(0, PLAYER_EYE_HEIGHT, 0))
        return True
