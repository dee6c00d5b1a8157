# tests/test_survival.py
"""
Tests for bot_core.survival.SurvivalBehavior

Covers:
- priority order: defend > eat > look at player
- eating in the background without blocking self-defense
- attack cooldown and out-of-reach hostiles
- idle-only player tracking
- background loop start/stop
"""

from __future__ import annotations

import asyncio
from typing import List

import pytest

from bot_core.survival import SurvivalBehavior, find_best_food, find_best_weapon
from bot_core.testing.fakes import FakeWorldLink
from contracts import Entity, Item, Vec3


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def make_survival(busy: bool = False):
    link = FakeWorldLink()
    link.spawn()
    clock = FakeClock()
    state = {"busy": busy}
    survival = SurvivalBehavior(link, lambda: state["busy"], clock=clock)
    return survival, link, clock, state


def zombie(x: float, entity_id: int = 7) -> Entity:
    return Entity(id=entity_id, name="zombie", kind="mob", position=Vec3(x, 64.0, 0.5))


def test_find_best_food_prefers_priority_list() -> None:
    items: List[Item] = [Item("rotten_flesh", 0), Item("apple", 1), Item("cooked_beef", 2), Item("stone", 3)]
    assert find_best_food(items) == Item("cooked_beef", 2)
    assert find_best_food([Item("rotten_flesh", 0)]) == Item("rotten_flesh", 0)
    assert find_best_food([Item("stone", 0)]) is None


def test_find_best_weapon_falls_back_to_axes() -> None:
    assert find_best_weapon([Item("wooden_sword", 0), Item("diamond_sword", 1)]) == Item("diamond_sword", 1)
    assert find_best_weapon([Item("iron_axe", 4), Item("stick", 5)]) == Item("iron_axe", 4)
    assert find_best_weapon([Item("stick", 5)]) is None


@pytest.mark.asyncio
async def test_defends_against_hostile_in_reach() -> None:
    survival, link, clock, _state = make_survival()
    link.inventory = [Item("wooden_sword", 1), Item("diamond_sword", 2)]
    link.entities = [zombie(2.5)]

    assert await survival.tick() == "defend"
    assert link.equipped == [Item("diamond_sword", 2)]
    assert [e.id for e in link.attacked] == [7]

    # cooldown: no second swing yet
    assert await survival.tick() is None
    assert len(link.attacked) == 1

    clock.now += 0.6
    assert await survival.tick() == "defend"
    assert len(link.attacked) == 2
    # already holding the best weapon
    assert len(link.equipped) == 1


@pytest.mark.asyncio
async def test_out_of_reach_hostile_is_watched() -> None:
    survival, link, _clock, _state = make_survival()
    link.entities = [zombie(5.0)]

    assert await survival.tick() is None
    assert link.attacked == []
    assert link.looks[0].x == pytest.approx(5.0)
    assert link.looks[0].y == pytest.approx(64.0 + 1.8 * 0.8)


@pytest.mark.asyncio
async def test_passive_mobs_are_ignored() -> None:
    survival, link, _clock, _state = make_survival()
    link.entities = [Entity(id=9, name="cow", kind="mob", position=Vec3(1.5, 64, 0.5))]

    assert await survival.tick() is None
    assert link.attacked == []


@pytest.mark.asyncio
async def test_eats_when_hungry() -> None:
    survival, link, _clock, _state = make_survival()
    link.food = 10
    link.inventory = [Item("apple", 3), Item("golden_carrot", 4)]

    assert await survival.tick() == "eat"
    assert survival.eating
    # the meal runs as its own task
    await asyncio.sleep(0)
    assert survival.eating is False
    assert link.equipped == [Item("golden_carrot", 4)]
    assert link.consumed == 1
    assert link.food == 20.0


@pytest.mark.asyncio
async def test_does_not_eat_when_fed_or_starving_at_zero() -> None:
    survival, link, _clock, _state = make_survival()
    link.inventory = [Item("bread", 0)]

    link.food = 14
    assert await survival.tick() is None
    link.food = 0
    assert await survival.tick() is None
    assert link.consumed == 0


@pytest.mark.asyncio
async def test_looks_at_nearest_player_only_when_idle() -> None:
    survival, link, _clock, state = make_survival()
    link.add_player("Alex", Vec3(10, 64, 10), entity_id=50)
    link.add_player("Steve", Vec3(3, 64, 4), entity_id=51)
    link.add_player("Far", Vec3(40, 64, 40), entity_id=52)

    assert await survival.tick() == "look"
    assert len(link.looks) == 1
    assert (link.looks[0].x, link.looks[0].z) == (3, 4)
    assert link.looks[0].y == pytest.approx(65.6)

    state["busy"] = True
    assert await survival.tick() is None
    assert len(link.looks) == 1


@pytest.mark.asyncio
async def test_no_entity_no_tick() -> None:
    survival, link, _clock, _state = make_survival()
    link.entity = None
    assert await survival.tick() is None


@pytest.mark.asyncio
async def test_background_loop() -> None:
    link = FakeWorldLink()
    link.spawn()
    link.add_player("Steve", Vec3(3, 64, 4))
    survival = SurvivalBehavior(link, lambda: False, tick_interval_s=0.005)

    survival.start()
    survival.start()
    assert survival.active
    await asyncio.sleep(0.05)
    survival.stop()

    assert survival.active is False
    assert len(link.looks) >= 2
    seen = len(link.looks)
    await asyncio.sleep(0.02)
    assert len(link.looks) == seen


@pytest.mark.asyncio
async def test_defense_continues_while_eating() -> None:
    link = FakeWorldLink()
    link.spawn()
    link.food = 10
    link.inventory = [Item("bread", 0), Item("iron_sword", 1)]

    async def slow_meal() -> None:
        await asyncio.sleep(3600)

    link.consume = slow_meal
    survival = SurvivalBehavior(link, lambda: False, tick_interval_s=0.01)

    survival.start()
    await asyncio.sleep(0.05)
    assert survival.eating
    assert link.attacked == []

    link.entities = [zombie(2.5)]
    await asyncio.sleep(0.1)
    assert [e.id for e in link.attacked][:1] == [7]
    # only one meal at a time
    assert link.equipped.count(Item("bread", 0)) == 1

    survival.stop()
    await asyncio.sleep(0.01)
    assert survival.eating is False
    assert survival.active is False
