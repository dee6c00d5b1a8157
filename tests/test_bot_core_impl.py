# tests/test_bot_core_impl.py
"""
Integration tests for BotCoreImpl using FakeWorldLink.

Covers:
- connect() happy path, timeout and link error
- Unexpected end -> backoff reconnect -> counter reset on success
- Reconnect budget exhaustion: no timer, exactly one exhausted event
- Facade operations (move, follow, stop, mine, chat) and readiness checks
- In-game hook lifecycle per connection
"""

from __future__ import annotations

import asyncio
from typing import Any, List

import pytest

from bot_core import BotCoreImpl, ConnectionState, ReconnectPolicy
from bot_core.errors import ConnectionTimeout, LinkError, NotReady
from bot_core.testing.fakes import FakeWorldLink, fake_link_factory
from contracts import Vec3
from env.schema import AdvancedConfig, AuthConfig, BotConfig
from monitoring.bus import EventBus
from monitoring.events import EventType, MonitoringEvent

PASSWORD = "s3cretPassw0rd"


def make_config(**advanced: Any) -> BotConfig:
    settings = dict(
        connect_timeout_ms=500,
        movement_timeout_ms=1_000,
        stuck_check_interval_ms=60_000,
        reconnect_delay_ms=5,
        reconnect_cap_ms=10,
        max_reconnect_attempts=3,
        survival_tick_ms=60_000,
    )
    settings.update(advanced)
    return BotConfig(
        auth=AuthConfig(password=PASSWORD, initial_delay_ms=0, command_delay_ms=0),
        advanced=AdvancedConfig(**settings),  # type: ignore[arg-type]
    )


def make_bot(config: BotConfig, links: List[FakeWorldLink], **link_kwargs: Any):
    bus = EventBus()
    events: List[MonitoringEvent] = []
    bus.subscribe(events.append)
    bot = BotCoreImpl(config, fake_link_factory(links, **link_kwargs), bus=bus)
    return bot, events


def of_type(events: List[MonitoringEvent], event_type: EventType) -> List[MonitoringEvent]:
    return [e for e in events if e.event_type is event_type]


def test_reconnect_policy_backoff() -> None:
    policy = ReconnectPolicy(max_attempts=10, base_delay_s=5.0, cap_delay_s=60.0)

    assert [policy.delay_for(n) for n in range(1, 7)] == [5.0, 10.0, 20.0, 40.0, 60.0, 60.0]
    with pytest.raises(ValueError):
        policy.delay_for(0)


def test_reconnect_policy_from_config() -> None:
    policy = ReconnectPolicy.from_config(
        AdvancedConfig(max_reconnect_attempts=4, reconnect_delay_ms=250, reconnect_cap_ms=1_000)
    )
    assert policy == ReconnectPolicy(max_attempts=4, base_delay_s=0.25, cap_delay_s=1.0)


@pytest.mark.asyncio
async def test_connect_reaches_ready() -> None:
    links: List[FakeWorldLink] = []
    bot, events = make_bot(make_config(), links)

    link = await bot.connect()

    assert link is links[0]
    assert bot.state is ConnectionState.READY
    assert bot.is_ready()
    assert bot.movement is not None and bot.movement.is_initialized()

    state = bot.get_state()
    assert state is not None
    assert state.connected and state.spawned
    assert state.position == Vec3(0.5, 64.0, 0.5)
    assert state.auth_state is not None and state.auth_state.logged_in is False
    assert state.movement_status is not None and state.movement_status.moving is False

    transitions = [e.payload["to"] for e in of_type(events, EventType.CONNECTION_STATE)]
    assert transitions == ["connecting", "connected_not_spawned", "ready"]

    await bot.disconnect()
    assert bot.state is ConnectionState.DISCONNECTED
    assert link.quit_reasons == ["Shutting down"]
    assert bot.reconnect_pending is False


@pytest.mark.asyncio
async def test_connect_timeout() -> None:
    links: List[FakeWorldLink] = []
    bot, _events = make_bot(make_config(connect_timeout_ms=30), links, auto_spawn=False)

    with pytest.raises(ConnectionTimeout) as info:
        await bot.connect()

    assert str(info.value) == "Connection timeout after 0.03 seconds"
    assert bot.state is ConnectionState.DISCONNECTED
    assert bot.link is None
    assert links[0].quit_reasons == ["Shutting down"]
    assert bot.reconnect_pending is False


@pytest.mark.asyncio
async def test_connect_link_error() -> None:
    links: List[FakeWorldLink] = []
    bot, _events = make_bot(make_config(), links, start_error=LinkError("connection refused"))

    with pytest.raises(LinkError, match="connection refused"):
        await bot.connect()

    assert bot.state is ConnectionState.DISCONNECTED
    assert bot.reconnect_pending is False


@pytest.mark.asyncio
async def test_unexpected_end_reconnects_and_resets_counter() -> None:
    links: List[FakeWorldLink] = []
    bot, events = make_bot(make_config(), links)
    await bot.connect()

    links[0].emit("end", "server closed")
    assert bot.state is ConnectionState.RECONNECTING
    assert bot.reconnect_attempts == 1
    assert bot.reconnect_pending is True

    scheduled = of_type(events, EventType.RECONNECT_SCHEDULED)
    assert scheduled[0].payload["attempt"] == 1
    assert scheduled[0].payload["delay_s"] == pytest.approx(0.005)

    await asyncio.sleep(0.05)

    assert len(links) == 2
    assert bot.link is links[1]
    assert bot.state is ConnectionState.READY
    assert bot.reconnect_attempts == 0
    await bot.disconnect()


@pytest.mark.asyncio
async def test_reconnect_budget_exhausted_once() -> None:
    links: List[FakeWorldLink] = []

    def factory() -> FakeWorldLink:
        # Only the first connection works; every reconnect is refused.
        error = LinkError("connection refused") if links else None
        link = FakeWorldLink(start_error=error)
        links.append(link)
        return link

    bus = EventBus()
    events: List[MonitoringEvent] = []
    bus.subscribe(events.append)
    bot = BotCoreImpl(make_config(max_reconnect_attempts=2), factory, bus=bus)

    await bot.connect()
    links[0].emit("kicked", "flying is not enabled")
    await asyncio.sleep(0.15)

    assert len(links) == 3  # first connect + two reconnect attempts
    assert bot.reconnect_attempts == 2
    assert bot.reconnect_pending is False
    assert bot.reconnect_exhausted is not None
    assert bot.state is ConnectionState.DISCONNECTED
    assert len(of_type(events, EventType.RECONNECT_SCHEDULED)) == 2
    assert len(of_type(events, EventType.RECONNECT_EXHAUSTED)) == 1

    await asyncio.sleep(0.05)
    assert len(of_type(events, EventType.RECONNECT_EXHAUSTED)) == 1
    assert len(links) == 3


@pytest.mark.asyncio
async def test_manual_connect_clears_exhaustion() -> None:
    links: List[FakeWorldLink] = []
    bot, _events = make_bot(make_config(max_reconnect_attempts=0), links)

    await bot.connect()
    links[0].emit("end", "lost")
    assert bot.reconnect_exhausted is not None
    assert bot.reconnect_pending is False

    await bot.connect()
    assert bot.reconnect_exhausted is None
    assert bot.state is ConnectionState.READY
    await bot.disconnect()


@pytest.mark.asyncio
async def test_operations_require_ready_bot() -> None:
    bot, _events = make_bot(make_config(), [])

    with pytest.raises(NotReady):
        await bot.move_to(1, 64, 1)
    with pytest.raises(NotReady):
        bot.follow_player("Steve")
    with pytest.raises(NotReady):
        await bot.mine_area(Vec3(0, 0, 0), Vec3(1, 1, 1))

    # chat is a logged no-op before spawn
    bot.chat("hello")
    assert bot.get_state() is None


@pytest.mark.asyncio
async def test_facade_operations() -> None:
    links: List[FakeWorldLink] = []
    bot, events = make_bot(make_config(), links)
    link = await bot.connect()

    await bot.move_to(3, 64, 3)
    assert link.entity.position == Vec3(3, 64, 3)

    link.add_player("Steve", Vec3(6, 64, 6))
    bot.follow_player("Steve", 2.0)
    assert bot.get_movement_status().moving is True
    assert bot.is_busy() is True

    bot.stop_movement()
    assert bot.cancellation.value == 1
    assert link.stop_digging_calls == 1
    assert bot.get_movement_status().moving is False

    link.set_block(4, 64, 4, "dirt")
    result = await bot.mine_area(Vec3(3, 63, 3), Vec3(5, 65, 5))
    assert (result.mined_blocks, result.skipped_blocks, result.stopped) == (1, 0, False)

    bot.chat("hi all")
    bot.whisper("Steve", "psst")
    assert link.sent_chat == ["hi all"]
    assert link.sent_whispers == [("Steve", "psst")]
    assert len(of_type(events, EventType.CHAT)) == 2

    assert bot.online_players() == ["Steve"]
    await bot.disconnect()


@pytest.mark.asyncio
async def test_chat_without_bot_entity_is_a_logged_no_op(caplog) -> None:
    links: List[FakeWorldLink] = []
    bot, events = make_bot(make_config(), links)
    link = await bot.connect()
    link.entity = None

    with caplog.at_level("WARNING", logger="bot_core.core"):
        bot.chat("hello")
        bot.whisper("Steve", "psst")

    assert link.sent_chat == []
    assert link.sent_whispers == []
    assert of_type(events, EventType.CHAT) == []
    assert "Cannot send chat: bot is not ready" in caplog.text
    assert "Cannot whisper: bot is not ready" in caplog.text
    await bot.disconnect()


class RecordingHook:
    def __init__(self, bot: BotCoreImpl, link: Any) -> None:
        self.bot = bot
        self.link = link
        self.calls: List[str] = []

    def start(self) -> None:
        self.calls.append("start")

    def stop(self) -> None:
        self.calls.append("stop")


@pytest.mark.asyncio
async def test_in_game_hook_started_per_connection() -> None:
    links: List[FakeWorldLink] = []
    hooks: List[RecordingHook] = []

    def factory(bot: BotCoreImpl, link: Any) -> RecordingHook:
        hook = RecordingHook(bot, link)
        hooks.append(hook)
        return hook

    bot = BotCoreImpl(make_config(), fake_link_factory(links), in_game_factory=factory)
    await bot.connect()
    await bot.connect()  # reconnecting by hand tears the first session down

    assert [h.link for h in hooks] == links
    assert hooks[0].calls == ["start", "stop"]
    assert hooks[1].calls == ["start"]
    await bot.disconnect()
    assert hooks[1].calls == ["start", "stop"]
