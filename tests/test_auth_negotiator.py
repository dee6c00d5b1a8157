# tests/test_auth_negotiator.py
"""
Tests for bot_core.auth (AuthNegotiator, CredentialStore, strip_formatting).

Covers:
- Success text then a registration prompt -> no new attempt
- logged_in never reverts
- Registration sequence stops as soon as success arrives
- Attempt throttling and the in-flight sequence guard
- auto_register disabled -> manual action requested
- Timeout after spawn, and no timeout once authenticated
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Tuple

import pytest

from bot_core.auth import (
    LOGIN,
    REGISTRATION,
    SUCCESS,
    AuthNegotiator,
    CredentialStore,
    strip_formatting,
)
from bot_core.testing.fakes import FakeWorldLink
from env.schema import AuthConfig
from monitoring.bus import EventBus
from monitoring.events import EventType, MonitoringEvent

PASSWORD = "s3cretPassw0rd"


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


def make_negotiator(
    **overrides: object,
) -> Tuple[FakeWorldLink, AuthNegotiator, List[MonitoringEvent], FakeClock]:
    settings = dict(
        password=PASSWORD,
        initial_delay_ms=0,
        command_delay_ms=0,
        min_attempt_interval_ms=3_000,
        timeout_ms=60_000,
        check_interval_ms=10,
    )
    settings.update(overrides)
    config = AuthConfig(**settings)  # type: ignore[arg-type]

    link = FakeWorldLink()
    bus = EventBus()
    events: List[MonitoringEvent] = []
    bus.subscribe(events.append)
    clock = FakeClock()
    negotiator = AuthNegotiator(link, config, CredentialStore(PASSWORD), bus=bus, clock=clock)
    return link, negotiator, events, clock


def of_type(events: List[MonitoringEvent], event_type: EventType) -> List[MonitoringEvent]:
    return [e for e in events if e.event_type is event_type]


def test_strip_formatting_removes_section_codes() -> None:
    assert strip_formatting("  §aHello §lWorld§r ") == "Hello World"


@pytest.mark.asyncio
async def test_success_then_registration_prompt_makes_no_attempt() -> None:
    link, negotiator, events, _clock = make_negotiator()

    assert negotiator.handle_message("§aSuccessfully registered!") == SUCCESS
    state = negotiator.get_state()
    assert state.logged_in and state.registered

    assert negotiator.handle_message("Please register with /register <password>") is None
    await asyncio.sleep(0.01)

    assert link.sent_chat == []
    assert negotiator.get_state().attempts == 0
    assert len(of_type(events, EventType.AUTH_SUCCESS)) == 1


@pytest.mark.asyncio
async def test_logged_in_is_monotonic() -> None:
    link, negotiator, _events, _clock = make_negotiator()
    negotiator.handle_message("Login successful.")

    for prompt in ("Please /login <password>", "You must register first", "authenticate now"):
        assert negotiator.handle_message(prompt) is None
        assert negotiator.get_state().logged_in is True

    await asyncio.sleep(0.01)
    assert link.sent_chat == []


@pytest.mark.asyncio
async def test_registration_sequence_stops_on_success() -> None:
    link, negotiator, _events, _clock = make_negotiator(command_delay_ms=30)

    assert negotiator.handle_message("Please register using /register <password> <password>") == REGISTRATION
    await asyncio.sleep(0.01)
    assert link.sent_chat == [f"/register {PASSWORD} {PASSWORD}"]

    negotiator.handle_message("You have been registered!")
    await asyncio.sleep(0.06)

    state = negotiator.get_state()
    assert state.logged_in is True
    assert state.registered is True
    assert state.attempts == 1
    assert len(link.sent_chat) == 1


@pytest.mark.asyncio
async def test_login_sequence_without_success_requests_manual_login() -> None:
    link, negotiator, events, _clock = make_negotiator()

    assert negotiator.handle_message("Please /login <password>") == LOGIN
    await asyncio.sleep(0.02)

    assert link.sent_chat == [f"/login {PASSWORD}", f"/l {PASSWORD}"]
    assert negotiator.get_state().attempts == 2
    required = of_type(events, EventType.AUTH_REQUIRED)
    assert len(required) == 1
    assert required[0].payload["kind"] == "login"


@pytest.mark.asyncio
async def test_attempts_are_throttled() -> None:
    link, negotiator, _events, clock = make_negotiator()

    negotiator.handle_message("Please /login <password>")
    await asyncio.sleep(0.02)
    sent = len(link.sent_chat)

    clock.now += 1.0  # 1s since the last command, below the 3s minimum
    assert negotiator.handle_message("Please /login <password>") is None
    await asyncio.sleep(0.01)
    assert len(link.sent_chat) == sent

    clock.now += 2.5
    assert negotiator.handle_message("Please /login <password>") == LOGIN
    await asyncio.sleep(0.02)
    assert len(link.sent_chat) == sent + 2


@pytest.mark.asyncio
async def test_no_second_sequence_while_one_is_running() -> None:
    link, negotiator, _events, clock = make_negotiator(command_delay_ms=50)

    negotiator.handle_message("Please /login <password>")
    await asyncio.sleep(0.01)

    clock.now += 60.0
    assert negotiator.handle_message("Please /login <password>") is None
    negotiator.destroy()


@pytest.mark.asyncio
async def test_auto_register_disabled_requests_manual_registration() -> None:
    link, negotiator, events, _clock = make_negotiator(auto_register=False)

    assert negotiator.handle_message("You need to register: /register <pw> <pw>") == REGISTRATION
    await asyncio.sleep(0.01)

    assert link.sent_chat == []
    required = of_type(events, EventType.AUTH_REQUIRED)
    assert [e.payload["kind"] for e in required] == ["registration"]


@pytest.mark.asyncio
async def test_timeout_after_spawn() -> None:
    link, negotiator, events, _clock = make_negotiator(timeout_ms=20)
    negotiator.attach()

    link.emit("spawn")
    assert negotiator.is_checking() is True
    await asyncio.sleep(0.06)

    assert negotiator.timed_out is True
    assert negotiator.is_checking() is False
    assert len(of_type(events, EventType.AUTH_TIMEOUT)) == 1
    negotiator.destroy()


@pytest.mark.asyncio
async def test_success_via_link_message_prevents_timeout() -> None:
    link, negotiator, events, _clock = make_negotiator(timeout_ms=30)
    negotiator.attach()

    link.emit("spawn")
    link.emit("message", "§2Successfully logged in")
    await asyncio.sleep(0.06)

    assert negotiator.get_state().logged_in is True
    assert negotiator.timed_out is False
    assert of_type(events, EventType.AUTH_TIMEOUT) == []
    negotiator.destroy()


@pytest.mark.asyncio
async def test_destroy_detaches_listeners() -> None:
    link, negotiator, _events, _clock = make_negotiator()
    negotiator.attach()
    negotiator.destroy()

    link.emit("message", "Successfully logged in")
    assert negotiator.get_state().logged_in is False


def test_credential_store_commands_and_masking() -> None:
    store = CredentialStore(PASSWORD)

    assert store.registration_commands()[0] == f"/register {PASSWORD} {PASSWORD}"
    assert store.login_commands() == [f"/login {PASSWORD}", f"/l {PASSWORD}"]
    assert PASSWORD not in repr(store)


def test_credential_store_warns_on_weak_passwords(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="bot_core.auth.credentials"):
        CredentialStore("defaultPassword123")
        CredentialStore("short")

    messages = [r.getMessage() for r in caplog.records]
    assert any("default password" in m for m in messages)
    assert any("shorter than 8" in m for m in messages)
