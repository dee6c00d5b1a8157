# tests/test_emitter.py
"""Tests for bot_core.net.emitter.EventEmitter."""

from __future__ import annotations

from typing import Any, List, Tuple

from bot_core.net.emitter import EventEmitter


def test_on_and_emit_pass_arguments() -> None:
    emitter = EventEmitter()
    seen: List[Tuple[Any, ...]] = []
    emitter.on("chat", lambda *args: seen.append(args))

    assert emitter.emit("chat", "Steve", "hello") is True
    assert emitter.emit("whisper", "Steve", "psst") is False
    assert seen == [("Steve", "hello")]


def test_once_runs_a_single_time() -> None:
    emitter = EventEmitter()
    calls: List[str] = []
    emitter.once("spawn", lambda: calls.append("spawn"))

    emitter.emit("spawn")
    emitter.emit("spawn")

    assert calls == ["spawn"]
    assert emitter.listener_count("spawn") == 0


def test_off_removes_first_registration() -> None:
    emitter = EventEmitter()
    calls: List[str] = []

    def listener() -> None:
        calls.append("x")

    emitter.on("end", listener)
    emitter.on("end", listener)
    emitter.off("end", listener)
    emitter.off("missing", listener)
    emitter.emit("end")

    assert calls == ["x"]


def test_failing_listener_does_not_stop_others(caplog) -> None:
    emitter = EventEmitter()
    calls: List[str] = []

    def broken(*_args: Any) -> None:
        raise RuntimeError("boom")

    emitter.on("health", broken)
    emitter.on("health", lambda *_: calls.append("ok"))

    with caplog.at_level("ERROR", logger="bot_core.net.emitter"):
        emitter.emit("health")

    assert calls == ["ok"]
    assert "Listener for 'health' failed" in caplog.text


def test_remove_all_listeners() -> None:
    emitter = EventEmitter()
    emitter.on("a", lambda: None)
    emitter.on("b", lambda: None)

    emitter.remove_all_listeners("a")
    assert emitter.listener_count("a") == 0
    assert emitter.listener_count("b") == 1

    emitter.remove_all_listeners()
    assert emitter.listener_count("b") == 0
