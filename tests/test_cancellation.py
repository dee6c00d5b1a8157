# tests/test_cancellation.py
"""
Tests for bot_core.cancellation.CancellationToken.

Covers:
- Monotonic counter semantics
- was_stopped_after() against earlier and current snapshots
"""

from __future__ import annotations

from bot_core.cancellation import CancellationToken


def test_token_starts_at_zero() -> None:
    token = CancellationToken()
    assert token.value == 0
    assert token.snapshot() == 0
    assert token.was_stopped_after(0) is False


def test_request_stop_is_monotonic() -> None:
    token = CancellationToken()
    seen = [token.request_stop() for _ in range(5)]
    assert seen == [1, 2, 3, 4, 5]
    assert token.value == 5


def test_was_stopped_after_snapshot() -> None:
    token = CancellationToken()
    mark = token.snapshot()

    assert not token.was_stopped_after(mark)
    token.request_stop()
    assert token.was_stopped_after(mark)

    # A fresh snapshot taken after the stop is clean again.
    later = token.snapshot()
    assert not token.was_stopped_after(later)


def test_repr_shows_value() -> None:
    token = CancellationToken()
    token.request_stop()
    assert repr(token) == "CancellationToken(value=1)"
