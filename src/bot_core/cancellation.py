# src/bot_core/cancellation.py
"""
Cooperative cancellation for multi-step sequences.

A single process-wide counter per bot instance. Components that run a
sequence of externally awaited steps take a snapshot at entry and, after
each awaited step, ask whether a stop happened since then:

    token = bot.cancellation
    mark = token.snapshot()
    for step in steps:
        await step()
        if token.was_stopped_after(mark):
            return neutral_result

No locks and no preemption: the token is advisory and polled.
"""

from __future__ import annotations


class CancellationToken:
    """Monotonic stop counter. Starts at 0, never decreases, never resets."""

    def __init__(self) -> None:
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def snapshot(self) -> int:
        """Return the current value for a later was_stopped_after() check."""
        return self._value

    def request_stop(self) -> int:
        """Record one stop request and return the new value."""
        self._value += 1
        return self._value

    def was_stopped_after(self, snapshot: int) -> bool:
        """True iff a stop was requested since `snapshot` was taken."""
        return self._value != snapshot

    def __repr__(self) -> str:
        return f"CancellationToken(value={self._value})"
