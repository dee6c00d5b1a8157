# src/bot_core/auth/negotiator.py
"""
Server-side /register and /login negotiation.

The negotiator is a passive classifier over server chat. Formatting codes
are stripped, then the text is matched against three pattern classes in
priority order:

    success       -> logged in (terminal), stop periodic checking
    registration  -> run the registration command sequence (once registered,
                     these prompts are ignored)
    login         -> run the login command sequence

Attempts are throttled by `min_attempt_interval` since the last command
sent, and only one command sequence runs at a time. A sequence that ends
without a success message asks for manual action through an
AUTH_REQUIRED monitoring event.

After spawn a periodic check logs while waiting and a one-shot timeout
reports AUTH_TIMEOUT. Neither is fatal.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Pattern, Set

from contracts import WorldLink
from env.schema import AuthConfig
from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import log_event

from .credentials import CredentialStore

log = logging.getLogger(__name__)

MODULE = "bot_core.auth"

REGISTRATION = "registration"
LOGIN = "login"
SUCCESS = "success"

FORMATTING_CODE = re.compile("§[0-9A-FK-OR]", re.IGNORECASE)

SUCCESS_PATTERNS: List[Pattern[str]] = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"successfully (registered|logged in)",
        r"you (?:are now|have been) (registered|logged in)",
        r"authentication successful",
        r"login successful",
    )
]

REGISTRATION_PATTERNS: List[Pattern[str]] = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"register",
        r"\/register",
        r"you (?:need to|must) register",
        r"please register",
        r"type \/register",
        r"\/reg",
    )
]

LOGIN_PATTERNS: List[Pattern[str]] = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"login",
        r"\/login",
        r"you (?:need to|must) (?:log ?in|login)",
        r"please (?:log ?in|login)",
        r"type \/login",
        r"authenticate",
    )
]

MENTIONS_REGISTER = re.compile(r"register", re.IGNORECASE)


def strip_formatting(text: str) -> str:
    """Remove section-sign colour/format codes and surrounding whitespace."""
    return FORMATTING_CODE.sub("", text).strip()


def _matches(text: str, patterns: List[Pattern[str]]) -> bool:
    return any(p.search(text) for p in patterns)


@dataclass(frozen=True)
class AuthState:
    registered: bool = False
    logged_in: bool = False
    attempts: int = 0
    last_attempt: Optional[float] = None    # clock() value of the last command

    def to_dict(self) -> Dict[str, Any]:
        return {
            "registered": self.registered,
            "logged_in": self.logged_in,
            "attempts": self.attempts,
            "last_attempt": self.last_attempt,
        }


class AuthNegotiator:
    def __init__(
        self,
        link: WorldLink,
        config: Optional[AuthConfig] = None,
        credentials: Optional[CredentialStore] = None,
        *,
        bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._link = link
        self._cfg = config if config is not None else AuthConfig()
        self._credentials = credentials or CredentialStore(self._cfg.password)
        self._bus = bus
        self._clock = clock

        self._registered = False
        self._logged_in = False
        self._attempts = 0
        self._last_attempt: Optional[float] = None
        self._sequence_running = False
        self._timed_out = False

        self._check_task: Optional[asyncio.Task] = None
        self._timeout_handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._attached = False

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def attach(self) -> None:
        """Listen for server messages and start checking on spawn."""
        if self._attached:
            return
        self._link.on("message", self._on_message)
        self._link.once("spawn", self.start_auth_check)
        self._attached = True

    def destroy(self) -> None:
        self.stop_auth_check()
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        if self._attached:
            self._link.off("message", self._on_message)
            self._link.off("spawn", self.start_auth_check)
            self._attached = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def get_state(self) -> AuthState:
        return AuthState(
            registered=self._registered,
            logged_in=self._logged_in,
            attempts=self._attempts,
            last_attempt=self._last_attempt,
        )

    @property
    def password(self) -> str:
        return self._credentials.password

    @property
    def timed_out(self) -> bool:
        return self._timed_out

    # ------------------------------------------------------------------
    # Message classification
    # ------------------------------------------------------------------

    def _on_message(self, text: Any) -> None:
        self.handle_message(str(text))

    def handle_message(self, raw: str) -> Optional[str]:
        """
        Classify one server message and react to it.

        Returns the class that triggered an action (SUCCESS, REGISTRATION,
        LOGIN) or None when the message was ignored.
        """
        text = strip_formatting(raw)
        log.debug("Auth check message: %s", text)

        if _matches(text, SUCCESS_PATTERNS):
            self._logged_in = True
            if MENTIONS_REGISTER.search(text):
                self._registered = True
            log.info("Authentication successful")
            log_event(
                self._bus,
                MODULE,
                EventType.AUTH_SUCCESS,
                "Successfully authenticated on server",
                self.get_state().to_dict(),
            )
            self.stop_auth_check()
            return SUCCESS

        if self._logged_in:
            return None

        if not self._registered and _matches(text, REGISTRATION_PATTERNS):
            if not self._can_attempt_now():
                return None
            log.info("Registration prompt detected")
            self._spawn(self._attempt_registration())
            return REGISTRATION

        if _matches(text, LOGIN_PATTERNS):
            if not self._can_attempt_now():
                return None
            log.info("Login prompt detected")
            self._spawn(self._attempt_login())
            return LOGIN

        return None

    def _can_attempt_now(self) -> bool:
        if self._sequence_running:
            return False
        if self._last_attempt is None:
            return True
        elapsed_ms = (self._clock() - self._last_attempt) * 1000.0
        return elapsed_ms >= self._cfg.min_attempt_interval_ms

    # ------------------------------------------------------------------
    # Command sequences
    # ------------------------------------------------------------------

    async def _attempt_registration(self) -> None:
        if not self._cfg.auto_register:
            log.warning("Auto-registration is disabled. Manual registration required.")
            self._require_manual(REGISTRATION)
            return

        log.info("Attempting auto-registration...")
        if await self._run_sequence(self._credentials.registration_commands()):
            self._registered = True
            return

        log.warning("Auto-registration may have failed, manual registration may be required.")
        self._require_manual(REGISTRATION)

    async def _attempt_login(self) -> None:
        log.info("Attempting auto-login...")
        if await self._run_sequence(self._credentials.login_commands()):
            return

        log.warning("Auto-login may have failed, manual login may be required.")
        self._require_manual(LOGIN)

    async def _run_sequence(self, commands: List[str]) -> bool:
        """Send commands one by one; True as soon as a success message arrived."""
        self._sequence_running = True
        try:
            await asyncio.sleep(self._cfg.initial_delay_ms / 1000.0)
            for command in commands:
                if self._logged_in:
                    return True
                self._link.chat(command)
                self._attempts += 1
                self._last_attempt = self._clock()
                await asyncio.sleep(self._cfg.command_delay_ms / 1000.0)
                if self._logged_in:
                    return True
            return self._logged_in
        finally:
            self._sequence_running = False

    def _require_manual(self, kind: str) -> None:
        log.warning("Manual %s required", kind)
        log_event(
            self._bus,
            MODULE,
            EventType.AUTH_REQUIRED,
            f"Manual {kind} required",
            {"kind": kind, "attempts": self._attempts},
        )

    # ------------------------------------------------------------------
    # Periodic check / timeout
    # ------------------------------------------------------------------

    def start_auth_check(self) -> None:
        """Begin waiting for authentication. Called on spawn."""
        self.stop_auth_check()
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()

        loop = asyncio.get_running_loop()
        self._check_task = loop.create_task(self._check_loop())
        self._timeout_handle = loop.call_later(
            self._cfg.timeout_ms / 1000.0, self._on_timeout
        )

    def stop_auth_check(self) -> None:
        if self._check_task is not None:
            self._check_task.cancel()
            self._check_task = None

    def is_checking(self) -> bool:
        return self._check_task is not None and not self._check_task.done()

    async def _check_loop(self) -> None:
        interval = self._cfg.check_interval_ms / 1000.0
        while not self._logged_in:
            await asyncio.sleep(interval)
            if not self._logged_in:
                log.debug("Waiting for server authentication...")

    def _on_timeout(self) -> None:
        self._timeout_handle = None
        if not self._logged_in:
            self._timed_out = True
            log.warning("Authentication timeout reached; use password if needed")
            log_event(
                self._bus,
                MODULE,
                EventType.AUTH_TIMEOUT,
                "Authentication timeout reached",
                self.get_state().to_dict(),
            )
        self.stop_auth_check()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("Authentication sequence failed: %s", exc)
