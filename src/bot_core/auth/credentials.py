# src/bot_core/auth/credentials.py

from __future__ import annotations

import logging
from typing import List

log = logging.getLogger(__name__)

DEFAULT_PASSWORD = "defaultPassword123"
MIN_PASSWORD_LENGTH = 8


class CredentialStore:
    """Holds the server-side password and warns about weak ones once."""

    def __init__(self, password: str) -> None:
        if not password or password == DEFAULT_PASSWORD:
            log.warning("Using default password. Set BOT_PASSWORD for security.")
        if len(password) < MIN_PASSWORD_LENGTH:
            log.warning("BOT_PASSWORD is shorter than %d characters.", MIN_PASSWORD_LENGTH)
        self._password = password

    @property
    def password(self) -> str:
        return self._password

    def registration_commands(self) -> List[str]:
        p = self._password
        return [f"/register {p} {p}", f"/register {p}", f"/reg {p} {p}", f"/reg {p}"]

    def login_commands(self) -> List[str]:
        p = self._password
        return [f"/login {p}", f"/l {p}"]

    def __repr__(self) -> str:
        return "CredentialStore(password=***)"
